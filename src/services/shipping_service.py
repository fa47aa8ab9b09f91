"""Shipping fee and sales tax assignment for a pending order."""

import logging
from datetime import datetime, timezone
from typing import Any

from src.api.middleware.error_handler import StateGuardError, ValidationError
from src.core.config import Settings, get_settings
from src.core.taxjar import TaxJarClient, get_taxjar_client
from src.core.unit_of_work import UnitOfWork
from src.models.order import FulfillmentType, OrderState
from src.services.catalog_service import CatalogService
from src.services.sales_tax_service import SalesTaxService
from src.services.totals_service import FeeSchedule, calculate_totals

logger = logging.getLogger(__name__)


def validate_shipping_address(shipping: dict[str, Any]) -> None:
    """Check the address has what its country needs.

    Raises:
        ValidationError: On a missing country, or a missing region/postal code
            where the country requires one.
    """
    country = (shipping.get("country") or "").upper()
    if not country:
        raise ValidationError("Valid country required for shipping address")
    if country == "US":
        if not shipping.get("region"):
            raise ValidationError("Valid state required for US shipping address")
        if not shipping.get("postal_code"):
            raise ValidationError("Valid postal code required for US shipping address")
    elif country == "CA" and not shipping.get("region"):
        raise ValidationError("Valid province or territory required for Canadian shipping address")


class OrderShippingService:
    """Resolves per-item shipping fees and taxes, then rebuilds order totals."""

    def __init__(
        self,
        order: dict[str, Any],
        line_items: list[dict[str, Any]],
        fulfillment_type: FulfillmentType | str,
        shipping: dict[str, Any],
        catalog: CatalogService | None = None,
        tax_client: TaxJarClient | None = None,
        settings: Settings | None = None,
        fees: FeeSchedule | None = None,
    ) -> None:
        self.order = order
        self.line_items = line_items
        self.fulfillment_type = FulfillmentType(fulfillment_type)
        self.shipping = shipping or {}
        self.catalog = catalog or CatalogService()
        self.tax_client = tax_client or get_taxjar_client()
        self.settings = settings or get_settings()
        self.fees = fees or FeeSchedule.from_settings(self.settings)
        self._artworks: dict[str, dict[str, Any]] | None = None

        if self.fulfillment_type == FulfillmentType.SHIP:
            validate_shipping_address(self.shipping)

    @property
    def artworks(self) -> dict[str, dict[str, Any]]:
        """Catalog artworks for the order's line items, keyed by id."""
        if self._artworks is None:
            artworks = {}
            for artwork_id in dict.fromkeys(li["artwork_id"] for li in self.line_items):
                artwork = self.catalog.get_artwork(artwork_id)
                if not artwork:
                    raise ValidationError("Cannot set shipping, unknown artwork")
                if not artwork.get("location"):
                    raise ValidationError("Cannot set shipping, missing artwork location")
                artworks[artwork_id] = artwork
            self._artworks = artworks
        return self._artworks

    def artwork_shipping_fee(self, artwork: dict[str, Any]) -> int:
        """Shipping fee for one artwork: zero for pickup, else domestic or international."""
        if self.fulfillment_type == FulfillmentType.PICKUP:
            return 0
        location_country = artwork["location"].get("country") or ""
        if location_country.casefold() == self.shipping["country"].casefold():
            fee = artwork.get("domestic_shipping_fee_cents")
        else:
            fee = artwork.get("international_shipping_fee_cents")
        if fee is None:
            raise ValidationError("Artwork is missing shipping fee.")
        return fee

    def shipping_total_cents(self) -> int:
        return sum(self.artwork_shipping_fee(self.artworks[li["artwork_id"]]) for li in self.line_items)

    def process(self, unit: UnitOfWork) -> dict[str, Any]:
        """Stage shipping, tax and totals writes for the order.

        Args:
            unit: Unit of work of the enclosing transition.

        Returns:
            dict: Order columns that changed, with their new values.

        Raises:
            StateGuardError: If the order is not pending.
            ValidationError: On unknown artworks, missing locations or fees.
            ExternalDependencyError: If the catalog or tax provider fails.
        """
        if self.order["state"] != OrderState.PENDING.value:
            raise StateGuardError("Cannot set shipping info on non-pending orders")

        shipping_total = self.shipping_total_cents()
        now = datetime.now(timezone.utc).isoformat()

        updated_items = []
        for line_item in self.line_items:
            tax = SalesTaxService(
                line_item,
                self.fulfillment_type,
                self.shipping,
                shipping_total,
                self.artworks[line_item["artwork_id"]]["location"],
                self.order["seller_id"],
                catalog=self.catalog,
                tax_client=self.tax_client,
                settings=self.settings,
            )
            values = {
                "sales_tax_cents": tax.sales_tax,
                "should_remit_sales_tax": tax.should_remit,
                "updated_at": now,
            }
            unit.update("line_items", line_item["id"], values)
            updated_items.append({**line_item, **values})

        tax_total = sum(item["sales_tax_cents"] for item in updated_items)
        totals = calculate_totals(
            updated_items,
            shipping_total,
            tax_total,
            fees=self.fees,
        )

        changes: dict[str, Any] = {
            "fulfillment_type": self.fulfillment_type.value,
            "shipping_total_cents": shipping_total,
            "tax_total_cents": tax_total,
            "buyer_phone_number": self.shipping.get("phone_number"),
            "shipping_name": self.shipping.get("name"),
            "shipping_address_line1": self.shipping.get("address_line1"),
            "shipping_address_line2": self.shipping.get("address_line2"),
            "shipping_city": self.shipping.get("city"),
            "shipping_region": self.shipping.get("region"),
            "shipping_country": self.shipping.get("country"),
            "shipping_postal_code": self.shipping.get("postal_code"),
            **totals.as_columns(),
        }
        unit.update(
            "orders",
            self.order["id"],
            {**changes, "updated_at": now},
            match={"state": OrderState.PENDING.value},
        )
        self.line_items = updated_items
        logger.info(
            "Assigned shipping %d and tax %d cents to order %s",
            shipping_total,
            tax_total,
            self.order["id"],
        )
        return changes
