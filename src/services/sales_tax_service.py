"""Sales tax calculation, remittance rules and tax provider reporting."""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any

from src.api.middleware.error_handler import ValidationError
from src.core.config import Settings, get_settings
from src.core.taxjar import TaxJarClient, get_taxjar_client
from src.models.order import Address, FulfillmentType, LineItem
from src.services.catalog_service import CatalogService
from src.services.totals_service import round_cents

logger = logging.getLogger(__name__)


def cents_to_dollars(cents: int) -> Decimal:
    """Convert cents to a two-place major-unit amount."""
    return (Decimal(cents) / 100).quantize(Decimal("0.01"))


def dollars_to_cents(amount: Decimal) -> int:
    """Convert a major-unit amount to cents."""
    return round_cents(Decimal(amount) * 100)


def shipping_to_address(shipping: dict[str, Any]) -> Address:
    """Map buyer shipping fields onto an Address."""
    return Address(
        country=shipping.get("country"),
        region=shipping.get("region"),
        city=shipping.get("city"),
        address=shipping.get("address_line1"),
        postal_code=shipping.get("postal_code"),
    )


def should_remit_taxes(destination: Address, settings: Settings | None = None) -> bool:
    """Whether the platform, rather than the seller, remits tax for ``destination``.

    True only for the remit country with a region in the nexus set.
    """
    settings = settings or get_settings()
    country = (destination.get("country") or "").upper()
    region = (destination.get("region") or "").upper()
    return country == settings.tax_remit_country.upper() and region in settings.tax_nexus_states_set


class SalesTaxService:
    """Sales tax for a single line item.

    Origin is the seller's location when shipping and the artwork's own
    location for pickup; a pickup's destination is its origin.
    """

    def __init__(
        self,
        line_item: LineItem,
        fulfillment_type: FulfillmentType | str,
        shipping: dict[str, Any],
        shipping_total_cents: int,
        artwork_location: Address,
        seller_id: str,
        catalog: CatalogService | None = None,
        tax_client: TaxJarClient | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.line_item = line_item
        self.fulfillment_type = FulfillmentType(fulfillment_type)
        self.shipping = shipping or {}
        self.artwork_location = artwork_location
        self.seller_id = seller_id
        self.catalog = catalog or CatalogService()
        self.tax_client = tax_client or get_taxjar_client()
        self.settings = settings or get_settings()

        if self.fulfillment_type == FulfillmentType.SHIP and not self.shipping.get("country"):
            raise ValidationError("Valid country required for shipping address")

        self._seller_address: Address | None = None
        self._sales_tax: int | None = None
        # Shipping is only taxed when the platform collects and remits.
        self.shipping_total_cents = shipping_total_cents if self.should_remit else 0

    @property
    def seller_address(self) -> Address:
        if self._seller_address is None:
            self._seller_address = self.catalog.get_partner_location(self.seller_id)
        return self._seller_address

    @property
    def origin_address(self) -> Address:
        if self.fulfillment_type == FulfillmentType.SHIP:
            return self.seller_address
        return self.artwork_location

    @property
    def destination_address(self) -> Address:
        if self.fulfillment_type == FulfillmentType.SHIP:
            return shipping_to_address(self.shipping)
        return self.origin_address

    @property
    def should_remit(self) -> bool:
        """Whether the platform must remit the tax collected on this line item."""
        return should_remit_taxes(self.destination_address, self.settings)

    @property
    def line_item_amount_cents(self) -> int:
        return self.line_item["price_cents"] * (self.line_item.get("quantity") or 1)

    @property
    def transaction_id(self) -> str:
        return f"{self.line_item['order_id']}-{self.line_item['id']}"

    @property
    def sales_tax(self) -> int:
        """Tax owed on this line item in cents, as computed by the tax provider."""
        if self._sales_tax is None:
            amount = self.tax_client.tax_for_order(self.construct_tax_params())
            self._sales_tax = dollars_to_cents(amount)
        return self._sales_tax

    def construct_tax_params(self, **extra: Any) -> dict[str, Any]:
        """Parameters shared by every tax provider call for this line item."""
        origin = self.origin_address
        destination = self.destination_address
        params: dict[str, Any] = {
            "amount": cents_to_dollars(self.line_item_amount_cents),
            "from_country": origin.get("country"),
            "from_zip": origin.get("postal_code"),
            "from_state": origin.get("region"),
            "from_city": origin.get("city"),
            "from_street": origin.get("address"),
            "to_country": destination.get("country"),
            "to_zip": destination.get("postal_code"),
            "to_state": destination.get("region"),
            "to_city": destination.get("city"),
            "to_street": destination.get("address"),
            "shipping": cents_to_dollars(self.shipping_total_cents),
        }
        params.update(extra)
        return params

    def record_tax_collected(self, transaction_date: datetime) -> bool:
        """Post the collected tax to the provider when the platform remits it.

        Skips line items the seller remits, items with no tax, and items
        whose transaction was already posted.

        Returns:
            bool: True if a transaction was posted.
        """
        sales_tax_cents = self.line_item.get("sales_tax_cents") or 0
        if not self.line_item.get("should_remit_sales_tax") or sales_tax_cents <= 0:
            return False
        if self.tax_client.show_order(self.transaction_id) is not None:
            logger.info("Tax transaction %s already posted", self.transaction_id)
            return False

        self.tax_client.create_order(
            self.construct_tax_params(
                transaction_id=self.transaction_id,
                transaction_date=transaction_date.isoformat(),
                sales_tax=cents_to_dollars(sales_tax_cents),
            )
        )
        logger.info("Posted tax transaction %s", self.transaction_id)
        return True

    def refund_transaction(self, refund_date: datetime) -> bool:
        """Post a refund for this line item's tax transaction, if one was posted.

        Returns:
            bool: True if a refund was posted, False when there was nothing to refund.
        """
        if self.tax_client.show_order(self.transaction_id) is None:
            logger.info("No tax transaction %s to refund", self.transaction_id)
            return False

        self.tax_client.create_refund(
            self.construct_tax_params(
                transaction_id=f"{self.transaction_id}_refund",
                transaction_date=refund_date.isoformat(),
                transaction_reference_id=self.transaction_id,
                sales_tax=cents_to_dollars(self.line_item.get("sales_tax_cents") or 0),
            )
        )
        logger.info("Posted tax refund for %s", self.transaction_id)
        return True
