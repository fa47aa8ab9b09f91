"""Catalog service client for artworks, partners and credit cards."""

import logging
from typing import Any

import httpx

from src.api.middleware.error_handler import ExternalDependencyError
from src.core.config import get_settings
from src.models.order import Address

logger = logging.getLogger(__name__)


def normalize_location(location: dict[str, Any] | None) -> Address | None:
    """Normalize a catalog location into an Address.

    The catalog uses ``state``/``region`` and ``postal_code``/``postalCode``
    interchangeably.
    """
    if not location:
        return None
    return Address(
        country=location.get("country"),
        region=location.get("region") or location.get("state"),
        city=location.get("city"),
        address=location.get("address"),
        postal_code=location.get("postal_code") or location.get("postalCode"),
    )


class CatalogService:
    """Read-only client for the catalog (artworks, partners, payment instruments)."""

    def __init__(self, http_client: httpx.Client | None = None) -> None:
        """Initialize catalog client from settings."""
        self.settings = get_settings()
        self.base_url = self.settings.catalog_api_url.rstrip("/")
        self.client = http_client or httpx.Client(
            timeout=self.settings.external_request_timeout_seconds,
            headers={"X-Xapp-Token": self.settings.catalog_api_token},
        )

    def _get(self, path: str, resource: str) -> dict[str, Any] | None:
        """GET a catalog resource.

        Returns:
            dict | None: Parsed JSON body, or None on 404.

        Raises:
            ExternalDependencyError: On transport errors or non-404 failures.
        """
        try:
            response = self.client.get(f"{self.base_url}{path}")
        except httpx.HTTPError as e:
            logger.error("Catalog request for %s failed: %s", resource, str(e))
            raise ExternalDependencyError("catalog", f"Cannot fetch {resource}") from e

        if response.status_code == httpx.codes.NOT_FOUND:
            return None
        if response.is_error:
            logger.error(
                "Catalog returned %d for %s: %s",
                response.status_code,
                resource,
                response.text,
            )
            raise ExternalDependencyError("catalog", f"Cannot fetch {resource}")
        return response.json()

    def get_artwork(self, artwork_id: str) -> dict[str, Any] | None:
        """Get an artwork with its location and shipping fees.

        Returns:
            dict | None: Artwork with ``location`` normalized to an Address,
            or None if the catalog does not know it.
        """
        artwork = self._get(f"/v1/artwork/{artwork_id}", "artwork")
        if artwork is None:
            return None
        artwork["location"] = normalize_location(artwork.get("location"))
        return artwork

    def get_credit_card(self, credit_card_id: str) -> dict[str, Any] | None:
        """Get a stored payment instrument."""
        return self._get(f"/v1/credit_card/{credit_card_id}", "credit card")

    def get_partner(self, partner_id: str) -> dict[str, Any]:
        """Get a partner (seller) including its effective commission rate."""
        partner = self._get(f"/v1/partner/{partner_id}/all", "partner")
        if partner is None:
            raise ExternalDependencyError("catalog", "Cannot fetch partner")
        return partner

    def get_partner_location(self, partner_id: str) -> Address:
        """Get the seller's registered location, used as the tax origin when shipping."""
        locations = self._get(f"/v1/partner/{partner_id}/locations?private=true", "partner location")
        if not locations:
            raise ExternalDependencyError("catalog", "Cannot fetch partner location")
        if isinstance(locations, list):
            locations = locations[0]
        return normalize_location(locations)

    def get_merchant_account(self, partner_id: str) -> dict[str, Any]:
        """Get the seller's payment processor account (charge destination)."""
        accounts = self._get(f"/v1/merchant_accounts?partner_id={partner_id}", "merchant account")
        if not accounts:
            raise ExternalDependencyError("catalog", "Partner does not have merchant account")
        return accounts[0] if isinstance(accounts, list) else accounts

    def get_effective_commission_rate(self, partner_id: str) -> Any:
        """Get the seller's effective commission rate as returned by the catalog."""
        partner = self.get_partner(partner_id)
        rate = partner.get("effective_commission_rate")
        if rate is None:
            raise ExternalDependencyError("catalog", "Partner has no commission rate")
        return rate
