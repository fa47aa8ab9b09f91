"""TaxJar v2 REST client for sales tax calculation and reporting."""

import logging
from decimal import Decimal
from functools import lru_cache
from typing import Any

import httpx

from src.api.middleware.error_handler import ExternalDependencyError
from src.core.config import get_settings

logger = logging.getLogger(__name__)


def _encode(params: dict[str, Any]) -> dict[str, Any]:
    """Make tax params JSON serializable (Decimal amounts become numbers)."""
    return {key: float(value) if isinstance(value, Decimal) else value for key, value in params.items()}


class TaxJarClient:
    """Synchronous HTTP client for the TaxJar API."""

    def __init__(
        self,
        api_key: str | None = None,
        api_url: str | None = None,
        http_client: httpx.Client | None = None,
    ) -> None:
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.taxjar_api_key
        self.api_url = (api_url or settings.taxjar_api_url).rstrip("/")
        self.client = http_client or httpx.Client(
            timeout=settings.external_request_timeout_seconds,
        )

    def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        if not self.api_key:
            raise ExternalDependencyError("tax provider", "TaxJar is not configured. Please set TAXJAR_API_KEY.")
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            return self.client.request(method, f"{self.api_url}{path}", headers=headers, **kwargs)
        except httpx.HTTPError as e:
            logger.error("TaxJar %s %s failed: %s", method, path, str(e))
            raise ExternalDependencyError("tax provider") from e

    @staticmethod
    def _raise_for_status(response: httpx.Response, action: str) -> None:
        if response.is_error:
            logger.error("TaxJar %s returned %d: %s", action, response.status_code, response.text)
            raise ExternalDependencyError("tax provider", f"Tax provider could not {action}")

    def tax_for_order(self, params: dict[str, Any]) -> Decimal:
        """Calculate tax owed for an order.

        Returns:
            Decimal: amount_to_collect in major units.
        """
        response = self._request("POST", "/v2/taxes", json=_encode(params))
        self._raise_for_status(response, "calculate tax")
        tax = response.json().get("tax") or {}
        return Decimal(str(tax.get("amount_to_collect", 0)))

    def create_order(self, params: dict[str, Any]) -> dict[str, Any]:
        """Post an order transaction for remittance reporting."""
        response = self._request("POST", "/v2/transactions/orders", json=_encode(params))
        self._raise_for_status(response, "record the tax transaction")
        return response.json().get("order", {})

    def show_order(self, transaction_id: str) -> dict[str, Any] | None:
        """Look up a posted order transaction.

        Returns:
            dict | None: The transaction, or None if TaxJar has no record of it.
        """
        response = self._request("GET", f"/v2/transactions/orders/{transaction_id}")
        if response.status_code == httpx.codes.NOT_FOUND:
            return None
        self._raise_for_status(response, "look up the tax transaction")
        return response.json().get("order")

    def create_refund(self, params: dict[str, Any]) -> dict[str, Any]:
        """Post a refund transaction against a previous order transaction."""
        response = self._request("POST", "/v2/transactions/refunds", json=_encode(params))
        self._raise_for_status(response, "record the tax refund")
        return response.json().get("refund", {})


@lru_cache
def get_taxjar_client() -> TaxJarClient:
    """Get cached TaxJar client singleton."""
    return TaxJarClient()
