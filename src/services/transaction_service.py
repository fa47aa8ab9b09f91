"""Payment transaction records.

Rows are written straight to the database, outside any unit of work, so a
gateway outcome is kept even when the transition that caused it rolls back.
"""

import logging
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from supabase import Client

from src.core.supabase import get_supabase_client
from src.models.order import TransactionStatus, TransactionType

logger = logging.getLogger(__name__)


class TransactionService:
    """Records authorize/capture attempts in the transactions table."""

    def __init__(self, client: Client | None = None) -> None:
        self.client = client or get_supabase_client()

    def _insert(self, row: dict[str, Any]) -> dict[str, Any]:
        row.setdefault("id", str(uuid4()))
        row.setdefault("created_at", datetime.now(timezone.utc).isoformat())
        response = self.client.table("transactions").insert(row).execute()
        return response.data[0] if response.data else row

    def create_success(
        self,
        order_id: str,
        transaction_type: TransactionType,
        charge: dict[str, Any],
    ) -> dict[str, Any]:
        """Record a successful gateway call.

        Args:
            order_id: Order the charge belongs to.
            transaction_type: Authorize or capture.
            charge: Charge data returned by the payment service.
        """
        return self._insert(
            {
                "order_id": order_id,
                "transaction_type": transaction_type.value,
                "status": TransactionStatus.SUCCESS.value,
                "external_id": charge.get("id"),
                "source_id": charge.get("source_id"),
                "destination_id": charge.get("destination_id"),
                "amount_cents": charge.get("amount"),
            }
        )

    def create_failure(
        self,
        order_id: str,
        transaction_type: TransactionType,
        body: dict[str, Any],
    ) -> dict[str, Any]:
        """Record a failed gateway call with the provider's error body."""
        error = body.get("error", body) if isinstance(body, dict) else {}
        logger.warning(
            "Recording failed %s for order %s: %s",
            transaction_type.value,
            order_id,
            error.get("message"),
        )
        return self._insert(
            {
                "order_id": order_id,
                "transaction_type": transaction_type.value,
                "status": TransactionStatus.FAILURE.value,
                "external_id": error.get("charge"),
                "amount_cents": body.get("amount"),
                "failure_code": error.get("decline_code") or error.get("code"),
                "failure_message": error.get("message"),
            }
        )
