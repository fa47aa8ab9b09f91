"""Order aggregate persistence on Supabase."""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from supabase import Client

from src.core.supabase import get_supabase_client
from src.core.unit_of_work import UnitOfWork
from src.models.order import OrderState

logger = logging.getLogger(__name__)

COMMIT_FUNCTION = "apply_order_unit"


class OrderRepository:
    """Reads order rows and commits units of work atomically."""

    def __init__(self, client: Client | None = None) -> None:
        self.client = client or get_supabase_client()

    def get_order(self, order_id: str) -> dict[str, Any] | None:
        """Get an order by ID.

        Returns:
            dict | None: The order row or None if not found.
        """
        response = (
            self.client.table("orders")
            .select("*")
            .eq("id", str(order_id))
            .maybe_single()
            .execute()
        )
        return response.data if response and response.data else None

    def get_line_items(self, order_id: str) -> list[dict[str, Any]]:
        """Get all line items of an order, oldest first."""
        response = (
            self.client.table("line_items")
            .select("*")
            .eq("order_id", str(order_id))
            .order("created_at")
            .execute()
        )
        return response.data or []

    def get_line_item(self, line_item_id: str) -> dict[str, Any] | None:
        """Get a single line item by ID."""
        response = (
            self.client.table("line_items")
            .select("*")
            .eq("id", str(line_item_id))
            .maybe_single()
            .execute()
        )
        return response.data if response and response.data else None

    def get_pending_orders_for_buyer(self, buyer_id: str) -> list[dict[str, Any]]:
        """Get the buyer's PENDING orders."""
        response = (
            self.client.table("orders")
            .select("*")
            .eq("buyer_id", str(buyer_id))
            .eq("state", OrderState.PENDING.value)
            .execute()
        )
        return response.data or []

    def get_expired_pending_orders(self, now_iso: str) -> list[dict[str, Any]]:
        """Get PENDING orders whose expiry is before ``now_iso``."""
        response = (
            self.client.table("orders")
            .select("*")
            .eq("state", OrderState.PENDING.value)
            .lt("state_expires_at", now_iso)
            .execute()
        )
        return response.data or []

    def get_fulfilled_line_item_ids(self, line_item_ids: list[str]) -> set[str]:
        """Which of ``line_item_ids`` already belong to a fulfillment."""
        if not line_item_ids:
            return set()
        response = (
            self.client.table("line_item_fulfillments")
            .select("line_item_id")
            .in_("line_item_id", line_item_ids)
            .execute()
        )
        return {row["line_item_id"] for row in response.data or []}

    def get_history(self, order_id: str) -> list[dict[str, Any]]:
        """Get an order's history rows, oldest first."""
        response = (
            self.client.table("order_histories")
            .select("*")
            .eq("order_id", str(order_id))
            .order("created_at")
            .execute()
        )
        return response.data or []

    def commit(self, unit: UnitOfWork) -> None:
        """Apply every staged operation in one database transaction.

        The ``apply_order_unit`` Postgres function runs the operations in
        order and raises if any update's match columns no longer hold,
        rolling back the whole unit.
        """
        if not unit.operations:
            return
        self.client.rpc(COMMIT_FUNCTION, {"operations": unit.operations}).execute()
        logger.debug("Committed unit of work with %d operations", len(unit))

    @contextmanager
    def unit_of_work(self) -> Iterator[UnitOfWork]:
        """Stage writes and commit them when the block exits cleanly.

        If the block raises, the staged writes are dropped and the error
        propagates.
        """
        unit = UnitOfWork()
        yield unit
        self.commit(unit)
