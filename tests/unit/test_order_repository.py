"""Unit tests for OrderRepository, UnitOfWork, history rows and order locks."""

import asyncio
from unittest.mock import MagicMock

import pytest

from src.core.order_locks import OrderLockRegistry
from src.core.unit_of_work import UnitOfWork
from src.models.order import OrderState
from src.services.history_service import SYSTEM_ACTOR, record_history
from src.services.order_repository import COMMIT_FUNCTION, OrderRepository


@pytest.fixture
def mock_supabase() -> MagicMock:
    return MagicMock()


@pytest.fixture
def repository(mock_supabase: MagicMock) -> OrderRepository:
    return OrderRepository(client=mock_supabase)


class TestUnitOfWork:
    """Tests for staging operations."""

    def test_keeps_operations_in_order(self) -> None:
        unit = UnitOfWork()
        unit.insert("orders", {"id": "o1"})
        unit.update("orders", "o1", {"state": "abandoned"}, match={"state": "pending"})

        assert [op["op"] for op in unit.operations] == ["insert", "update"]
        assert unit.operations[1]["match"] == {"state": "pending"}
        assert len(unit) == 2

    def test_updates_for_merges_values(self) -> None:
        unit = UnitOfWork()
        unit.update("line_items", "li-1", {"sales_tax_cents": 10})
        unit.update("line_items", "li-1", {"should_remit_sales_tax": True})
        unit.update("line_items", "li-2", {"sales_tax_cents": 99})

        assert unit.updates_for("line_items", "li-1") == {"sales_tax_cents": 10, "should_remit_sales_tax": True}


class TestRecordHistory:
    """Tests for audit trail rows."""

    def test_stages_insert_with_plain_values(self) -> None:
        unit = UnitOfWork()

        row = record_history(unit, "order-1", "user-1", {"state": OrderState.SUBMITTED, "tax_total_cents": 10})

        assert unit.inserted("order_histories") == [row]
        assert row["modifier_id"] == "user-1"
        assert row["changed_fields"] == {"state": "submitted", "tax_total_cents": 10}

    def test_missing_actor_is_system(self) -> None:
        row = record_history(UnitOfWork(), "order-1", None, {})
        assert row["modifier_id"] == SYSTEM_ACTOR


class TestCommit:
    """Tests for committing units of work."""

    def test_commits_through_single_rpc(self, repository: OrderRepository, mock_supabase: MagicMock) -> None:
        with repository.unit_of_work() as unit:
            unit.insert("orders", {"id": "o1"})
            unit.insert("order_histories", {"id": "h1"})

        mock_supabase.rpc.assert_called_once_with(COMMIT_FUNCTION, {"operations": unit.operations})
        mock_supabase.rpc.return_value.execute.assert_called_once()

    def test_error_in_block_writes_nothing(self, repository: OrderRepository, mock_supabase: MagicMock) -> None:
        with pytest.raises(RuntimeError):
            with repository.unit_of_work() as unit:
                unit.insert("orders", {"id": "o1"})
                raise RuntimeError("gateway down")

        mock_supabase.rpc.assert_not_called()

    def test_empty_unit_skips_rpc(self, repository: OrderRepository, mock_supabase: MagicMock) -> None:
        with repository.unit_of_work():
            pass

        mock_supabase.rpc.assert_not_called()


class TestReads:
    """Tests for repository reads."""

    def test_get_order_returns_none_when_missing(
        self, repository: OrderRepository, mock_supabase: MagicMock
    ) -> None:
        mock_supabase.table.return_value.select.return_value.eq.return_value.maybe_single.return_value.execute.return_value = None

        assert repository.get_order("missing") is None

    def test_get_pending_orders_filters_by_state(
        self, repository: OrderRepository, mock_supabase: MagicMock
    ) -> None:
        query = mock_supabase.table.return_value.select.return_value.eq.return_value.eq.return_value
        query.execute.return_value = MagicMock(data=[{"id": "o1"}])

        assert repository.get_pending_orders_for_buyer("buyer-1") == [{"id": "o1"}]
        mock_supabase.table.return_value.select.return_value.eq.return_value.eq.assert_called_once_with(
            "state", "pending"
        )

    def test_get_fulfilled_line_item_ids(self, repository: OrderRepository, mock_supabase: MagicMock) -> None:
        query = mock_supabase.table.return_value.select.return_value.in_.return_value
        query.execute.return_value = MagicMock(data=[{"line_item_id": "li-1"}])

        assert repository.get_fulfilled_line_item_ids(["li-1", "li-2"]) == {"li-1"}

    def test_get_fulfilled_line_item_ids_empty(self, repository: OrderRepository, mock_supabase: MagicMock) -> None:
        assert repository.get_fulfilled_line_item_ids([]) == set()
        mock_supabase.table.assert_not_called()


class TestOrderLocks:
    """Tests for the per-key lock registry."""

    @pytest.mark.asyncio
    async def test_same_key_is_serialized(self) -> None:
        locks = OrderLockRegistry()
        events: list[str] = []

        async def worker(name: str) -> None:
            async with locks.hold("order:1"):
                events.append(f"{name}-start")
                await asyncio.sleep(0.01)
                events.append(f"{name}-end")

        await asyncio.gather(worker("a"), worker("b"))

        assert events == ["a-start", "a-end", "b-start", "b-end"]

    @pytest.mark.asyncio
    async def test_different_keys_do_not_block(self) -> None:
        locks = OrderLockRegistry()
        events: list[str] = []

        async def worker(key: str) -> None:
            async with locks.hold(key):
                events.append(f"{key}-start")
                await asyncio.sleep(0.01)
                events.append(f"{key}-end")

        await asyncio.gather(worker("order:1"), worker("order:2"))

        assert events[:2] == ["order:1-start", "order:2-start"]
