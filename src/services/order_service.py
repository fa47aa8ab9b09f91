"""Order lifecycle orchestration.

Each operation loads the order under its lock, checks guards, runs its
external calls and stages its writes on one unit of work. The unit is
committed only when every step succeeded. Notifications and tax reporting
run after the commit and never undo it.
"""

import logging
import secrets
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import uuid4

from src.api.middleware.error_handler import (
    NotFoundError,
    PaymentError,
    StateGuardError,
    ValidationError,
)
from src.core.config import Settings, get_settings
from src.core.order_locks import OrderLockRegistry, get_order_locks
from src.core.taxjar import TaxJarClient, get_taxjar_client
from src.core.unit_of_work import UnitOfWork
from src.models.order import FulfillmentType, OrderAction, OrderState, TransactionType
from src.services.catalog_service import CatalogService
from src.services.history_service import SYSTEM_ACTOR, record_history
from src.services.notification_service import NotificationService
from src.services.order_repository import OrderRepository
from src.services.order_state import next_state
from src.services.payment_service import PaymentService
from src.services.sales_tax_service import SalesTaxService
from src.services.shipping_service import OrderShippingService
from src.services.totals_service import FeeSchedule, calculate_totals
from src.services.transaction_service import TransactionService

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def generate_order_code() -> str:
    """Random 9-digit code shown to buyers and sellers."""
    return f"{secrets.randbelow(10**9):09d}"


def order_shipping(order: dict[str, Any]) -> dict[str, Any]:
    """Shipping fields of a stored order in the shape the tax engine expects."""
    return {
        "country": order.get("shipping_country"),
        "postal_code": order.get("shipping_postal_code"),
        "region": order.get("shipping_region"),
        "city": order.get("shipping_city"),
        "address_line1": order.get("shipping_address_line1"),
    }


def has_shipping_info(order: dict[str, Any]) -> bool:
    fulfillment_type = order.get("fulfillment_type")
    if fulfillment_type == FulfillmentType.PICKUP.value:
        return True
    return fulfillment_type == FulfillmentType.SHIP.value and bool(order.get("shipping_country"))


def has_payment_info(order: dict[str, Any]) -> bool:
    return all(
        order.get(column)
        for column in ("credit_card_id", "external_credit_card_id", "external_customer_id")
    )


def validate_credit_card(credit_card: dict[str, Any] | None) -> None:
    """Reject cards the gateway could not charge.

    Raises:
        ValidationError: If the card is unknown, deactivated or lacks gateway ids.
    """
    if not credit_card:
        raise ValidationError("Credit card not found")
    if not credit_card.get("external_id"):
        raise ValidationError("Credit card does not have external id")
    customer_account = credit_card.get("customer_account") or {}
    if not customer_account.get("external_id"):
        raise ValidationError("Credit card does not have customer")
    if credit_card.get("deactivated_at"):
        raise ValidationError("Credit card is deactivated")


class OrderService:
    """Drives orders through PENDING, SUBMITTED, APPROVED and FULFILLED.

    All collaborators can be injected; defaults come from settings.
    """

    def __init__(
        self,
        repository: OrderRepository | None = None,
        catalog: CatalogService | None = None,
        payments: PaymentService | None = None,
        transactions: TransactionService | None = None,
        tax_client: TaxJarClient | None = None,
        notifications: NotificationService | None = None,
        locks: OrderLockRegistry | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.repository = repository or OrderRepository()
        self.catalog = catalog or CatalogService()
        self.payments = payments or PaymentService()
        self.transactions = transactions or TransactionService()
        self.tax_client = tax_client or get_taxjar_client()
        self.notifications = notifications or NotificationService()
        self.locks = locks or get_order_locks()
        self.fees = FeeSchedule.from_settings(self.settings)

    # Reads

    def _load(self, order_id: str) -> dict[str, Any]:
        order = self.repository.get_order(order_id)
        if not order:
            raise NotFoundError("Order not found")
        return order

    async def get_order(self, order_id: str) -> dict[str, Any]:
        """Get an order with its line items.

        Raises:
            NotFoundError: If the order does not exist.
        """
        order = self._load(order_id)
        return {**order, "line_items": self.repository.get_line_items(order_id)}

    async def get_history(self, order_id: str) -> list[dict[str, Any]]:
        """Get the order's audit trail, oldest first."""
        self._load(order_id)
        return self.repository.get_history(order_id)

    # Helpers

    def _expires_at(self, state: OrderState, now: datetime) -> str | None:
        if state == OrderState.PENDING:
            return (now + timedelta(hours=self.settings.pending_order_expiry_hours)).isoformat()
        if state == OrderState.SUBMITTED:
            return (now + timedelta(hours=self.settings.submitted_order_expiry_hours)).isoformat()
        return None

    def _transition(
        self,
        unit: UnitOfWork,
        order: dict[str, Any],
        action: OrderAction,
        actor_id: str | None,
        extra: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Stage a state change plus ``extra`` columns and its history row.

        The update only applies if the stored state is still the one we read.
        """
        target = next_state(order["state"], action)
        now = _now()
        changes = {
            "state": target.value,
            "state_updated_at": now.isoformat(),
            "state_expires_at": self._expires_at(target, now),
            **(extra or {}),
        }
        unit.update(
            "orders",
            order["id"],
            {**changes, "updated_at": now.isoformat()},
            match={"state": order["state"]},
        )
        record_history(unit, order["id"], actor_id, changes)
        return changes

    def _require_pending(self, order: dict[str, Any], what: str) -> None:
        if order["state"] != OrderState.PENDING.value:
            logger.warning("Rejected %s on order %s in state %s", what, order["id"], order["state"])
            raise StateGuardError(f"Cannot set {what} on non-pending orders")

    async def _after_commit(self, label: str, hook: Callable[[], Awaitable[Any]]) -> None:
        """Run a post-commit step; its failure is logged and does not fail the transition."""
        try:
            await hook()
        except Exception:
            logger.exception("Post-commit %s failed", label)

    # Lifecycle

    async def create(
        self,
        buyer_id: str,
        seller_id: str,
        currency_code: str,
        line_items: list[dict[str, Any]],
    ) -> dict[str, Any]:
        """Create a PENDING order, abandoning the buyer's other pending orders.

        Args:
            buyer_id: Buyer placing the order (also the history actor).
            seller_id: Partner selling the items.
            currency_code: Must be the supported currency.
            line_items: Dicts with artwork_id, optional edition_set_id,
                price_cents and quantity.

        Returns:
            dict: The new order with its line items.

        Raises:
            ValidationError: On unsupported currency, bad line items or unknown artworks.
        """
        if (currency_code or "").lower() != self.settings.supported_currency_code.lower():
            raise ValidationError("Currency not supported")
        for item in line_items:
            if not item.get("artwork_id"):
                raise ValidationError("Line item requires an artwork")
            if item.get("price_cents") is None or item["price_cents"] < 0:
                raise ValidationError("Line item requires a non-negative price")
            if (item.get("quantity") or 1) < 1:
                raise ValidationError("Line item quantity must be at least 1")

        async with self.locks.hold(f"buyer:{buyer_id}"):
            snapshots = {}
            for item in line_items:
                artwork = self.catalog.get_artwork(item["artwork_id"])
                if not artwork:
                    raise ValidationError(f"Unknown artwork {item['artwork_id']}")
                snapshots[item["artwork_id"]] = artwork

            now = _now()
            order_id = str(uuid4())
            rows = [
                {
                    "id": str(uuid4()),
                    "order_id": order_id,
                    "artwork_id": item["artwork_id"],
                    "edition_set_id": item.get("edition_set_id"),
                    "price_cents": item["price_cents"],
                    "quantity": item.get("quantity") or 1,
                    "artwork_snapshot": snapshots[item["artwork_id"]],
                    "sales_tax_cents": None,
                    "should_remit_sales_tax": False,
                    "created_at": now.isoformat(),
                    "updated_at": now.isoformat(),
                }
                for item in line_items
            ]
            totals = calculate_totals(rows, None, None, fees=self.fees)
            order = {
                "id": order_id,
                "code": generate_order_code(),
                "buyer_id": str(buyer_id),
                "seller_id": str(seller_id),
                "currency_code": currency_code.lower(),
                "state": OrderState.PENDING.value,
                "state_updated_at": now.isoformat(),
                "state_expires_at": self._expires_at(OrderState.PENDING, now),
                "shipping_total_cents": None,
                "tax_total_cents": None,
                "commission_fee_cents": None,
                **totals.as_columns(),
                "created_at": now.isoformat(),
                "updated_at": now.isoformat(),
            }

            with self.repository.unit_of_work() as unit:
                for pending in self.repository.get_pending_orders_for_buyer(buyer_id):
                    self._transition(unit, pending, OrderAction.ABANDON, buyer_id)
                    logger.info("Abandoning pending order %s for buyer %s", pending["id"], buyer_id)
                unit.insert("orders", order)
                for row in rows:
                    unit.insert("line_items", row)
                record_history(unit, order_id, buyer_id, order)

        logger.info("Created order %s (%s) for buyer %s", order_id, order["code"], buyer_id)
        return {**order, "line_items": rows}

    async def set_payment(self, order_id: str, credit_card_id: str, actor_id: str | None) -> dict[str, Any]:
        """Attach a payment instrument to a pending order.

        Raises:
            StateGuardError: If the order is not pending.
            ValidationError: If the card is unknown, deactivated or lacks gateway ids.
        """
        async with self.locks.hold(f"order:{order_id}"):
            order = self._load(order_id)
            self._require_pending(order, "payment info")

            credit_card = self.catalog.get_credit_card(credit_card_id)
            validate_credit_card(credit_card)

            changes = {
                "credit_card_id": credit_card_id,
                "external_credit_card_id": credit_card["external_id"],
                "external_customer_id": credit_card["customer_account"]["external_id"],
            }
            with self.repository.unit_of_work() as unit:
                unit.update(
                    "orders",
                    order["id"],
                    {**changes, "updated_at": _now().isoformat()},
                    match={"state": OrderState.PENDING.value},
                )
                record_history(unit, order["id"], actor_id, changes)

        logger.info("Set payment on order %s", order_id)
        return {**order, **changes}

    async def set_shipping(
        self,
        order_id: str,
        fulfillment_type: FulfillmentType | str,
        shipping: dict[str, Any],
        actor_id: str | None,
    ) -> dict[str, Any]:
        """Set fulfillment, resolve shipping fees and taxes, rebuild totals.

        Raises:
            StateGuardError: If the order is not pending.
            ValidationError: On an invalid address, unknown artwork, missing
                location or missing shipping fee.
            ExternalDependencyError: If the catalog or tax provider fails.
        """
        async with self.locks.hold(f"order:{order_id}"):
            order = self._load(order_id)
            self._require_pending(order, "shipping info")

            service = OrderShippingService(
                order,
                self.repository.get_line_items(order_id),
                fulfillment_type,
                shipping,
                catalog=self.catalog,
                tax_client=self.tax_client,
                settings=self.settings,
                fees=self.fees,
            )
            with self.repository.unit_of_work() as unit:
                changes = service.process(unit)
                record_history(unit, order["id"], actor_id, changes)

        return {**order, **changes, "line_items": service.line_items}

    async def submit(self, order_id: str, actor_id: str | None) -> dict[str, Any]:
        """Authorize the buyer total and move the order to SUBMITTED.

        If the gateway refuses, a failure transaction is recorded, nothing
        else is written and the order stays PENDING.

        Raises:
            InvalidTransitionError: If the order is not pending.
            StateGuardError: If shipping or payment info is missing.
            ValidationError: If the seller's commission rate is invalid.
            ExternalDependencyError: If the seller lookup fails.
            PaymentError: If the gateway rejects the authorization.
        """
        async with self.locks.hold(f"order:{order_id}"):
            order = self._load(order_id)
            next_state(order["state"], OrderAction.SUBMIT)
            if not (has_shipping_info(order) and has_payment_info(order)):
                raise StateGuardError(f"Missing info for submitting order({order_id})", error_type="missing_info")

            line_items = self.repository.get_line_items(order_id)
            merchant_account = self.catalog.get_merchant_account(order["seller_id"])
            commission_rate = self.catalog.get_effective_commission_rate(order["seller_id"])
            totals = calculate_totals(
                line_items,
                order.get("shipping_total_cents"),
                order.get("tax_total_cents"),
                commission_rate,
                fees=self.fees,
            )

            with self.repository.unit_of_work() as unit:
                try:
                    charge = self.payments.authorize_charge(
                        source_id=order["external_credit_card_id"],
                        customer_id=order["external_customer_id"],
                        destination_id=merchant_account["external_id"],
                        amount=totals.buyer_total_cents,
                        currency_code=order["currency_code"],
                        idempotency_key=f"{order_id}-authorize",
                    )
                except PaymentError as e:
                    self.transactions.create_failure(order_id, TransactionType.AUTHORIZE, e.body)
                    logger.error("Could not submit order %s: %s", order_id, e.message)
                    raise
                self.transactions.create_success(order_id, TransactionType.AUTHORIZE, charge)
                changes = self._transition(
                    unit,
                    order,
                    OrderAction.SUBMIT,
                    actor_id,
                    {"external_charge_id": charge["id"], **totals.as_columns()},
                )

        logger.info("Submitted order %s with charge %s", order_id, charge["id"])
        self.notifications.dispatch(order_id, OrderState.SUBMITTED.value, actor_id)
        return {**order, **changes}

    async def approve(self, order_id: str, actor_id: str | None) -> dict[str, Any]:
        """Capture the authorized charge and move the order to APPROVED.

        On a gateway failure the order stays SUBMITTED so the capture can be
        retried. Tax transactions are posted after the commit.

        Raises:
            InvalidTransitionError: If the order is not submitted.
            PaymentError: If the gateway rejects the capture.
        """
        async with self.locks.hold(f"order:{order_id}"):
            order = self._load(order_id)
            next_state(order["state"], OrderAction.APPROVE)

            with self.repository.unit_of_work() as unit:
                try:
                    charge = self.payments.capture_charge(
                        order["external_charge_id"],
                        idempotency_key=f"{order_id}-capture",
                    )
                except PaymentError as e:
                    self.transactions.create_failure(order_id, TransactionType.CAPTURE, e.body)
                    logger.error("Could not approve order %s: %s", order_id, e.message)
                    raise
                self.transactions.create_success(order_id, TransactionType.CAPTURE, charge)
                changes = self._transition(unit, order, OrderAction.APPROVE, actor_id)

        logger.info("Approved order %s", order_id)
        self.notifications.dispatch(order_id, OrderState.APPROVED.value, actor_id)
        approved_at = datetime.fromisoformat(changes["state_updated_at"])
        await self._after_commit(
            f"tax recording for order {order_id}",
            lambda: self.record_sales_tax(order_id, approved_at),
        )
        return {**order, **changes}

    async def fulfill(
        self,
        order_id: str,
        fulfillment: dict[str, Any],
        actor_id: str | None,
    ) -> dict[str, Any]:
        """Record the shipment of an approved order and mark it FULFILLED.

        Args:
            order_id: The order's id.
            fulfillment: courier, tracking_id, estimated_delivery and optional
                line_item_ids (defaults to every line item).
            actor_id: Acting user.

        Raises:
            InvalidTransitionError: If the order is not approved.
            ValidationError: If a line item is unknown or already fulfilled.
        """
        async with self.locks.hold(f"order:{order_id}"):
            order = self._load(order_id)
            next_state(order["state"], OrderAction.FULFILL)

            line_item_ids = {li["id"] for li in self.repository.get_line_items(order_id)}
            requested = list(fulfillment.get("line_item_ids") or line_item_ids)
            unknown = set(requested) - line_item_ids
            if unknown:
                raise ValidationError(f"Line items {sorted(unknown)} do not belong to order {order_id}")
            already = self.repository.get_fulfilled_line_item_ids(requested)
            if already:
                raise ValidationError(f"Line items {sorted(already)} are already fulfilled")

            now = _now().isoformat()
            with self.repository.unit_of_work() as unit:
                record = unit.insert(
                    "fulfillments",
                    {
                        "id": str(uuid4()),
                        "courier": fulfillment.get("courier"),
                        "tracking_id": fulfillment.get("tracking_id"),
                        "estimated_delivery": fulfillment.get("estimated_delivery"),
                        "created_at": now,
                    },
                )
                for line_item_id in requested:
                    unit.insert(
                        "line_item_fulfillments",
                        {
                            "id": str(uuid4()),
                            "line_item_id": line_item_id,
                            "fulfillment_id": record["id"],
                            "created_at": now,
                        },
                    )
                changes = self._transition(unit, order, OrderAction.FULFILL, actor_id)

        logger.info("Fulfilled order %s with fulfillment %s", order_id, record["id"])
        self.notifications.dispatch(order_id, OrderState.FULFILLED.value, actor_id)
        return {**order, **changes, "fulfillment": {**record, "line_item_ids": requested}}

    async def reject(self, order_id: str, actor_id: str | None) -> dict[str, Any]:
        """Reject a pending or submitted order.

        Raises:
            InvalidTransitionError: From any other state.
        """
        async with self.locks.hold(f"order:{order_id}"):
            order = self._load(order_id)
            with self.repository.unit_of_work() as unit:
                # TODO: release the authorized charge when rejecting a submitted order
                changes = self._transition(unit, order, OrderAction.REJECT, actor_id)

        logger.info("Rejected order %s", order_id)
        return {**order, **changes}

    async def abandon(self, order_id: str, actor_id: str | None = None) -> dict[str, Any]:
        """Abandon a pending order.

        Raises:
            InvalidTransitionError: If the order is not pending.
        """
        async with self.locks.hold(f"order:{order_id}"):
            order = self._load(order_id)
            with self.repository.unit_of_work() as unit:
                changes = self._transition(unit, order, OrderAction.ABANDON, actor_id)

        logger.info("Abandoned order %s", order_id)
        return {**order, **changes}

    async def expire_pending_orders(self) -> int:
        """Abandon every PENDING order past its expiry.

        Returns:
            int: Number of orders abandoned.
        """
        expired = self.repository.get_expired_pending_orders(_now().isoformat())
        count = 0
        for order in expired:
            try:
                await self.abandon(order["id"], SYSTEM_ACTOR)
                count += 1
            except StateGuardError:
                # Moved on since the query ran
                logger.info("Order %s no longer pending, skipping expiry", order["id"])
        return count

    # Sales tax reporting

    def _last_approved_at(self, order: dict[str, Any]) -> datetime:
        for row in reversed(self.repository.get_history(order["id"])):
            if row.get("changed_fields", {}).get("state") == OrderState.APPROVED.value:
                return datetime.fromisoformat(row["changed_fields"]["state_updated_at"])
        return datetime.fromisoformat(order["state_updated_at"])

    def _sales_tax_service(self, order: dict[str, Any], line_item: dict[str, Any]) -> SalesTaxService:
        artwork = self.catalog.get_artwork(line_item["artwork_id"])
        if not artwork or not artwork.get("location"):
            raise ValidationError(f"Cannot resolve location of artwork {line_item['artwork_id']}")
        return SalesTaxService(
            line_item,
            order["fulfillment_type"],
            order_shipping(order),
            order.get("shipping_total_cents") or 0,
            artwork["location"],
            order["seller_id"],
            catalog=self.catalog,
            tax_client=self.tax_client,
            settings=self.settings,
        )

    async def record_sales_tax(self, order_id: str, transaction_date: datetime | None = None) -> int:
        """Post tax transactions for every line item the platform remits.

        Safe to re-run: line items already posted are skipped.

        Returns:
            int: Number of transactions posted.

        Raises:
            StateGuardError: If the order's charge has not been captured.
        """
        order = self._load(order_id)
        if order["state"] not in (OrderState.APPROVED.value, OrderState.FULFILLED.value):
            raise StateGuardError("Cannot record sales tax before the order is approved")
        transaction_date = transaction_date or self._last_approved_at(order)

        posted = 0
        for line_item in self.repository.get_line_items(order_id):
            if not line_item.get("should_remit_sales_tax") or not line_item.get("sales_tax_cents"):
                continue
            if self._sales_tax_service(order, line_item).record_tax_collected(transaction_date):
                posted += 1
        logger.info("Posted %d tax transactions for order %s", posted, order_id)
        return posted

    async def refund_tax(self, line_item_id: str, refund_date: datetime) -> bool:
        """Refund a line item's posted tax transaction.

        A line item with no posted transaction is left alone.

        Returns:
            bool: True if a refund was posted.

        Raises:
            NotFoundError: If the line item does not exist.
        """
        line_item = self.repository.get_line_item(line_item_id)
        if not line_item:
            raise NotFoundError("Line item not found")
        order = self._load(line_item["order_id"])
        if not order.get("fulfillment_type") or order["state"] not in (
            OrderState.APPROVED.value,
            OrderState.FULFILLED.value,
        ):
            logger.info("No tax posted for line item %s, skipping refund", line_item_id)
            return False
        return self._sales_tax_service(order, line_item).refund_transaction(refund_date)
