"""Order totals calculation.

Totals are always rebuilt from the line items and the order's shipping and
tax totals; nothing here patches a previously stored value.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from src.api.middleware.error_handler import ValidationError
from src.core.config import Settings, get_settings


@dataclass(frozen=True)
class FeeSchedule:
    """Payment processor fee: ``rate * buyer_total + fixed_cents``."""

    rate: Decimal = Decimal("0.029")
    fixed_cents: int = 30

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "FeeSchedule":
        """Create fee schedule from application settings."""
        settings = settings or get_settings()
        return cls(
            rate=settings.transaction_fee_rate,
            fixed_cents=settings.transaction_fee_fixed_cents,
        )


@dataclass(frozen=True)
class OrderTotals:
    """Derived money columns for an order, in cents."""

    items_total_cents: int
    buyer_total_cents: int
    transaction_fee_cents: int
    commission_fee_cents: int | None
    seller_total_cents: int

    def as_columns(self) -> dict[str, int | None]:
        """Column values to write on the order row.

        commission_fee_cents is left out when no rate was supplied so an
        existing value is not overwritten with NULL.
        """
        columns: dict[str, int | None] = {
            "items_total_cents": self.items_total_cents,
            "buyer_total_cents": self.buyer_total_cents,
            "transaction_fee_cents": self.transaction_fee_cents,
            "seller_total_cents": self.seller_total_cents,
        }
        if self.commission_fee_cents is not None:
            columns["commission_fee_cents"] = self.commission_fee_cents
        return columns


def round_cents(amount: Decimal) -> int:
    """Round a fractional cent amount to the nearest cent, halves away from zero."""
    return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def validate_commission_rate(rate: Decimal | float | str | None) -> Decimal | None:
    """Normalize a commission rate and reject values outside [0, 1].

    Raises:
        ValidationError: If the rate is not a number in [0, 1].
    """
    if rate is None:
        return None
    try:
        value = Decimal(str(rate))
    except ArithmeticError as e:
        raise ValidationError(f"Invalid commission rate: {rate}") from e
    if not value.is_finite() or value < 0 or value > 1:
        raise ValidationError(
            f"Invalid commission rate: {rate}",
            details=[{"loc": ["commission_rate"], "msg": "must be between 0 and 1", "type": "invalid_commission_rate"}],
        )
    return value


def calculate_items_total(line_items: Iterable[Mapping[str, Any]]) -> int:
    """Sum of price times quantity over all line items."""
    return sum(item["price_cents"] * (item.get("quantity") or 1) for item in line_items)


def calculate_transaction_fee(buyer_total_cents: int, fees: FeeSchedule | None = None) -> int:
    """Processor fee for charging ``buyer_total_cents``.

    Nothing is charged for an empty order, so there is no fee.
    """
    if buyer_total_cents <= 0:
        return 0
    fees = fees or FeeSchedule()
    return round_cents(Decimal(buyer_total_cents) * fees.rate) + fees.fixed_cents


def calculate_commission_fee(items_total_cents: int, rate: Decimal) -> int:
    """Platform commission on the items total."""
    return round_cents(Decimal(items_total_cents) * rate)


def remitted_sales_tax(line_items: Iterable[Mapping[str, Any]]) -> int:
    """Tax the platform forwards on the seller's behalf."""
    return sum(
        item.get("sales_tax_cents") or 0
        for item in line_items
        if item.get("should_remit_sales_tax")
    )


def calculate_totals(
    line_items: list[Mapping[str, Any]],
    shipping_total_cents: int | None,
    tax_total_cents: int | None,
    commission_rate: Decimal | float | str | None = None,
    fees: FeeSchedule | None = None,
) -> OrderTotals:
    """Compute every derived total for an order.

    Args:
        line_items: The order's line item rows.
        shipping_total_cents: Order shipping total, None when not yet set.
        tax_total_cents: Order tax total, None when not yet set.
        commission_rate: Seller's effective commission rate, if known.
        fees: Processor fee schedule, defaults to the reference schedule.

    Returns:
        OrderTotals: Freshly computed totals.

    Raises:
        ValidationError: If commission_rate is outside [0, 1].
    """
    rate = validate_commission_rate(commission_rate)

    items_total = calculate_items_total(line_items)
    buyer_total = items_total + (shipping_total_cents or 0) + (tax_total_cents or 0)
    transaction_fee = calculate_transaction_fee(buyer_total, fees)
    commission_fee = calculate_commission_fee(items_total, rate) if rate is not None else None
    seller_total = (
        buyer_total
        - transaction_fee
        - (commission_fee or 0)
        - remitted_sales_tax(line_items)
    )

    return OrderTotals(
        items_total_cents=items_total,
        buyer_total_cents=buyer_total,
        transaction_fee_cents=transaction_fee,
        commission_fee_cents=commission_fee,
        seller_total_cents=seller_total,
    )
