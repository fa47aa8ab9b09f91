"""Order model type definitions for database operations."""

from enum import Enum
from typing import Any, TypedDict


class OrderState(str, Enum):
    """Order lifecycle states matching the orders.state column.

    PENDING is initial; FULFILLED, REJECTED and ABANDONED are terminal.
    """

    PENDING = "pending"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    FULFILLED = "fulfilled"
    REJECTED = "rejected"
    ABANDONED = "abandoned"


class OrderAction(str, Enum):
    """Actions that move an order between states."""

    SUBMIT = "submit"
    APPROVE = "approve"
    FULFILL = "fulfill"
    REJECT = "reject"
    ABANDON = "abandon"


class FulfillmentType(str, Enum):
    """How the buyer receives the item."""

    SHIP = "ship"
    PICKUP = "pickup"


class TransactionStatus(str, Enum):
    """Outcome of a payment gateway call."""

    SUCCESS = "success"
    FAILURE = "failure"


class TransactionType(str, Enum):
    """Payment gateway operation recorded in the transactions table."""

    AUTHORIZE = "authorize"
    CAPTURE = "capture"


class Address(TypedDict, total=False):
    """Postal address used for tax origin and destination.

    Catalog locations and buyer shipping addresses are both normalized
    to this shape.
    """

    country: str | None
    region: str | None
    city: str | None
    address: str | None
    postal_code: str | None


class LineItem(TypedDict):
    """Line item table row representation.

    sales_tax_cents and should_remit_sales_tax are the only columns
    written after creation.
    """

    id: str
    order_id: str
    artwork_id: str
    edition_set_id: str | None
    price_cents: int
    quantity: int
    artwork_snapshot: dict[str, Any] | None
    sales_tax_cents: int | None
    should_remit_sales_tax: bool
    created_at: str
    updated_at: str


class Order(TypedDict):
    """Order table row representation.

    All money columns are integer cents. Timestamps are ISO 8601 strings
    as returned by PostgREST.
    """

    id: str
    code: str
    buyer_id: str
    seller_id: str
    currency_code: str
    state: OrderState
    state_updated_at: str
    state_expires_at: str | None
    fulfillment_type: FulfillmentType | None
    shipping_total_cents: int | None
    tax_total_cents: int | None
    commission_fee_cents: int | None
    transaction_fee_cents: int | None
    items_total_cents: int
    buyer_total_cents: int
    seller_total_cents: int
    credit_card_id: str | None
    external_credit_card_id: str | None
    external_customer_id: str | None
    external_charge_id: str | None
    shipping_name: str | None
    shipping_address_line1: str | None
    shipping_address_line2: str | None
    shipping_city: str | None
    shipping_region: str | None
    shipping_country: str | None
    shipping_postal_code: str | None
    buyer_phone_number: str | None
    created_at: str
    updated_at: str


class OrderHistory(TypedDict):
    """Append-only audit row written for every order mutation."""

    id: str
    order_id: str
    modifier_id: str
    changed_fields: dict[str, Any]
    created_at: str


class Fulfillment(TypedDict):
    """Shipment record created when an order is fulfilled."""

    id: str
    courier: str
    tracking_id: str | None
    estimated_delivery: str | None
    created_at: str


class LineItemFulfillment(TypedDict):
    """Link between a line item and its single fulfillment."""

    id: str
    line_item_id: str
    fulfillment_id: str
    created_at: str


class Transaction(TypedDict):
    """Payment gateway call outcome."""

    id: str
    order_id: str
    transaction_type: TransactionType
    status: TransactionStatus
    external_id: str | None
    source_id: str | None
    destination_id: str | None
    amount_cents: int | None
    failure_code: str | None
    failure_message: str | None
    created_at: str
