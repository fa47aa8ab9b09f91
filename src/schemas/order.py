"""Order Pydantic schemas for API request/response models."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from src.models.order import FulfillmentType, OrderState


class LineItemCreate(BaseModel):
    """Schema for a line item in an order creation request."""

    model_config = ConfigDict(from_attributes=True)

    artwork_id: str = Field(description="Catalog artwork ID")
    edition_set_id: str | None = Field(default=None, description="Edition set (variant) ID")
    price_cents: int = Field(ge=0, description="Unit price in cents")
    quantity: int = Field(default=1, ge=1, description="Quantity ordered")


class OrderCreate(BaseModel):
    """Schema for creating an order via POST /orders."""

    model_config = ConfigDict(from_attributes=True)

    seller_id: str = Field(description="Partner selling the items")
    currency_code: str = Field(min_length=3, max_length=3, description="ISO currency code")
    line_items: list[LineItemCreate] = Field(default_factory=list, description="Items to order")


class SetPaymentRequest(BaseModel):
    """Schema for attaching a payment instrument."""

    credit_card_id: str = Field(description="Catalog credit card ID")


class ShippingAddress(BaseModel):
    """Buyer shipping details."""

    model_config = ConfigDict(from_attributes=True)

    name: str | None = Field(default=None, description="Recipient name")
    address_line1: str | None = Field(default=None)
    address_line2: str | None = Field(default=None)
    city: str | None = Field(default=None)
    region: str | None = Field(default=None, description="State, province or territory")
    country: str | None = Field(default=None, description="ISO country code")
    postal_code: str | None = Field(default=None)
    phone_number: str | None = Field(default=None, description="Buyer phone number")


class SetShippingRequest(BaseModel):
    """Schema for setting fulfillment and shipping details."""

    fulfillment_type: FulfillmentType = Field(description="ship or pickup")
    shipping: ShippingAddress = Field(default_factory=ShippingAddress)

    @model_validator(mode="after")
    def require_country_for_ship(self) -> "SetShippingRequest":
        """Shipping needs at least a destination country."""
        if self.fulfillment_type == FulfillmentType.SHIP and not self.shipping.country:
            raise ValueError("shipping.country is required when fulfillment_type is ship")
        return self


class FulfillRequest(BaseModel):
    """Schema for fulfilling an approved order."""

    courier: str = Field(description="Shipping carrier")
    tracking_id: str | None = Field(default=None)
    estimated_delivery: datetime | None = Field(default=None)
    line_item_ids: list[str] | None = Field(default=None, description="Defaults to every line item")


class RefundTaxRequest(BaseModel):
    """Schema for refunding a line item's posted sales tax."""

    refund_date: datetime = Field(description="Date recorded on the refund transaction")


class LineItemResponse(BaseModel):
    """Schema for line item API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    artwork_id: str
    edition_set_id: str | None = None
    price_cents: int
    quantity: int
    sales_tax_cents: int | None = None
    should_remit_sales_tax: bool = False


class OrderResponse(BaseModel):
    """Schema for order API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(description="Order unique identifier")
    code: str = Field(description="Human-facing order code")
    buyer_id: str
    seller_id: str
    state: OrderState
    state_updated_at: datetime | None = None
    state_expires_at: datetime | None = None
    currency_code: str
    fulfillment_type: FulfillmentType | None = None
    items_total_cents: int | None = None
    shipping_total_cents: int | None = None
    tax_total_cents: int | None = None
    buyer_total_cents: int | None = None
    seller_total_cents: int | None = None
    commission_fee_cents: int | None = None
    transaction_fee_cents: int | None = None
    credit_card_id: str | None = None
    shipping_name: str | None = None
    shipping_address_line1: str | None = None
    shipping_address_line2: str | None = None
    shipping_city: str | None = None
    shipping_region: str | None = None
    shipping_country: str | None = None
    shipping_postal_code: str | None = None
    buyer_phone_number: str | None = None
    line_items: list[LineItemResponse] | None = None


class OrderHistoryResponse(BaseModel):
    """Schema for one audit trail entry."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    modifier_id: str
    changed_fields: dict[str, Any]
    created_at: datetime


class OrderHistoryListResponse(BaseModel):
    """Schema for an order's audit trail."""

    items: list[OrderHistoryResponse]


class RefundTaxResponse(BaseModel):
    """Schema for tax refund results."""

    refunded: bool = Field(description="False when no tax transaction had been posted")
