"""Database model type definitions."""

from src.models.order import (
    Address,
    Fulfillment,
    FulfillmentType,
    LineItem,
    LineItemFulfillment,
    Order,
    OrderAction,
    OrderHistory,
    OrderState,
    Transaction,
    TransactionStatus,
    TransactionType,
)

__all__ = [
    "Address",
    "Fulfillment",
    "FulfillmentType",
    "LineItem",
    "LineItemFulfillment",
    "Order",
    "OrderAction",
    "OrderHistory",
    "OrderState",
    "Transaction",
    "TransactionStatus",
    "TransactionType",
]
