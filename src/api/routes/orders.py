"""Order lifecycle API routes."""

from fastapi import APIRouter, status

from src.api.deps import CurrentUser, OrderServiceDep
from src.schemas.order import (
    FulfillRequest,
    OrderCreate,
    OrderHistoryListResponse,
    OrderHistoryResponse,
    OrderResponse,
    RefundTaxRequest,
    RefundTaxResponse,
    SetPaymentRequest,
    SetShippingRequest,
)

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post(
    "",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create order",
    description="Creates a pending order for the current user. Any other pending order of the user is abandoned.",
)
async def create_order(data: OrderCreate, user: CurrentUser, service: OrderServiceDep) -> OrderResponse:
    """Create a pending order owned by the authenticated buyer."""
    order = await service.create(
        buyer_id=str(user.user_id),
        seller_id=data.seller_id,
        currency_code=data.currency_code,
        line_items=[item.model_dump() for item in data.line_items],
    )
    return OrderResponse(**order)


@router.get("/{order_id}", response_model=OrderResponse, summary="Get order by ID")
async def get_order(order_id: str, user: CurrentUser, service: OrderServiceDep) -> OrderResponse:
    """Get a single order with its line items."""
    return OrderResponse(**await service.get_order(order_id))


@router.get("/{order_id}/history", response_model=OrderHistoryListResponse, summary="Get order history")
async def get_order_history(order_id: str, user: CurrentUser, service: OrderServiceDep) -> OrderHistoryListResponse:
    """List every recorded mutation of the order, oldest first."""
    rows = await service.get_history(order_id)
    return OrderHistoryListResponse(items=[OrderHistoryResponse(**row) for row in rows])


@router.put("/{order_id}/payment", response_model=OrderResponse, summary="Set payment")
async def set_payment(
    order_id: str,
    data: SetPaymentRequest,
    user: CurrentUser,
    service: OrderServiceDep,
) -> OrderResponse:
    """Attach a credit card to a pending order."""
    order = await service.set_payment(order_id, data.credit_card_id, str(user.user_id))
    return OrderResponse(**order)


@router.put("/{order_id}/shipping", response_model=OrderResponse, summary="Set shipping")
async def set_shipping(
    order_id: str,
    data: SetShippingRequest,
    user: CurrentUser,
    service: OrderServiceDep,
) -> OrderResponse:
    """Set fulfillment type and address; recomputes shipping, tax and totals."""
    order = await service.set_shipping(
        order_id,
        data.fulfillment_type,
        data.shipping.model_dump(),
        str(user.user_id),
    )
    return OrderResponse(**order)


@router.post("/{order_id}/submit", response_model=OrderResponse, summary="Submit order")
async def submit_order(order_id: str, user: CurrentUser, service: OrderServiceDep) -> OrderResponse:
    """Authorize the charge and submit the order to the seller."""
    return OrderResponse(**await service.submit(order_id, str(user.user_id)))


@router.post("/{order_id}/approve", response_model=OrderResponse, summary="Approve order")
async def approve_order(order_id: str, user: CurrentUser, service: OrderServiceDep) -> OrderResponse:
    """Capture the charge and approve the order."""
    return OrderResponse(**await service.approve(order_id, str(user.user_id)))


@router.post("/{order_id}/fulfill", response_model=OrderResponse, summary="Fulfill order")
async def fulfill_order(
    order_id: str,
    data: FulfillRequest,
    user: CurrentUser,
    service: OrderServiceDep,
) -> OrderResponse:
    """Record the shipment and mark the order fulfilled."""
    fulfillment = data.model_dump(mode="json")
    return OrderResponse(**await service.fulfill(order_id, fulfillment, str(user.user_id)))


@router.post("/{order_id}/reject", response_model=OrderResponse, summary="Reject order")
async def reject_order(order_id: str, user: CurrentUser, service: OrderServiceDep) -> OrderResponse:
    """Reject a pending or submitted order."""
    return OrderResponse(**await service.reject(order_id, str(user.user_id)))


@router.post("/{order_id}/abandon", response_model=OrderResponse, summary="Abandon order")
async def abandon_order(order_id: str, user: CurrentUser, service: OrderServiceDep) -> OrderResponse:
    """Abandon a pending order."""
    return OrderResponse(**await service.abandon(order_id, str(user.user_id)))


@router.post(
    "/line_items/{line_item_id}/tax_refund",
    response_model=RefundTaxResponse,
    summary="Refund line item sales tax",
    description="Posts a refund for the line item's tax transaction. Does nothing if none was posted.",
)
async def refund_line_item_tax(
    line_item_id: str,
    data: RefundTaxRequest,
    user: CurrentUser,
    service: OrderServiceDep,
) -> RefundTaxResponse:
    """Refund the sales tax reported for one line item."""
    refunded = await service.refund_tax(line_item_id, data.refund_date)
    return RefundTaxResponse(refunded=refunded)
