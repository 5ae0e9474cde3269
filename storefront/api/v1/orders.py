"""
Order API endpoints.

This module implements the FastAPI router for placing orders, querying and
searching the local order cache, reading a user's orders from the hosted
backend, changing order status, cancelling orders and retrying failed ERP
syncs.
"""

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status

from storefront.api.deps import OrderServiceDep, SettingsDep
from storefront.core.logging import get_logger, set_actor_id
from storefront.schemas.orders import (
    CheckoutRequest,
    OperationResult,
    OrderCancelRequest,
    OrderStatusUpdate,
    SyncRetryResponse,
)
from storefront.services.orders.backend_gateway import RemoteOrder
from storefront.services.orders.models import Order, OrderStatistics
from storefront.services.orders.service import OrderValidationError

logger = get_logger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post(
    "",
    response_model=Order,
    status_code=status.HTTP_201_CREATED,
    summary="Place an order",
)
async def create_order(request: CheckoutRequest, order_service: OrderServiceDep) -> Order:
    """
    Place an order from a validated checkout.

    The order is returned even when remote registration failed; its
    sync_status tells whether it still has to reach the ERP.

    Raises:
        HTTPException: 400 if the order service rejects the cart
    """
    set_actor_id(request.actor_id)
    try:
        return await order_service.create_order(
            cart_items=[item.to_cart_item() for item in request.items],
            customer_info=request.customer_info.to_customer_info(),
            payment_method=request.payment_method,
            actor_id=request.actor_id,
            notes=request.notes,
        )
    except OrderValidationError as e:
        logger.warning("Order rejected", error=str(e), **e.context)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e


@router.get("", response_model=list[Order], summary="List orders")
async def list_orders(
    order_service: OrderServiceDep,
    email: Optional[str] = Query(None, description="Only orders placed with this email"),
    q: Optional[str] = Query(None, min_length=1, description="Search text"),
    start: Optional[datetime] = Query(None, description="Earliest order date"),
    end: Optional[datetime] = Query(None, description="Latest order date"),
) -> list[Order]:
    """
    List orders newest first.

    Filters combine: an order is listed only if it matches every filter given.
    """
    orders = order_service.get_all_orders()

    if email:
        by_email = {order.id for order in order_service.get_customer_orders(email)}
        orders = [order for order in orders if order.id in by_email]

    if q:
        matching = {order.id for order in order_service.search_orders(q)}
        orders = [order for order in orders if order.id in matching]

    if start is not None or end is not None:
        in_range = {
            order.id
            for order in order_service.get_orders_by_date_range(
                start or datetime.min.replace(tzinfo=timezone.utc),
                end or datetime.max.replace(tzinfo=timezone.utc),
            )
        }
        orders = [order for order in orders if order.id in in_range]

    return orders


@router.get("/statistics", response_model=OrderStatistics, summary="Order statistics")
async def get_statistics(order_service: OrderServiceDep) -> OrderStatistics:
    return order_service.get_order_statistics()


@router.post("/sync/retry", response_model=SyncRetryResponse, summary="Retry failed syncs")
async def retry_failed_syncs(order_service: OrderServiceDep) -> SyncRetryResponse:
    synced = await order_service.retry_failed_syncs()
    return SyncRetryResponse(synced=synced)


@router.get("/by-number/{order_number}", response_model=Order, summary="Get order by number")
async def get_order_by_number(order_number: str, order_service: OrderServiceDep) -> Order:
    order = order_service.get_order_by_number(order_number)
    if order is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    return order


@router.get(
    "/user/{actor_id}",
    response_model=list[RemoteOrder],
    summary="List a user's backend orders",
)
async def list_user_orders(actor_id: str, order_service: OrderServiceDep) -> list[RemoteOrder]:
    """Orders the hosted backend holds for an authenticated user, newest first."""
    set_actor_id(actor_id)
    return await order_service.get_remote_orders(actor_id)


@router.get(
    "/user/{actor_id}/{order_id}",
    response_model=RemoteOrder,
    summary="Get a user's backend order",
)
async def get_user_order(
    actor_id: str, order_id: str, order_service: OrderServiceDep
) -> RemoteOrder:
    """
    Fetch one backend order belonging to the user.

    Raises:
        HTTPException: 404 if the backend has no such order for this user
    """
    set_actor_id(actor_id)
    order = await order_service.get_remote_order(order_id, actor_id)
    if order is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    return order


@router.get("/{order_id}", response_model=Order, summary="Get order")
async def get_order(order_id: str, order_service: OrderServiceDep) -> Order:
    order = order_service.get_order(order_id)
    if order is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    return order


@router.patch("/{order_id}/status", response_model=Order, summary="Update order status")
async def update_order_status(
    order_id: str,
    request: OrderStatusUpdate,
    order_service: OrderServiceDep,
) -> Order:
    """
    Set an order's status.

    Raises:
        HTTPException: 404 if the order does not exist, 409 if the change is
            not allowed
    """
    if order_service.get_order(order_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")

    if not await order_service.update_order_status(order_id, request.status):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Order cannot move to status {request.status.value}",
        )
    return order_service.get_order(order_id)


@router.post("/{order_id}/cancel", response_model=Order, summary="Cancel order")
async def cancel_order(
    order_id: str,
    order_service: OrderServiceDep,
    request: Optional[OrderCancelRequest] = None,
) -> Order:
    """
    Cancel an order.

    Raises:
        HTTPException: 404 if the order does not exist, 409 if it was delivered
    """
    if order_service.get_order(order_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")

    reason = request.reason if request else None
    if not await order_service.cancel_order(order_id, reason):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Delivered orders cannot be cancelled",
        )
    return order_service.get_order(order_id)


@router.delete("", response_model=OperationResult, summary="Clear all orders")
async def clear_orders(order_service: OrderServiceDep, settings: SettingsDep) -> OperationResult:
    """Remove every cached order. Not available in production."""
    if settings.is_production:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Clearing orders is disabled in production",
        )
    await order_service.clear_all_orders()
    return OperationResult(success=True, message="All orders cleared")
