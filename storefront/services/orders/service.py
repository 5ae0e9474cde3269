"""
Order service orchestrating order creation, sync and queries.

This module implements the OrderService class, the only component that
creates or mutates orders. It prices carts, keeps the in-memory order index
backed by the local order cache, registers orders on the hosted backend when
an authenticated actor places them, and falls back to the ERP sync client
otherwise. Sync failures are recorded on the order, never raised.
"""

import asyncio
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from random import randint
from typing import Any, Iterable, Optional, Union

from pydantic import ValidationError

from storefront.core.logging import get_logger, log_performance
from storefront.services.erp.client import ErpSyncClient
from storefront.services.erp.schemas import (
    ErpCustomerInfo,
    ErpLineItem,
    ErpOrderPayload,
    SyncResult,
)
from storefront.services.orders.backend_gateway import (
    BackendOrderError,
    BackendOrderGateway,
    RemoteOrder,
    RemoteOrderItem,
    RemoteOrderRequest,
    ShippingDetails,
)
from storefront.services.orders.enums import (
    OrderStatus,
    SyncStatus,
    validate_order_status_transition,
)
from storefront.services.orders.models import (
    CartItem,
    CustomerInfo,
    Order,
    OrderStatistics,
)
from storefront.services.orders.pricing import PricingPolicy, calculate_order_totals
from storefront.services.orders.repository import OrderRepository, OrderRepositoryError

logger = get_logger(__name__)


class OrderServiceError(Exception):
    """Base exception for order service errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.context = context


class OrderValidationError(OrderServiceError):
    """Raised when a cart or customer details cannot become an order."""

    pass


class OrderService:
    """
    Order orchestrator.

    Attributes:
        repository: Local order cache persistence
        erp_client: ERP sync client used when the primary path did not sync
        pricing: Tax and shipping policy applied at creation
        backend_gateway: Optional hosted backend for authenticated orders
        backend_timeout_seconds: Upper bound for primary order creation
    """

    def __init__(
        self,
        repository: OrderRepository,
        erp_client: ErpSyncClient,
        pricing: Optional[PricingPolicy] = None,
        backend_gateway: Optional[BackendOrderGateway] = None,
        backend_timeout_seconds: float = 10.0,
    ):
        self.repository = repository
        self.erp_client = erp_client
        self.pricing = pricing or PricingPolicy()
        self.backend_gateway = backend_gateway
        self.backend_timeout_seconds = backend_timeout_seconds

        self._orders: dict[str, Order] = {}
        self._loaded = False
        self._lock = asyncio.Lock()

        self.erp_client.add_sync_listener(self._on_erp_sync_retried)

        logger.info(
            "OrderService initialized",
            tax_rate=str(self.pricing.tax_rate),
            has_backend_gateway=backend_gateway is not None,
        )

    async def initialize(self) -> None:
        """Reload the order snapshot, then run the ERP client's startup pass."""
        await self.load()
        await self.erp_client.initialize()

    async def load(self) -> None:
        """
        Replace the in-memory index with the persisted snapshot.

        A snapshot that cannot be read leaves the index empty and marks it
        unloaded; the stored orders are then merged in before the next write.
        """
        try:
            orders = await self.repository.load()
        except OrderRepositoryError as e:
            logger.error("Failed to load orders from storage", error=str(e), context=e.context)
            async with self._lock:
                self._orders = {}
                self._loaded = False
            return

        async with self._lock:
            self._orders = orders
            self._loaded = True
        logger.info("Orders loaded", count=len(orders))

    async def _merge_stored_orders(self) -> bool:
        """
        Fold the persisted snapshot into an index that was never loaded.

        Orders already in memory win over stored records with the same id.
        Callers hold the lock.

        Returns:
            False if the snapshot still cannot be read
        """
        try:
            stored = await self.repository.load()
        except OrderRepositoryError as e:
            logger.error(
                "Skipping order snapshot write, stored orders unreadable",
                error=str(e),
                context=e.context,
                count=len(self._orders),
            )
            return False

        for order_id, order in stored.items():
            self._orders.setdefault(order_id, order)
        self._loaded = True
        logger.info("Stored orders merged into index", merged=len(stored))
        return True

    async def _persist(self) -> None:
        """Write the index snapshot. Callers hold the lock; failures are logged."""
        if not self._loaded and not await self._merge_stored_orders():
            return
        try:
            with log_performance(logger, "persist_orders", count=len(self._orders)):
                await self.repository.save(self._orders.values())
        except OrderRepositoryError as e:
            logger.error("Failed to save orders to storage", error=str(e), context=e.context)

    async def create_order(
        self,
        cart_items: Iterable[Union[CartItem, dict[str, Any]]],
        customer_info: Union[CustomerInfo, dict[str, Any]],
        payment_method: str,
        actor_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Order:
        """
        Create an order from a cart.

        Args:
            cart_items: Cart lines; copied, so later cart changes do not
                affect the order
            customer_info: Shipping and contact details
            payment_method: Payment method identifier
            actor_id: Authenticated user id; enables the primary backend path
            notes: Optional order notes

        Returns:
            The created order, whatever the outcome of remote registration

        Raises:
            OrderValidationError: If the cart is empty or malformed
        """
        items = self._copy_cart(cart_items)
        customer = self._copy_customer(customer_info)
        if not items:
            raise OrderValidationError("Order must contain at least one item", item_count=0)

        totals = calculate_order_totals(items, self.pricing)

        async with self._lock:
            order = Order(
                id=self._generate_order_id(),
                order_number=self._generate_order_number(),
                customer_info=customer,
                items=items,
                subtotal=totals.subtotal,
                tax=totals.tax,
                shipping=totals.shipping,
                total_amount=totals.total_amount,
                payment_method=payment_method,
                notes=notes,
                actor_id=actor_id,
            )
            # reserve id and number before the first suspension point
            self._orders[order.id] = order

        logger.info(
            "Creating order",
            order_id=order.id,
            order_number=order.order_number,
            item_count=len(items),
            total_amount=str(order.total_amount),
        )

        if actor_id and self.backend_gateway is not None:
            await self._create_on_backend(order, actor_id)

        async with self._lock:
            await self._persist()

        if order.sync_status != SyncStatus.SYNCED:
            await self._sync_with_erp(order)

        logger.info(
            "Order created",
            order_id=order.id,
            order_number=order.order_number,
            status=order.status.value,
            sync_status=order.sync_status.value,
        )
        return order

    async def _create_on_backend(self, order: Order, actor_id: str) -> None:
        request = RemoteOrderRequest(
            items=[
                RemoteOrderItem(
                    product_id=item.product.id,
                    product_name=item.product.name,
                    quantity=item.quantity,
                    unit_price=item.product.price,
                    total_price=item.line_total,
                )
                for item in order.items
            ],
            shipping=ShippingDetails(
                address=order.customer_info.address,
                city=order.customer_info.city,
                postal_code=order.customer_info.postal_code,
                phone=order.customer_info.phone,
                delivery_instructions=order.notes or "",
            ),
            payment_method=order.payment_method,
            total_amount=order.total_amount,
        )

        try:
            remote = await asyncio.wait_for(
                self.backend_gateway.create_order(actor_id, request),
                timeout=self.backend_timeout_seconds,
            )
        except (BackendOrderError, asyncio.TimeoutError) as e:
            logger.error(
                "Failed to create order in database",
                order_id=order.id,
                actor_id=actor_id,
                error=str(e) or type(e).__name__,
            )
            return
        except Exception as e:
            logger.error(
                "Unexpected error creating order in database",
                order_id=order.id,
                actor_id=actor_id,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            return

        async with self._lock:
            order.mark_synced(remote.id, remote.order_number)
            order.status = OrderStatus.PROCESSING

        logger.info(
            "Order created in database",
            order_id=order.id,
            remote_order_id=remote.id,
            remote_order_number=remote.order_number,
        )

    def _build_erp_payload(self, order: Order) -> ErpOrderPayload:
        notes = f"E-commerce order {order.order_number}"
        if order.notes:
            notes = f"{notes}\n{order.notes}"

        return ErpOrderPayload(
            order_id=order.id,
            customer_info=ErpCustomerInfo(**order.customer_info.model_dump()),
            items=[
                ErpLineItem(
                    product_id=item.product.id,
                    product_name=item.product.name,
                    sku=item.product.sku or item.product.id,
                    quantity=item.quantity,
                    unit_price=item.product.price,
                    total_price=item.line_total,
                )
                for item in order.items
            ],
            total_amount=order.total_amount,
            payment_method=order.payment_method,
            order_date=order.order_date,
            notes=notes,
        )

    async def _sync_with_erp(self, order: Order) -> SyncResult:
        try:
            result = await self.erp_client.sync_order_to_erp(self._build_erp_payload(order))
        except Exception as e:
            logger.error(
                "Failed to sync order with ERP",
                order_id=order.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            result = SyncResult.failed(str(e))

        async with self._lock:
            if result.success:
                order.mark_synced(result.order_id, result.order_number)
            else:
                order.mark_sync_failed()
            await self._persist()

        return result

    async def _on_erp_sync_retried(self, order_id: str, result: SyncResult) -> None:
        async with self._lock:
            order = self._orders.get(order_id)
            if order is None or order.sync_status == SyncStatus.SYNCED:
                return
            order.mark_synced(result.order_id, result.order_number)
            await self._persist()

        logger.info(
            "Order marked synced after retry",
            order_id=order_id,
            erp_order_id=result.order_id,
        )

    def get_order(self, order_id: str) -> Optional[Order]:
        return self._orders.get(order_id)

    def get_order_by_number(self, order_number: str) -> Optional[Order]:
        for order in self._orders.values():
            if order.order_number == order_number:
                return order
        return None

    def get_customer_orders(self, email: str) -> list[Order]:
        """All orders placed with the given email, compared case-insensitively."""
        email = email.lower()
        return self._newest_first(
            order
            for order in self._orders.values()
            if order.customer_info.email.lower() == email
        )

    def get_all_orders(self) -> list[Order]:
        return self._newest_first(self._orders.values())

    async def get_remote_orders(self, actor_id: str) -> list[RemoteOrder]:
        """
        Orders the hosted backend holds for an authenticated user.

        Returns:
            The user's backend orders, newest first; empty when no backend is
            configured or it cannot be reached
        """
        if self.backend_gateway is None:
            return []
        return await self.backend_gateway.get_user_orders(actor_id)

    async def get_remote_order(self, order_id: str, actor_id: str) -> Optional[RemoteOrder]:
        """One backend order, only if it belongs to the given user."""
        if self.backend_gateway is None:
            return None
        return await self.backend_gateway.get_order_by_id(order_id, actor_id)

    async def update_order_status(
        self, order_id: str, new_status: Union[OrderStatus, str]
    ) -> bool:
        """
        Set an order's status.

        Args:
            order_id: Order identifier
            new_status: Target status, as enum or string

        Returns:
            False if the order does not exist, is cancelled, or a delivered
            order would be cancelled; True otherwise

        Raises:
            ValueError: If new_status is not a known status
        """
        if isinstance(new_status, str):
            new_status = OrderStatus.from_string(new_status)

        async with self._lock:
            order = self._orders.get(order_id)
            if order is None:
                return False

            if not validate_order_status_transition(order.status, new_status):
                logger.warning(
                    "Rejected order status change",
                    order_id=order_id,
                    current_status=order.status.value,
                    target_status=new_status.value,
                )
                return False

            order.status = new_status
            await self._persist()

        logger.info("Order status updated", order_id=order_id, status=new_status.value)
        return True

    async def cancel_order(self, order_id: str, reason: Optional[str] = None) -> bool:
        """
        Cancel an order that has not been delivered.

        The reason, when given, is appended to the order notes.

        Returns:
            False if the order does not exist or was delivered
        """
        async with self._lock:
            order = self._orders.get(order_id)
            if order is None or not order.status.can_cancel():
                return False
            if order.status == OrderStatus.CANCELLED:
                return True

            order.status = OrderStatus.CANCELLED
            if reason:
                order.append_note(f"Cancelled: {reason}")
            await self._persist()

        logger.info("Order cancelled", order_id=order_id, reason=reason)
        return True

    async def retry_failed_syncs(self) -> int:
        """
        Re-run ERP sync for every order whose sync failed.

        Orders on the ERP client's dead-letter list used up their retry
        budget and are left alone.

        Returns:
            Number of orders synced by this pass
        """
        dead_lettered = {entry.order_id for entry in await self.erp_client.get_dead_letters()}
        failed_orders = [
            order for order in self._orders.values()
            if order.sync_status == SyncStatus.FAILED and order.id not in dead_lettered
        ]
        synced = 0

        for order in failed_orders:
            try:
                result = await self._sync_with_erp(order)
            except Exception as e:
                logger.error(
                    "Failed to retry sync for order",
                    order_id=order.id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                continue
            if result.success:
                synced += 1

        if failed_orders:
            logger.info(
                "Failed order syncs retried",
                attempted=len(failed_orders),
                synced=synced,
            )
        return synced

    def get_order_statistics(self) -> OrderStatistics:
        orders_by_status: dict[str, int] = {}
        sync_statistics: dict[str, int] = {}
        total_revenue = Decimal("0.00")

        for order in self._orders.values():
            total_revenue += order.total_amount
            orders_by_status[order.status.value] = orders_by_status.get(order.status.value, 0) + 1
            sync_statistics[order.sync_status.value] = (
                sync_statistics.get(order.sync_status.value, 0) + 1
            )

        return OrderStatistics(
            total_orders=len(self._orders),
            total_revenue=total_revenue,
            orders_by_status=orders_by_status,
            sync_statistics=sync_statistics,
        )

    def get_orders_by_date_range(self, start: datetime, end: datetime) -> list[Order]:
        """Orders dated within [start, end]; naive datetimes are read as UTC."""
        start, end = self._as_utc(start), self._as_utc(end)
        return self._newest_first(
            order
            for order in self._orders.values()
            if start <= order.order_date <= end
        )

    def search_orders(self, query: str) -> list[Order]:
        """
        Case-insensitive substring search over order number, customer first
        and last name, customer email and ERP order number.
        """
        needle = query.lower()

        def matches(order: Order) -> bool:
            fields = [
                order.order_number,
                order.customer_info.first_name,
                order.customer_info.last_name,
                order.customer_info.email,
                order.erp_order_number or "",
            ]
            return any(needle in value.lower() for value in fields)

        return self._newest_first(order for order in self._orders.values() if matches(order))

    async def clear_all_orders(self) -> None:
        """Drop every order from memory and storage. Administrative use only."""
        async with self._lock:
            count = len(self._orders)
            self._orders.clear()
            self._loaded = True
            try:
                await self.repository.clear()
            except OrderRepositoryError as e:
                logger.error("Failed to clear stored orders", error=str(e), context=e.context)

        logger.warning("All orders cleared", count=count)

    @staticmethod
    def _copy_cart(cart_items: Iterable[Union[CartItem, dict[str, Any]]]) -> list[CartItem]:
        try:
            return [
                item.model_copy(deep=True) if isinstance(item, CartItem)
                else CartItem.model_validate(item)
                for item in cart_items
            ]
        except ValidationError as e:
            raise OrderValidationError(
                "Invalid cart item", error_count=e.error_count()
            ) from e

    @staticmethod
    def _copy_customer(customer_info: Union[CustomerInfo, dict[str, Any]]) -> CustomerInfo:
        if isinstance(customer_info, CustomerInfo):
            return customer_info.model_copy(deep=True)
        try:
            return CustomerInfo.model_validate(customer_info)
        except ValidationError as e:
            raise OrderValidationError(
                "Invalid customer info", error_count=e.error_count()
            ) from e

    @staticmethod
    def _as_utc(value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @staticmethod
    def _newest_first(orders: Iterable[Order]) -> list[Order]:
        return sorted(orders, key=lambda order: order.order_date, reverse=True)

    def _generate_order_id(self) -> str:
        """Generate an order id unique within the index."""
        while True:
            timestamp_ms = int(datetime.now(timezone.utc).timestamp() * 1000)
            order_id = f"order-{timestamp_ms}-{uuid.uuid4().hex[:9]}"
            if order_id not in self._orders:
                return order_id

    def _generate_order_number(self) -> str:
        """
        Generate a human-readable order number unique within the index.

        Returns:
            Order number like ORD-482913007
        """
        taken = {order.order_number for order in self._orders.values()}
        while True:
            timestamp_ms = str(int(datetime.now(timezone.utc).timestamp() * 1000))
            order_number = f"ORD-{timestamp_ms[-6:]}{randint(0, 999):03d}"
            if order_number not in taken:
                return order_number
