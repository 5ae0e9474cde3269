"""
Order domain models.

Cart snapshots, customer details and the Order record kept in the local
order cache. Cart items and customer info are frozen: an order holds its own
copies, taken when it was created.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from storefront.services.orders.enums import (
    OrderStatus,
    SyncStatus,
    validate_sync_status_transition,
)


class Product(BaseModel):
    """Product snapshot as it was in the cart."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(..., min_length=1)
    name: str
    price: Decimal = Field(..., ge=0)
    sku: Optional[str] = None
    category: Optional[str] = None
    image: Optional[str] = None


class CartItem(BaseModel):
    """A product and the quantity ordered."""

    model_config = ConfigDict(frozen=True)

    product: Product
    quantity: int = Field(..., ge=1)

    @property
    def line_total(self) -> Decimal:
        return self.product.price * self.quantity


class CustomerInfo(BaseModel):
    """Shipping and contact details captured at checkout."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    first_name: str
    last_name: str
    email: str
    phone: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    postal_code: str = ""
    country: str = ""


class Order(BaseModel):
    """
    One checkout transaction.

    Totals are fixed at creation. erp_order_id and erp_order_number are only
    set together with sync_status SYNCED, through mark_synced.
    """

    model_config = ConfigDict(validate_assignment=True)

    id: str
    order_number: str
    customer_info: CustomerInfo
    items: list[CartItem]
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    total_amount: Decimal
    payment_method: str
    order_date: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    status: OrderStatus = OrderStatus.PENDING
    sync_status: SyncStatus = SyncStatus.PENDING
    notes: Optional[str] = None
    erp_order_id: Optional[str] = None
    erp_order_number: Optional[str] = None
    actor_id: Optional[str] = None

    def mark_synced(self, erp_order_id: Optional[str], erp_order_number: Optional[str]) -> None:
        """Record a successful remote registration."""
        if self.sync_status == SyncStatus.SYNCED:
            return
        self.erp_order_id = erp_order_id
        self.erp_order_number = erp_order_number
        self.sync_status = SyncStatus.SYNCED

    def mark_sync_failed(self) -> bool:
        """Record a failed sync; returns False if the order is already synced."""
        if not validate_sync_status_transition(self.sync_status, SyncStatus.FAILED):
            return False
        self.sync_status = SyncStatus.FAILED
        return True

    def append_note(self, note: str) -> None:
        self.notes = f"{self.notes}\n{note}" if self.notes else note


class OrderStatistics(BaseModel):
    """Aggregate counts and revenue over all cached orders."""

    total_orders: int
    total_revenue: Decimal
    orders_by_status: dict[str, int]
    sync_statistics: dict[str, int]
