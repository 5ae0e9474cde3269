"""
Order API Pydantic schemas for request validation.

Checkout requests are validated here, before they reach the order service:
required customer fields, email format, a non-empty cart and a payment
method.
"""

import re
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from storefront.services.orders.enums import OrderStatus
from storefront.services.orders.models import CartItem, CustomerInfo, Product

EMAIL_PATTERN = re.compile(r"\S+@\S+\.\S+")


class ProductRequest(BaseModel):
    """Product snapshot sent with a cart line."""

    id: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=255)
    price: Decimal = Field(..., ge=0, decimal_places=2)
    sku: Optional[str] = Field(None, max_length=100)
    category: Optional[str] = Field(None, max_length=100)
    image: Optional[str] = None


class CartItemRequest(BaseModel):
    product: ProductRequest
    quantity: int = Field(..., ge=1, le=1000)

    def to_cart_item(self) -> CartItem:
        return CartItem(
            product=Product(**self.product.model_dump()),
            quantity=self.quantity,
        )


class CustomerInfoRequest(BaseModel):
    """Customer information for order placement."""

    model_config = ConfigDict(str_strip_whitespace=True)

    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=255)
    phone: str = Field(..., min_length=1, max_length=30)
    address: str = Field(..., min_length=1, max_length=255)
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., min_length=1, max_length=100)
    postal_code: str = Field(..., min_length=1, max_length=20)
    country: str = Field(default="", max_length=100)

    @field_validator("email")
    @classmethod
    def validate_email_format(cls, v: str) -> str:
        """Validate email format."""
        if not EMAIL_PATTERN.fullmatch(v):
            raise ValueError("Email is invalid")
        return v

    def to_customer_info(self) -> CustomerInfo:
        return CustomerInfo(**self.model_dump())


class CheckoutRequest(BaseModel):
    """Order placement request."""

    items: list[CartItemRequest] = Field(..., min_length=1)
    customer_info: CustomerInfoRequest
    payment_method: str = Field(..., min_length=1, max_length=50)
    actor_id: Optional[str] = Field(
        None, description="Authenticated website user placing the order"
    )
    notes: Optional[str] = Field(None, max_length=2000)


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class OrderCancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class OperationResult(BaseModel):
    success: bool
    message: Optional[str] = None


class SyncRetryResponse(BaseModel):
    synced: int
