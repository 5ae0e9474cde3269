"""
Hosted backend order gateway.

This module implements the primary, authenticated order write path: the
hosted backend's ``create_website_order`` RPC followed by a read of the
``website_orders_for_erp`` view, plus the per-user order reads the storefront
shows on account pages. Requests use PostgREST conventions over httpx.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from storefront.core.logging import get_logger

logger = get_logger(__name__)


class BackendOrderError(Exception):
    """Raised when the hosted backend did not create or return an order."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.context = context


class RemoteOrderItem(BaseModel):
    product_id: str
    product_name: Optional[str] = None
    quantity: int
    unit_price: Decimal
    total_price: Decimal


class ShippingDetails(BaseModel):
    address: str
    city: str
    postal_code: str
    phone: str = ""
    delivery_instructions: str = ""


class RemoteOrderRequest(BaseModel):
    """Order as submitted on the primary path."""

    items: list[RemoteOrderItem]
    shipping: ShippingDetails
    payment_method: str
    total_amount: Decimal


class RemoteOrder(BaseModel):
    """Row of the website_orders_for_erp view."""

    model_config = ConfigDict(extra="ignore")

    id: str
    order_number: str
    status: str
    total_amount: Decimal
    payment_method: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    shipping_address: Optional[str] = None
    shipping_city: Optional[str] = None
    shipping_postal_code: Optional[str] = None
    delivery_instructions: Optional[str] = None
    order_items: list[dict[str, Any]] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class BackendOrderGateway:
    """
    Client for order creation and reads on the hosted backend.

    Attributes:
        base_url: Backend base URL
    """

    CREATE_ORDER_RPC = "/rest/v1/rpc/create_website_order"
    ORDERS_VIEW = "/rest/v1/website_orders_for_erp"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout),
            headers={
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            transport=transport,
        )

    async def create_order(self, actor_id: str, request: RemoteOrderRequest) -> RemoteOrder:
        """
        Create an order for an authenticated user and fetch its details.

        Args:
            actor_id: Id of the authenticated website user
            request: Items, shipping details, payment method and total

        Returns:
            The created order as stored by the backend

        Raises:
            BackendOrderError: If creation or the follow-up read fails
        """
        logger.info(
            "Creating order on backend",
            actor_id=actor_id,
            item_count=len(request.items),
        )

        params = {
            "p_user_id": actor_id,
            "p_total_amount": str(request.total_amount),
            "p_payment_method": request.payment_method,
            "p_shipping_address": request.shipping.address,
            "p_shipping_city": request.shipping.city,
            "p_shipping_postal_code": request.shipping.postal_code,
            "p_delivery_instructions": request.shipping.delivery_instructions,
            "p_order_items": [
                {
                    "product_id": item.product_id,
                    "quantity": item.quantity,
                    "unit_price": str(item.unit_price),
                    "total_price": str(item.total_price),
                }
                for item in request.items
            ],
        }

        try:
            response = await self._client.post(self.CREATE_ORDER_RPC, json=params)
            response.raise_for_status()
            order_id = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise BackendOrderError(
                f"Failed to create order: {e}", actor_id=actor_id
            ) from e

        if not order_id:
            raise BackendOrderError(
                "Failed to create order: backend returned no order id",
                actor_id=actor_id,
            )

        order = await self._fetch_order(str(order_id))
        if order is None:
            raise BackendOrderError(
                "Order created but failed to fetch details",
                actor_id=actor_id,
                order_id=str(order_id),
            )

        logger.info(
            "Order created on backend",
            order_id=order.id,
            order_number=order.order_number,
        )
        return order

    async def _fetch_order(
        self, order_id: str, actor_id: Optional[str] = None
    ) -> Optional[RemoteOrder]:
        params = {"select": "*", "id": f"eq.{order_id}"}
        if actor_id:
            params["website_user_id"] = f"eq.{actor_id}"

        try:
            response = await self._client.get(
                self.ORDERS_VIEW,
                params=params,
                headers={"Accept": "application/vnd.pgrst.object+json"},
            )
            response.raise_for_status()
            return RemoteOrder.model_validate(response.json())
        except (httpx.HTTPError, ValueError, ValidationError) as e:
            logger.error("Failed to fetch backend order", order_id=order_id, error=str(e))
            return None

    async def get_order_by_id(self, order_id: str, actor_id: str) -> Optional[RemoteOrder]:
        """Fetch one of the user's orders; None when missing or on error."""
        return await self._fetch_order(order_id, actor_id)

    async def get_user_orders(self, actor_id: str) -> list[RemoteOrder]:
        """Fetch a user's orders, newest first; empty on error."""
        try:
            response = await self._client.get(
                self.ORDERS_VIEW,
                params={
                    "select": "*",
                    "website_user_id": f"eq.{actor_id}",
                    "order": "created_at.desc",
                },
            )
            response.raise_for_status()
            return [RemoteOrder.model_validate(row) for row in response.json()]
        except (httpx.HTTPError, ValueError, ValidationError) as e:
            logger.error("Failed to fetch user orders", actor_id=actor_id, error=str(e))
            return []

    async def aclose(self) -> None:
        await self._client.aclose()
