"""
ERP transports.

HttpErpTransport talks to the ERP order sync API with httpx. The simulated
transport answers after an artificial delay with generated identifiers and is
the default for development and demos.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from typing import Any, Optional
from uuid import uuid4

import httpx

from storefront.core.logging import get_logger
from storefront.services.erp.schemas import ErpOrderPayload, ErpOrderReference

logger = get_logger(__name__)


class ErpTransportError(Exception):
    """Raised when the ERP could not be reached or answered unexpectedly."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.context = context


class ErpRejectedError(ErpTransportError):
    """Raised when the ERP answered but refused the order."""

    pass


class ErpTransport(ABC):
    """Remote side of the ERP integration."""

    @abstractmethod
    async def submit_order(self, payload: ErpOrderPayload) -> ErpOrderReference:
        """
        Register an order with the ERP.

        Raises:
            ErpTransportError: If the order was not registered
        """

    @abstractmethod
    async def health_check(self) -> bool:
        """Return True when the ERP is reachable."""

    async def aclose(self) -> None:
        """Release network resources."""


class HttpErpTransport(ErpTransport):
    """
    ERP transport over HTTP.

    Sends the camelCase payload to the sync endpoint with the API key header
    and expects ``{"success": bool, "orderId": str, "orderNumber": str,
    "error": str}`` back.
    """

    SYNC_PATH = "/api/orders/sync"
    HEALTH_PATH = "/health"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the HTTP client.

        Args:
            base_url: ERP base URL
            api_key: Value of the X-API-Key header
            timeout: Connect/read/write timeout in seconds
            transport: Optional httpx transport, used to stub the ERP in tests
        """
        self.base_url = base_url
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout),
            headers={
                "X-API-Key": api_key,
                "Content-Type": "application/json",
            },
            transport=transport,
        )

    async def submit_order(self, payload: ErpOrderPayload) -> ErpOrderReference:
        try:
            response = await self._client.post(self.SYNC_PATH, json=payload.to_wire())
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise ErpTransportError(
                "ERP request timed out", order_id=payload.order_id
            ) from e
        except httpx.HTTPStatusError as e:
            raise ErpTransportError(
                f"ERP responded with status {e.response.status_code}",
                order_id=payload.order_id,
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise ErpTransportError(
                f"ERP request failed: {e}", order_id=payload.order_id
            ) from e

        try:
            body = response.json()
        except ValueError as e:
            raise ErpTransportError(
                "ERP returned a non-JSON response", order_id=payload.order_id
            ) from e

        if not isinstance(body, dict) or not body.get("success"):
            error = body.get("error") if isinstance(body, dict) else None
            raise ErpRejectedError(
                error or "ERP rejected the order", order_id=payload.order_id
            )

        erp_order_id = body.get("orderId")
        if not erp_order_id:
            raise ErpTransportError(
                "ERP response is missing the order id", order_id=payload.order_id
            )

        return ErpOrderReference(
            order_id=str(erp_order_id),
            order_number=body.get("orderNumber"),
        )

    async def health_check(self) -> bool:
        try:
            response = await self._client.get(self.HEALTH_PATH)
        except httpx.HTTPError as e:
            logger.warning("ERP health request failed", error=str(e))
            return False
        return response.is_success

    async def aclose(self) -> None:
        await self._client.aclose()


class SimulatedErpTransport(ErpTransport):
    """Stand-in ERP that accepts every order after a fixed delay."""

    def __init__(self, delay_seconds: float = 1.0):
        self.delay_seconds = delay_seconds

    async def submit_order(self, payload: ErpOrderPayload) -> ErpOrderReference:
        await asyncio.sleep(self.delay_seconds)
        now_ms = str(int(time.time() * 1000))
        return ErpOrderReference(
            order_id=f"erp-{now_ms}-{uuid4().hex[:9]}",
            order_number=f"WEB-{now_ms[-6:]}",
        )

    async def health_check(self) -> bool:
        return True
