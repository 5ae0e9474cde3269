"""
Tests for the ERP transports.

The HTTP transport is exercised against httpx.MockTransport so the wire
format, headers and error mapping are checked without a network.
"""

import json
from datetime import datetime, timezone
from decimal import Decimal

import httpx
import pytest

from storefront.services.erp.schemas import (
    ErpCustomerInfo,
    ErpLineItem,
    ErpOrderPayload,
)
from storefront.services.erp.transport import (
    ErpRejectedError,
    ErpTransportError,
    HttpErpTransport,
    SimulatedErpTransport,
)


@pytest.fixture
def payload() -> ErpOrderPayload:
    return ErpOrderPayload(
        order_id="order-1",
        customer_info=ErpCustomerInfo(
            first_name="Ada",
            last_name="Lovelace",
            email="ada@example.com",
            postal_code="N1 9GU",
        ),
        items=[
            ErpLineItem(
                product_id="p-1",
                product_name="Laptop Stand",
                sku="LS-1",
                quantity=2,
                unit_price=Decimal("50.00"),
                total_price=Decimal("100.00"),
            )
        ],
        total_amount=Decimal("118.00"),
        payment_method="credit_card",
        order_date=datetime(2024, 5, 1, 10, 30, tzinfo=timezone.utc),
    )


def _transport(handler) -> HttpErpTransport:
    return HttpErpTransport(
        base_url="https://erp.test",
        api_key="secret-key",
        transport=httpx.MockTransport(handler),
    )


class TestHttpErpTransport:
    """Test suite for HttpErpTransport."""

    @pytest.mark.asyncio
    async def test_submit_order_wire_format(self, payload):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200, json={"success": True, "orderId": "erp-7", "orderNumber": "SO-7"}
            )

        transport = _transport(handler)
        reference = await transport.submit_order(payload)
        await transport.aclose()

        assert reference.order_id == "erp-7"
        assert reference.order_number == "SO-7"

        request = seen[0]
        assert request.method == "POST"
        assert request.url.path == "/api/orders/sync"
        assert request.headers["X-API-Key"] == "secret-key"

        body = json.loads(request.content)
        assert body["orderId"] == "order-1"
        assert body["customerInfo"]["firstName"] == "Ada"
        assert body["customerInfo"]["postalCode"] == "N1 9GU"
        assert body["items"][0]["productId"] == "p-1"
        assert body["items"][0]["unitPrice"] == "50.00"
        assert body["totalAmount"] == "118.00"
        assert body["paymentMethod"] == "credit_card"
        assert body["orderDate"].startswith("2024-05-01T10:30:00")
        assert "notes" not in body

    @pytest.mark.asyncio
    async def test_rejected_order(self, payload):
        transport = _transport(
            lambda request: httpx.Response(200, json={"success": False, "error": "Bad SKU"})
        )

        with pytest.raises(ErpRejectedError, match="Bad SKU"):
            await transport.submit_order(payload)

    @pytest.mark.asyncio
    async def test_rejected_without_message(self, payload):
        transport = _transport(lambda request: httpx.Response(200, json={"success": False}))

        with pytest.raises(ErpRejectedError, match="ERP rejected the order"):
            await transport.submit_order(payload)

    @pytest.mark.asyncio
    async def test_missing_order_id(self, payload):
        transport = _transport(lambda request: httpx.Response(200, json={"success": True}))

        with pytest.raises(ErpTransportError, match="missing the order id"):
            await transport.submit_order(payload)

    @pytest.mark.asyncio
    async def test_http_error_status(self, payload):
        transport = _transport(lambda request: httpx.Response(503, text="unavailable"))

        with pytest.raises(ErpTransportError) as exc_info:
            await transport.submit_order(payload)

        assert exc_info.value.context["status_code"] == 503

    @pytest.mark.asyncio
    async def test_non_json_response(self, payload):
        transport = _transport(lambda request: httpx.Response(200, text="<html>"))

        with pytest.raises(ErpTransportError, match="non-JSON"):
            await transport.submit_order(payload)

    @pytest.mark.asyncio
    async def test_connection_error(self, payload):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        transport = _transport(handler)

        with pytest.raises(ErpTransportError, match="ERP request failed"):
            await transport.submit_order(payload)

    @pytest.mark.asyncio
    async def test_timeout(self, payload):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("read timed out", request=request)

        transport = _transport(handler)

        with pytest.raises(ErpTransportError, match="timed out"):
            await transport.submit_order(payload)

    @pytest.mark.asyncio
    async def test_health_check(self):
        transport = _transport(
            lambda request: httpx.Response(200 if request.url.path == "/health" else 404)
        )

        assert await transport.health_check() is True

    @pytest.mark.asyncio
    async def test_health_check_unreachable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        assert await _transport(handler).health_check() is False

    @pytest.mark.asyncio
    async def test_health_check_error_status(self):
        transport = _transport(lambda request: httpx.Response(500))

        assert await transport.health_check() is False


class TestSimulatedErpTransport:
    """Test suite for SimulatedErpTransport."""

    @pytest.mark.asyncio
    async def test_generates_identifiers(self, payload):
        transport = SimulatedErpTransport(delay_seconds=0)

        first = await transport.submit_order(payload)
        second = await transport.submit_order(payload)

        assert first.order_id.startswith("erp-")
        assert first.order_number.startswith("WEB-")
        assert len(first.order_number) == len("WEB-") + 6
        assert first.order_id != second.order_id

    @pytest.mark.asyncio
    async def test_always_healthy(self):
        assert await SimulatedErpTransport(delay_seconds=0).health_check() is True
