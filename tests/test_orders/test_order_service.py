"""
Test suite for OrderService business logic.

Covers order creation with pricing and cart snapshots, the primary backend
path and its ERP fallback, status changes and cancellation rules, failed
sync retries, queries, statistics and persistence across service restarts.
"""

import json
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any
from unittest.mock import AsyncMock

import httpx
import pytest

from storefront.services.erp.client import ErpSyncClient
from storefront.services.erp.ledger import FailedSyncLedger, SyncInfoRepository
from storefront.services.erp.schemas import ErpOrderReference
from storefront.services.erp.transport import ErpTransport, ErpTransportError
from storefront.services.orders.backend_gateway import BackendOrderGateway
from storefront.services.orders.enums import OrderStatus, SyncStatus
from storefront.services.orders.pricing import PricingPolicy
from storefront.services.orders.repository import OrderRepository
from storefront.services.orders.service import OrderService, OrderValidationError
from storefront.storage.base import SnapshotStoreError


# ============================================================================
# Test Fixtures
# ============================================================================


@pytest.fixture
def mock_erp_transport() -> AsyncMock:
    """
    Create mock ERP transport that accepts every order.

    Returns:
        AsyncMock: Mock transport answering with fixed ERP identifiers
    """
    transport = AsyncMock(spec=ErpTransport)
    transport.submit_order.return_value = ErpOrderReference(
        order_id="erp-1", order_number="WEB-000001"
    )
    transport.health_check.return_value = True
    return transport


@pytest.fixture
def mocked_erp_client(memory_store, mock_erp_transport) -> ErpSyncClient:
    return ErpSyncClient(
        transport=mock_erp_transport,
        ledger=FailedSyncLedger(memory_store),
        sync_info=SyncInfoRepository(memory_store),
    )


@pytest.fixture
def mocked_service(memory_store, mocked_erp_client) -> OrderService:
    """Order service whose ERP transport is a mock."""
    return OrderService(
        repository=OrderRepository(memory_store),
        erp_client=mocked_erp_client,
    )


def _backend_handler(calls: list[httpx.Request], fail: bool = False):
    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if fail:
            return httpx.Response(500, json={"message": "boom"})
        if request.method == "POST":
            return httpx.Response(200, json="remote-order-1")
        return httpx.Response(
            200,
            json={
                "id": "remote-order-1",
                "order_number": "WO-1001",
                "status": "pending",
                "total_amount": "140.40",
            },
        )

    return handler


def _gateway(handler) -> BackendOrderGateway:
    return BackendOrderGateway(
        base_url="https://backend.test",
        api_key="anon-key",
        transport=httpx.MockTransport(handler),
    )


def _cart_dicts() -> list[dict[str, Any]]:
    return [
        {"product": {"id": "p-1", "name": "Keyboard", "price": "50"}, "quantity": 2},
        {"product": {"id": "p-2", "name": "Mouse", "price": "30"}, "quantity": 1},
    ]


# ============================================================================
# Order Creation
# ============================================================================


class TestCreateOrder:
    """Test suite for order creation."""

    @pytest.mark.asyncio
    async def test_create_order_prices_and_syncs(
        self, order_service, sample_cart, sample_customer
    ):
        """
        Test order creation through the simulated ERP.

        The order is priced with the default policy, keeps status pending
        and ends up synced with ERP identifiers.
        """
        order = await order_service.create_order(sample_cart, sample_customer, "credit_card")

        assert order.subtotal == Decimal("130.00")
        assert order.tax == Decimal("10.40")
        assert order.shipping == Decimal("0.00")
        assert order.total_amount == Decimal("140.40")
        assert order.status == OrderStatus.PENDING
        assert order.sync_status == SyncStatus.SYNCED
        assert order.erp_order_id.startswith("erp-")
        assert order.erp_order_number.startswith("WEB-")
        assert order.id.startswith("order-")
        assert order.order_number.startswith("ORD-")
        assert len(order.order_number) == len("ORD-") + 9

    @pytest.mark.asyncio
    async def test_create_order_uses_configured_tax_rate(
        self, memory_store, erp_client, sample_cart, sample_customer
    ):
        service = OrderService(
            repository=OrderRepository(memory_store),
            erp_client=erp_client,
            pricing=PricingPolicy(tax_rate=Decimal("0.15")),
        )

        order = await service.create_order(sample_cart, sample_customer, "credit_card")

        assert order.tax == Decimal("19.50")
        assert order.total_amount == Decimal("149.50")

    @pytest.mark.asyncio
    async def test_create_order_copies_cart(self, order_service, sample_customer):
        """Mutating the caller's cart after checkout does not change the order."""
        cart = _cart_dicts()

        order = await order_service.create_order(cart, sample_customer, "paypal")
        cart[0]["quantity"] = 99
        cart[0]["product"]["price"] = "1"
        cart.append({"product": {"id": "p-3", "name": "Cable", "price": "5"}, "quantity": 1})

        stored = order_service.get_order(order.id)
        assert len(stored.items) == 2
        assert stored.items[0].quantity == 2
        assert stored.items[0].product.price == Decimal("50")

    @pytest.mark.asyncio
    async def test_create_order_copies_customer(self, order_service, sample_cart):
        customer = {"first_name": "Grace", "last_name": "Hopper", "email": "grace@example.com"}

        order = await order_service.create_order(sample_cart, customer, "credit_card")
        customer["email"] = "changed@example.com"

        assert order_service.get_order(order.id).customer_info.email == "grace@example.com"

    @pytest.mark.asyncio
    async def test_create_order_rejects_empty_cart(self, order_service, sample_customer):
        with pytest.raises(OrderValidationError):
            await order_service.create_order([], sample_customer, "credit_card")

        assert order_service.get_all_orders() == []

    @pytest.mark.asyncio
    async def test_create_order_rejects_invalid_cart_item(self, order_service, sample_customer):
        cart = [{"product": {"id": "p-1", "name": "Keyboard", "price": "50"}, "quantity": 0}]

        with pytest.raises(OrderValidationError):
            await order_service.create_order(cart, sample_customer, "credit_card")

    @pytest.mark.asyncio
    async def test_create_order_ids_are_unique(self, order_service, sample_cart, sample_customer):
        orders = [
            await order_service.create_order(sample_cart, sample_customer, "credit_card")
            for _ in range(5)
        ]

        assert len({order.id for order in orders}) == 5
        assert len({order.order_number for order in orders}) == 5

    @pytest.mark.asyncio
    async def test_create_order_sends_erp_payload(
        self, mocked_service, mock_erp_transport, sample_cart, sample_customer
    ):
        order = await mocked_service.create_order(
            sample_cart, sample_customer, "credit_card", notes="Leave at door"
        )

        payload = mock_erp_transport.submit_order.await_args.args[0]
        assert payload.order_id == order.id
        assert payload.total_amount == Decimal("140.40")
        assert payload.notes == f"E-commerce order {order.order_number}\nLeave at door"
        assert [item.sku for item in payload.items] == ["LS-1", "p-2"]
        assert payload.customer_info.email == "ada@example.com"

    @pytest.mark.asyncio
    async def test_erp_failure_marks_order_failed(
        self, mocked_service, mock_erp_transport, mocked_erp_client, sample_cart, sample_customer
    ):
        """
        Test ERP rejection during creation.

        The order is still returned, marked failed, and its payload lands in
        the retry ledger with a zero retry count.
        """
        mock_erp_transport.submit_order.side_effect = ErpTransportError("ERP down")

        order = await mocked_service.create_order(sample_cart, sample_customer, "credit_card")

        assert order.sync_status == SyncStatus.FAILED
        assert order.erp_order_id is None
        ledger = await mocked_erp_client.get_failed_syncs()
        assert [entry.order_id for entry in ledger] == [order.id]
        assert ledger[0].retry_count == 0

    @pytest.mark.asyncio
    async def test_unexpected_erp_error_marks_order_failed(
        self, mocked_service, mock_erp_transport, sample_cart, sample_customer
    ):
        mock_erp_transport.submit_order.side_effect = RuntimeError("unexpected")

        order = await mocked_service.create_order(sample_cart, sample_customer, "credit_card")

        assert order.sync_status == SyncStatus.FAILED


# ============================================================================
# Primary Backend Path
# ============================================================================


class TestPrimaryBackendPath:
    """Test suite for authenticated order creation on the hosted backend."""

    @pytest.mark.asyncio
    async def test_actor_order_created_on_backend(
        self, memory_store, mocked_erp_client, mock_erp_transport, sample_cart, sample_customer
    ):
        calls: list[httpx.Request] = []
        service = OrderService(
            repository=OrderRepository(memory_store),
            erp_client=mocked_erp_client,
            backend_gateway=_gateway(_backend_handler(calls)),
        )

        order = await service.create_order(
            sample_cart, sample_customer, "credit_card", actor_id="user-42", notes="Ring twice"
        )

        assert order.sync_status == SyncStatus.SYNCED
        assert order.status == OrderStatus.PROCESSING
        assert order.erp_order_id == "remote-order-1"
        assert order.erp_order_number == "WO-1001"
        assert order.actor_id == "user-42"
        mock_erp_transport.submit_order.assert_not_awaited()

        rpc_call = calls[0]
        assert rpc_call.url.path == "/rest/v1/rpc/create_website_order"
        assert rpc_call.headers["apikey"] == "anon-key"
        params = json.loads(rpc_call.content)
        assert params["p_user_id"] == "user-42"
        assert params["p_delivery_instructions"] == "Ring twice"
        assert calls[1].url.params["id"] == "eq.remote-order-1"

    @pytest.mark.asyncio
    async def test_backend_failure_falls_back_to_erp(
        self, memory_store, mocked_erp_client, mock_erp_transport, sample_cart, sample_customer
    ):
        calls: list[httpx.Request] = []
        service = OrderService(
            repository=OrderRepository(memory_store),
            erp_client=mocked_erp_client,
            backend_gateway=_gateway(_backend_handler(calls, fail=True)),
        )

        order = await service.create_order(
            sample_cart, sample_customer, "credit_card", actor_id="user-42"
        )

        assert len(calls) == 1
        assert order.status == OrderStatus.PENDING
        assert order.sync_status == SyncStatus.SYNCED
        assert order.erp_order_id == "erp-1"
        mock_erp_transport.submit_order.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unexpected_backend_error_falls_back_to_erp(
        self, memory_store, mocked_erp_client, mock_erp_transport, sample_cart, sample_customer
    ):
        gateway = AsyncMock(spec=BackendOrderGateway)
        gateway.create_order.side_effect = RuntimeError("client has been closed")
        service = OrderService(
            repository=OrderRepository(memory_store),
            erp_client=mocked_erp_client,
            backend_gateway=gateway,
        )

        order = await service.create_order(
            sample_cart, sample_customer, "credit_card", actor_id="user-42"
        )

        gateway.create_order.assert_awaited_once()
        assert order.status == OrderStatus.PENDING
        assert order.sync_status == SyncStatus.SYNCED
        assert order.erp_order_id == "erp-1"
        stored = await memory_store.get("ecommerce_orders")
        assert [record["id"] for record in stored] == [order.id]

    @pytest.mark.asyncio
    async def test_anonymous_order_skips_backend(
        self, memory_store, mocked_erp_client, sample_cart, sample_customer
    ):
        calls: list[httpx.Request] = []
        service = OrderService(
            repository=OrderRepository(memory_store),
            erp_client=mocked_erp_client,
            backend_gateway=_gateway(_backend_handler(calls)),
        )

        order = await service.create_order(sample_cart, sample_customer, "credit_card")

        assert calls == []
        assert order.erp_order_id == "erp-1"


# ============================================================================
# Status Changes
# ============================================================================


class TestOrderStatusChanges:
    """Test suite for update_order_status and cancel_order."""

    @pytest.mark.asyncio
    async def test_update_status(self, order_service, sample_cart, sample_customer):
        order = await order_service.create_order(sample_cart, sample_customer, "credit_card")

        assert await order_service.update_order_status(order.id, OrderStatus.SHIPPED)
        assert order_service.get_order(order.id).status == OrderStatus.SHIPPED

    @pytest.mark.asyncio
    async def test_update_status_accepts_string(self, order_service, sample_cart, sample_customer):
        order = await order_service.create_order(sample_cart, sample_customer, "credit_card")

        assert await order_service.update_order_status(order.id, "DELIVERED")
        assert order_service.get_order(order.id).status == OrderStatus.DELIVERED

    @pytest.mark.asyncio
    async def test_update_status_unknown_order(self, order_service):
        assert await order_service.update_order_status("missing", OrderStatus.SHIPPED) is False

    @pytest.mark.asyncio
    async def test_update_status_rejects_invalid_value(
        self, order_service, sample_cart, sample_customer
    ):
        order = await order_service.create_order(sample_cart, sample_customer, "credit_card")

        with pytest.raises(ValueError):
            await order_service.update_order_status(order.id, "lost")

    @pytest.mark.asyncio
    async def test_cancelled_order_is_terminal(self, order_service, sample_cart, sample_customer):
        order = await order_service.create_order(sample_cart, sample_customer, "credit_card")
        await order_service.cancel_order(order.id)

        assert await order_service.update_order_status(order.id, OrderStatus.PROCESSING) is False
        assert order_service.get_order(order.id).status == OrderStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_delivered_order_cannot_be_set_cancelled(
        self, order_service, sample_cart, sample_customer
    ):
        order = await order_service.create_order(sample_cart, sample_customer, "credit_card")
        await order_service.update_order_status(order.id, OrderStatus.DELIVERED)

        assert await order_service.update_order_status(order.id, OrderStatus.CANCELLED) is False
        assert order_service.get_order(order.id).status == OrderStatus.DELIVERED

    @pytest.mark.asyncio
    async def test_cancel_order_appends_reason(self, order_service, sample_cart, sample_customer):
        order = await order_service.create_order(
            sample_cart, sample_customer, "credit_card", notes="Gift wrap"
        )

        assert await order_service.cancel_order(order.id, "Customer changed mind")

        cancelled = order_service.get_order(order.id)
        assert cancelled.status == OrderStatus.CANCELLED
        assert cancelled.notes == "Gift wrap\nCancelled: Customer changed mind"

    @pytest.mark.asyncio
    async def test_cancel_without_reason_keeps_notes(
        self, order_service, sample_cart, sample_customer
    ):
        order = await order_service.create_order(sample_cart, sample_customer, "credit_card")

        assert await order_service.cancel_order(order.id)
        assert order_service.get_order(order.id).notes is None

    @pytest.mark.asyncio
    async def test_cancel_delivered_order_refused(
        self, order_service, sample_cart, sample_customer
    ):
        order = await order_service.create_order(sample_cart, sample_customer, "credit_card")
        await order_service.update_order_status(order.id, OrderStatus.DELIVERED)

        assert await order_service.cancel_order(order.id, "too late") is False
        assert order_service.get_order(order.id).status == OrderStatus.DELIVERED

    @pytest.mark.asyncio
    async def test_cancel_unknown_order(self, order_service):
        assert await order_service.cancel_order("missing") is False

    @pytest.mark.asyncio
    async def test_cancel_twice_is_noop(self, order_service, sample_cart, sample_customer):
        order = await order_service.create_order(sample_cart, sample_customer, "credit_card")
        await order_service.cancel_order(order.id, "first")

        assert await order_service.cancel_order(order.id, "second")
        assert order_service.get_order(order.id).notes == "Cancelled: first"


# ============================================================================
# Failed Sync Retry
# ============================================================================


class TestRetryFailedSyncs:
    """Test suite for retrying orders whose ERP sync failed."""

    @pytest.mark.asyncio
    async def test_retry_syncs_failed_orders(
        self, mocked_service, mock_erp_transport, mocked_erp_client, sample_cart, sample_customer
    ):
        mock_erp_transport.submit_order.side_effect = ErpTransportError("ERP down")
        first = await mocked_service.create_order(sample_cart, sample_customer, "credit_card")
        second = await mocked_service.create_order(sample_cart, sample_customer, "credit_card")

        mock_erp_transport.submit_order.side_effect = None
        synced = await mocked_service.retry_failed_syncs()

        assert synced == 2
        for order_id in (first.id, second.id):
            order = mocked_service.get_order(order_id)
            assert order.sync_status == SyncStatus.SYNCED
            assert order.erp_order_id == "erp-1"
        assert await mocked_erp_client.get_failed_syncs() == []

    @pytest.mark.asyncio
    async def test_retry_keeps_failed_orders_failed(
        self, mocked_service, mock_erp_transport, mocked_erp_client, sample_cart, sample_customer
    ):
        mock_erp_transport.submit_order.side_effect = ErpTransportError("ERP down")
        order = await mocked_service.create_order(sample_cart, sample_customer, "credit_card")

        synced = await mocked_service.retry_failed_syncs()

        assert synced == 0
        assert mocked_service.get_order(order.id).sync_status == SyncStatus.FAILED
        assert len(await mocked_erp_client.get_failed_syncs()) == 1

    @pytest.mark.asyncio
    async def test_retry_skips_dead_lettered_orders(
        self, mocked_service, mock_erp_transport, mocked_erp_client, sample_cart, sample_customer
    ):
        """
        Test the service retry after the ERP client gave up on an order.

        The order is not resubmitted, does not return to the ledger and
        keeps a single dead-letter entry.
        """
        mock_erp_transport.submit_order.side_effect = ErpTransportError("ERP down")
        order = await mocked_service.create_order(sample_cart, sample_customer, "credit_card")
        for _ in range(3):
            await mocked_erp_client.retry_failed_orders()
        assert [e.order_id for e in await mocked_erp_client.get_dead_letters()] == [order.id]
        submitted = mock_erp_transport.submit_order.await_count

        synced = await mocked_service.retry_failed_syncs()
        await mocked_erp_client.retry_failed_orders()

        assert synced == 0
        assert mock_erp_transport.submit_order.await_count == submitted
        assert await mocked_erp_client.get_failed_syncs() == []
        assert len(await mocked_erp_client.get_dead_letters()) == 1
        assert mocked_service.get_order(order.id).sync_status == SyncStatus.FAILED

    @pytest.mark.asyncio
    async def test_retry_with_nothing_failed(self, order_service, sample_cart, sample_customer):
        await order_service.create_order(sample_cart, sample_customer, "credit_card")

        assert await order_service.retry_failed_syncs() == 0

    @pytest.mark.asyncio
    async def test_erp_client_retry_flips_order_to_synced(
        self, mocked_service, mock_erp_transport, mocked_erp_client, sample_cart, sample_customer
    ):
        """A success in the ERP client's own retry pass reaches the order index."""
        mock_erp_transport.submit_order.side_effect = ErpTransportError("ERP down")
        order = await mocked_service.create_order(sample_cart, sample_customer, "credit_card")

        mock_erp_transport.submit_order.side_effect = None
        summary = await mocked_erp_client.retry_failed_orders()

        assert summary.succeeded == 1
        stored = mocked_service.get_order(order.id)
        assert stored.sync_status == SyncStatus.SYNCED
        assert stored.erp_order_number == "WEB-000001"


# ============================================================================
# Queries
# ============================================================================


class TestOrderQueries:
    """Test suite for lookups, search, statistics and date ranges."""

    @pytest.mark.asyncio
    async def test_get_order_by_number(self, order_service, sample_cart, sample_customer):
        order = await order_service.create_order(sample_cart, sample_customer, "credit_card")

        assert order_service.get_order_by_number(order.order_number).id == order.id
        assert order_service.get_order_by_number("ORD-000000000") is None

    @pytest.mark.asyncio
    async def test_get_order_missing(self, order_service):
        assert order_service.get_order("missing") is None

    @pytest.mark.asyncio
    async def test_customer_orders_match_email_case_insensitively(
        self, order_service, sample_cart, sample_customer
    ):
        await order_service.create_order(sample_cart, sample_customer, "credit_card")
        await order_service.create_order(
            sample_cart,
            {"first_name": "Grace", "last_name": "Hopper", "email": "grace@example.com"},
            "credit_card",
        )

        orders = order_service.get_customer_orders("ADA@Example.com")

        assert len(orders) == 1
        assert orders[0].customer_info.first_name == "Ada"

    @pytest.mark.asyncio
    async def test_orders_sorted_newest_first(self, order_service, sample_cart, sample_customer):
        first = await order_service.create_order(sample_cart, sample_customer, "credit_card")
        second = await order_service.create_order(sample_cart, sample_customer, "credit_card")
        first.order_date = datetime.now(timezone.utc) - timedelta(days=1)

        assert [order.id for order in order_service.get_all_orders()] == [second.id, first.id]

    @pytest.mark.asyncio
    async def test_search_orders(self, order_service, sample_cart, sample_customer):
        order = await order_service.create_order(sample_cart, sample_customer, "credit_card")

        assert order_service.search_orders("lovelace")[0].id == order.id
        assert order_service.search_orders("ADA@EXAMPLE")[0].id == order.id
        assert order_service.search_orders(order.order_number.lower())[0].id == order.id
        assert order_service.search_orders(order.erp_order_number)[0].id == order.id
        assert order_service.search_orders("nobody") == []

    @pytest.mark.asyncio
    async def test_order_statistics(self, order_service, sample_cart, sample_customer):
        first = await order_service.create_order(sample_cart, sample_customer, "credit_card")
        await order_service.create_order(sample_cart, sample_customer, "credit_card")
        await order_service.cancel_order(first.id)

        stats = order_service.get_order_statistics()

        assert stats.total_orders == 2
        assert stats.total_revenue == Decimal("280.80")
        assert stats.orders_by_status == {"cancelled": 1, "pending": 1}
        assert stats.sync_statistics == {"synced": 2}

    @pytest.mark.asyncio
    async def test_statistics_empty(self, order_service):
        stats = order_service.get_order_statistics()

        assert stats.total_orders == 0
        assert stats.total_revenue == Decimal("0")

    @pytest.mark.asyncio
    async def test_orders_by_date_range(self, order_service, sample_cart, sample_customer):
        old = await order_service.create_order(sample_cart, sample_customer, "credit_card")
        recent = await order_service.create_order(sample_cart, sample_customer, "credit_card")
        old.order_date = datetime(2024, 1, 15, tzinfo=timezone.utc)

        in_january = order_service.get_orders_by_date_range(
            datetime(2024, 1, 1), datetime(2024, 1, 31, 23, 59, 59)
        )
        since_yesterday = order_service.get_orders_by_date_range(
            datetime.now(timezone.utc) - timedelta(days=1),
            datetime.now(timezone.utc) + timedelta(days=1),
        )

        assert [order.id for order in in_january] == [old.id]
        assert [order.id for order in since_yesterday] == [recent.id]

    @pytest.mark.asyncio
    async def test_date_range_is_inclusive(self, order_service, sample_cart, sample_customer):
        order = await order_service.create_order(sample_cart, sample_customer, "credit_card")
        moment = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
        order.order_date = moment

        assert order_service.get_orders_by_date_range(moment, moment)[0].id == order.id


# ============================================================================
# Persistence
# ============================================================================


class TestOrderPersistence:
    """Test suite for the local order cache round trip."""

    @pytest.mark.asyncio
    async def test_orders_survive_restart(
        self, memory_store, order_service, erp_client, sample_cart, sample_customer
    ):
        order = await order_service.create_order(sample_cart, sample_customer, "credit_card")
        await order_service.update_order_status(order.id, OrderStatus.SHIPPED)

        restarted = OrderService(repository=OrderRepository(memory_store), erp_client=erp_client)
        await restarted.load()

        reloaded = restarted.get_order(order.id)
        assert reloaded.model_dump() == order_service.get_order(order.id).model_dump()
        assert reloaded.status == OrderStatus.SHIPPED
        assert reloaded.sync_status == SyncStatus.SYNCED

    @pytest.mark.asyncio
    async def test_invalid_record_does_not_wipe_stored_orders(
        self, memory_store, order_service, erp_client, sample_cart, sample_customer
    ):
        """
        Test checkout after a load that met an unreadable record.

        The valid stored orders stay in the index, and the next write keeps
        both them and the unreadable record.
        """
        existing = await order_service.create_order(sample_cart, sample_customer, "credit_card")
        snapshot = await memory_store.get("ecommerce_orders")
        broken = {"id": "order-broken", "total_amount": "not a number"}
        await memory_store.put("ecommerce_orders", [*snapshot, broken])

        restarted = OrderService(repository=OrderRepository(memory_store), erp_client=erp_client)
        await restarted.load()
        new = await restarted.create_order(sample_cart, sample_customer, "paypal")

        assert {order.id for order in restarted.get_all_orders()} == {existing.id, new.id}
        stored = await memory_store.get("ecommerce_orders")
        assert {record["id"] for record in stored} == {existing.id, new.id, "order-broken"}
        assert broken in stored

    @pytest.mark.asyncio
    async def test_unreadable_snapshot_merged_before_next_write(
        self, memory_store, order_service, erp_client, sample_cart, sample_customer
    ):
        """A load that failed on a store error does not let the next save drop orders."""
        existing = await order_service.create_order(sample_cart, sample_customer, "credit_card")
        store = AsyncMock(wraps=memory_store)
        stored_snapshot = await memory_store.get("ecommerce_orders")
        store.get.side_effect = [SnapshotStoreError("timeout"), stored_snapshot]

        restarted = OrderService(repository=OrderRepository(store), erp_client=erp_client)
        await restarted.load()
        assert restarted.get_all_orders() == []

        new = await restarted.create_order(sample_cart, sample_customer, "paypal")

        stored = await memory_store.get("ecommerce_orders")
        assert {record["id"] for record in stored} == {existing.id, new.id}
        assert restarted.get_order(existing.id) is not None

    @pytest.mark.asyncio
    async def test_snapshot_not_written_while_unreadable(
        self, erp_client, sample_cart, sample_customer
    ):
        store = AsyncMock()
        store.get.side_effect = SnapshotStoreError("timeout")
        service = OrderService(repository=OrderRepository(store), erp_client=erp_client)
        await service.load()

        order = await service.create_order(sample_cart, sample_customer, "credit_card")

        assert service.get_order(order.id) is order
        store.put.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_non_list_snapshot_is_left_untouched(
        self, memory_store, erp_client, sample_cart, sample_customer
    ):
        await memory_store.put("ecommerce_orders", {"not": "a list"})
        service = OrderService(repository=OrderRepository(memory_store), erp_client=erp_client)

        await service.load()
        await service.create_order(sample_cart, sample_customer, "credit_card")

        assert service.get_all_orders() != []
        assert await memory_store.get("ecommerce_orders") == {"not": "a list"}

    @pytest.mark.asyncio
    async def test_storage_failure_does_not_fail_checkout(
        self, erp_client, sample_cart, sample_customer
    ):
        store = AsyncMock()
        store.get.return_value = None
        store.put.side_effect = SnapshotStoreError("disk full")
        service = OrderService(repository=OrderRepository(store), erp_client=erp_client)

        order = await service.create_order(sample_cart, sample_customer, "credit_card")

        assert service.get_order(order.id) is order

    @pytest.mark.asyncio
    async def test_clear_all_orders(
        self, memory_store, order_service, sample_cart, sample_customer
    ):
        await order_service.create_order(sample_cart, sample_customer, "credit_card")

        await order_service.clear_all_orders()

        assert order_service.get_all_orders() == []
        assert await memory_store.get("ecommerce_orders") is None

    @pytest.mark.asyncio
    async def test_initialize_retries_failed_ledger(
        self, memory_store, mocked_service, mock_erp_transport, sample_cart, sample_customer
    ):
        mock_erp_transport.submit_order.side_effect = ErpTransportError("ERP down")
        order = await mocked_service.create_order(sample_cart, sample_customer, "credit_card")
        mock_erp_transport.submit_order.side_effect = None

        await mocked_service.initialize()

        assert mocked_service.get_order(order.id).sync_status == SyncStatus.SYNCED
