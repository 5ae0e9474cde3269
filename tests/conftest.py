"""
Pytest configuration and shared test fixtures.

This module provides the in-memory snapshot store, a zero-delay simulated
ERP, a wired order service, sample carts and customers, and a test client
for the FastAPI application running on memory storage.
"""

from decimal import Decimal
from typing import Any, Generator

import pytest
from fastapi.testclient import TestClient

from storefront.core.config import Settings
from storefront.main import create_app
from storefront.services.container import build_services
from storefront.services.erp.client import ErpSyncClient
from storefront.services.erp.ledger import FailedSyncLedger, SyncInfoRepository
from storefront.services.erp.transport import SimulatedErpTransport
from storefront.services.orders.models import CartItem, CustomerInfo, Product
from storefront.services.orders.repository import OrderRepository
from storefront.services.orders.service import OrderService
from storefront.storage.memory_store import InMemorySnapshotStore


@pytest.fixture
def test_settings() -> Settings:
    """Settings for an isolated app: memory storage, instant simulated ERP."""
    return Settings(
        environment="development",
        storage_backend="memory",
        erp_mode="simulated",
        erp_simulated_delay_seconds=0,
    )


@pytest.fixture
def memory_store() -> InMemorySnapshotStore:
    return InMemorySnapshotStore()


@pytest.fixture
def simulated_transport() -> SimulatedErpTransport:
    return SimulatedErpTransport(delay_seconds=0)


@pytest.fixture
def erp_client(memory_store, simulated_transport) -> ErpSyncClient:
    """ERP sync client over the simulated transport and in-memory ledgers."""
    return ErpSyncClient(
        transport=simulated_transport,
        ledger=FailedSyncLedger(memory_store),
        sync_info=SyncInfoRepository(memory_store),
    )


@pytest.fixture
def order_service(memory_store, erp_client) -> OrderService:
    return OrderService(repository=OrderRepository(memory_store), erp_client=erp_client)


@pytest.fixture
def sample_customer() -> CustomerInfo:
    return CustomerInfo(
        first_name="Ada",
        last_name="Lovelace",
        email="ada@example.com",
        phone="+1 555 0100",
        address="12 Analytical Way",
        city="London",
        state="LDN",
        postal_code="N1 9GU",
        country="UK",
    )


@pytest.fixture
def sample_cart() -> list[CartItem]:
    """Cart worth 130.00: two items at 50 and one at 30."""
    return [
        CartItem(
            product=Product(id="p-1", name="Laptop Stand", price=Decimal("50"), sku="LS-1"),
            quantity=2,
        ),
        CartItem(
            product=Product(id="p-2", name="USB-C Hub", price=Decimal("30")),
            quantity=1,
        ),
    ]


@pytest.fixture
def checkout_payload() -> dict[str, Any]:
    """JSON body of a valid checkout request."""
    return {
        "items": [
            {
                "product": {"id": "p-1", "name": "Laptop Stand", "price": "50.00", "sku": "LS-1"},
                "quantity": 2,
            },
            {
                "product": {"id": "p-2", "name": "USB-C Hub", "price": "30.00"},
                "quantity": 1,
            },
        ],
        "customer_info": {
            "first_name": "Ada",
            "last_name": "Lovelace",
            "email": "ada@example.com",
            "phone": "+1 555 0100",
            "address": "12 Analytical Way",
            "city": "London",
            "state": "LDN",
            "postal_code": "N1 9GU",
            "country": "UK",
        },
        "payment_method": "credit_card",
    }


@pytest.fixture
def test_client(test_settings) -> Generator[TestClient, None, None]:
    """
    Create a synchronous test client for an isolated application.

    The lifespan runs on enter, so the order cache is loaded and the ERP
    startup pass has completed before the first request.

    Yields:
        TestClient: Test client bound to memory-backed services
    """
    app = create_app(settings=test_settings, services=build_services(test_settings))
    with TestClient(app) as client:
        yield client
