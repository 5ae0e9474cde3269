"""
Service container.

Builds the snapshot store, ERP sync client, backend gateway and order
service once from Settings and owns their startup and shutdown. The API
layer and scripts receive services from here instead of module globals.
"""

from dataclasses import dataclass
from typing import Optional

from storefront.cache.redis_client import CacheKeyManager, RedisClient
from storefront.core.config import Settings
from storefront.core.logging import get_logger, log_performance
from storefront.services.erp.client import ErpSyncClient
from storefront.services.erp.ledger import FailedSyncLedger, SyncInfoRepository
from storefront.services.erp.transport import (
    ErpTransport,
    HttpErpTransport,
    SimulatedErpTransport,
)
from storefront.services.orders.backend_gateway import BackendOrderGateway
from storefront.services.orders.pricing import PricingPolicy
from storefront.services.orders.repository import OrderRepository
from storefront.services.orders.service import OrderService
from storefront.storage.base import SnapshotStore
from storefront.storage.file_store import FileSnapshotStore
from storefront.storage.memory_store import InMemorySnapshotStore
from storefront.storage.redis_store import RedisSnapshotStore

logger = get_logger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    store: SnapshotStore
    erp_client: ErpSyncClient
    order_service: OrderService
    backend_gateway: Optional[BackendOrderGateway] = None
    redis_client: Optional[RedisClient] = None

    async def start(self) -> None:
        """Connect storage, reload orders and run the ERP startup retry pass."""
        with log_performance(logger, "service_startup"):
            if self.redis_client is not None and not self.redis_client.is_connected:
                await self.redis_client.connect()
            await self.order_service.initialize()

    async def close(self) -> None:
        await self.erp_client.aclose()
        if self.backend_gateway is not None:
            await self.backend_gateway.aclose()
        await self.store.close()
        logger.info("Services closed")


def build_snapshot_store(settings: Settings) -> tuple[SnapshotStore, Optional[RedisClient]]:
    """Create the configured snapshot store and, for redis, its client."""
    if settings.storage_backend == "memory":
        return InMemorySnapshotStore(), None
    if settings.storage_backend == "redis":
        client = RedisClient(
            url=settings.redis_url,
            max_connections=settings.redis_max_connections,
        )
        store = RedisSnapshotStore(client, CacheKeyManager(settings.redis_namespace))
        return store, client
    return FileSnapshotStore(settings.storage_path), None


def build_erp_transport(settings: Settings) -> ErpTransport:
    if settings.erp_mode == "http":
        return HttpErpTransport(
            base_url=settings.erp_base_url,
            api_key=settings.erp_api_key,
            timeout=settings.erp_timeout_seconds,
        )
    return SimulatedErpTransport(delay_seconds=settings.erp_simulated_delay_seconds)


def build_services(
    settings: Settings,
    store: Optional[SnapshotStore] = None,
    erp_transport: Optional[ErpTransport] = None,
    backend_gateway: Optional[BackendOrderGateway] = None,
) -> ServiceContainer:
    """
    Wire every service from settings.

    Args:
        settings: Application settings
        store: Snapshot store to use instead of the configured one
        erp_transport: ERP transport to use instead of the configured one
        backend_gateway: Backend gateway to use instead of the configured one

    Returns:
        ServiceContainer, not yet started
    """
    redis_client = None
    if store is None:
        store, redis_client = build_snapshot_store(settings)

    if backend_gateway is None and settings.backend_url:
        backend_gateway = BackendOrderGateway(
            base_url=settings.backend_url,
            api_key=settings.backend_api_key,
            timeout=settings.backend_timeout_seconds,
        )

    erp_client = ErpSyncClient(
        transport=erp_transport or build_erp_transport(settings),
        ledger=FailedSyncLedger(store),
        sync_info=SyncInfoRepository(store),
        max_retries=settings.erp_max_retries,
        timeout_seconds=settings.erp_timeout_seconds,
    )

    order_service = OrderService(
        repository=OrderRepository(store),
        erp_client=erp_client,
        pricing=PricingPolicy.from_settings(settings),
        backend_gateway=backend_gateway,
        backend_timeout_seconds=settings.backend_timeout_seconds,
    )

    logger.info(
        "Services built",
        storage_backend=type(store).__name__,
        erp_mode=settings.erp_mode,
        backend_enabled=backend_gateway is not None,
    )

    return ServiceContainer(
        settings=settings,
        store=store,
        erp_client=erp_client,
        order_service=order_service,
        backend_gateway=backend_gateway,
        redis_client=redis_client,
    )
