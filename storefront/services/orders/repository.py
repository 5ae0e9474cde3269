"""
Local order cache persistence.

This module implements the OrderRepository class, which loads and saves the
complete set of cached orders as a single snapshot. Each save overwrites the
previous snapshot; the service layer keeps the authoritative in-memory index.
"""

from typing import Any, Iterable

from pydantic import ValidationError

from storefront.core.logging import get_logger
from storefront.services.orders.models import Order
from storefront.storage.base import SnapshotStore, SnapshotStoreError

logger = get_logger(__name__)

ORDERS_SNAPSHOT_KEY = "ecommerce_orders"


class OrderRepositoryError(Exception):
    """Base exception for order repository errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.context = context


class OrderLoadError(OrderRepositoryError):
    """Raised when the order snapshot cannot be read or decoded."""

    pass


class OrderSaveError(OrderRepositoryError):
    """Raised when the order snapshot cannot be written."""

    pass


class OrderRepository:
    """
    Repository for the persisted order snapshot.

    Attributes:
        store: Snapshot store holding the orders
        key: Snapshot key the orders are stored under
    """

    def __init__(self, store: SnapshotStore, key: str = ORDERS_SNAPSHOT_KEY):
        self.store = store
        self.key = key
        # raw records that failed validation, written back untouched on save
        self._preserved_records: list[Any] = []

    async def load(self) -> dict[str, Order]:
        """
        Load every persisted order.

        Records that fail validation are skipped with a warning and kept
        aside for the next save.

        Returns:
            Mapping of order id to order; empty when nothing was saved yet

        Raises:
            OrderLoadError: If the snapshot cannot be read or is not a list
        """
        try:
            snapshot = await self.store.get(self.key)
        except SnapshotStoreError as e:
            raise OrderLoadError(
                "Failed to read order snapshot", key=self.key, error=str(e),
            ) from e

        if snapshot is None:
            return {}
        if not isinstance(snapshot, list):
            raise OrderLoadError(
                "Order snapshot has unexpected shape",
                key=self.key,
                snapshot_type=type(snapshot).__name__,
            )

        orders: dict[str, Order] = {}
        preserved: list[Any] = []
        for index, record in enumerate(snapshot):
            try:
                order = Order.model_validate(record)
            except ValidationError as e:
                logger.warning(
                    "Skipping invalid order record",
                    key=self.key,
                    index=index,
                    error_count=e.error_count(),
                )
                preserved.append(record)
                continue
            orders[order.id] = order

        self._preserved_records = preserved
        logger.debug(
            "Order snapshot loaded",
            key=self.key,
            count=len(orders),
            skipped=len(preserved),
        )
        return orders

    async def save(self, orders: Iterable[Order]) -> None:
        """
        Overwrite the snapshot with the given orders.

        Records skipped by the last load are written back as they were read,
        so a record this version cannot decode is never lost by a save.

        Raises:
            OrderSaveError: If the snapshot cannot be written
        """
        snapshot = [order.model_dump(mode="json") for order in orders]
        snapshot.extend(self._preserved_records)
        try:
            await self.store.put(self.key, snapshot)
        except SnapshotStoreError as e:
            raise OrderSaveError(
                "Failed to write order snapshot",
                key=self.key,
                count=len(snapshot),
                error=str(e),
            ) from e

    async def clear(self) -> None:
        """
        Remove the persisted snapshot.

        Raises:
            OrderSaveError: If the snapshot cannot be removed
        """
        try:
            await self.store.delete(self.key)
        except SnapshotStoreError as e:
            raise OrderSaveError(
                "Failed to clear order snapshot", key=self.key, error=str(e),
            ) from e
        self._preserved_records = []
