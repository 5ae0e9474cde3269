"""Redis-backed snapshot store for deployments sharing one order cache."""

import json
from typing import Any, Optional

from redis.exceptions import RedisError

from storefront.cache.redis_client import CacheKeyManager, RedisClient
from storefront.storage.base import SnapshotStore, SnapshotStoreError

SNAPSHOT_KEY_PART = "snapshot"


class RedisSnapshotStore(SnapshotStore):
    """
    Stores each snapshot as a JSON string under a namespaced Redis key.

    The client must be connected before the store is used; the service
    container owns its lifecycle.
    """

    def __init__(self, client: RedisClient, key_manager: Optional[CacheKeyManager] = None):
        self.client = client
        self.key_manager = key_manager or CacheKeyManager()

    def _redis_key(self, key: str) -> str:
        return self.key_manager.make_key(SNAPSHOT_KEY_PART, key)

    async def get(self, key: str) -> Optional[Any]:
        try:
            raw = await self.client.get(self._redis_key(key))
        except RedisError as e:
            raise SnapshotStoreError("Failed to read snapshot", key=key, error=str(e)) from e

        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise SnapshotStoreError(
                "Snapshot is not valid JSON", key=key, error=str(e)
            ) from e

    async def put(self, key: str, snapshot: Any) -> None:
        try:
            content = json.dumps(snapshot, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise SnapshotStoreError(
                "Snapshot is not JSON serializable", key=key, error=str(e)
            ) from e
        try:
            await self.client.set(self._redis_key(key), content)
        except RedisError as e:
            raise SnapshotStoreError("Failed to write snapshot", key=key, error=str(e)) from e

    async def delete(self, key: str) -> None:
        try:
            await self.client.delete(self._redis_key(key))
        except RedisError as e:
            raise SnapshotStoreError("Failed to delete snapshot", key=key, error=str(e)) from e

    async def keys(self, prefix: str = "") -> list[str]:
        pattern = self._redis_key(f"{prefix}*")
        try:
            raw_keys = await self.client.scan_keys(pattern)
        except RedisError as e:
            raise SnapshotStoreError(
                "Failed to list snapshots", prefix=prefix, error=str(e)
            ) from e
        return sorted(
            self.key_manager.strip_key(raw, SNAPSHOT_KEY_PART) for raw in raw_keys
        )

    async def close(self) -> None:
        await self.client.disconnect()
