"""
Snapshot stores backing the local order cache and the sync ledgers.

Every store keeps JSON-compatible snapshots under string keys and overwrites
a whole snapshot on each write.
"""

from storefront.storage.base import SnapshotStore, SnapshotStoreError
from storefront.storage.file_store import FileSnapshotStore
from storefront.storage.memory_store import InMemorySnapshotStore
from storefront.storage.redis_store import RedisSnapshotStore

__all__ = [
    "FileSnapshotStore",
    "InMemorySnapshotStore",
    "RedisSnapshotStore",
    "SnapshotStore",
    "SnapshotStoreError",
]
