"""Snapshot store interface and errors."""

from abc import ABC, abstractmethod
from typing import Any, Optional


class SnapshotStoreError(Exception):
    """Raised when a snapshot cannot be read, decoded or written."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.context = context


class SnapshotStore(ABC):
    """
    Keyed store of JSON-compatible snapshots.

    Writes replace the whole snapshot stored under a key. Implementations
    raise SnapshotStoreError for storage and decoding failures.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Return the decoded snapshot for key, or None if absent."""

    @abstractmethod
    async def put(self, key: str, snapshot: Any) -> None:
        """Replace the snapshot stored under key."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove the snapshot stored under key; missing keys are ignored."""

    @abstractmethod
    async def keys(self, prefix: str = "") -> list[str]:
        """List stored keys starting with prefix."""

    async def close(self) -> None:
        """Release resources held by the store."""
