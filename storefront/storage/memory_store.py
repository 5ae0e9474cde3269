"""In-process snapshot store for tests and ephemeral runs."""

import copy
from typing import Any, Optional

from storefront.storage.base import SnapshotStore


class InMemorySnapshotStore(SnapshotStore):
    """Keeps deep copies of snapshots in a dict; nothing survives the process."""

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}

    async def get(self, key: str) -> Optional[Any]:
        if key not in self._data:
            return None
        return copy.deepcopy(self._data[key])

    async def put(self, key: str, snapshot: Any) -> None:
        self._data[key] = copy.deepcopy(snapshot)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def keys(self, prefix: str = "") -> list[str]:
        return sorted(key for key in self._data if key.startswith(prefix))
