"""
File-backed snapshot store.

Each key maps to one JSON file inside a directory. Writes go to a temporary
file in the same directory which then replaces the target with os.replace,
so a crash mid-write leaves the previous snapshot intact.
"""

import json
from pathlib import Path
from typing import Any, Optional
from urllib.parse import quote, unquote
from uuid import uuid4

import aiofiles
import aiofiles.os

from storefront.core.logging import get_logger
from storefront.storage.base import SnapshotStore, SnapshotStoreError

logger = get_logger(__name__)

SNAPSHOT_SUFFIX = ".json"


class FileSnapshotStore(SnapshotStore):
    """
    Snapshot store persisting one JSON document per key.

    Attributes:
        directory: Directory holding the snapshot files
    """

    def __init__(self, directory: str | Path, encoding: str = "utf-8"):
        self.directory = Path(directory)
        self.encoding = encoding
        self._directory_ready = False

    def _path_for(self, key: str) -> Path:
        return self.directory / f"{quote(key, safe='')}{SNAPSHOT_SUFFIX}"

    async def _ensure_directory(self) -> None:
        if self._directory_ready:
            return
        try:
            await aiofiles.os.makedirs(self.directory, exist_ok=True)
        except OSError as e:
            raise SnapshotStoreError(
                "Failed to create snapshot directory",
                directory=str(self.directory),
                error=str(e),
            ) from e
        self._directory_ready = True

    async def get(self, key: str) -> Optional[Any]:
        path = self._path_for(key)
        if not await aiofiles.os.path.exists(path):
            return None

        try:
            async with aiofiles.open(path, mode="r", encoding=self.encoding) as f:
                content = await f.read()
        except OSError as e:
            raise SnapshotStoreError(
                "Failed to read snapshot", key=key, path=str(path), error=str(e)
            ) from e

        try:
            return json.loads(content)
        except json.JSONDecodeError as e:
            raise SnapshotStoreError(
                "Snapshot is not valid JSON", key=key, path=str(path), error=str(e)
            ) from e

    async def put(self, key: str, snapshot: Any) -> None:
        await self._ensure_directory()
        path = self._path_for(key)
        tmp_path = path.with_name(f".{path.name}.{uuid4().hex}.tmp")

        try:
            content = json.dumps(snapshot, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise SnapshotStoreError(
                "Snapshot is not JSON serializable", key=key, error=str(e)
            ) from e

        try:
            async with aiofiles.open(tmp_path, mode="w", encoding=self.encoding) as f:
                await f.write(content)
                await f.flush()
            await aiofiles.os.replace(tmp_path, path)
        except OSError as e:
            if await aiofiles.os.path.exists(tmp_path):
                await aiofiles.os.remove(tmp_path)
            raise SnapshotStoreError(
                "Failed to write snapshot", key=key, path=str(path), error=str(e)
            ) from e

        logger.debug("Snapshot written", key=key, path=str(path), size=len(content))

    async def delete(self, key: str) -> None:
        path = self._path_for(key)
        try:
            if await aiofiles.os.path.exists(path):
                await aiofiles.os.remove(path)
        except OSError as e:
            raise SnapshotStoreError(
                "Failed to delete snapshot", key=key, path=str(path), error=str(e)
            ) from e

    async def keys(self, prefix: str = "") -> list[str]:
        if not await aiofiles.os.path.exists(self.directory):
            return []
        try:
            names = await aiofiles.os.listdir(self.directory)
        except OSError as e:
            raise SnapshotStoreError(
                "Failed to list snapshots", directory=str(self.directory), error=str(e)
            ) from e

        keys = [
            unquote(name[: -len(SNAPSHOT_SUFFIX)])
            for name in names
            if name.endswith(SNAPSHOT_SUFFIX) and not name.startswith(".")
        ]
        return sorted(key for key in keys if key.startswith(prefix))
