"""
Persisted sync bookkeeping: the failed-sync ledger, its dead-letter list and
the per-order sync-info records.

Storage failures here are logged and degrade to best effort; they never
reach the code that places orders.
"""

import asyncio
from typing import Iterable, Optional

from pydantic import ValidationError

from storefront.core.logging import get_logger
from storefront.services.erp.schemas import (
    ErpOrderPayload,
    ErpOrderReference,
    FailedSyncEntry,
    SyncInfo,
)
from storefront.storage.base import SnapshotStore, SnapshotStoreError

logger = get_logger(__name__)

FAILED_SYNCS_KEY = "failed_order_syncs"
DEAD_LETTER_KEY = "dead_letter_order_syncs"
SYNC_INFO_KEY_PREFIX = "sync_info_"


class FailedSyncLedger:
    """
    Failed sync attempts awaiting retry, plus the entries that ran out of
    retries.

    All read-modify-write sequences hold the ledger lock so a failure
    recorded during a retry pass is not lost when the pass writes back.
    """

    def __init__(
        self,
        store: SnapshotStore,
        key: str = FAILED_SYNCS_KEY,
        dead_letter_key: str = DEAD_LETTER_KEY,
    ):
        self.store = store
        self.key = key
        self.dead_letter_key = dead_letter_key
        self._lock = asyncio.Lock()

    async def _read(self, key: str) -> list[FailedSyncEntry]:
        try:
            snapshot = await self.store.get(key)
        except SnapshotStoreError as e:
            logger.error("Failed to read sync ledger", key=key, error=str(e))
            return []

        if not snapshot:
            return []

        entries = []
        for record in snapshot:
            try:
                entries.append(FailedSyncEntry.model_validate(record))
            except ValidationError as e:
                logger.warning(
                    "Skipping invalid sync ledger entry",
                    key=key,
                    error_count=e.error_count(),
                )
        return entries

    async def _write(self, key: str, entries: Iterable[FailedSyncEntry]) -> None:
        snapshot = [entry.model_dump(mode="json", by_alias=True) for entry in entries]
        try:
            await self.store.put(key, snapshot)
        except SnapshotStoreError as e:
            logger.error(
                "Failed to write sync ledger",
                key=key,
                count=len(snapshot),
                error=str(e),
            )

    async def load(self) -> list[FailedSyncEntry]:
        return await self._read(self.key)

    async def load_dead_letters(self) -> list[FailedSyncEntry]:
        return await self._read(self.dead_letter_key)

    async def find(self, order_id: str) -> Optional[FailedSyncEntry]:
        for entry in await self.load():
            if entry.order_id == order_id:
                return entry
        return None

    async def record_failure(self, payload: ErpOrderPayload) -> FailedSyncEntry:
        """
        Add an order to the ledger with a zero retry count.

        An order already in the ledger keeps its existing entry and retry
        count, so repeated failures never duplicate it. An order already
        dead-lettered is not put back, so its retry budget never restarts.
        """
        async with self._lock:
            for entry in await self._read(self.dead_letter_key):
                if entry.order_id == payload.order_id:
                    logger.info(
                        "Dead-lettered order not re-queued",
                        order_id=payload.order_id,
                        retry_count=entry.retry_count,
                    )
                    return entry

            entries = await self._read(self.key)
            for entry in entries:
                if entry.order_id == payload.order_id:
                    return entry

            entry = FailedSyncEntry(payload=payload)
            entries.append(entry)
            await self._write(self.key, entries)

        logger.info("Order stored for retry", order_id=payload.order_id)
        return entry

    async def remove(self, order_id: str) -> bool:
        """Drop an order's entry once it synced; returns False if it had none."""
        async with self._lock:
            entries = await self._read(self.key)
            kept = [entry for entry in entries if entry.order_id != order_id]
            if len(kept) == len(entries):
                return False
            await self._write(self.key, kept)

        logger.info("Order removed from retry ledger", order_id=order_id)
        return True

    async def apply_retry_pass(
        self,
        processed: set[str],
        remaining: list[FailedSyncEntry],
        exhausted: list[FailedSyncEntry],
    ) -> None:
        """
        Write back the outcome of a retry pass.

        Args:
            processed: Order ids the pass started from
            remaining: Entries still eligible for retry
            exhausted: Entries that used up their retries
        """
        async with self._lock:
            current = await self._read(self.key)
            current_ids = {e.order_id for e in current}
            # entries removed during the pass stay removed
            still_listed = [e for e in remaining if e.order_id in current_ids]
            added_meanwhile = [e for e in current if e.order_id not in processed]
            await self._write(self.key, [*still_listed, *added_meanwhile])

            if exhausted:
                dead_letters = await self._read(self.dead_letter_key)
                dead_ids = {e.order_id for e in dead_letters}
                new_dead = [e for e in exhausted if e.order_id not in dead_ids]
                if new_dead:
                    await self._write(self.dead_letter_key, [*dead_letters, *new_dead])


class SyncInfoRepository:
    """One sync-info snapshot per successfully synced order."""

    def __init__(self, store: SnapshotStore, prefix: str = SYNC_INFO_KEY_PREFIX):
        self.store = store
        self.prefix = prefix

    def _key(self, order_id: str) -> str:
        return f"{self.prefix}{order_id}"

    async def record(self, order_id: str, reference: ErpOrderReference) -> SyncInfo:
        info = SyncInfo(
            ecommerce_order_id=order_id,
            erp_order_id=reference.order_id,
            erp_order_number=reference.order_number,
        )
        try:
            await self.store.put(self._key(order_id), info.model_dump(mode="json", by_alias=True))
        except SnapshotStoreError as e:
            logger.error("Failed to store sync info", order_id=order_id, error=str(e))
        return info

    async def get(self, order_id: str) -> Optional[SyncInfo]:
        try:
            record = await self.store.get(self._key(order_id))
        except SnapshotStoreError as e:
            logger.error("Failed to read sync info", order_id=order_id, error=str(e))
            return None

        if record is None:
            return None
        try:
            return SyncInfo.model_validate(record)
        except ValidationError:
            logger.warning("Ignoring invalid sync info record", order_id=order_id)
            return None

    async def list_all(self) -> list[SyncInfo]:
        """All sync-info records, most recently synced first."""
        try:
            keys = await self.store.keys(self.prefix)
        except SnapshotStoreError as e:
            logger.error("Failed to list sync info", error=str(e))
            return []

        records = []
        for key in keys:
            info = await self.get(key[len(self.prefix):])
            if info is not None:
                records.append(info)
        return sorted(records, key=lambda info: info.synced_at, reverse=True)
