"""
ERP sync client.

This module implements the ErpSyncClient class, which registers local orders
with the ERP, records failures in the retry ledger, retries them with a
bounded budget, and answers sync-status lookups from persisted records.
Every public method returns a value; transport failures never escape as
exceptions.
"""

import asyncio
from typing import Awaitable, Callable, Optional

from storefront.core.logging import get_logger, log_performance
from storefront.services.erp.ledger import FailedSyncLedger, SyncInfoRepository
from storefront.services.erp.schemas import (
    ErpOrderPayload,
    FailedSyncEntry,
    RetrySummary,
    SyncInfo,
    SyncResult,
    SyncStatusInfo,
)
from storefront.services.erp.transport import ErpTransport, ErpTransportError

logger = get_logger(__name__)

SyncListener = Callable[[str, SyncResult], Awaitable[None]]

DEFAULT_MAX_RETRIES = 3


class ErpSyncClient:
    """
    Registers orders with the ERP and manages failed-sync retries.

    Attributes:
        transport: Remote ERP transport
        ledger: Failed-sync ledger and dead-letter list
        sync_info: Per-order records of successful syncs
        max_retries: Retry budget per ledger entry
        timeout_seconds: Upper bound for one transport call
    """

    def __init__(
        self,
        transport: ErpTransport,
        ledger: FailedSyncLedger,
        sync_info: SyncInfoRepository,
        max_retries: int = DEFAULT_MAX_RETRIES,
        timeout_seconds: float = 10.0,
    ):
        self.transport = transport
        self.ledger = ledger
        self.sync_info = sync_info
        self.max_retries = max_retries
        self.timeout_seconds = timeout_seconds
        self._listeners: list[SyncListener] = []
        self._retry_lock = asyncio.Lock()

        logger.info(
            "ErpSyncClient initialized",
            transport=type(transport).__name__,
            max_retries=max_retries,
            timeout_seconds=timeout_seconds,
        )

    def add_sync_listener(self, listener: SyncListener) -> None:
        """Register a coroutine called with (order_id, result) after a retry succeeds."""
        self._listeners.append(listener)

    async def _submit(self, payload: ErpOrderPayload) -> SyncResult:
        try:
            reference = await asyncio.wait_for(
                self.transport.submit_order(payload),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            return SyncResult.failed(
                f"ERP sync timed out after {self.timeout_seconds}s"
            )
        except ErpTransportError as e:
            return SyncResult.failed(str(e))
        except Exception as e:
            logger.error(
                "Unexpected error syncing order to ERP",
                order_id=payload.order_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return SyncResult.failed(str(e))

        await self.sync_info.record(payload.order_id, reference)
        return SyncResult.succeeded(reference)

    async def sync_order_to_erp(self, payload: ErpOrderPayload) -> SyncResult:
        """
        Register one order with the ERP.

        On failure the payload is stored in the retry ledger; on success any
        ledger entry left by an earlier failure is dropped.

        Args:
            payload: Order in the ERP's shape

        Returns:
            SyncResult with the ERP identifiers, or the error message
        """
        logger.info("Syncing order to ERP", order_id=payload.order_id)

        with log_performance(logger, "erp_order_sync", order_id=payload.order_id):
            result = await self._submit(payload)

        if result.success:
            logger.info(
                "Order sync successful",
                order_id=payload.order_id,
                erp_order_id=result.order_id,
                erp_order_number=result.order_number,
            )
            await self.ledger.remove(payload.order_id)
        else:
            logger.warning(
                "Order sync failed",
                order_id=payload.order_id,
                error=result.error,
            )
            await self.ledger.record_failure(payload)

        return result

    async def _notify(self, order_id: str, result: SyncResult) -> None:
        for listener in self._listeners:
            try:
                await listener(order_id, result)
            except Exception as e:
                logger.error(
                    "Sync listener failed",
                    order_id=order_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )

    async def retry_failed_orders(self) -> RetrySummary:
        """
        Run one retry pass over the failed-sync ledger.

        Entries already at the retry budget are not retried. A failed retry
        increments the entry's retry count; an entry reaching the budget is
        moved to the dead-letter list.

        Returns:
            Counts of attempted, succeeded, failed and dead-lettered entries
        """
        async with self._retry_lock:
            entries = await self.ledger.load()
            if not entries:
                return RetrySummary()

            logger.info("Retrying failed order syncs", count=len(entries))

            summary = RetrySummary()
            processed: set[str] = set()
            remaining: list[FailedSyncEntry] = []
            exhausted: list[FailedSyncEntry] = []

            for entry in entries:
                processed.add(entry.order_id)
                if entry.retry_count >= self.max_retries:
                    exhausted.append(entry)
                    continue

                summary.attempted += 1
                result = await self._submit(entry.payload)
                if result.success:
                    summary.succeeded += 1
                    logger.info(
                        "Order sync retry successful",
                        order_id=entry.order_id,
                        erp_order_id=result.order_id,
                        retry_count=entry.retry_count,
                    )
                    await self._notify(entry.order_id, result)
                    continue

                summary.failed += 1
                updated = entry.model_copy(update={"retry_count": entry.retry_count + 1})
                if updated.retry_count >= self.max_retries:
                    exhausted.append(updated)
                else:
                    remaining.append(updated)

            for entry in exhausted:
                logger.warning(
                    "Order sync dead-lettered",
                    order_id=entry.order_id,
                    retry_count=entry.retry_count,
                    failed_at=entry.failed_at.isoformat(),
                )
            summary.dead_lettered = len(exhausted)

            await self.ledger.apply_retry_pass(processed, remaining, exhausted)

        logger.info("Order sync retry pass completed", **summary.model_dump())
        return summary

    async def get_sync_status(self, order_id: str) -> SyncStatusInfo:
        """Look up the persisted sync record of a local order; no network I/O."""
        info = await self.sync_info.get(order_id)
        if info is None:
            return SyncStatusInfo(synced=False)
        return SyncStatusInfo(
            synced=True,
            erp_order_id=info.erp_order_id,
            erp_order_number=info.erp_order_number,
        )

    async def get_all_synced_orders(self) -> list[SyncInfo]:
        return await self.sync_info.list_all()

    async def get_failed_syncs(self) -> list[FailedSyncEntry]:
        return await self.ledger.load()

    async def get_dead_letters(self) -> list[FailedSyncEntry]:
        return await self.ledger.load_dead_letters()

    async def check_erp_health(self) -> bool:
        try:
            return await asyncio.wait_for(
                self.transport.health_check(),
                timeout=self.timeout_seconds,
            )
        except Exception as e:
            logger.warning(
                "ERP health check failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

    async def initialize(self) -> Optional[RetrySummary]:
        """
        Startup pass: check ERP health and, if healthy, retry failed syncs.

        Returns:
            The retry summary, or None when the ERP was unavailable
        """
        logger.info("Initializing ERP sync client")
        healthy = await self.check_erp_health()
        logger.info("ERP system health", healthy=healthy)
        if not healthy:
            return None
        return await self.retry_failed_orders()

    async def aclose(self) -> None:
        await self.transport.aclose()
