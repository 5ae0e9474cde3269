"""
ERP sync API endpoints.

Exposes ERP health, per-order sync status, the retry pass over the failed
sync ledger, synced order records and dead-lettered syncs.
"""

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from storefront.api.deps import ErpClientDep
from storefront.services.erp.schemas import (
    FailedSyncEntry,
    RetrySummary,
    SyncInfo,
    SyncStatusInfo,
)

router = APIRouter(prefix="/erp", tags=["erp"])


@router.get("/health", summary="ERP health")
async def erp_health(erp_client: ErpClientDep) -> JSONResponse:
    healthy = await erp_client.check_erp_health()
    return JSONResponse(
        status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"healthy": healthy},
    )


@router.get(
    "/sync-status/{order_id}",
    response_model=SyncStatusInfo,
    summary="Sync status of a local order",
)
async def get_sync_status(order_id: str, erp_client: ErpClientDep) -> SyncStatusInfo:
    return await erp_client.get_sync_status(order_id)


@router.post("/retry", response_model=RetrySummary, summary="Retry failed syncs")
async def retry_failed_orders(erp_client: ErpClientDep) -> RetrySummary:
    return await erp_client.retry_failed_orders()


@router.get(
    "/synced",
    response_model=list[SyncInfo],
    response_model_by_alias=False,
    summary="Synced orders",
)
async def list_synced_orders(erp_client: ErpClientDep) -> list[SyncInfo]:
    return await erp_client.get_all_synced_orders()


@router.get(
    "/failed",
    response_model=list[FailedSyncEntry],
    response_model_by_alias=False,
    summary="Syncs awaiting retry",
)
async def list_failed_syncs(erp_client: ErpClientDep) -> list[FailedSyncEntry]:
    return await erp_client.get_failed_syncs()


@router.get(
    "/dead-letters",
    response_model=list[FailedSyncEntry],
    response_model_by_alias=False,
    summary="Syncs that exhausted their retries",
)
async def list_dead_letters(erp_client: ErpClientDep) -> list[FailedSyncEntry]:
    return await erp_client.get_dead_letters()
