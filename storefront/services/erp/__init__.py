"""ERP integration: order sync, retry ledger and sync-status lookups."""

from storefront.services.erp.client import ErpSyncClient
from storefront.services.erp.ledger import FailedSyncLedger, SyncInfoRepository
from storefront.services.erp.schemas import (
    ErpOrderPayload,
    FailedSyncEntry,
    RetrySummary,
    SyncResult,
    SyncStatusInfo,
)
from storefront.services.erp.transport import (
    ErpTransport,
    ErpTransportError,
    HttpErpTransport,
    SimulatedErpTransport,
)

__all__ = [
    "ErpOrderPayload",
    "ErpSyncClient",
    "ErpTransport",
    "ErpTransportError",
    "FailedSyncEntry",
    "FailedSyncLedger",
    "HttpErpTransport",
    "RetrySummary",
    "SimulatedErpTransport",
    "SyncInfoRepository",
    "SyncResult",
    "SyncStatusInfo",
]
