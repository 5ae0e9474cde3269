"""
ERP integration payloads and results.

The ERP speaks camelCase JSON, so the payload models serialize with camel
aliases while Python code uses snake_case names.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ErpModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        """Serialize with camelCase keys, dropping unset optionals."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ErpCustomerInfo(ErpModel):
    first_name: str
    last_name: str
    email: str
    phone: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    postal_code: str = ""
    country: str = ""


class ErpLineItem(ErpModel):
    """Order line re-keyed with the ERP's product identifiers."""

    product_id: str
    product_name: str
    sku: Optional[str] = None
    quantity: int
    unit_price: Decimal
    total_price: Decimal


class ErpOrderPayload(ErpModel):
    """Order as submitted to the ERP order sync endpoint."""

    order_id: str
    customer_info: ErpCustomerInfo
    items: list[ErpLineItem]
    total_amount: Decimal
    payment_method: str
    order_date: datetime
    notes: Optional[str] = None


class ErpOrderReference(BaseModel):
    """Identifiers the ERP assigned to a registered order."""

    model_config = ConfigDict(frozen=True)

    order_id: str
    order_number: Optional[str] = None


class SyncResult(BaseModel):
    """Outcome of one sync attempt. Failures carry an error, never an exception."""

    model_config = ConfigDict(frozen=True)

    success: bool
    order_id: Optional[str] = None
    order_number: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def succeeded(cls, reference: ErpOrderReference) -> "SyncResult":
        return cls(
            success=True,
            order_id=reference.order_id,
            order_number=reference.order_number,
        )

    @classmethod
    def failed(cls, error: str) -> "SyncResult":
        return cls(success=False, error=error or "Failed to sync with ERP system")


class SyncInfo(ErpModel):
    """Persisted record of a successful sync, keyed by the local order id."""

    ecommerce_order_id: str
    erp_order_id: str
    erp_order_number: Optional[str] = None
    synced_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class SyncStatusInfo(BaseModel):
    synced: bool
    erp_order_id: Optional[str] = None
    erp_order_number: Optional[str] = None


class FailedSyncEntry(ErpModel):
    """Ledger entry for a sync attempt that has to be retried."""

    payload: ErpOrderPayload
    failed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    retry_count: int = Field(default=0, ge=0)

    @property
    def order_id(self) -> str:
        return self.payload.order_id


class RetrySummary(BaseModel):
    """Counts from one retry pass over the failed-sync ledger."""

    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    dead_lettered: int = 0
