"""Order status and sync status enums for order lifecycle management.

This module defines the fulfillment status of an order and the status of its
mirror in the ERP, together with the transition rules each one obeys.
"""

from enum import Enum
from typing import Dict, Set


class OrderStatus(str, Enum):
    """Order fulfillment lifecycle status.

    Status changes are explicit calls, with two rules:
    - any status other than DELIVERED may move to CANCELLED
    - CANCELLED is terminal
    """

    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    @classmethod
    def from_string(cls, value: str) -> "OrderStatus":
        """Convert string to OrderStatus enum.

        Args:
            value: String representation of status

        Returns:
            OrderStatus enum value

        Raises:
            ValueError: If value is not a valid status
        """
        try:
            return cls(value.lower())
        except ValueError:
            valid_values = ", ".join([s.value for s in cls])
            raise ValueError(
                f"Invalid order status: {value}. "
                f"Valid values are: {valid_values}"
            )

    def is_terminal(self) -> bool:
        """Check if no further status change is accepted."""
        return self == OrderStatus.CANCELLED

    def can_cancel(self) -> bool:
        """Check if order can be cancelled from current status."""
        return self != OrderStatus.DELIVERED


class SyncStatus(str, Enum):
    """Whether a locally created order has been mirrored to the ERP.

    Valid transitions:
    - PENDING -> SYNCED, FAILED
    - FAILED -> SYNCED
    - SYNCED -> (terminal state)
    """

    PENDING = "pending"
    SYNCED = "synced"
    FAILED = "failed"


SYNC_STATUS_TRANSITIONS: Dict[SyncStatus, Set[SyncStatus]] = {
    SyncStatus.PENDING: {SyncStatus.SYNCED, SyncStatus.FAILED},
    SyncStatus.FAILED: {SyncStatus.SYNCED, SyncStatus.FAILED},
    SyncStatus.SYNCED: set(),
}


def validate_order_status_transition(
    current: OrderStatus,
    new: OrderStatus
) -> bool:
    """Validate if order status transition is allowed.

    Args:
        current: Current order status
        new: Desired new status

    Returns:
        True if transition is valid
    """
    if current.is_terminal():
        return new == current
    if new == OrderStatus.CANCELLED:
        return current.can_cancel()
    return True


def validate_sync_status_transition(
    current: SyncStatus,
    new: SyncStatus
) -> bool:
    """Validate if sync status transition is allowed.

    A failed order may fail again on retry; a synced order never changes.
    """
    return new in SYNC_STATUS_TRANSITIONS.get(current, set())
