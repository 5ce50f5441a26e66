"""Closed status enumerations shared by the store, the pipeline and the wire codec."""

from enum import Enum


class SyncStatus(str, Enum):
    """Whether a local record's remote counterpart is known to be up to date."""

    PENDING = "pending"
    SYNCED = "synced"
    ERROR = "error"


UNSYNCED_STATUSES = (SyncStatus.PENDING, SyncStatus.ERROR)


class DeliveryStatus(str, Enum):
    """User-visible delivery state of a message."""

    SENDING = "sending"
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    FAILED = "failed"

    @property
    def rank(self) -> int:
        """Progress order used when merging remote state; failed ranks lowest."""

        return _DELIVERY_RANK[self]


_DELIVERY_RANK = {
    DeliveryStatus.FAILED: -1,
    DeliveryStatus.SENDING: 0,
    DeliveryStatus.SENT: 1,
    DeliveryStatus.DELIVERED: 2,
    DeliveryStatus.READ: 3,
}
