"""Message request/response schemas."""

from pydantic import BaseModel, ConfigDict, Field

from chat_sync.schemas.common import UtcDatetime
from chat_sync.schemas.enums import DeliveryStatus, SyncStatus


class MessageCreate(BaseModel):
    """Values for a new local message row."""

    remote_id: str
    conversation_id: int
    sender_id: int
    sender_name: str | None = None
    body: str
    type: str = "text"
    is_read: bool = False
    read_at: UtcDatetime | None = None
    status: DeliveryStatus = DeliveryStatus.SENDING
    created_at: UtcDatetime | None = None
    sync_status: SyncStatus = SyncStatus.PENDING


class MessageRead(BaseModel):
    """Detached snapshot of a stored message."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: int
    remote_id: str
    conversation_id: int
    sender_id: int
    sender_name: str | None
    body: str
    type: str
    is_read: bool
    read_at: UtcDatetime | None
    status: DeliveryStatus
    created_at: UtcDatetime
    sync_status: SyncStatus


class PendingMessage(BaseModel):
    """Unsynced message paired with the remote id of its conversation."""

    message: MessageRead
    conversation_remote_id: str | None


class MessageSendRequest(BaseModel):
    """Send payload from the host UI."""

    sender_id: int
    sender_name: str | None = None
    body: str = Field(min_length=1)
    type: str = "text"
