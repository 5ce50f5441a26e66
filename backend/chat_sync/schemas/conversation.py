"""Conversation request/response schemas."""

from pydantic import BaseModel, ConfigDict, Field

from chat_sync.schemas.common import UtcDatetime
from chat_sync.schemas.enums import SyncStatus


class ConversationCreate(BaseModel):
    """Values for a new local conversation row."""

    remote_id: str
    participant_a: int
    participant_b: int
    topic_id: int | None = None
    participant_a_name: str | None = None
    participant_b_name: str | None = None
    topic_name: str | None = None
    last_message: str | None = None
    last_message_time: UtcDatetime | None = None
    last_sender_id: int | None = None
    created_at: UtcDatetime | None = None
    sync_status: SyncStatus = SyncStatus.PENDING


class ConversationRead(BaseModel):
    """Detached snapshot of a stored conversation."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: int
    remote_id: str | None
    participant_a: int
    participant_b: int
    topic_id: int | None
    participant_a_name: str | None
    participant_b_name: str | None
    topic_name: str | None
    last_message: str | None
    last_message_time: UtcDatetime | None
    last_sender_id: int | None
    unread_count: int
    created_at: UtcDatetime
    updated_at: UtcDatetime
    sync_status: SyncStatus

    def other_participant(self, user_id: int) -> int:
        return self.participant_b if user_id == self.participant_a else self.participant_a

    def other_participant_name(self, user_id: int) -> str | None:
        return self.participant_b_name if user_id == self.participant_a else self.participant_a_name


class ConversationResolveRequest(BaseModel):
    """Find-or-create payload."""

    current_user_id: int
    other_user_id: int
    topic_id: int | None = None


class ListenerRequest(BaseModel):
    """Start polling a conversation for the given user."""

    current_user_id: int


class MarkReadRequest(BaseModel):
    """Mark the other party's messages as read."""

    reader_id: int


class ReconciliationReport(BaseModel):
    """Outcome of one reconciliation sweep."""

    conversations_attempted: int = Field(default=0, ge=0)
    conversations_synced: int = Field(default=0, ge=0)
    messages_attempted: int = Field(default=0, ge=0)
    messages_synced: int = Field(default=0, ge=0)
