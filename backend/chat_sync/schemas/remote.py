"""Remote document shapes exchanged with the shared document store."""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from chat_sync.schemas.common import UtcDatetime
from chat_sync.schemas.enums import DeliveryStatus


class RemoteDocument(BaseModel):
    """Base for documents whose id is carried outside the field map."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    remote_id: str = Field(exclude=True)

    def to_fields(self) -> dict[str, object]:
        """Field map as stored remotely (camelCase, id excluded)."""

        return self.model_dump(by_alias=True)


class RemoteConversation(RemoteDocument):
    """Conversation document under the ``conversations`` collection."""

    participant_key: str
    participant_ids: list[int] = Field(default_factory=list)
    participant_a: int
    participant_b: int
    participant_a_name: str | None = None
    participant_b_name: str | None = None
    topic_id: int | None = None
    topic_name: str | None = None
    last_message: str | None = None
    last_message_time: UtcDatetime | None = None
    last_sender_id: int | None = None
    unread_count: dict[str, int] = Field(default_factory=dict)
    created_at: UtcDatetime | None = None
    updated_at: UtcDatetime | None = None


class RemoteMessage(RemoteDocument):
    """Message document under ``conversations/{id}/messages``."""

    sender_id: int
    sender_name: str | None = None
    text: str = ""
    type: str = "text"
    is_read: bool = False
    read_at: UtcDatetime | None = None
    status: DeliveryStatus = DeliveryStatus.SENT
    created_at: UtcDatetime | None = None
