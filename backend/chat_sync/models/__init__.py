"""ORM models package exports."""

from chat_sync.models.conversation import Conversation
from chat_sync.models.message import Message

__all__ = [
    "Conversation",
    "Message",
]
