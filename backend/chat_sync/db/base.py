"""SQLAlchemy metadata registry import for Alembic."""

from chat_sync.models import Conversation, Message
from chat_sync.models.base import Base

__all__ = ["Base", "Conversation", "Message"]
