"""Conversation ORM model."""

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Index, Integer, String, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from chat_sync.models.base import Base, CreatedAtMixin, IdMixin, utcnow


class Conversation(Base, IdMixin, CreatedAtMixin):
    """1:1 thread between two participants, optionally scoped to a topic."""

    __tablename__ = "conversations"
    __table_args__ = (
        UniqueConstraint("participant_a", "participant_b", "topic_id", name="uq_conversations_pair_topic"),
        Index(
            "uq_conversations_pair_without_topic",
            "participant_a",
            "participant_b",
            unique=True,
            sqlite_where=text("topic_id IS NULL"),
            postgresql_where=text("topic_id IS NULL"),
        ),
        CheckConstraint("participant_a <= participant_b", name="ck_conversations_canonical_pair"),
    )

    remote_id: Mapped[str | None] = mapped_column(String(64), unique=True, nullable=True)
    participant_a: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    participant_b: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    topic_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    participant_a_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    participant_b_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    topic_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    last_message: Mapped[str | None] = mapped_column(String(64), nullable=True)
    last_message_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_sender_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    unread_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )
    sync_status: Mapped[str] = mapped_column(String(16), index=True, nullable=False)
