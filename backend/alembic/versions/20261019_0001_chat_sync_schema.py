"""chat sync schema

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 00:00:01
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20261019_0001"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "conversations",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("remote_id", sa.String(length=64), nullable=True),
        sa.Column("participant_a", sa.Integer(), nullable=False),
        sa.Column("participant_b", sa.Integer(), nullable=False),
        sa.Column("topic_id", sa.Integer(), nullable=True),
        sa.Column("participant_a_name", sa.String(length=255), nullable=True),
        sa.Column("participant_b_name", sa.String(length=255), nullable=True),
        sa.Column("topic_name", sa.String(length=255), nullable=True),
        sa.Column("last_message", sa.String(length=64), nullable=True),
        sa.Column("last_message_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_sender_id", sa.Integer(), nullable=True),
        sa.Column("unread_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("sync_status", sa.String(length=16), nullable=False),
        sa.CheckConstraint("participant_a <= participant_b", name="ck_conversations_canonical_pair"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("remote_id"),
        sa.UniqueConstraint("participant_a", "participant_b", "topic_id", name="uq_conversations_pair_topic"),
    )
    op.create_index("ix_conversations_participant_a", "conversations", ["participant_a"], unique=False)
    op.create_index("ix_conversations_participant_b", "conversations", ["participant_b"], unique=False)
    op.create_index("ix_conversations_created_at", "conversations", ["created_at"], unique=False)
    op.create_index("ix_conversations_sync_status", "conversations", ["sync_status"], unique=False)
    op.create_index(
        "uq_conversations_pair_without_topic",
        "conversations",
        ["participant_a", "participant_b"],
        unique=True,
        sqlite_where=sa.text("topic_id IS NULL"),
        postgresql_where=sa.text("topic_id IS NULL"),
    )

    op.create_table(
        "messages",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("remote_id", sa.String(length=64), nullable=False),
        sa.Column("conversation_id", sa.Integer(), nullable=False),
        sa.Column("sender_id", sa.Integer(), nullable=False),
        sa.Column("sender_name", sa.String(length=255), nullable=True),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False, server_default="text"),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("sync_status", sa.String(length=16), nullable=False),
        sa.ForeignKeyConstraint(["conversation_id"], ["conversations.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("remote_id"),
    )
    op.create_index("ix_messages_conversation_id", "messages", ["conversation_id"], unique=False)
    op.create_index("ix_messages_created_at", "messages", ["created_at"], unique=False)
    op.create_index("ix_messages_sync_status", "messages", ["sync_status"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_messages_sync_status", table_name="messages")
    op.drop_index("ix_messages_created_at", table_name="messages")
    op.drop_index("ix_messages_conversation_id", table_name="messages")
    op.drop_table("messages")
    op.drop_index("uq_conversations_pair_without_topic", table_name="conversations")
    op.drop_index("ix_conversations_sync_status", table_name="conversations")
    op.drop_index("ix_conversations_created_at", table_name="conversations")
    op.drop_index("ix_conversations_participant_b", table_name="conversations")
    op.drop_index("ix_conversations_participant_a", table_name="conversations")
    op.drop_table("conversations")
