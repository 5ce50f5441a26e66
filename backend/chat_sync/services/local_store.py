"""Local store adapter: durable conversations and messages behind one writer."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import TypeVar

from sqlalchemy import Engine, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from chat_sync.models.base import Base, utcnow
from chat_sync.models.conversation import Conversation
from chat_sync.models.message import Message
from chat_sync.schemas.conversation import ConversationCreate, ConversationRead
from chat_sync.schemas.enums import DeliveryStatus, SyncStatus
from chat_sync.schemas.message import MessageCreate, MessageRead, PendingMessage
from chat_sync.schemas.remote import RemoteConversation
from chat_sync.services.keys import message_preview

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LocalStoreError(RuntimeError):
    """Raised when a local read or write fails; the transaction is rolled back."""


def init_schema(engine: Engine) -> None:
    """Create local tables for a fresh database file."""

    Base.metadata.create_all(engine)


class LocalStore:
    """Serializes every local read and write through a single worker thread.

    Each call runs in its own session and transaction on the worker and returns
    detached pydantic snapshots, so no caller holds ORM state across calls.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="chat-local-store")
        self._closed = False

    def close(self) -> None:
        """Let queued writes finish, then stop the worker."""

        if self._closed:
            return
        self._closed = True
        self._executor.shutdown(wait=True)

    # Conversations

    def create_conversation(self, data: ConversationCreate) -> ConversationRead:
        """Insert a conversation, or return the row already stored for the same pair and topic."""

        try:
            return self._run(self._create_conversation, data)
        except LocalStoreError as exc:
            if not isinstance(exc.__cause__, IntegrityError):
                raise
            existing = self.find_conversation(data.participant_a, data.participant_b, data.topic_id)
            if existing is None:
                raise
            logger.info(
                "chat_sync.conversation_create_race participant_a=%d participant_b=%d topic_id=%s local_id=%d",
                data.participant_a,
                data.participant_b,
                data.topic_id,
                existing.id,
            )
            return existing

    def find_conversation(self, participant_a: int, participant_b: int, topic_id: int | None) -> ConversationRead | None:
        def operation(db: Session) -> ConversationRead | None:
            row = _find_conversation_row(db, participant_a, participant_b, topic_id)
            return ConversationRead.model_validate(row) if row is not None else None

        return self._run(operation)

    def get_conversation(self, conversation_id: int) -> ConversationRead | None:
        def operation(db: Session) -> ConversationRead | None:
            row = db.get(Conversation, conversation_id)
            return ConversationRead.model_validate(row) if row is not None else None

        return self._run(operation)

    def get_conversation_by_remote_id(self, remote_id: str) -> ConversationRead | None:
        def operation(db: Session) -> ConversationRead | None:
            row = db.scalar(select(Conversation).where(Conversation.remote_id == remote_id))
            return ConversationRead.model_validate(row) if row is not None else None

        return self._run(operation)

    def save_remote_conversation(self, remote: RemoteConversation) -> ConversationRead:
        """Store a copy of a remote conversation; the remote record wins over a local one."""

        def operation(db: Session) -> ConversationRead:
            row = db.scalar(select(Conversation).where(Conversation.remote_id == remote.remote_id))
            if row is None:
                row = _find_conversation_row(db, remote.participant_a, remote.participant_b, remote.topic_id)
            if row is None:
                row = Conversation(
                    participant_a=remote.participant_a,
                    participant_b=remote.participant_b,
                    topic_id=remote.topic_id,
                    created_at=remote.created_at or utcnow(),
                )
                db.add(row)
            row.remote_id = remote.remote_id
            row.participant_a_name = remote.participant_a_name
            row.participant_b_name = remote.participant_b_name
            row.topic_name = remote.topic_name
            row.last_message = message_preview(remote.last_message) if remote.last_message else None
            row.last_message_time = remote.last_message_time
            row.last_sender_id = remote.last_sender_id
            row.sync_status = SyncStatus.SYNCED.value
            db.flush()
            return ConversationRead.model_validate(row)

        return self._run(operation)

    def list_conversations_for_user(self, user_id: int) -> list[ConversationRead]:
        def operation(db: Session) -> list[ConversationRead]:
            stmt = (
                select(Conversation)
                .where(or_(Conversation.participant_a == user_id, Conversation.participant_b == user_id))
                .order_by(
                    Conversation.last_message_time.is_(None).asc(),
                    Conversation.last_message_time.desc(),
                    Conversation.id.desc(),
                )
            )
            return [ConversationRead.model_validate(row) for row in db.scalars(stmt)]

        return self._run(operation)

    def list_conversations_by_sync_status(self, statuses: Iterable[SyncStatus]) -> list[ConversationRead]:
        values = [status.value for status in statuses]

        def operation(db: Session) -> list[ConversationRead]:
            stmt = (
                select(Conversation)
                .where(Conversation.sync_status.in_(values))
                .order_by(Conversation.created_at.asc(), Conversation.id.asc())
            )
            return [ConversationRead.model_validate(row) for row in db.scalars(stmt)]

        return self._run(operation)

    def set_conversation_sync_status(self, conversation_id: int, status: SyncStatus) -> ConversationRead:
        def operation(db: Session) -> ConversationRead:
            row = _require(db, Conversation, conversation_id)
            row.sync_status = status.value
            db.flush()
            return ConversationRead.model_validate(row)

        return self._run(operation)

    def apply_last_message(
        self,
        conversation_id: int,
        *,
        preview: str,
        sent_at: datetime,
        sender_id: int,
        increment_unread: bool = False,
    ) -> ConversationRead:
        """Refresh the conversation summary; an older message never replaces a newer preview."""

        def operation(db: Session) -> ConversationRead:
            row = _require(db, Conversation, conversation_id)
            _apply_summary(row, preview=preview, sent_at=sent_at, sender_id=sender_id, increment_unread=increment_unread)
            db.flush()
            return ConversationRead.model_validate(row)

        return self._run(operation)

    def reset_unread(self, conversation_id: int) -> ConversationRead:
        def operation(db: Session) -> ConversationRead:
            row = _require(db, Conversation, conversation_id)
            row.unread_count = 0
            db.flush()
            return ConversationRead.model_validate(row)

        return self._run(operation)

    # Messages

    def add_message(self, data: MessageCreate) -> MessageRead:
        """Insert a message; an existing row with the same remote id is returned unchanged."""

        def operation(db: Session) -> MessageRead:
            row, _ = _insert_message_if_absent(db, data)
            return MessageRead.model_validate(row)

        return self._run(operation)

    def record_message(self, data: MessageCreate, *, increment_unread: bool = False) -> tuple[MessageRead, bool]:
        """Insert a message and refresh its conversation summary in one transaction.

        Returns ``(message, created)``. When the remote id is already stored the existing
        row is returned with ``created=False`` and the summary is left untouched.
        """

        def operation(db: Session) -> tuple[MessageRead, bool]:
            row, created = _insert_message_if_absent(db, data)
            if created:
                conversation = _require(db, Conversation, data.conversation_id)
                _apply_summary(
                    conversation,
                    preview=message_preview(row.body),
                    sent_at=row.created_at,
                    sender_id=row.sender_id,
                    increment_unread=increment_unread,
                )
                db.flush()
            return MessageRead.model_validate(row), created

        return self._run(operation)

    def get_message(self, message_id: int) -> MessageRead | None:
        def operation(db: Session) -> MessageRead | None:
            row = db.get(Message, message_id)
            return MessageRead.model_validate(row) if row is not None else None

        return self._run(operation)

    def get_message_by_remote_id(self, remote_id: str) -> MessageRead | None:
        def operation(db: Session) -> MessageRead | None:
            row = db.scalar(select(Message).where(Message.remote_id == remote_id))
            return MessageRead.model_validate(row) if row is not None else None

        return self._run(operation)

    def list_messages(self, conversation_id: int, *, limit: int | None = None, offset: int = 0) -> list[MessageRead]:
        """Return messages in conversation order (creation time ascending)."""

        def operation(db: Session) -> list[MessageRead]:
            stmt = (
                select(Message)
                .where(Message.conversation_id == conversation_id)
                .order_by(Message.created_at.asc(), Message.id.asc())
                .offset(offset)
            )
            if limit is not None:
                stmt = stmt.limit(limit)
            return [MessageRead.model_validate(row) for row in db.scalars(stmt)]

        return self._run(operation)

    def latest_message_time(self, conversation_id: int) -> datetime | None:
        def operation(db: Session) -> datetime | None:
            return db.scalar(select(func.max(Message.created_at)).where(Message.conversation_id == conversation_id))

        return self._run(operation)

    def list_messages_by_sync_status(self, statuses: Iterable[SyncStatus]) -> list[PendingMessage]:
        """Unsynced messages oldest first, each with its conversation's remote id."""

        values = [status.value for status in statuses]

        def operation(db: Session) -> list[PendingMessage]:
            stmt = (
                select(Message, Conversation.remote_id)
                .join(Conversation, Conversation.id == Message.conversation_id)
                .where(Message.sync_status.in_(values))
                .order_by(Message.created_at.asc(), Message.id.asc())
            )
            return [
                PendingMessage(message=MessageRead.model_validate(message), conversation_remote_id=remote_id)
                for message, remote_id in db.execute(stmt).all()
            ]

        return self._run(operation)

    def update_message_delivery(
        self,
        message_id: int,
        status: DeliveryStatus,
        sync_status: SyncStatus,
    ) -> MessageRead:
        def operation(db: Session) -> MessageRead:
            row = _require(db, Message, message_id)
            row.status = status.value
            row.sync_status = sync_status.value
            db.flush()
            return MessageRead.model_validate(row)

        return self._run(operation)

    def apply_remote_message_state(
        self,
        message_id: int,
        *,
        status: DeliveryStatus,
        is_read: bool,
        read_at: datetime | None,
    ) -> MessageRead:
        """Merge delivery progress observed remotely; the row is then known to be synced."""

        def operation(db: Session) -> MessageRead:
            row = _require(db, Message, message_id)
            row.status = status.value
            row.is_read = is_read
            row.read_at = read_at
            row.sync_status = SyncStatus.SYNCED.value
            db.flush()
            return MessageRead.model_validate(row)

        return self._run(operation)

    def mark_messages_read(self, conversation_id: int, reader_id: int, read_at: datetime) -> list[MessageRead]:
        """Mark unread messages sent by the other party as read."""

        def operation(db: Session) -> list[MessageRead]:
            condition = (
                (Message.conversation_id == conversation_id)
                & (Message.sender_id != reader_id)
                & ~Message.is_read
            )
            ids = list(db.scalars(select(Message.id).where(condition).order_by(Message.id.asc())))
            if not ids:
                return []
            db.execute(
                update(Message)
                .where(Message.id.in_(ids))
                .values(is_read=True, read_at=read_at, status=DeliveryStatus.READ.value)
            )
            db.flush()
            rows = db.scalars(select(Message).where(Message.id.in_(ids)).order_by(Message.id.asc()))
            return [MessageRead.model_validate(row) for row in rows]

        return self._run(operation)

    # Worker plumbing

    def _run(self, operation: Callable[..., T], *args: object) -> T:
        if self._closed:
            raise LocalStoreError("Local store is closed.")
        try:
            future = self._executor.submit(self._in_transaction, operation, *args)
        except RuntimeError as exc:
            raise LocalStoreError("Local store is closed.") from exc
        return future.result()

    def _in_transaction(self, operation: Callable[..., T], *args: object) -> T:
        with self._session_factory() as db:
            try:
                result = operation(db, *args)
                db.commit()
                return result
            except LocalStoreError:
                db.rollback()
                raise
            except SQLAlchemyError as exc:
                db.rollback()
                logger.exception("chat_sync.local_store_failed operation=%s", _operation_name(operation))
                raise LocalStoreError(f"Local store operation failed: {exc}") from exc

    def _create_conversation(self, db: Session, data: ConversationCreate) -> ConversationRead:
        existing = _find_conversation_row(db, data.participant_a, data.participant_b, data.topic_id)
        if existing is not None:
            return ConversationRead.model_validate(existing)
        row = Conversation(
            remote_id=data.remote_id,
            participant_a=data.participant_a,
            participant_b=data.participant_b,
            topic_id=data.topic_id,
            participant_a_name=data.participant_a_name,
            participant_b_name=data.participant_b_name,
            topic_name=data.topic_name,
            last_message=data.last_message,
            last_message_time=data.last_message_time,
            last_sender_id=data.last_sender_id,
            created_at=data.created_at or utcnow(),
            sync_status=data.sync_status.value,
        )
        db.add(row)
        db.flush()
        return ConversationRead.model_validate(row)


def _find_conversation_row(
    db: Session,
    participant_a: int,
    participant_b: int,
    topic_id: int | None,
) -> Conversation | None:
    stmt = select(Conversation).where(
        Conversation.participant_a == participant_a,
        Conversation.participant_b == participant_b,
    )
    if topic_id is None:
        stmt = stmt.where(Conversation.topic_id.is_(None))
    else:
        stmt = stmt.where(Conversation.topic_id == topic_id)
    return db.scalar(stmt.order_by(Conversation.id.asc()).limit(1))


def _insert_message_if_absent(db: Session, data: MessageCreate) -> tuple[Message, bool]:
    existing = db.scalar(select(Message).where(Message.remote_id == data.remote_id))
    if existing is not None:
        return existing, False
    row = Message(
        remote_id=data.remote_id,
        conversation_id=data.conversation_id,
        sender_id=data.sender_id,
        sender_name=data.sender_name,
        body=data.body,
        type=data.type,
        is_read=data.is_read,
        read_at=data.read_at,
        status=data.status.value,
        created_at=data.created_at or utcnow(),
        sync_status=data.sync_status.value,
    )
    db.add(row)
    db.flush()
    return row, True


def _apply_summary(
    row: Conversation,
    *,
    preview: str,
    sent_at: datetime,
    sender_id: int,
    increment_unread: bool,
) -> None:
    # An older message never replaces a newer preview.
    current = row.last_message_time
    if current is None or _naive(current) <= _naive(sent_at):
        row.last_message = preview
        row.last_message_time = sent_at
        row.last_sender_id = sender_id
    if increment_unread:
        row.unread_count = (row.unread_count or 0) + 1
    row.updated_at = utcnow()


def _require(db: Session, model: type[T], record_id: int) -> T:
    row = db.get(model, record_id)
    if row is None:
        raise LocalStoreError(f"{model.__name__} {record_id} does not exist locally.")
    return row


def _naive(value: datetime) -> datetime:
    # SQLite hands back naive UTC values.
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _operation_name(operation: Callable[..., object]) -> str:
    return getattr(operation, "__qualname__", repr(operation))
