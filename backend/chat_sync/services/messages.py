"""Message pipeline: durable local write, optimistic return, background delivery."""

from __future__ import annotations

import logging
from time import perf_counter

from chat_sync.models.base import utcnow
from chat_sync.schemas.conversation import ConversationRead
from chat_sync.schemas.enums import DeliveryStatus, SyncStatus
from chat_sync.schemas.message import MessageCreate, MessageRead
from chat_sync.schemas.remote import RemoteMessage
from chat_sync.services.background_jobs import BackgroundJobs
from chat_sync.services.conversations import ConversationResolver
from chat_sync.services.keys import message_preview, new_remote_id
from chat_sync.services.local_store import LocalStore
from chat_sync.services.notifications import Notifier
from chat_sync.services.remote_store import RemoteStore, RemoteStoreError

logger = logging.getLogger(__name__)


class MessagePipeline:
    """Sends messages with optimistic local visibility and asynchronous remote propagation."""

    def __init__(
        self,
        store: LocalStore,
        remote: RemoteStore,
        notifier: Notifier,
        jobs: BackgroundJobs,
        resolver: ConversationResolver,
    ) -> None:
        self._store = store
        self._remote = remote
        self._notifier = notifier
        self._jobs = jobs
        self._resolver = resolver

    def send(
        self,
        conversation: ConversationRead,
        sender_id: int,
        body: str,
        *,
        sender_name: str | None = None,
        message_type: str = "text",
        remote_id: str | None = None,
    ) -> MessageRead:
        """Persist the message locally and return it before any network call.

        Passing the ``remote_id`` of an earlier attempt returns that message instead of
        inserting a duplicate. Delivery outcome arrives via the status-changed callback.
        """

        if not body or not body.strip():
            raise ValueError("Message body cannot be empty.")
        if sender_id not in (conversation.participant_a, conversation.participant_b):
            raise ValueError(f"User {sender_id} is not a participant of conversation {conversation.id}.")

        message, _ = self._store.record_message(
            MessageCreate(
                remote_id=remote_id or new_remote_id(),
                conversation_id=conversation.id,
                sender_id=sender_id,
                sender_name=sender_name,
                body=body,
                type=message_type,
                status=DeliveryStatus.SENDING,
                created_at=utcnow(),
                sync_status=SyncStatus.PENDING,
            )
        )
        if message.sync_status is not SyncStatus.SYNCED:
            self._jobs.submit("message_delivery", self.deliver, message)
        return message

    def deliver(self, message: MessageRead, *, update_summary: bool = True) -> MessageRead:
        """Create the message remotely under its own id and record sent or failed."""

        started = perf_counter()
        conversation = self._store.get_conversation(message.conversation_id)
        if conversation is None or not conversation.remote_id:
            return self._fail(message, "no_remote_conversation")
        if not self._remote.is_reachable():
            return self._fail(message, "offline")
        if conversation.sync_status is not SyncStatus.SYNCED and not self._resolver.push_conversation(conversation):
            return self._fail(message, "conversation_not_synced")

        try:
            self._remote.create_message(conversation.remote_id, to_remote_message(message))
        except RemoteStoreError as exc:
            return self._fail(message, str(exc))

        delivered = self._store.update_message_delivery(message.id, DeliveryStatus.SENT, SyncStatus.SYNCED)
        logger.info(
            "chat_sync.message_delivered local_id=%d remote_id=%s elapsed_ms=%.2f",
            delivered.id,
            delivered.remote_id,
            (perf_counter() - started) * 1000.0,
        )
        self._notifier.message_status_changed(delivered)
        if update_summary:
            self._patch_remote_summary(conversation.remote_id, delivered)
        return delivered

    def mark_conversation_read(self, conversation: ConversationRead, reader_id: int) -> list[MessageRead]:
        """Mark the other party's messages read and clear the unread counter."""

        updated = self._store.mark_messages_read(conversation.id, reader_id, utcnow())
        self._store.reset_unread(conversation.id)
        if updated and conversation.remote_id:
            self._jobs.submit("read_receipts", self._push_read_receipts, conversation.remote_id, updated)
        return updated

    def _fail(self, message: MessageRead, reason: str) -> MessageRead:
        failed = self._store.update_message_delivery(message.id, DeliveryStatus.FAILED, SyncStatus.ERROR)
        logger.warning(
            "chat_sync.message_delivery_failed local_id=%d remote_id=%s reason=%s",
            failed.id,
            failed.remote_id,
            reason,
        )
        self._notifier.message_status_changed(failed)
        return failed

    def _patch_remote_summary(self, conversation_remote_id: str, message: MessageRead) -> None:
        try:
            self._remote.patch_conversation(
                conversation_remote_id,
                {
                    "lastMessage": message_preview(message.body),
                    "lastMessageTime": message.created_at,
                    "lastSenderId": message.sender_id,
                    "updatedAt": utcnow(),
                },
            )
        except RemoteStoreError as exc:
            logger.info("chat_sync.summary_patch_skipped remote_id=%s error=%s", conversation_remote_id, exc)

    def _push_read_receipts(self, conversation_remote_id: str, messages: list[MessageRead]) -> None:
        for message in messages:
            try:
                self._remote.patch_message(
                    conversation_remote_id,
                    message.remote_id,
                    {"isRead": True, "readAt": message.read_at, "status": DeliveryStatus.READ.value},
                )
            except RemoteStoreError as exc:
                logger.info("chat_sync.read_receipt_skipped remote_id=%s error=%s", message.remote_id, exc)


def to_remote_message(message: MessageRead) -> RemoteMessage:
    return RemoteMessage(
        remote_id=message.remote_id,
        sender_id=message.sender_id,
        sender_name=message.sender_name,
        text=message.body,
        type=message.type,
        is_read=message.is_read,
        read_at=message.read_at,
        status=DeliveryStatus.SENT,
        created_at=message.created_at,
    )
