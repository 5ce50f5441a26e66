"""Conversation resolution: local store first, then remote, then create."""

from __future__ import annotations

import logging
from time import perf_counter

from chat_sync.models.base import utcnow
from chat_sync.schemas.conversation import ConversationCreate, ConversationRead
from chat_sync.schemas.enums import SyncStatus
from chat_sync.schemas.remote import RemoteConversation
from chat_sync.services.background_jobs import BackgroundJobs
from chat_sync.services.directory import ParticipantDirectory, resolve_display_name
from chat_sync.services.keys import canonical_pair, new_remote_id, participant_key
from chat_sync.services.local_store import LocalStore
from chat_sync.services.remote_store import RemoteStore, RemoteStoreError

logger = logging.getLogger(__name__)


class ConversationNotFoundError(RuntimeError):
    """Raised when a local conversation id does not exist."""


class ConversationResolver:
    """Finds or creates the single conversation for a participant pair and topic."""

    def __init__(
        self,
        store: LocalStore,
        remote: RemoteStore,
        directory: ParticipantDirectory,
        jobs: BackgroundJobs,
    ) -> None:
        self._store = store
        self._remote = remote
        self._directory = directory
        self._jobs = jobs

    def resolve(self, current_user_id: int, other_user_id: int, topic_id: int | None = None) -> ConversationRead:
        """Return the conversation, creating it locally (and remotely in the background) if needed.

        A missing topic is its own key, not a wildcard. Remote failures never reach the
        caller: the conversation is then created locally and reconciled later.
        """

        if current_user_id == other_user_id:
            raise ValueError("A conversation needs two distinct participants.")

        started = perf_counter()
        participant_a, participant_b = canonical_pair(current_user_id, other_user_id)

        local = self._store.find_conversation(participant_a, participant_b, topic_id)
        if local is not None:
            logger.debug("chat_sync.conversation_resolved source=local local_id=%d", local.id)
            return local

        if self._remote.is_reachable():
            try:
                found = self._remote.find_conversation(participant_key(participant_a, participant_b), topic_id)
            except RemoteStoreError as exc:
                logger.warning(
                    "chat_sync.conversation_remote_lookup_failed participant_key=%s error=%s",
                    participant_key(participant_a, participant_b),
                    exc,
                )
                found = None
            if found is not None:
                conversation = self._store.save_remote_conversation(found)
                logger.info(
                    "chat_sync.conversation_resolved source=remote local_id=%d remote_id=%s elapsed_ms=%.2f",
                    conversation.id,
                    conversation.remote_id,
                    (perf_counter() - started) * 1000.0,
                )
                return conversation

        conversation = self._store.create_conversation(
            ConversationCreate(
                remote_id=new_remote_id(),
                participant_a=participant_a,
                participant_b=participant_b,
                topic_id=topic_id,
                participant_a_name=resolve_display_name(self._directory, participant_a),
                participant_b_name=resolve_display_name(self._directory, participant_b),
                topic_name=self._directory.topic_name(topic_id) if topic_id is not None else None,
                sync_status=SyncStatus.PENDING,
            )
        )
        logger.info(
            "chat_sync.conversation_resolved source=created local_id=%d remote_id=%s elapsed_ms=%.2f",
            conversation.id,
            conversation.remote_id,
            (perf_counter() - started) * 1000.0,
        )
        if conversation.sync_status is not SyncStatus.SYNCED:
            self._jobs.submit("conversation_push", self.push_conversation, conversation)
        return conversation

    def get(self, conversation_id: int) -> ConversationRead:
        conversation = self._store.get_conversation(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(f"Conversation {conversation_id} not found.")
        return conversation

    def push_conversation(self, conversation: ConversationRead) -> bool:
        """Create the conversation remotely under its pre-assigned id and record the outcome."""

        if not conversation.remote_id:
            logger.warning("chat_sync.conversation_push_skipped local_id=%d reason=no_remote_id", conversation.id)
            return False
        if not self._remote.is_reachable():
            self._store.set_conversation_sync_status(conversation.id, SyncStatus.ERROR)
            logger.info("chat_sync.conversation_push_deferred local_id=%d reason=offline", conversation.id)
            return False

        try:
            created = self._remote.create_conversation(to_remote_conversation(conversation))
        except RemoteStoreError as exc:
            self._store.set_conversation_sync_status(conversation.id, SyncStatus.ERROR)
            logger.warning(
                "chat_sync.conversation_push_failed local_id=%d remote_id=%s error=%s",
                conversation.id,
                conversation.remote_id,
                exc,
            )
            return False

        self._store.set_conversation_sync_status(conversation.id, SyncStatus.SYNCED)
        logger.info(
            "chat_sync.conversation_pushed local_id=%d remote_id=%s created=%s",
            conversation.id,
            conversation.remote_id,
            created,
        )
        return True


def to_remote_conversation(conversation: ConversationRead) -> RemoteConversation:
    return RemoteConversation(
        remote_id=conversation.remote_id or "",
        participant_key=participant_key(conversation.participant_a, conversation.participant_b),
        participant_ids=[conversation.participant_a, conversation.participant_b],
        participant_a=conversation.participant_a,
        participant_b=conversation.participant_b,
        participant_a_name=conversation.participant_a_name,
        participant_b_name=conversation.participant_b_name,
        topic_id=conversation.topic_id,
        topic_name=conversation.topic_name,
        last_message=conversation.last_message,
        last_message_time=conversation.last_message_time,
        last_sender_id=conversation.last_sender_id,
        unread_count={str(conversation.participant_a): 0, str(conversation.participant_b): 0},
        created_at=conversation.created_at,
        updated_at=utcnow(),
    )
