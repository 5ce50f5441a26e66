"""Composition root for the sync engine."""

from __future__ import annotations

import logging
from concurrent.futures import Future

from chat_sync.config import Settings
from chat_sync.db.session import create_db_engine, create_session_factory
from chat_sync.schemas.conversation import ConversationRead, ReconciliationReport
from chat_sync.schemas.message import MessageRead
from chat_sync.services.background_jobs import BackgroundJobs
from chat_sync.services.conversations import ConversationResolver
from chat_sync.services.directory import ParticipantDirectory, StaticDirectory
from chat_sync.services.local_store import LocalStore, init_schema
from chat_sync.services.messages import MessagePipeline
from chat_sync.services.notifications import Notifier
from chat_sync.services.poller import InboundPoller
from chat_sync.services.reconciliation import ReconciliationSweeper
from chat_sync.services.remote_store import RemoteStore, get_default_remote_store

logger = logging.getLogger(__name__)


class ChatSyncEngine:
    """Built once at startup and handed to consumers; owns every background worker."""

    def __init__(
        self,
        settings: Settings,
        store: LocalStore,
        remote: RemoteStore,
        *,
        directory: ParticipantDirectory | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        self.settings = settings
        self.store = store
        self.remote = remote
        self.notifier = notifier or Notifier()
        self.jobs = BackgroundJobs(settings.remote_workers, notifier=self.notifier)
        self.resolver = ConversationResolver(store, remote, directory or StaticDirectory(), self.jobs)
        self.pipeline = MessagePipeline(store, remote, self.notifier, self.jobs, self.resolver)
        self.poller = InboundPoller(store, remote, self.notifier, interval_seconds=settings.poll_interval_seconds)
        self.sweeper = ReconciliationSweeper(store, self.resolver, self.pipeline)
        self._shut_down = False

    # Conversations and messages

    def resolve_conversation(
        self,
        current_user_id: int,
        other_user_id: int,
        topic_id: int | None = None,
    ) -> ConversationRead:
        return self.resolver.resolve(current_user_id, other_user_id, topic_id)

    def get_conversation(self, conversation_id: int) -> ConversationRead:
        return self.resolver.get(conversation_id)

    def list_conversations(self, user_id: int) -> list[ConversationRead]:
        return self.store.list_conversations_for_user(user_id)

    def send_message(
        self,
        conversation_id: int,
        sender_id: int,
        body: str,
        *,
        sender_name: str | None = None,
        message_type: str = "text",
        remote_id: str | None = None,
    ) -> MessageRead:
        conversation = self.resolver.get(conversation_id)
        return self.pipeline.send(
            conversation,
            sender_id,
            body,
            sender_name=sender_name,
            message_type=message_type,
            remote_id=remote_id,
        )

    def list_messages(self, conversation_id: int, *, limit: int | None = None, offset: int = 0) -> list[MessageRead]:
        self.resolver.get(conversation_id)
        return self.store.list_messages(conversation_id, limit=limit, offset=offset)

    def mark_read(self, conversation_id: int, reader_id: int) -> list[MessageRead]:
        return self.pipeline.mark_conversation_read(self.resolver.get(conversation_id), reader_id)

    # Listening

    def start_listening(self, conversation_id: int, current_user_id: int) -> bool:
        return self.poller.start(self.resolver.get(conversation_id), current_user_id)

    def stop_listening(self, conversation_id: int) -> None:
        conversation = self.store.get_conversation(conversation_id)
        if conversation is not None and conversation.remote_id:
            self.poller.stop(conversation.remote_id)

    def stop_all_listeners(self) -> None:
        self.poller.stop_all()

    # Reconciliation

    def sync_pending_conversations(self) -> tuple[int, int]:
        return self.sweeper.sync_pending_conversations()

    def retry_failed(self) -> tuple[int, int]:
        return self.sweeper.retry_failed()

    def reconcile(self) -> ReconciliationReport:
        return self.sweeper.run()

    def schedule_reconcile(self) -> Future | None:
        """Run a sweep on the remote worker pool."""

        return self.jobs.submit("reconciliation", self.sweeper.run)

    def on_connectivity_restored(self) -> Future | None:
        self.remote.mark_reachable()
        return self.schedule_reconcile()

    # Lifecycle

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Wait for queued remote jobs and pending notifications."""

        idle = self.jobs.wait_idle(timeout)
        self.notifier.flush(timeout)
        return idle

    def shutdown(self, timeout: float | None = None) -> None:
        """Stop pollers, abandon in-flight remote work, let local writes finish."""

        if self._shut_down:
            return
        self._shut_down = True
        timeout = self.settings.shutdown_timeout_seconds if timeout is None else timeout
        self.poller.stop_all(timeout)
        self.jobs.shutdown(wait_for_jobs=False)
        self.store.close()
        self.notifier.shutdown()
        logger.info("chat_sync.engine_shutdown")


def build_engine(
    settings: Settings,
    *,
    directory: ParticipantDirectory | None = None,
    notifier: Notifier | None = None,
    remote: RemoteStore | None = None,
) -> ChatSyncEngine:
    """Wire the engine from configuration, creating local tables if missing."""

    db_engine = create_db_engine(settings.database_url)
    init_schema(db_engine)
    store = LocalStore(create_session_factory(db_engine))
    return ChatSyncEngine(
        settings,
        store,
        remote or get_default_remote_store(settings),
        directory=directory,
        notifier=notifier,
    )
