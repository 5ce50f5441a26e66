"""Reconciliation sweep over records not yet known to be synced."""

from __future__ import annotations

import logging
from time import perf_counter

from chat_sync.schemas.conversation import ReconciliationReport
from chat_sync.schemas.enums import UNSYNCED_STATUSES, SyncStatus
from chat_sync.services.conversations import ConversationResolver
from chat_sync.services.local_store import LocalStore
from chat_sync.services.messages import MessagePipeline

logger = logging.getLogger(__name__)


class ReconciliationSweeper:
    """Retries pending/failed conversations and messages with their existing remote ids."""

    def __init__(self, store: LocalStore, resolver: ConversationResolver, pipeline: MessagePipeline) -> None:
        self._store = store
        self._resolver = resolver
        self._pipeline = pipeline

    def run(self) -> ReconciliationReport:
        """Conversations first, so retried messages find their parent document."""

        started = perf_counter()
        conversations_attempted, conversations_synced = self.sync_pending_conversations()
        messages_attempted, messages_synced = self.retry_failed()
        report = ReconciliationReport(
            conversations_attempted=conversations_attempted,
            conversations_synced=conversations_synced,
            messages_attempted=messages_attempted,
            messages_synced=messages_synced,
        )
        logger.info(
            (
                "chat_sync.reconciliation_timing conversations=%d/%d messages=%d/%d total_ms=%.2f"
            ),
            conversations_synced,
            conversations_attempted,
            messages_synced,
            messages_attempted,
            (perf_counter() - started) * 1000.0,
        )
        return report

    def sync_pending_conversations(self) -> tuple[int, int]:
        """Returns (attempted, synced)."""

        pending = self._store.list_conversations_by_sync_status(UNSYNCED_STATUSES)
        synced = sum(1 for conversation in pending if self._resolver.push_conversation(conversation))
        return len(pending), synced

    def retry_failed(self) -> tuple[int, int]:
        """Redeliver unsynced messages oldest first. Returns (attempted, synced)."""

        attempted = synced = 0
        for item in self._store.list_messages_by_sync_status(UNSYNCED_STATUSES):
            if not item.conversation_remote_id:
                continue
            attempted += 1
            result = self._pipeline.deliver(item.message, update_summary=False)
            if result.sync_status is SyncStatus.SYNCED:
                synced += 1
        return attempted, synced
