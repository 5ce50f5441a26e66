"""Inbound poller: one scheduled listener per conversation pulling remote messages."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from threading import Event, Lock, Thread
from time import perf_counter

from chat_sync.models.base import utcnow
from chat_sync.schemas.conversation import ConversationRead
from chat_sync.schemas.enums import DeliveryStatus, SyncStatus
from chat_sync.schemas.message import MessageCreate, MessageRead
from chat_sync.schemas.remote import RemoteMessage
from chat_sync.services.local_store import LocalStore, LocalStoreError
from chat_sync.services.notifications import Notifier
from chat_sync.services.remote_store import RemoteStore, RemoteStoreError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _Listener:
    conversation: ConversationRead
    current_user_id: int
    stop_event: Event = field(default_factory=Event)
    thread: Thread | None = None


class InboundPoller:
    """Polls remote conversation messages on a fixed interval and stores new ones.

    Listeners are keyed by conversation remote id; starting one that is already
    running replaces it. Stopping is cooperative: a tick in progress finishes,
    later ticks never run.
    """

    def __init__(
        self,
        store: LocalStore,
        remote: RemoteStore,
        notifier: Notifier,
        *,
        interval_seconds: float = 5.0,
    ) -> None:
        self._store = store
        self._remote = remote
        self._notifier = notifier
        self._interval_seconds = interval_seconds
        self._listeners: dict[str, _Listener] = {}
        self._lock = Lock()

    def start(self, conversation: ConversationRead, current_user_id: int) -> bool:
        """Begin polling; returns False for conversations without a remote id."""

        if not conversation.remote_id:
            logger.warning("chat_sync.poll_not_started local_id=%d reason=no_remote_id", conversation.id)
            return False

        listener = _Listener(conversation=conversation, current_user_id=current_user_id)
        listener.thread = Thread(
            target=self._run,
            args=(listener,),
            name=f"chat-poll-{conversation.remote_id[:8]}",
            daemon=True,
        )
        with self._lock:
            previous = self._listeners.pop(conversation.remote_id, None)
            if previous is not None:
                previous.stop_event.set()
            self._listeners[conversation.remote_id] = listener
        listener.thread.start()
        logger.info(
            "chat_sync.poll_started remote_id=%s local_id=%d interval_s=%.1f restarted=%s",
            conversation.remote_id,
            conversation.id,
            self._interval_seconds,
            previous is not None,
        )
        return True

    def stop(self, remote_id: str) -> None:
        """Stop one listener; a no-op when none is active."""

        with self._lock:
            listener = self._listeners.pop(remote_id, None)
        if listener is None:
            return
        listener.stop_event.set()
        logger.info("chat_sync.poll_stopped remote_id=%s", remote_id)

    def stop_all(self, timeout: float | None = None) -> None:
        """Stop every listener and wait up to ``timeout`` seconds for running ticks."""

        with self._lock:
            listeners = list(self._listeners.values())
            self._listeners.clear()
        for listener in listeners:
            listener.stop_event.set()
        for listener in listeners:
            if listener.thread is not None and listener.thread.is_alive():
                listener.thread.join(timeout)
        if listeners:
            logger.info("chat_sync.poll_stopped_all count=%d", len(listeners))

    def is_polling(self, remote_id: str) -> bool:
        with self._lock:
            return remote_id in self._listeners

    def active(self) -> list[str]:
        with self._lock:
            return sorted(self._listeners)

    def poll_once(self, conversation: ConversationRead, current_user_id: int) -> list[MessageRead]:
        """Run one tick: fetch remote children, store unseen messages from the other party."""

        if not conversation.remote_id:
            return []
        started = perf_counter()
        latest_local = self._store.latest_message_time(conversation.id)
        remote_messages = self._remote.list_messages(conversation.remote_id)

        received: list[MessageRead] = []
        for remote_message in remote_messages:
            existing = self._store.get_message_by_remote_id(remote_message.remote_id)
            if remote_message.sender_id == current_user_id:
                # Own messages enter the store only through the send path.
                if existing is not None:
                    self._merge_own_progress(existing, remote_message)
                continue
            if existing is not None:
                continue

            stored, created = self._store.record_message(
                MessageCreate(
                    remote_id=remote_message.remote_id,
                    conversation_id=conversation.id,
                    sender_id=remote_message.sender_id,
                    sender_name=remote_message.sender_name,
                    body=remote_message.text,
                    type=remote_message.type,
                    is_read=remote_message.is_read,
                    read_at=remote_message.read_at,
                    status=remote_message.status,
                    created_at=remote_message.created_at or utcnow(),
                    sync_status=SyncStatus.SYNCED,
                ),
                increment_unread=not remote_message.is_read,
            )
            if not created:
                # Stored by an overlapping tick.
                continue
            self._notifier.message_received(stored)
            received.append(stored)

        logger.debug(
            "chat_sync.poll_tick remote_id=%s fetched=%d received=%d latest_local=%s elapsed_ms=%.2f",
            conversation.remote_id,
            len(remote_messages),
            len(received),
            latest_local.isoformat() if latest_local else None,
            (perf_counter() - started) * 1000.0,
        )
        return received

    def _merge_own_progress(self, existing: MessageRead, remote_message: RemoteMessage) -> None:
        remote_status = remote_message.status
        if existing.status is DeliveryStatus.FAILED or existing.sync_status is not SyncStatus.SYNCED:
            # The write landed even though the local attempt did not record it.
            target = remote_status if remote_status.rank >= DeliveryStatus.SENT.rank else DeliveryStatus.SENT
        elif remote_status.rank > existing.status.rank:
            target = remote_status
        else:
            return
        updated = self._store.apply_remote_message_state(
            existing.id,
            status=target,
            is_read=remote_message.is_read or existing.is_read,
            read_at=remote_message.read_at or existing.read_at,
        )
        self._notifier.message_status_changed(updated)

    def _run(self, listener: _Listener) -> None:
        while not listener.stop_event.is_set():
            if not self._tick(listener):
                break
            if listener.stop_event.wait(self._interval_seconds):
                break

    def _tick(self, listener: _Listener) -> bool:
        conversation = listener.conversation
        try:
            if self._store.get_conversation(conversation.id) is None:
                logger.info("chat_sync.poll_conversation_removed local_id=%d", conversation.id)
                self._discard(listener)
                return False
            self.poll_once(conversation, listener.current_user_id)
        except (RemoteStoreError, LocalStoreError) as exc:
            logger.warning("chat_sync.poll_tick_failed remote_id=%s error=%s", conversation.remote_id, exc)
        except Exception:
            logger.exception("chat_sync.poll_tick_crashed remote_id=%s", conversation.remote_id)
        return True

    def _discard(self, listener: _Listener) -> None:
        with self._lock:
            if self._listeners.get(listener.conversation.remote_id or "") is listener:
                del self._listeners[listener.conversation.remote_id or ""]
        listener.stop_event.set()
