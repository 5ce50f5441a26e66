"""Tests for inbound polling of remote conversation messages."""

from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone
from threading import Barrier, Event, Thread

from sqlalchemy import create_engine, delete
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from chat_sync.config import Settings
from chat_sync.models.base import Base
from chat_sync.models.conversation import Conversation
from chat_sync.models.message import Message
from chat_sync.schemas.enums import DeliveryStatus, SyncStatus
from chat_sync.schemas.message import MessageRead
from chat_sync.schemas.remote import RemoteMessage
from chat_sync.services.engine import ChatSyncEngine
from chat_sync.services.local_store import LocalStore
from chat_sync.services.remote_store import InMemoryRemoteStore

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


class _GatedRemote(InMemoryRemoteStore):
    """Holds concurrent listings at a barrier so two ticks overlap."""

    def __init__(self) -> None:
        super().__init__()
        self.gate: Barrier | None = None

    def list_messages(self, conversation_remote_id):
        messages = super().list_messages(conversation_remote_id)
        if self.gate is not None:
            self.gate.wait(timeout=5)
        return messages


class InboundPollerTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls) -> None:
        cls.engine = create_engine(
            "sqlite+pysqlite:///:memory:",
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        cls.SessionLocal = sessionmaker(bind=cls.engine, autoflush=False, expire_on_commit=False, future=True)
        Base.metadata.create_all(cls.engine)

    @classmethod
    def tearDownClass(cls) -> None:
        Base.metadata.drop_all(cls.engine)
        cls.engine.dispose()

    def setUp(self) -> None:
        with self.SessionLocal() as db:
            db.execute(delete(Message))
            db.execute(delete(Conversation))
            db.commit()
        self.remote = _GatedRemote()
        self.chat = ChatSyncEngine(Settings(poll_interval_seconds=0.05), LocalStore(self.SessionLocal), self.remote)
        self.received: list[MessageRead] = []
        self.status_changes: list[MessageRead] = []
        self.chat.notifier.on_message_received = self.received.append
        self.chat.notifier.on_message_status_changed = self.status_changes.append
        self.conversation = self.chat.resolve_conversation(3, 8)
        self.assertTrue(self.chat.wait_idle(5))

    def tearDown(self) -> None:
        self.chat.shutdown()

    def _remote_message(self, remote_id: str, sender_id: int, text: str, minutes: int = 0, **kwargs) -> None:
        self.remote.create_message(
            self.conversation.remote_id,
            RemoteMessage(
                remote_id=remote_id,
                sender_id=sender_id,
                text=text,
                created_at=T0 + timedelta(minutes=minutes),
                **kwargs,
            ),
        )

    def test_new_messages_from_other_party_are_stored_once(self) -> None:
        self._remote_message("r-1", 8, "Yes, still available")
        self._remote_message("r-2", 8, "Pickup tomorrow works", minutes=1)

        received = self.chat.poller.poll_once(self.conversation, 3)
        self.chat.wait_idle(5)

        self.assertEqual([m.remote_id for m in received], ["r-1", "r-2"])
        self.assertTrue(all(m.sync_status is SyncStatus.SYNCED for m in received))
        self.assertEqual([m.remote_id for m in self.received], ["r-1", "r-2"])
        conversation = self.chat.get_conversation(self.conversation.id)
        self.assertEqual(conversation.unread_count, 2)
        self.assertEqual(conversation.last_message, "Pickup tomorrow works")
        self.assertEqual(conversation.last_sender_id, 8)

        self.assertEqual(self.chat.poller.poll_once(self.conversation, 3), [])
        self.assertEqual(len(self.chat.list_messages(self.conversation.id)), 2)

    def test_overlapping_ticks_announce_a_new_message_once(self) -> None:
        self._remote_message("r-1", 8, "Still there?")
        self.remote.gate = Barrier(2)
        results: list[list[MessageRead]] = []

        def tick() -> None:
            results.append(self.chat.poller.poll_once(self.conversation, 3))

        threads = [Thread(target=tick) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(5)
        self.remote.gate = None
        self.chat.wait_idle(5)

        self.assertEqual(len(results), 2)
        self.assertEqual(sum(len(batch) for batch in results), 1)
        self.assertEqual([m.remote_id for m in self.received], ["r-1"])
        self.assertEqual(len(self.chat.list_messages(self.conversation.id)), 1)
        self.assertEqual(self.chat.get_conversation(self.conversation.id).unread_count, 1)

    def test_own_messages_are_not_inserted_by_polling(self) -> None:
        self._remote_message("r-own", 3, "sent from another device")

        self.assertEqual(self.chat.poller.poll_once(self.conversation, 3), [])
        self.assertEqual(self.chat.list_messages(self.conversation.id), [])

    def test_remote_progress_on_own_message_is_merged(self) -> None:
        sent = self.chat.send_message(self.conversation.id, 3, "See you at 5")
        self.assertTrue(self.chat.wait_idle(5))
        self.status_changes.clear()
        self.remote.patch_message(self.conversation.remote_id, sent.remote_id, {"status": "read", "isRead": True})

        self.chat.poller.poll_once(self.conversation, 3)
        self.chat.wait_idle(5)

        stored = self.chat.store.get_message(sent.id)
        self.assertEqual(stored.status, DeliveryStatus.READ)
        self.assertTrue(stored.is_read)
        self.assertEqual([m.status for m in self.status_changes], [DeliveryStatus.READ])

        self.chat.poller.poll_once(self.conversation, 3)
        self.chat.wait_idle(5)
        self.assertEqual(len(self.status_changes), 1)

    def test_failed_local_message_found_remotely_becomes_sent(self) -> None:
        sent = self.chat.send_message(self.conversation.id, 3, "Lost ack")
        self.assertTrue(self.chat.wait_idle(5))
        self.chat.store.update_message_delivery(sent.id, DeliveryStatus.FAILED, SyncStatus.ERROR)

        self.chat.poller.poll_once(self.conversation, 3)

        stored = self.chat.store.get_message(sent.id)
        self.assertEqual(stored.status, DeliveryStatus.SENT)
        self.assertEqual(stored.sync_status, SyncStatus.SYNCED)

    def test_listener_delivers_messages_until_stopped(self) -> None:
        arrived = Event()
        self.chat.notifier.on_message_received = lambda message: arrived.set()
        self._remote_message("r-1", 8, "ping")

        self.assertTrue(self.chat.start_listening(self.conversation.id, 3))
        self.assertTrue(arrived.wait(5))
        self.assertTrue(self.chat.poller.is_polling(self.conversation.remote_id))

        self.chat.stop_listening(self.conversation.id)
        self.assertFalse(self.chat.poller.is_polling(self.conversation.remote_id))
        self.chat.stop_listening(self.conversation.id)

    def test_restart_replaces_existing_listener(self) -> None:
        self.assertTrue(self.chat.start_listening(self.conversation.id, 3))
        self.assertTrue(self.chat.start_listening(self.conversation.id, 3))
        self.assertEqual(self.chat.poller.active(), [self.conversation.remote_id])

        self.chat.stop_all_listeners()
        self.assertEqual(self.chat.poller.active(), [])

    def test_conversation_without_remote_id_is_not_polled(self) -> None:
        local_only = self.conversation.model_copy(update={"remote_id": None})

        self.assertFalse(self.chat.poller.start(local_only, 3))
        self.assertEqual(self.chat.poller.poll_once(local_only, 3), [])
        self.assertEqual(self.chat.poller.active(), [])

    def test_offline_ticks_keep_listener_alive(self) -> None:
        self.remote.reachable = False
        self.assertTrue(self.chat.start_listening(self.conversation.id, 3))
        arrived = Event()
        self.chat.notifier.on_message_received = lambda message: arrived.set()

        self.remote.reachable = True
        self._remote_message("r-late", 8, "back online")

        self.assertTrue(arrived.wait(5))
        self.assertTrue(self.chat.poller.is_polling(self.conversation.remote_id))


if __name__ == "__main__":
    unittest.main()
