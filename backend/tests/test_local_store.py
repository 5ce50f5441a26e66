"""Tests for the single-writer local store."""

from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone

from sqlalchemy import create_engine, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from chat_sync.models.base import Base
from chat_sync.models.conversation import Conversation
from chat_sync.models.message import Message
from chat_sync.schemas.common import as_utc
from chat_sync.schemas.conversation import ConversationCreate
from chat_sync.schemas.enums import UNSYNCED_STATUSES, DeliveryStatus, SyncStatus
from chat_sync.schemas.message import MessageCreate
from chat_sync.schemas.remote import RemoteConversation
from chat_sync.services.local_store import LocalStore, LocalStoreError

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


class LocalStoreTests(unittest.TestCase):
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
        self.store = LocalStore(self.SessionLocal)

    def tearDown(self) -> None:
        self.store.close()

    def _conversation(self, remote_id: str, a: int = 3, b: int = 8, topic_id: int | None = None):
        return self.store.create_conversation(
            ConversationCreate(remote_id=remote_id, participant_a=a, participant_b=b, topic_id=topic_id)
        )

    def _message(self, conversation_id: int, remote_id: str, created_at: datetime, sender_id: int = 3, **kwargs):
        return self.store.add_message(
            MessageCreate(
                remote_id=remote_id,
                conversation_id=conversation_id,
                sender_id=sender_id,
                body=f"body {remote_id}",
                created_at=created_at,
                **kwargs,
            )
        )

    def test_create_conversation_returns_existing_for_same_triple(self) -> None:
        first = self._conversation("conv-1")
        second = self._conversation("conv-2")

        self.assertEqual(first.id, second.id)
        self.assertEqual(second.remote_id, "conv-1")
        self.assertEqual(first.sync_status, SyncStatus.PENDING)
        self.assertEqual(first.unread_count, 0)

    def test_null_topic_is_its_own_key(self) -> None:
        untopiced = self._conversation("conv-none")
        topiced = self._conversation("conv-topic", topic_id=77)

        self.assertNotEqual(untopiced.id, topiced.id)
        self.assertEqual(self.store.find_conversation(3, 8, None).id, untopiced.id)
        self.assertEqual(self.store.find_conversation(3, 8, 77).id, topiced.id)
        self.assertIsNone(self.store.find_conversation(3, 8, 78))

    def test_database_rejects_duplicate_null_topic_pair(self) -> None:
        self._conversation("conv-none")
        with self.assertRaises(IntegrityError):
            with self.SessionLocal() as db:
                db.add(
                    Conversation(
                        remote_id="conv-dup",
                        participant_a=3,
                        participant_b=8,
                        topic_id=None,
                        sync_status=SyncStatus.PENDING.value,
                    )
                )
                db.commit()

    def test_save_remote_conversation_adopts_remote_record(self) -> None:
        local = self._conversation("local-id", topic_id=5)
        saved = self.store.save_remote_conversation(
            RemoteConversation(
                remote_id="remote-id",
                participant_key="3_8",
                participant_a=3,
                participant_b=8,
                participant_a_name="Ana",
                topic_id=5,
                last_message="hello",
                last_message_time=T0,
            )
        )

        self.assertEqual(saved.id, local.id)
        self.assertEqual(saved.remote_id, "remote-id")
        self.assertEqual(saved.participant_a_name, "Ana")
        self.assertEqual(saved.sync_status, SyncStatus.SYNCED)
        self.assertEqual(saved.last_message_time, T0)

    def test_add_message_is_idempotent_on_remote_id(self) -> None:
        conversation = self._conversation("conv-1")
        first = self._message(conversation.id, "m-1", T0)
        again = self._message(conversation.id, "m-1", T0 + timedelta(minutes=5))

        self.assertEqual(first.id, again.id)
        self.assertEqual(again.created_at, T0)
        self.assertEqual(len(self.store.list_messages(conversation.id)), 1)

    def test_record_message_updates_summary_only_when_created(self) -> None:
        conversation = self._conversation("conv-1")
        data = MessageCreate(
            remote_id="m-1",
            conversation_id=conversation.id,
            sender_id=8,
            body="Would you take 90?",
            created_at=T0,
        )

        first, created = self.store.record_message(data, increment_unread=True)
        again, created_again = self.store.record_message(data, increment_unread=True)

        self.assertTrue(created)
        self.assertFalse(created_again)
        self.assertEqual(first.id, again.id)
        refreshed = self.store.get_conversation(conversation.id)
        self.assertEqual(refreshed.last_message, "Would you take 90?")
        self.assertEqual(refreshed.last_sender_id, 8)
        self.assertEqual(refreshed.unread_count, 1)

    def test_remote_preview_is_cut_to_column_length(self) -> None:
        saved = self.store.save_remote_conversation(
            RemoteConversation(
                remote_id="remote-long",
                participant_key="3_8",
                participant_a=3,
                participant_b=8,
                last_message="w" * 120,
            )
        )

        self.assertEqual(saved.last_message, "w" * 50 + "...")

    def test_messages_list_in_creation_order_with_paging(self) -> None:
        conversation = self._conversation("conv-1")
        self._message(conversation.id, "m-late", T0 + timedelta(minutes=2))
        self._message(conversation.id, "m-early", T0)
        self._message(conversation.id, "m-mid", T0 + timedelta(minutes=1))

        ordered = [m.remote_id for m in self.store.list_messages(conversation.id)]
        self.assertEqual(ordered, ["m-early", "m-mid", "m-late"])
        page = [m.remote_id for m in self.store.list_messages(conversation.id, limit=1, offset=1)]
        self.assertEqual(page, ["m-mid"])
        self.assertEqual(as_utc(self.store.latest_message_time(conversation.id)), T0 + timedelta(minutes=2))

    def test_older_message_never_replaces_newer_preview(self) -> None:
        conversation = self._conversation("conv-1")
        self.store.apply_last_message(conversation.id, preview="newer", sent_at=T0 + timedelta(minutes=1), sender_id=3)
        updated = self.store.apply_last_message(
            conversation.id,
            preview="older",
            sent_at=T0,
            sender_id=8,
            increment_unread=True,
        )

        self.assertEqual(updated.last_message, "newer")
        self.assertEqual(updated.last_sender_id, 3)
        self.assertEqual(updated.unread_count, 1)
        self.assertEqual(self.store.reset_unread(conversation.id).unread_count, 0)

    def test_conversation_list_orders_by_recent_activity(self) -> None:
        quiet = self._conversation("conv-quiet", a=3, b=10)
        old = self._conversation("conv-old", a=3, b=11)
        recent = self._conversation("conv-recent", a=3, b=12)
        self.store.apply_last_message(old.id, preview="a", sent_at=T0, sender_id=3)
        self.store.apply_last_message(recent.id, preview="b", sent_at=T0 + timedelta(hours=1), sender_id=3)

        listed = [c.id for c in self.store.list_conversations_for_user(3)]
        self.assertEqual(listed, [recent.id, old.id, quiet.id])
        self.assertEqual(self.store.list_conversations_for_user(99), [])

    def test_unsynced_messages_carry_conversation_remote_id(self) -> None:
        conversation = self._conversation("conv-1")
        pending = self._message(conversation.id, "m-1", T0)
        self._message(conversation.id, "m-2", T0 + timedelta(seconds=1), sync_status=SyncStatus.SYNCED)
        failed = self._message(conversation.id, "m-3", T0 + timedelta(seconds=2))
        self.store.update_message_delivery(failed.id, DeliveryStatus.FAILED, SyncStatus.ERROR)

        items = self.store.list_messages_by_sync_status(UNSYNCED_STATUSES)
        self.assertEqual([item.message.id for item in items], [pending.id, failed.id])
        self.assertTrue(all(item.conversation_remote_id == "conv-1" for item in items))

    def test_mark_messages_read_only_touches_other_party(self) -> None:
        conversation = self._conversation("conv-1")
        own = self._message(conversation.id, "m-own", T0, sender_id=3)
        incoming = self._message(conversation.id, "m-in", T0 + timedelta(seconds=1), sender_id=8)

        updated = self.store.mark_messages_read(conversation.id, 3, T0 + timedelta(minutes=1))

        self.assertEqual([m.id for m in updated], [incoming.id])
        self.assertTrue(updated[0].is_read)
        self.assertEqual(updated[0].status, DeliveryStatus.READ)
        self.assertFalse(self.store.get_message(own.id).is_read)
        self.assertEqual(self.store.mark_messages_read(conversation.id, 3, T0), [])

    def test_missing_rows_raise_store_error(self) -> None:
        with self.assertRaises(LocalStoreError):
            self.store.set_conversation_sync_status(12345, SyncStatus.SYNCED)

    def test_closed_store_rejects_calls(self) -> None:
        self.store.close()
        with self.assertRaises(LocalStoreError):
            self.store.get_conversation(1)


if __name__ == "__main__":
    unittest.main()
