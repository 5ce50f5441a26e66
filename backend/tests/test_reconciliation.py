"""Tests for the reconciliation sweep and connectivity restoration."""

from __future__ import annotations

import unittest

from sqlalchemy import create_engine, delete
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from chat_sync.config import Settings
from chat_sync.models.base import Base
from chat_sync.models.conversation import Conversation
from chat_sync.models.message import Message
from chat_sync.schemas.enums import DeliveryStatus, SyncStatus
from chat_sync.services.engine import ChatSyncEngine
from chat_sync.services.local_store import LocalStore
from chat_sync.services.remote_store import InMemoryRemoteStore


class ReconciliationTests(unittest.TestCase):
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
        self.remote = InMemoryRemoteStore()
        self.chat = ChatSyncEngine(Settings(), LocalStore(self.SessionLocal), self.remote)

    def tearDown(self) -> None:
        self.chat.shutdown()

    def _legacy_conversation(self) -> int:
        with self.SessionLocal() as db:
            row = Conversation(participant_a=3, participant_b=8, sync_status=SyncStatus.PENDING.value)
            db.add(row)
            db.flush()
            db.add(
                Message(
                    remote_id="m-legacy",
                    conversation_id=row.id,
                    sender_id=3,
                    body="written before remote ids",
                    status=DeliveryStatus.FAILED.value,
                    sync_status=SyncStatus.ERROR.value,
                )
            )
            db.commit()
            return row.id

    def test_records_without_remote_ids_are_skipped(self) -> None:
        self._legacy_conversation()

        report = self.chat.reconcile()

        self.assertEqual((report.conversations_attempted, report.conversations_synced), (1, 0))
        self.assertEqual((report.messages_attempted, report.messages_synced), (0, 0))

    def test_connectivity_restored_runs_sweep_in_background(self) -> None:
        self.remote.reachable = False
        conversation = self.chat.resolve_conversation(3, 8)
        self.chat.send_message(conversation.id, 8, "offline hello")
        self.assertTrue(self.chat.wait_idle(5))

        self.remote.reachable = True
        future = self.chat.on_connectivity_restored()
        report = future.result(timeout=5)

        self.assertEqual(report.conversations_synced, 1)
        self.assertEqual(report.messages_synced, 1)
        self.assertEqual(self.chat.get_conversation(conversation.id).sync_status, SyncStatus.SYNCED)
        self.assertEqual(len(self.remote.list_messages(conversation.remote_id)), 1)

    def test_sweep_with_remote_still_down_keeps_records_unsynced(self) -> None:
        self.remote.reachable = False
        conversation = self.chat.resolve_conversation(3, 8)
        self.chat.send_message(conversation.id, 3, "queued")
        self.assertTrue(self.chat.wait_idle(5))

        report = self.chat.reconcile()

        self.assertEqual((report.conversations_attempted, report.conversations_synced), (1, 0))
        self.assertEqual((report.messages_attempted, report.messages_synced), (1, 0))
        self.assertEqual(self.chat.list_messages(conversation.id)[0].sync_status, SyncStatus.ERROR)

    def test_jobs_are_rejected_after_shutdown(self) -> None:
        self.chat.shutdown()
        self.assertIsNone(self.chat.schedule_reconcile())


if __name__ == "__main__":
    unittest.main()
