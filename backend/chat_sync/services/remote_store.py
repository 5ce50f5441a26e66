"""Remote sync client for the shared document store (Firestore REST semantics)."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Protocol
from urllib import error as urllib_error
from urllib import request as urllib_request
from urllib.parse import quote, urlencode

from pydantic import ValidationError

from chat_sync.config import Settings
from chat_sync.schemas.remote import RemoteConversation, RemoteMessage
from chat_sync.services.document_codec import (
    DocumentCodecError,
    decode_fields,
    document_id,
    encode_fields,
    encode_value,
)

logger = logging.getLogger(__name__)

CONVERSATIONS_COLLECTION = "conversations"
MESSAGES_COLLECTION = "messages"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class RemoteStoreError(RuntimeError):
    """Raised when the remote store rejects a request or returns an invalid payload."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class RemoteStoreUnavailableError(RemoteStoreError):
    """Raised when the remote store cannot be reached at all."""


class RemoteStore(Protocol):
    """Operations the sync engine needs from the shared store."""

    def is_reachable(self) -> bool:
        """Return whether the last contact with the store succeeded."""

    def mark_reachable(self) -> None:
        """Record that connectivity was restored."""

    def create_conversation(self, conversation: RemoteConversation) -> bool:
        """Create the conversation under its own id; False if it already existed."""

    def find_conversation(self, participant_key: str, topic_id: int | None) -> RemoteConversation | None:
        """Return the conversation for a participant key and topic, if any."""

    def create_message(self, conversation_remote_id: str, message: RemoteMessage) -> bool:
        """Create the message under its own id; False if it already existed."""

    def list_messages(self, conversation_remote_id: str) -> list[RemoteMessage]:
        """Return every message stored under the conversation."""

    def patch_conversation(self, remote_id: str, fields: dict[str, Any]) -> None:
        """Update the named fields of a conversation."""

    def patch_message(self, conversation_remote_id: str, remote_id: str, fields: dict[str, Any]) -> None:
        """Update the named fields of a message."""


@dataclass(slots=True)
class FirestoreRestClient:
    """Stateless request/response wrapper around the Firestore v1 REST API."""

    project_id: str
    base_url: str = "https://firestore.googleapis.com/v1"
    database: str = "(default)"
    api_key: str | None = None
    auth_token: str | None = None
    timeout_seconds: int = 15
    page_size: int = 300
    _reachable: bool = field(default=True, init=False, repr=False)
    _lock: Lock = field(default_factory=Lock, init=False, repr=False)

    # Reachability

    def is_reachable(self) -> bool:
        with self._lock:
            return self._reachable

    def mark_reachable(self) -> None:
        self._set_reachable(True)

    # Domain operations

    def create_conversation(self, conversation: RemoteConversation) -> bool:
        return self.create_document(CONVERSATIONS_COLLECTION, conversation.remote_id, conversation.to_fields())

    def find_conversation(self, participant_key: str, topic_id: int | None) -> RemoteConversation | None:
        documents = self.run_query(
            CONVERSATIONS_COLLECTION,
            [("participantKey", participant_key), ("topicId", topic_id)],
            limit=1,
        )
        if not documents:
            return None
        return _decode_document(RemoteConversation, documents[0])

    def create_message(self, conversation_remote_id: str, message: RemoteMessage) -> bool:
        return self.create_document(
            _messages_path(conversation_remote_id),
            message.remote_id,
            message.to_fields(),
        )

    def list_messages(self, conversation_remote_id: str) -> list[RemoteMessage]:
        messages: list[RemoteMessage] = []
        for document in self.list_documents(_messages_path(conversation_remote_id)):
            try:
                messages.append(_decode_document(RemoteMessage, document))
            except RemoteStoreError:
                logger.warning(
                    "chat_sync.remote_message_skipped conversation=%s name=%s",
                    conversation_remote_id,
                    document.get("name"),
                )
        return messages

    def patch_conversation(self, remote_id: str, fields: dict[str, Any]) -> None:
        self.patch_document(f"{CONVERSATIONS_COLLECTION}/{remote_id}", fields)

    def patch_message(self, conversation_remote_id: str, remote_id: str, fields: dict[str, Any]) -> None:
        self.patch_document(f"{_messages_path(conversation_remote_id)}/{remote_id}", fields)

    # Document operations

    def create_document(self, collection_path: str, doc_id: str, fields: dict[str, Any]) -> bool:
        """Create with an explicit id; an existing document counts as success."""

        url = self._url(collection_path, [("documentId", doc_id)])
        try:
            self._request("POST", url, {"fields": encode_fields(fields)})
        except RemoteStoreError as exc:
            if exc.status == 409:
                logger.info("chat_sync.remote_create_exists path=%s/%s", collection_path, doc_id)
                return False
            raise
        return True

    def run_query(
        self,
        collection_id: str,
        filters: list[tuple[str, Any]],
        *,
        limit: int | None = None,
        parent_path: str = "",
    ) -> list[dict[str, Any]]:
        """Structured query with AND-ed equality filters; ``None`` matches a null field."""

        clauses = [_filter_clause(field_path, value) for field_path, value in filters]
        structured: dict[str, Any] = {"from": [{"collectionId": collection_id}]}
        if len(clauses) == 1:
            structured["where"] = clauses[0]
        elif clauses:
            structured["where"] = {"compositeFilter": {"op": "AND", "filters": clauses}}
        if limit is not None:
            structured["limit"] = limit

        url = self._url(f"{parent_path}:runQuery" if parent_path else ":runQuery", [])
        rows = self._request("POST", url, {"structuredQuery": structured})
        if not isinstance(rows, list):
            raise RemoteStoreError("Remote store returned an unexpected query response")
        return [row["document"] for row in rows if isinstance(row, dict) and row.get("document")]

    def list_documents(self, collection_path: str) -> list[dict[str, Any]]:
        """List every child document, following page tokens."""

        documents: list[dict[str, Any]] = []
        page_token: str | None = None
        while True:
            params = [("pageSize", str(self.page_size)), ("orderBy", "createdAt")]
            if page_token:
                params.append(("pageToken", page_token))
            payload = self._request("GET", self._url(collection_path, params))
            if not isinstance(payload, dict):
                raise RemoteStoreError("Remote store returned an unexpected list response")
            documents.extend(payload.get("documents", []))
            page_token = payload.get("nextPageToken")
            if not page_token:
                return documents

    def patch_document(self, document_path: str, fields: dict[str, Any]) -> None:
        """Update only the given fields of an existing document."""

        params = [("updateMask.fieldPaths", name) for name in fields]
        params.append(("currentDocument.exists", "true"))
        self._request("PATCH", self._url(document_path, params), {"fields": encode_fields(fields)})

    # Transport

    def _url(self, path: str, params: list[tuple[str, str]]) -> str:
        root = (
            f"{self.base_url.rstrip('/')}/projects/{quote(self.project_id)}"
            f"/databases/{quote(self.database, safe='()')}/documents"
        )
        url = f"{root}/{path.lstrip('/')}" if path and not path.startswith(":") else f"{root}{path}"
        if self.api_key:
            params = [*params, ("key", self.api_key)]
        return f"{url}?{urlencode(params)}" if params else url

    def _request(self, method: str, url: str, payload: dict[str, Any] | None = None) -> Any:
        headers = {"Content-Type": "application/json"}
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"
        req = urllib_request.Request(
            url=url,
            data=json.dumps(payload).encode("utf-8") if payload is not None else None,
            method=method,
            headers=headers,
        )
        try:
            with urllib_request.urlopen(req, timeout=self.timeout_seconds) as resp:
                raw = resp.read().decode("utf-8")
        except urllib_error.HTTPError as exc:
            self._set_reachable(True)
            detail = exc.read().decode("utf-8", errors="replace")
            raise RemoteStoreError(f"Remote store HTTP {exc.code}: {detail}", status=exc.code) from exc
        except (urllib_error.URLError, TimeoutError, ConnectionError) as exc:
            self._set_reachable(False)
            reason = getattr(exc, "reason", exc)
            raise RemoteStoreUnavailableError(f"Remote store request failed: {reason}") from exc

        self._set_reachable(True)
        if not raw.strip():
            return {}
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            raise RemoteStoreError("Remote store returned invalid JSON") from exc

    def _set_reachable(self, reachable: bool) -> None:
        with self._lock:
            changed = self._reachable != reachable
            self._reachable = reachable
        if changed:
            logger.info("chat_sync.remote_reachability reachable=%s", reachable)


class InMemoryRemoteStore:
    """Process-local remote store used in tests and when no project is configured."""

    def __init__(self) -> None:
        self.reachable = True
        self._conversations: dict[str, RemoteConversation] = {}
        self._messages: dict[str, dict[str, RemoteMessage]] = {}
        self._lock = Lock()

    def is_reachable(self) -> bool:
        return self.reachable

    def mark_reachable(self) -> None:
        self.reachable = True

    def create_conversation(self, conversation: RemoteConversation) -> bool:
        self._check_reachable()
        with self._lock:
            if conversation.remote_id in self._conversations:
                return False
            self._conversations[conversation.remote_id] = conversation
            return True

    def find_conversation(self, participant_key: str, topic_id: int | None) -> RemoteConversation | None:
        self._check_reachable()
        with self._lock:
            for conversation in self._conversations.values():
                if conversation.participant_key == participant_key and conversation.topic_id == topic_id:
                    return conversation
        return None

    def create_message(self, conversation_remote_id: str, message: RemoteMessage) -> bool:
        self._check_reachable()
        with self._lock:
            children = self._messages.setdefault(conversation_remote_id, {})
            if message.remote_id in children:
                return False
            children[message.remote_id] = message
            return True

    def list_messages(self, conversation_remote_id: str) -> list[RemoteMessage]:
        self._check_reachable()
        with self._lock:
            children = list(self._messages.get(conversation_remote_id, {}).values())
        return sorted(children, key=lambda message: message.created_at or _EPOCH)

    def patch_conversation(self, remote_id: str, fields: dict[str, Any]) -> None:
        self._check_reachable()
        with self._lock:
            current = self._conversations.get(remote_id)
            if current is None:
                raise RemoteStoreError(f"Conversation {remote_id} not found", status=404)
            self._conversations[remote_id] = _patched(current, fields)

    def patch_message(self, conversation_remote_id: str, remote_id: str, fields: dict[str, Any]) -> None:
        self._check_reachable()
        with self._lock:
            current = self._messages.get(conversation_remote_id, {}).get(remote_id)
            if current is None:
                raise RemoteStoreError(f"Message {remote_id} not found", status=404)
            self._messages[conversation_remote_id][remote_id] = _patched(current, fields)

    def get_conversation(self, remote_id: str) -> RemoteConversation | None:
        with self._lock:
            return self._conversations.get(remote_id)

    def _check_reachable(self) -> None:
        if not self.reachable:
            raise RemoteStoreUnavailableError("Remote store is offline")


def get_default_remote_store(settings: Settings) -> RemoteStore:
    """Return the configured REST client, or an in-process store when no project is set."""

    if settings.remote_project_id:
        return FirestoreRestClient(
            project_id=settings.remote_project_id,
            base_url=settings.remote_base_url,
            database=settings.remote_database,
            api_key=settings.remote_api_key,
            auth_token=settings.remote_auth_token,
            timeout_seconds=settings.remote_timeout_seconds,
            page_size=settings.list_page_size,
        )
    logger.warning("chat_sync.remote_not_configured using in-process remote store")
    return InMemoryRemoteStore()


def _messages_path(conversation_remote_id: str) -> str:
    return f"{CONVERSATIONS_COLLECTION}/{conversation_remote_id}/{MESSAGES_COLLECTION}"


def _filter_clause(field_path: str, value: Any) -> dict[str, Any]:
    if value is None:
        return {"unaryFilter": {"op": "IS_NULL", "field": {"fieldPath": field_path}}}
    return {
        "fieldFilter": {
            "field": {"fieldPath": field_path},
            "op": "EQUAL",
            "value": encode_value(value),
        }
    }


def _decode_document(model: type[RemoteConversation] | type[RemoteMessage], document: dict[str, Any]):
    try:
        values = decode_fields(document.get("fields"))
        values["remote_id"] = document_id(str(document["name"]))
        return model.model_validate(values)
    except (AttributeError, KeyError, TypeError, ValueError, DocumentCodecError, ValidationError) as exc:
        raise RemoteStoreError(f"Remote document could not be decoded: {document.get('name')}") from exc


def _patched(current, fields: dict[str, Any]):
    values = current.model_dump(by_alias=True)
    values.update(fields)
    values["remote_id"] = current.remote_id
    return type(current).model_validate(values)
