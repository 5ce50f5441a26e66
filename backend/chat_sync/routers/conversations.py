"""Conversation resolution and listing routes."""

from fastapi import APIRouter, Depends, HTTPException, Path

from chat_sync.db.dependencies import get_engine
from chat_sync.schemas.common import ApiResponse
from chat_sync.schemas.conversation import (
    ConversationRead,
    ConversationResolveRequest,
    ListenerRequest,
    MarkReadRequest,
)
from chat_sync.schemas.message import MessageRead
from chat_sync.services.conversations import ConversationNotFoundError
from chat_sync.services.engine import ChatSyncEngine

router = APIRouter()


@router.post("/conversations/resolve", response_model=ApiResponse[ConversationRead])
def resolve_conversation(
    payload: ConversationResolveRequest,
    engine: ChatSyncEngine = Depends(get_engine),
) -> ApiResponse[ConversationRead]:
    """Find or create the conversation between two users, optionally for one topic."""

    try:
        conversation = engine.resolve_conversation(payload.current_user_id, payload.other_user_id, payload.topic_id)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return ApiResponse(data=conversation)


@router.get("/users/{user_id}/conversations", response_model=ApiResponse[list[ConversationRead]])
def get_user_conversations(
    user_id: int = Path(...),
    engine: ChatSyncEngine = Depends(get_engine),
) -> ApiResponse[list[ConversationRead]]:
    """List a user's conversations, most recent activity first."""

    return ApiResponse(data=engine.list_conversations(user_id))


@router.post("/conversations/{conversation_id}/read", response_model=ApiResponse[list[MessageRead]])
def mark_conversation_read(
    payload: MarkReadRequest,
    conversation_id: int = Path(...),
    engine: ChatSyncEngine = Depends(get_engine),
) -> ApiResponse[list[MessageRead]]:
    """Mark the other party's messages as read."""

    try:
        updated = engine.mark_read(conversation_id, payload.reader_id)
    except ConversationNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return ApiResponse(data=updated)


@router.post("/conversations/{conversation_id}/listener", response_model=ApiResponse[dict[str, bool]])
def start_listener(
    payload: ListenerRequest,
    conversation_id: int = Path(...),
    engine: ChatSyncEngine = Depends(get_engine),
) -> ApiResponse[dict[str, bool]]:
    """Start polling the conversation for new messages."""

    try:
        started = engine.start_listening(conversation_id, payload.current_user_id)
    except ConversationNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return ApiResponse(data={"polling": started})


@router.delete("/conversations/{conversation_id}/listener", response_model=ApiResponse[dict[str, bool]])
def stop_listener(
    conversation_id: int = Path(...),
    engine: ChatSyncEngine = Depends(get_engine),
) -> ApiResponse[dict[str, bool]]:
    """Stop polling; safe when no listener is active."""

    engine.stop_listening(conversation_id)
    return ApiResponse(data={"polling": False})
