"""Message send and retrieval routes."""

from fastapi import APIRouter, Depends, HTTPException, Path, Query

from chat_sync.db.dependencies import get_engine
from chat_sync.schemas.common import ApiResponse
from chat_sync.schemas.message import MessageRead, MessageSendRequest
from chat_sync.services.conversations import ConversationNotFoundError
from chat_sync.services.engine import ChatSyncEngine

router = APIRouter(prefix="/conversations/{conversation_id}")


@router.post("/messages", response_model=ApiResponse[MessageRead], status_code=201)
def send_message(
    payload: MessageSendRequest,
    conversation_id: int = Path(...),
    engine: ChatSyncEngine = Depends(get_engine),
) -> ApiResponse[MessageRead]:
    """Store a message locally and deliver it in the background."""

    try:
        message = engine.send_message(
            conversation_id,
            payload.sender_id,
            payload.body,
            sender_name=payload.sender_name,
            message_type=payload.type,
        )
    except ConversationNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return ApiResponse(data=message)


@router.get("/messages", response_model=ApiResponse[list[MessageRead]])
def get_messages(
    conversation_id: int = Path(...),
    limit: int | None = Query(default=None, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    engine: ChatSyncEngine = Depends(get_engine),
) -> ApiResponse[list[MessageRead]]:
    """List messages for a conversation in send order."""

    try:
        records = engine.list_messages(conversation_id, limit=limit, offset=offset)
    except ConversationNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return ApiResponse(data=records)
