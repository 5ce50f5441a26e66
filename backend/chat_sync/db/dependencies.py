"""FastAPI dependencies."""

from fastapi import Request

from chat_sync.services.engine import ChatSyncEngine


def get_engine(request: Request) -> ChatSyncEngine:
    """Return the engine built by the application lifespan."""

    return request.app.state.engine
