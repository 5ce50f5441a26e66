"""FastAPI application entrypoint for the host UI process."""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from chat_sync.config import get_settings
from chat_sync.routers import conversations, messages, sync
from chat_sync.services.engine import ChatSyncEngine, build_engine
from chat_sync.services.local_store import LocalStoreError

logger = logging.getLogger(__name__)


def _startup_reconcile(engine: ChatSyncEngine) -> None:
    """Queue a sweep of anything left unsynced by a previous run."""

    try:
        if engine.schedule_reconcile() is None:
            logger.warning("chat_sync.startup_reconcile_skipped reason=shutdown")
    except Exception:
        logger.exception("Startup reconciliation failed; continuing without it.")


def create_app(engine: ChatSyncEngine | None = None) -> FastAPI:
    """Build the app; an injected engine is used as-is and not shut down on exit."""

    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = engine is None
        active = engine or build_engine(settings)
        app.state.engine = active
        _startup_reconcile(active)
        try:
            yield
        finally:
            if owned:
                active.shutdown()

    app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(LocalStoreError)
    async def local_store_error(_: Request, exc: LocalStoreError) -> JSONResponse:
        return JSONResponse(status_code=500, content={"detail": str(exc)})

    app.include_router(conversations.router, tags=["conversations"])
    app.include_router(messages.router, tags=["messages"])
    app.include_router(sync.router, tags=["sync"])

    @app.get("/health")
    def health() -> dict[str, str]:
        """Simple health check endpoint."""

        return {"status": "ok"}

    return app


app = create_app()
