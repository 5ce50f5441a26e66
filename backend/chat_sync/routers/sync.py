"""Reconciliation trigger routes."""

from fastapi import APIRouter, Depends

from chat_sync.db.dependencies import get_engine
from chat_sync.schemas.common import ApiResponse
from chat_sync.schemas.conversation import ReconciliationReport
from chat_sync.services.engine import ChatSyncEngine

router = APIRouter(prefix="/sync")


@router.post("/reconcile", response_model=ApiResponse[ReconciliationReport])
def reconcile(engine: ChatSyncEngine = Depends(get_engine)) -> ApiResponse[ReconciliationReport]:
    """Connectivity restored: mark the remote reachable and retry everything unsynced."""

    engine.remote.mark_reachable()
    return ApiResponse(data=engine.reconcile())
