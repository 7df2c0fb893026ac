"""Manual sync endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from logistik_sync.dependencies import get_orchestrator
from logistik_sync.orchestrator import SyncOrchestrator
from logistik_sync.schemas import SyncScope, SyncStatusSnapshot, SyncSummary

router = APIRouter()


@router.post("/sync", response_model=SyncSummary)
async def sync_now(
    scope: SyncScope = SyncScope.ALL,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> SyncSummary:
    """Pull-to-refresh: push every pending occurrence."""
    return await orchestrator.sync_pending(scope=scope)


@router.get("/sync/status", response_model=SyncStatusSnapshot)
async def sync_status(
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> SyncStatusSnapshot:
    return await orchestrator.status()
