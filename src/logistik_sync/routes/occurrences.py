"""Occurrence endpoints."""

from __future__ import annotations

from enum import StrEnum

from fastapi import APIRouter, Depends, Response, status

from logistik_sync.dependencies import get_orchestrator, get_store
from logistik_sync.exceptions import OccurrenceNotFoundError
from logistik_sync.orchestrator import SyncOrchestrator
from logistik_sync.protocols import OccurrenceStore
from logistik_sync.schemas import Occurrence, OccurrenceCreate, SaveResult

router = APIRouter()


class ListScope(StrEnum):
    ACTIVE = "active"
    UNSYNCED = "unsynced"


@router.post(
    "/occurrences",
    response_model=SaveResult,
    status_code=status.HTTP_201_CREATED,
)
async def create_occurrence(
    body: OccurrenceCreate,
    response: Response,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> SaveResult:
    """Save locally first, then try to sync right away."""
    result = await orchestrator.save_occurrence(body)
    if not result.success:
        response.status_code = status.HTTP_400_BAD_REQUEST
    return result


@router.get("/occurrences", response_model=list[Occurrence])
async def list_occurrences(
    scope: ListScope = ListScope.ACTIVE,
    route_id: int | None = None,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
    store: OccurrenceStore = Depends(get_store),
) -> list[Occurrence]:
    """List occurrences with their observed sync status."""
    if scope is ListScope.UNSYNCED:
        records = await store.list_unsynced(route_id)
    elif route_id is not None:
        records = await store.list_route_occurrences(route_id)
    else:
        records = await store.list_active_route_occurrences()
    return [
        record.model_copy(
            update={"sync_status": orchestrator.observed_status(record)}
        )
        for record in records
    ]


@router.delete(
    "/occurrences/{occurrence_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_occurrence(
    occurrence_id: int,
    store: OccurrenceStore = Depends(get_store),
) -> Response:
    if not await store.delete_occurrence(occurrence_id):
        raise OccurrenceNotFoundError(occurrence_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
