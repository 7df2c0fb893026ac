"""Route (roteiro) lifecycle endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from logistik_sync.dependencies import get_orchestrator, get_store
from logistik_sync.exceptions import (
    AuthenticationRequiredError,
    RequiresConnectionError,
    RouteNotFoundError,
)
from logistik_sync.orchestrator import SyncOrchestrator
from logistik_sync.protocols import OccurrenceStore
from logistik_sync.schemas import ErrorKind, Route, RouteCreate, RouteDetail

router = APIRouter()


@router.post(
    "/routes",
    response_model=Route,
    status_code=status.HTTP_201_CREATED,
)
async def start_route(
    body: RouteCreate,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
    store: OccurrenceStore = Depends(get_store),
) -> Route:
    """Create a route on the backend and make it the active one."""
    result = await orchestrator.start_route(body)
    if result.error_kind is ErrorKind.REQUIRES_CONNECTION:
        raise RequiresConnectionError("Route creation")
    if result.error_kind is ErrorKind.AUTH_REQUIRED:
        raise AuthenticationRequiredError(result.error or "Session expired")
    if not result.success or result.remote_id is None:
        raise HTTPException(status_code=502, detail=result.error)

    route = await store.get_route(result.remote_id)
    if route is None:
        raise RouteNotFoundError(result.remote_id)
    return route


@router.get("/routes", response_model=list[Route])
async def list_routes(
    store: OccurrenceStore = Depends(get_store),
) -> list[Route]:
    """Route history, most recent first."""
    return await store.list_routes()


@router.post("/routes/active/finalize", response_model=Route)
async def finalize_active_route(
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> Route:
    return await orchestrator.finalize_active_route()


@router.get("/routes/{route_id}", response_model=RouteDetail)
async def get_route(
    route_id: int,
    store: OccurrenceStore = Depends(get_store),
) -> RouteDetail:
    """Route with every occurrence recorded on it."""
    route = await store.get_route(route_id)
    if route is None:
        raise RouteNotFoundError(route_id)
    occurrences = await store.list_route_occurrences(route_id)
    return RouteDetail(**route.model_dump(), occurrences=occurrences)
