"""Collaborator protocols for the sync engine."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Protocol, runtime_checkable

from logistik_sync.schemas import (
    BatchSyncResult,
    Occurrence,
    OccurrenceCreate,
    Route,
    RouteCreate,
    RouteResult,
    SyncResult,
)

ConnectivityListener = Callable[[bool], Awaitable[None] | None]


@runtime_checkable
class SessionState(Protocol):
    """Read-only view of the authentication collaborator."""

    def is_authenticated(self) -> bool: ...


@runtime_checkable
class PhotoUploader(Protocol):
    """Uploads an encoded image and returns its remote URL."""

    async def upload_photo(self, blob: bytes, filename: str) -> str: ...


@runtime_checkable
class OccurrenceStore(Protocol):
    """Local store contract consumed by the orchestrator."""

    async def add_occurrence(self, data: OccurrenceCreate) -> int: ...

    async def get_occurrence(
        self, occurrence_id: int
    ) -> Occurrence | None: ...

    async def update_sync_state(
        self, occurrence_id: int, synced: bool
    ) -> None: ...

    async def attach_to_route(
        self,
        occurrence_id: int,
        route_id: int,
        synced: bool | None = None,
    ) -> bool: ...

    async def update_photos(
        self, occurrence_id: int, photos: list[str]
    ) -> None: ...

    async def list_unsynced(
        self, route_id: int | None = None
    ) -> list[Occurrence]: ...

    async def list_route_occurrences(
        self, route_id: int
    ) -> list[Occurrence]: ...

    async def list_active_route_occurrences(self) -> list[Occurrence]: ...

    async def list_orphan_occurrences(self) -> list[Occurrence]: ...

    async def count_unsynced(self, route_id: int | None = None) -> int: ...

    async def delete_occurrence(self, occurrence_id: int) -> bool: ...

    async def purge_route_occurrences(self, route_id: int) -> int: ...

    async def add_route(self, route: Route) -> Route: ...

    async def get_route(self, route_id: int) -> Route | None: ...

    async def list_routes(self) -> list[Route]: ...

    async def finalize_route(self, route_id: int) -> Route: ...


@runtime_checkable
class RemoteClient(Protocol):
    """Backend contract consumed by the orchestrator."""

    async def sync_occurrence(self, record: Occurrence) -> SyncResult: ...

    async def sync_multiple(
        self, records: list[Occurrence]
    ) -> BatchSyncResult: ...

    async def create_route(self, data: RouteCreate) -> RouteResult: ...

    async def check_connection(self) -> bool: ...
