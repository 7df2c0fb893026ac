"""SQLAlchemy local store implementation."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from sqlalchemy import delete, func, select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from logistik_sync.config import LogistikSyncConfig
from logistik_sync.context import RouteContext
from logistik_sync.contrib.sqlalchemy.migrations import migrate
from logistik_sync.contrib.sqlalchemy.models import OccurrenceModel, RouteModel
from logistik_sync.exceptions import (
    DataIntegrityWarning,
    RouteAlreadyFinalizedError,
    RouteNotFoundError,
    StorageUnavailableError,
)
from logistik_sync.photos import PhotoRefKind, classify_photo_ref
from logistik_sync.retry import run_with_storage_retry
from logistik_sync.schemas import (
    Occurrence,
    OccurrenceCreate,
    Route,
    RouteStatus,
    SyncStatus,
    utcnow,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SQLAlchemyLocalStore:
    """Occurrence/route store backed by SQLAlchemy async sessions.

    The store opens lazily: the first operation runs the additive
    migration, retrying a bounded number of times. When the database
    cannot be opened, reads degrade to empty results and writes raise
    StorageUnavailableError.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        context: RouteContext,
        config: LogistikSyncConfig | None = None,
    ) -> None:
        self.engine = engine
        self.session_factory = async_sessionmaker(
            engine, class_=AsyncSession, expire_on_commit=False
        )
        self.context = context
        self.config = config or LogistikSyncConfig()
        self.schema_version: int | None = None
        self.degraded = False
        self._opened = False
        self._open_lock = asyncio.Lock()
        self._record_locks: dict[int, asyncio.Lock] = {}

    @classmethod
    def from_config(
        cls, config: LogistikSyncConfig, context: RouteContext
    ) -> SQLAlchemyLocalStore:
        engine = create_async_engine(config.database_url, echo=False)
        return cls(engine, context, config)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """Open the store and apply pending schema migrations."""
        if self._opened:
            return
        async with self._open_lock:
            if self._opened:
                return
            attempts = max(1, self.config.storage_open_attempts)
            last_error: Exception | None = None
            for attempt in range(1, attempts + 1):
                try:
                    async with self.engine.begin() as conn:
                        self.schema_version = await conn.run_sync(migrate)
                except (DBAPIError, OSError) as exc:
                    last_error = exc
                    logger.warning(
                        "Opening local store failed (attempt %d/%d): %s",
                        attempt,
                        attempts,
                        exc,
                    )
                else:
                    self._opened = True
                    self.degraded = False
                    return
                if attempt < attempts:
                    await asyncio.sleep(self.config.storage_retry_delay)

            self.degraded = True
            raise StorageUnavailableError(
                f"Local store could not be opened: {last_error}"
            ) from last_error

    async def close(self) -> None:
        await self.engine.dispose()
        self._opened = False

    def _lock_for(self, occurrence_id: int) -> asyncio.Lock:
        return self._record_locks.setdefault(occurrence_id, asyncio.Lock())

    async def _write(
        self, description: str, operation: Callable[[], Awaitable[T]]
    ) -> T:
        await self.open()
        return await run_with_storage_retry(
            operation,
            attempts=self.config.storage_retry_attempts,
            delay=self.config.storage_retry_delay,
            description=description,
        )

    async def _read(
        self,
        description: str,
        operation: Callable[[], Awaitable[T]],
        default: T,
    ) -> T:
        try:
            return await self._write(description, operation)
        except StorageUnavailableError as exc:
            logger.warning(
                "%s: local store unavailable, returning empty result: %s",
                description,
                exc,
            )
            return default

    async def _select_occurrences(self, *criteria: Any) -> list[Occurrence]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(OccurrenceModel)
                .where(*criteria)
                .order_by(OccurrenceModel.id)
            )
            return [
                Occurrence.model_validate(row)
                for row in result.scalars().all()
            ]

    # ------------------------------------------------------------------
    # Occurrences
    # ------------------------------------------------------------------

    async def add_occurrence(
        self, data: OccurrenceCreate | dict[str, Any]
    ) -> int:
        """Store a new occurrence as pending and return its local id."""
        if not isinstance(data, OccurrenceCreate):
            data = OccurrenceCreate.model_validate(data)
        route_id = (
            data.route_id
            if data.route_id is not None
            else self.context.active_route_id
        )

        async def _insert() -> int:
            row = OccurrenceModel(
                scanned_code=data.scanned_code.strip(),
                occurrence_type=data.occurrence_type.value,
                receiver_name=data.receiver_name,
                receiver_document=data.receiver_document,
                photos=list(data.photos),
                timestamp=data.timestamp,
                sync_status=SyncStatus.PENDING.value,
                route_id=route_id,
                latitude=data.latitude,
                longitude=data.longitude,
                vehicle_plate=data.vehicle_plate,
                vehicle_km=data.vehicle_km,
                submission_id=data.submission_id,
            )
            async with self.session_factory() as session:
                session.add(row)
                await session.commit()
                return row.id

        occurrence_id = await self._write("add occurrence", _insert)
        logger.info(
            "Occurrence %s stored locally (route %s)", occurrence_id, route_id
        )
        return occurrence_id

    async def get_occurrence(self, occurrence_id: int) -> Occurrence | None:
        async def _get() -> Occurrence | None:
            async with self.session_factory() as session:
                row = await session.get(OccurrenceModel, occurrence_id)
                return Occurrence.model_validate(row) if row else None

        return await self._read("get occurrence", _get, None)

    async def update_sync_state(
        self, occurrence_id: int, synced: bool
    ) -> None:
        """Flip the sync flag. Missing records are logged, never raised."""
        target = SyncStatus.SYNCED if synced else SyncStatus.PENDING

        async def _update() -> None:
            async with self.session_factory() as session:
                row = await session.get(OccurrenceModel, occurrence_id)
                if row is None:
                    logger.info(
                        "Sync state update for missing occurrence %s ignored",
                        occurrence_id,
                    )
                    return
                if row.sync_status == target.value:
                    return
                row.sync_status = target.value
                await session.commit()

        async with self._lock_for(occurrence_id):
            await self._write("update sync state", _update)

    async def attach_to_route(
        self,
        occurrence_id: int,
        route_id: int,
        synced: bool | None = None,
    ) -> bool:
        """Back-fill the owning route of an occurrence.

        An existing, different route binding is never overwritten:
        DataIntegrityWarning is raised and the original is kept.
        """

        async def _attach() -> bool:
            async with self.session_factory() as session:
                row = await session.get(OccurrenceModel, occurrence_id)
                if row is None:
                    logger.info(
                        "Route attach for missing occurrence %s ignored",
                        occurrence_id,
                    )
                    return False
                if row.route_id is not None and row.route_id != route_id:
                    logger.warning(
                        "Occurrence %s already belongs to route %s, "
                        "refusing to attach it to route %s",
                        occurrence_id,
                        row.route_id,
                        route_id,
                    )
                    raise DataIntegrityWarning(
                        f"Occurrence {occurrence_id} already belongs to "
                        f"route {row.route_id}"
                    )
                row.route_id = route_id
                if synced is not None:
                    row.sync_status = (
                        SyncStatus.SYNCED if synced else SyncStatus.PENDING
                    ).value
                await session.commit()
                return True

        async with self._lock_for(occurrence_id):
            return await self._write("attach occurrence to route", _attach)

    async def update_photos(
        self, occurrence_id: int, photos: list[str]
    ) -> None:
        """Replace pending photo blobs with their resolved references.

        Remote URLs already stored must survive unchanged.
        """

        async def _update() -> None:
            async with self.session_factory() as session:
                row = await session.get(OccurrenceModel, occurrence_id)
                if row is None:
                    logger.info(
                        "Photo update for missing occurrence %s ignored",
                        occurrence_id,
                    )
                    return
                current = list(row.photos or [])
                lost = [
                    ref
                    for ref in current
                    if classify_photo_ref(ref) is PhotoRefKind.REMOTE
                    and ref not in photos
                ]
                if lost:
                    logger.warning(
                        "Refusing to drop resolved photos %s of occurrence %s",
                        lost,
                        occurrence_id,
                    )
                    raise DataIntegrityWarning(
                        f"Resolved photos of occurrence {occurrence_id} "
                        "are immutable"
                    )
                if current == photos:
                    return
                row.photos = list(photos)
                await session.commit()

        async with self._lock_for(occurrence_id):
            await self._write("update photos", _update)

    async def list_unsynced(
        self, route_id: int | None = None
    ) -> list[Occurrence]:
        """Pending occurrences in creation order, optionally for one route."""
        criteria = [OccurrenceModel.sync_status == SyncStatus.PENDING.value]
        if route_id is not None:
            criteria.append(OccurrenceModel.route_id == route_id)
        return await self._read(
            "list unsynced",
            lambda: self._select_occurrences(*criteria),
            [],
        )

    async def list_route_occurrences(self, route_id: int) -> list[Occurrence]:
        return await self._read(
            "list route occurrences",
            lambda: self._select_occurrences(
                OccurrenceModel.route_id == route_id
            ),
            [],
        )

    async def list_active_route_occurrences(self) -> list[Occurrence]:
        route_id = self.context.active_route_id
        if route_id is None:
            return []
        return await self.list_route_occurrences(route_id)

    async def list_orphan_occurrences(self) -> list[Occurrence]:
        """Occurrences stored before any route was known."""
        return await self._read(
            "list orphan occurrences",
            lambda: self._select_occurrences(
                OccurrenceModel.route_id.is_(None)
            ),
            [],
        )

    async def count_unsynced(self, route_id: int | None = None) -> int:
        async def _count() -> int:
            stmt = (
                select(func.count())
                .select_from(OccurrenceModel)
                .where(
                    OccurrenceModel.sync_status == SyncStatus.PENDING.value
                )
            )
            if route_id is not None:
                stmt = stmt.where(OccurrenceModel.route_id == route_id)
            async with self.session_factory() as session:
                return (await session.execute(stmt)).scalar_one()

        return await self._read("count unsynced", _count, 0)

    async def delete_occurrence(self, occurrence_id: int) -> bool:
        async def _delete() -> bool:
            async with self.session_factory() as session:
                row = await session.get(OccurrenceModel, occurrence_id)
                if row is None:
                    return False
                await session.delete(row)
                await session.commit()
                return True

        async with self._lock_for(occurrence_id):
            deleted = await self._write("delete occurrence", _delete)
        if deleted:
            logger.info("Occurrence %s deleted", occurrence_id)
        return deleted

    async def purge_route_occurrences(self, route_id: int) -> int:
        """Bulk-delete every occurrence owned by a route."""

        async def _purge() -> int:
            async with self.session_factory() as session:
                result = await session.execute(
                    delete(OccurrenceModel).where(
                        OccurrenceModel.route_id == route_id
                    )
                )
                await session.commit()
                return result.rowcount or 0

        purged = await self._write("purge route occurrences", _purge)
        logger.info("Purged %d occurrences of route %s", purged, route_id)
        return purged

    # ------------------------------------------------------------------
    # Routes
    # ------------------------------------------------------------------

    async def add_route(self, route: Route) -> Route:
        async def _insert() -> Route:
            row = RouteModel(
                id=route.id,
                vehicle_plate=route.vehicle_plate,
                start_km=route.start_km,
                start_date=route.start_date,
                end_date=route.end_date,
                total_occurrences=route.total_occurrences,
                synced_occurrences=route.synced_occurrences,
                status=route.status.value,
            )
            async with self.session_factory() as session:
                session.add(row)
                await session.commit()
                return Route.model_validate(row)

        return await self._write("add route", _insert)

    async def get_route(self, route_id: int) -> Route | None:
        async def _get() -> Route | None:
            async with self.session_factory() as session:
                row = await session.get(RouteModel, route_id)
                return Route.model_validate(row) if row else None

        return await self._read("get route", _get, None)

    async def list_routes(self) -> list[Route]:
        async def _list() -> list[Route]:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(RouteModel).order_by(RouteModel.start_date.desc())
                )
                return [
                    Route.model_validate(row)
                    for row in result.scalars().all()
                ]

        return await self._read("list routes", _list, [])

    async def finalize_route(self, route_id: int) -> Route:
        """Archive a route, snapshotting its occurrence counts."""

        async def _finalize() -> Route:
            async with self.session_factory() as session:
                row = await session.get(RouteModel, route_id)
                if row is None:
                    raise RouteNotFoundError(route_id)
                if row.status == RouteStatus.FINALIZED.value:
                    raise RouteAlreadyFinalizedError(route_id)

                count_stmt = (
                    select(func.count())
                    .select_from(OccurrenceModel)
                    .where(OccurrenceModel.route_id == route_id)
                )
                total = (await session.execute(count_stmt)).scalar_one()
                synced = (
                    await session.execute(
                        count_stmt.where(
                            OccurrenceModel.sync_status
                            == SyncStatus.SYNCED.value
                        )
                    )
                ).scalar_one()

                row.end_date = utcnow()
                row.total_occurrences = total
                row.synced_occurrences = synced
                row.status = RouteStatus.FINALIZED.value
                await session.commit()
                return Route.model_validate(row)

        route = await self._write("finalize route", _finalize)
        if self.context.active_route_id == route_id:
            self.context.clear_active_route()
        logger.info(
            "Route %s finalized: %d/%d occurrences synced",
            route_id,
            route.synced_occurrences,
            route.total_occurrences,
        )
        return route
