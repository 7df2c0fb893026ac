"""Sync orchestrator: decides what to sync and reports aggregate results."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

from logistik_sync.config import LogistikSyncConfig
from logistik_sync.connectivity import ConnectivityMonitor
from logistik_sync.context import RouteContext
from logistik_sync.exceptions import (
    DataIntegrityWarning,
    InvalidOccurrenceError,
    RouteAlreadyActiveError,
    RouteNotFoundError,
    StorageError,
)
from logistik_sync.location import Locator, acquire_position
from logistik_sync.protocols import OccurrenceStore, RemoteClient
from logistik_sync.schemas import (
    BatchSyncResult,
    Occurrence,
    OccurrenceCreate,
    Route,
    RouteCreate,
    RouteResult,
    RouteStatus,
    SaveResult,
    SyncOutcome,
    SyncResult,
    SyncScope,
    SyncStatus,
    SyncStatusSnapshot,
    SyncSummary,
    SyncTrigger,
    utcnow,
)

logger = logging.getLogger(__name__)

StatusListener = Callable[[SyncStatusSnapshot], Any]


def summarize(
    trigger: SyncTrigger, results: list[SyncResult]
) -> SyncSummary:
    """Build the aggregate summary shown to the courier."""
    successes = sum(1 for r in results if r.delivered)
    failures = len(results) - successes

    if not results:
        outcome = SyncOutcome.NOTHING_TO_SYNC
        message = "Everything is already synced"
    elif failures == 0:
        outcome = SyncOutcome.COMPLETE
        message = f"{successes} synced"
    elif successes == 0:
        outcome = SyncOutcome.FAILED
        message = "Sync failed, check connection"
    else:
        outcome = SyncOutcome.PARTIAL
        message = f"{successes} synced, {failures} will retry"

    return SyncSummary(
        outcome=outcome,
        trigger=trigger,
        success_count=successes,
        failure_count=failures,
        message=message,
        results=results,
    )


class SyncOrchestrator:
    """Runs sync passes over the local store.

    Holds no durable state: the ``syncing`` id set and the last sync time
    live in memory only. At most one pass runs at a time; overlapping
    triggers return ``ALREADY_RUNNING`` instead of waiting.
    """

    def __init__(
        self,
        store: OccurrenceStore,
        client: RemoteClient,
        monitor: ConnectivityMonitor,
        context: RouteContext,
        config: LogistikSyncConfig | None = None,
        locator: Locator | None = None,
    ) -> None:
        self.store = store
        self.client = client
        self.monitor = monitor
        self.context = context
        self.config = config or LogistikSyncConfig()
        self.locator = locator
        self.last_sync_time: datetime | None = None
        self._syncing_ids: set[int] = set()
        self._pass_lock = asyncio.Lock()
        self._listeners: list[StatusListener] = []
        self._background_task: asyncio.Task[None] | None = None
        self.monitor.add_listener(self._on_connectivity_change)

    # ------------------------------------------------------------------
    # Status and listeners
    # ------------------------------------------------------------------

    @property
    def is_syncing(self) -> bool:
        return self._pass_lock.locked()

    @property
    def syncing_ids(self) -> frozenset[int]:
        return frozenset(self._syncing_ids)

    def observed_status(self, record: Occurrence) -> SyncStatus:
        if record.id in self._syncing_ids:
            return SyncStatus.SYNCING
        return record.sync_status

    async def status(self) -> SyncStatusSnapshot:
        return SyncStatusSnapshot(
            is_syncing=self.is_syncing,
            pending_count=await self.store.count_unsynced(),
            last_sync_time=self.last_sync_time,
            syncing_ids=sorted(self._syncing_ids),
        )

    async def add_listener(self, listener: StatusListener) -> None:
        """Subscribe to status changes; the listener is called right away."""
        if listener not in self._listeners:
            self._listeners.append(listener)
        self._call_listener(listener, await self.status())

    def remove_listener(self, listener: StatusListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _call_listener(
        self, listener: StatusListener, snapshot: SyncStatusSnapshot
    ) -> None:
        try:
            listener(snapshot)
        except Exception:
            logger.exception("Sync status listener %r failed", listener)

    async def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = await self.status()
        for listener in list(self._listeners):
            self._call_listener(listener, snapshot)

    # ------------------------------------------------------------------
    # Sync passes
    # ------------------------------------------------------------------

    async def sync_pending(
        self,
        scope: SyncScope = SyncScope.ALL,
        trigger: SyncTrigger = SyncTrigger.MANUAL,
    ) -> SyncSummary:
        """Run one pass over every unsynced record in ``scope``."""
        if scope is SyncScope.ACTIVE_ROUTE:
            route_id = self.context.active_route_id
            if route_id is None:
                return summarize(trigger, [])

            async def _fetch() -> list[Occurrence]:
                return await self.store.list_unsynced(route_id)
        else:

            async def _fetch() -> list[Occurrence]:
                return await self.store.list_unsynced()

        return await self._run_pass(trigger, _fetch)

    async def _run_pass(
        self,
        trigger: SyncTrigger,
        fetch: Callable[[], Awaitable[list[Occurrence]]],
    ) -> SyncSummary:
        if self._pass_lock.locked():
            logger.info("Sync already running, %s trigger skipped", trigger)
            return SyncSummary(
                outcome=SyncOutcome.ALREADY_RUNNING,
                trigger=trigger,
                message="Sync already in progress",
            )

        async with self._pass_lock:
            if not self.monitor.is_online:
                return SyncSummary(
                    outcome=SyncOutcome.OFFLINE,
                    trigger=trigger,
                    message="No connection, records will sync later",
                )
            if (
                trigger is SyncTrigger.MANUAL
                and self.config.verify_connection_before_manual_sync
                and not await self.client.check_connection()
            ):
                return SyncSummary(
                    outcome=SyncOutcome.FAILED,
                    trigger=trigger,
                    message="Sync failed, check connection",
                )

            records = [r for r in await fetch() if r.needs_sync]
            if not records:
                self.last_sync_time = utcnow()
                return summarize(trigger, [])

            self._syncing_ids.update(r.id for r in records)
            await self._notify()
            try:
                batch = await self._send(records)
                for record, result in zip(records, batch.results):
                    await self._apply_result(record, result)
            finally:
                self._syncing_ids.difference_update(r.id for r in records)

            self.last_sync_time = utcnow()
            summary = summarize(trigger, batch.results)

        logger.info("Sync pass (%s): %s", trigger, summary.message)
        await self._notify()
        return summary

    async def _send(self, records: list[Occurrence]) -> BatchSyncResult:
        try:
            return await self.client.sync_multiple(records)
        except Exception as exc:
            logger.exception("Sync pass aborted by the client")
            return BatchSyncResult(
                failure_count=len(records),
                results=[
                    SyncResult(
                        local_id=r.id,
                        success=False,
                        error=str(exc) or exc.__class__.__name__,
                    )
                    for r in records
                ],
            )

    async def _apply_result(
        self, record: Occurrence, result: SyncResult
    ) -> None:
        try:
            photos = result.photo_urls
            if photos is not None and photos != record.photos:
                await self.store.update_photos(record.id, photos)
            if result.delivered:
                await self.store.update_sync_state(record.id, True)
        except (StorageError, DataIntegrityWarning) as exc:
            # The record stays pending and is retried on the next pass.
            logger.error(
                "Could not record sync result for occurrence %s: %s",
                record.id,
                exc,
            )

    # ------------------------------------------------------------------
    # Occurrence creation
    # ------------------------------------------------------------------

    async def save_occurrence(
        self, data: OccurrenceCreate | dict[str, Any]
    ) -> SaveResult:
        """Store an occurrence locally, then try to send it right away."""
        try:
            if not isinstance(data, OccurrenceCreate):
                data = OccurrenceCreate.model_validate(data)
            enabled = self.config.enabled_occurrence_types
            if data.occurrence_type not in enabled:
                raise InvalidOccurrenceError(
                    f"Occurrence type {data.occurrence_type} is not enabled"
                )
            has_fix = bool(data.latitude or data.longitude)
            if self.locator is not None and not has_fix:
                point = await acquire_position(
                    self.locator, self.config.gps_timeout_seconds
                )
                data = data.model_copy(
                    update={
                        "latitude": point.latitude,
                        "longitude": point.longitude,
                    }
                )
            occurrence_id = await self.store.add_occurrence(data)
        except (StorageError, InvalidOccurrenceError, ValueError) as exc:
            logger.error("Occurrence not saved: %s", exc)
            return SaveResult(success=False, message=str(exc))

        if not self.monitor.is_online:
            await self._notify()
            return SaveResult(
                success=True,
                id=occurrence_id,
                message="Saved locally (offline)",
            )

        async def _fetch() -> list[Occurrence]:
            record = await self.store.get_occurrence(occurrence_id)
            return [record] if record is not None else []

        summary = await self._run_pass(SyncTrigger.IMMEDIATE, _fetch)
        if summary.outcome is SyncOutcome.COMPLETE:
            return SaveResult(
                success=True,
                id=occurrence_id,
                synced=True,
                message="Saved and synced",
            )
        if summary.outcome is SyncOutcome.ALREADY_RUNNING:
            await self._notify()
        return SaveResult(
            success=True,
            id=occurrence_id,
            message="Saved locally (sync pending)",
        )

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    async def _on_connectivity_change(self, online: bool) -> None:
        if not online:
            await self._notify()
            return
        logger.info("Connection restored, syncing pending occurrences")
        await self.sync_pending(trigger=SyncTrigger.RECONNECT)

    async def _background_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            if not self.monitor.is_online:
                continue
            try:
                await self.sync_pending(trigger=SyncTrigger.BACKGROUND)
            except Exception:
                logger.exception("Background sync pass failed")

    def start_background_sync(self, interval: float | None = None) -> None:
        if self._background_task is not None:
            return
        interval = interval or self.config.background_sync_interval_seconds
        self._background_task = asyncio.create_task(
            self._background_loop(interval), name="logistik-background-sync"
        )
        logger.info("Background sync started (interval=%.0fs)", interval)

    async def stop_background_sync(self) -> None:
        if self._background_task is None:
            return
        self._background_task.cancel()
        try:
            await self._background_task
        except asyncio.CancelledError:
            pass
        self._background_task = None

    async def close(self) -> None:
        await self.stop_background_sync()
        self.monitor.remove_listener(self._on_connectivity_change)
        self._listeners.clear()

    # ------------------------------------------------------------------
    # Route lifecycle
    # ------------------------------------------------------------------

    async def start_route(self, data: RouteCreate) -> RouteResult:
        """Create a route on the backend and make it the active one.

        Occurrences stored before any route was known are attached to it.
        Refused while another route is still active.
        """
        active_id = self.context.active_route_id
        if active_id is not None:
            active = await self.store.get_route(active_id)
            if active is not None and active.status is RouteStatus.ACTIVE:
                raise RouteAlreadyActiveError(active_id)
            logger.warning("Clearing stale active route %s", active_id)
            self.context.clear_active_route()

        result = await self.client.create_route(data)
        if not result.success or result.remote_id is None:
            return result

        route = Route(
            id=result.remote_id,
            vehicle_plate=data.vehicle_plate,
            start_km=data.start_km,
            start_date=data.start_date,
        )
        await self.store.add_route(route)
        self.context.set_active_route(route.id)

        for orphan in await self.store.list_orphan_occurrences():
            try:
                await self.store.attach_to_route(orphan.id, route.id)
            except DataIntegrityWarning as exc:
                logger.warning("Orphan %s not attached: %s", orphan.id, exc)
        await self._notify()
        return result

    async def finalize_active_route(self) -> Route:
        route_id = self.context.active_route_id
        if route_id is None:
            raise RouteNotFoundError(None)
        route = await self.store.finalize_route(route_id)
        await self._notify()
        return route

    async def discard_route(self, route_id: int) -> int:
        """Drop a route's occurrences from the device.

        An active route is finalized first so its counts are kept.
        """
        route = await self.store.get_route(route_id)
        if route is not None and route.status is RouteStatus.ACTIVE:
            await self.store.finalize_route(route_id)
        purged = await self.store.purge_route_occurrences(route_id)
        if self.context.active_route_id == route_id:
            self.context.clear_active_route()
        await self._notify()
        return purged
