"""Router factory for logistik-sync."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI

from logistik_sync.exceptions import register_exception_handlers
from logistik_sync.orchestrator import SyncOrchestrator
from logistik_sync.photos import PhotoPipeline
from logistik_sync.protocols import OccurrenceStore
from logistik_sync.routes.occurrences import router as occurrences_router
from logistik_sync.routes.photos import router as photos_router
from logistik_sync.routes.roteiros import router as roteiros_router
from logistik_sync.routes.sync import router as sync_router


def create_sync_router(
    *,
    orchestrator: SyncOrchestrator,
    store: OccurrenceStore,
    photos: PhotoPipeline | None = None,
) -> APIRouter:
    """Create the API router the courier UI talks to."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
        app.state.logistik_orchestrator = orchestrator
        app.state.logistik_store = store
        app.state.logistik_photos = photos
        register_exception_handlers(app)
        if orchestrator.config.background_sync_enabled:
            orchestrator.start_background_sync()
        try:
            yield
        finally:
            await orchestrator.stop_background_sync()

    router = APIRouter(lifespan=lifespan)
    router.include_router(occurrences_router)
    router.include_router(photos_router)
    router.include_router(sync_router)
    router.include_router(roteiros_router)
    return router
