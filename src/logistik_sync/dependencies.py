"""Dependency providers for request handlers."""

from __future__ import annotations

from fastapi import Request

from logistik_sync.orchestrator import SyncOrchestrator
from logistik_sync.photos import PhotoPipeline
from logistik_sync.protocols import OccurrenceStore


def get_orchestrator(request: Request) -> SyncOrchestrator:
    """Read sync orchestrator from FastAPI app state."""
    return request.app.state.logistik_orchestrator


def get_store(request: Request) -> OccurrenceStore:
    """Read local store from FastAPI app state."""
    return request.app.state.logistik_store


def get_photo_pipeline(request: Request) -> PhotoPipeline | None:
    """Read photo pipeline from FastAPI app state."""
    return getattr(request.app.state, "logistik_photos", None)
