"""Sync engine configuration."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from logistik_sync.schemas import OccurrenceType


class LogistikSyncConfig(BaseSettings):
    """Runtime config for the offline sync engine."""

    model_config = SettingsConfigDict(env_prefix="LOGISTIK_")

    api_base_url: str = "https://logistik-production.up.railway.app"
    occurrences_endpoint: str = "/api/"
    routes_endpoint: str = "/api/roteiros/"
    photo_upload_endpoint: str = "/api/occurrence/upload-photo/"
    health_endpoint: str = "/health/"

    request_timeout_seconds: float = 30.0
    probe_timeout_seconds: float = 5.0

    sync_pause_seconds: float = 0.2
    background_sync_interval_seconds: float = 300.0
    background_sync_enabled: bool = True
    verify_connection_before_manual_sync: bool = True

    storage_open_attempts: int = Field(default=3, ge=1)
    storage_retry_attempts: int = Field(default=3, ge=1)
    storage_retry_delay: float = 0.1

    photo_quality: float = 0.7
    photo_max_width: int = 1280
    photo_max_height: int = 1280

    gps_timeout_seconds: float = 5.0

    enabled_occurrence_types: list[OccurrenceType] = Field(
        default_factory=lambda: list(OccurrenceType)
    )

    database_url: str = "sqlite+aiosqlite:///./logistik.db"
