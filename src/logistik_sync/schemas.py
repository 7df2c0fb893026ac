"""Value models shared by the store, client and orchestrator."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


def utcnow() -> datetime:
    return datetime.now(tz=UTC)


def as_utc(value: datetime | None) -> datetime | None:
    """Normalize to UTC; naive values (as read back from SQLite) are UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class OccurrenceType(StrEnum):
    """Occurrence kinds, valued as the backend expects them."""

    DELIVERED = "entregue"
    DAMAGED = "avaria"
    LOST = "extravio"
    RETURNED = "devolucao"
    REFUSED = "recusado"
    HOLIDAY = "feriado"
    OTHER = "outros"
    ICE_EXCHANGE = "troca_gelo"


class SyncStatus(StrEnum):
    """Per-record sync state.

    Only ``PENDING`` and ``SYNCED`` are persisted. ``SYNCING`` is observed
    from the orchestrator's in-memory set and is never authoritative.
    """

    PENDING = "pending"
    SYNCING = "syncing"
    SYNCED = "synced"


class RouteStatus(StrEnum):
    ACTIVE = "active"
    FINALIZED = "finalized"


class ErrorKind(StrEnum):
    NETWORK_TRANSPORT = "network_transport"
    REMOTE_REJECTED = "remote_rejected"
    AUTH_REQUIRED = "auth_required"
    REQUIRES_CONNECTION = "requires_connection"
    PHOTO_UPLOAD = "photo_upload"


class SyncScope(StrEnum):
    ALL = "all"
    ACTIVE_ROUTE = "active_route"


class SyncTrigger(StrEnum):
    IMMEDIATE = "immediate"
    RECONNECT = "reconnect"
    MANUAL = "manual"
    BACKGROUND = "background"


class SyncOutcome(StrEnum):
    NOTHING_TO_SYNC = "nothing_to_sync"
    COMPLETE = "complete"
    PARTIAL = "partial"
    FAILED = "failed"
    OFFLINE = "offline"
    ALREADY_RUNNING = "already_running"


class GeoPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    latitude: float = 0.0
    longitude: float = 0.0

    @property
    def is_null(self) -> bool:
        return self.latitude == 0.0 and self.longitude == 0.0


class OccurrenceCreate(BaseModel):
    """Data captured by the occurrence form."""

    scanned_code: str = Field(min_length=1)
    occurrence_type: OccurrenceType
    receiver_name: str | None = None
    receiver_document: str | None = None
    photos: list[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=utcnow)
    latitude: float = 0.0
    longitude: float = 0.0
    route_id: int | None = None
    vehicle_plate: str | None = None
    vehicle_km: int | None = None
    submission_id: str = Field(default_factory=lambda: str(uuid.uuid4()))

    @field_validator("timestamp")
    @classmethod
    def ensure_utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    @model_validator(mode="after")
    def check_fields(self) -> OccurrenceCreate:
        if not self.scanned_code.strip():
            raise ValueError("scanned_code must not be blank")
        if self.occurrence_type == OccurrenceType.DELIVERED:
            if not (self.receiver_name or "").strip():
                raise ValueError("receiver_name is required for deliveries")
            if not (self.receiver_document or "").strip():
                raise ValueError(
                    "receiver_document is required for deliveries"
                )
        return self


class Occurrence(BaseModel):
    """Stored occurrence snapshot."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    scanned_code: str
    occurrence_type: OccurrenceType
    receiver_name: str | None = None
    receiver_document: str | None = None
    photos: list[str] = Field(default_factory=list)
    timestamp: datetime
    latitude: float = 0.0
    longitude: float = 0.0
    route_id: int | None = None
    vehicle_plate: str | None = None
    vehicle_km: int | None = None
    submission_id: str | None = None
    sync_status: SyncStatus = SyncStatus.PENDING
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("timestamp", "created_at", "updated_at")
    @classmethod
    def ensure_utc(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)

    @field_validator("photos", mode="before")
    @classmethod
    def photos_or_empty(cls, value: list[str] | None) -> list[str]:
        return value or []

    @property
    def synced(self) -> bool:
        return self.sync_status == SyncStatus.SYNCED

    @property
    def needs_sync(self) -> bool:
        return self.sync_status != SyncStatus.SYNCED


class RouteCreate(BaseModel):
    vehicle_plate: str = Field(min_length=1)
    start_km: int = Field(ge=0)
    start_date: datetime = Field(default_factory=utcnow)

    @field_validator("start_date")
    @classmethod
    def ensure_utc(cls, value: datetime) -> datetime:
        return as_utc(value)


class Route(BaseModel):
    """Stored route snapshot."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    vehicle_plate: str
    start_km: int
    start_date: datetime
    end_date: datetime | None = None
    total_occurrences: int = 0
    synced_occurrences: int = 0
    status: RouteStatus = RouteStatus.ACTIVE

    @field_validator("start_date", "end_date")
    @classmethod
    def ensure_utc(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)


class RouteDetail(Route):
    """Route together with the occurrences recorded on it."""

    occurrences: list[Occurrence] = Field(default_factory=list)


class SyncResult(BaseModel):
    """Outcome of one occurrence sync attempt."""

    local_id: int | None = None
    success: bool
    remote_id: int | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None
    message: str | None = None
    deferred: bool = False
    photo_urls: list[str] | None = None

    @property
    def delivered(self) -> bool:
        """True only when the backend confirmed the record."""
        return self.success and not self.deferred


class BatchSyncResult(BaseModel):
    success_count: int = 0
    failure_count: int = 0
    results: list[SyncResult] = Field(default_factory=list)


class RouteResult(BaseModel):
    success: bool
    remote_id: int | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None


class SyncSummary(BaseModel):
    """Aggregate result of one orchestration pass."""

    outcome: SyncOutcome
    trigger: SyncTrigger
    success_count: int = 0
    failure_count: int = 0
    message: str = ""
    results: list[SyncResult] = Field(default_factory=list)

    @property
    def attempted(self) -> int:
        return self.success_count + self.failure_count


class SyncStatusSnapshot(BaseModel):
    is_syncing: bool = False
    pending_count: int = 0
    last_sync_time: datetime | None = None
    syncing_ids: list[int] = Field(default_factory=list)


class SaveResult(BaseModel):
    success: bool
    id: int | None = None
    synced: bool = False
    message: str = ""


class PhotoCaptureResult(BaseModel):
    attached: bool
    ref: str | None = None
    pending: bool = False
    error: str | None = None
