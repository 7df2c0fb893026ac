"""SQLAlchemy occurrence/route models."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, DateTime, Float, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from logistik_sync.schemas import RouteStatus, SyncStatus, utcnow


class Base(DeclarativeBase):
    """SQLAlchemy declarative base."""


class OccurrenceModel(Base):
    """Occurrence persistence model.

    Columns added after the first schema version must stay nullable or
    carry a server default so they can be added in place.
    """

    __tablename__ = "logistik_occurrences"
    __table_args__ = {"sqlite_autoincrement": True}

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    scanned_code: Mapped[str] = mapped_column(String(128))
    occurrence_type: Mapped[str] = mapped_column(String(32))
    receiver_name: Mapped[str | None] = mapped_column(String(255))
    receiver_document: Mapped[str | None] = mapped_column(String(64))
    photos: Mapped[list] = mapped_column(JSON, default=list)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), index=True
    )
    sync_status: Mapped[str] = mapped_column(
        String(16),
        default=SyncStatus.PENDING.value,
        server_default=SyncStatus.PENDING.value,
        index=True,
    )
    route_id: Mapped[int | None] = mapped_column(Integer, index=True)
    latitude: Mapped[float | None] = mapped_column(Float, server_default="0")
    longitude: Mapped[float | None] = mapped_column(Float, server_default="0")
    vehicle_plate: Mapped[str | None] = mapped_column(String(16))
    vehicle_km: Mapped[int | None] = mapped_column(Integer)
    submission_id: Mapped[str | None] = mapped_column(String(36))
    created_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=utcnow
    )


class RouteModel(Base):
    """Route persistence model; ids are assigned by the backend."""

    __tablename__ = "logistik_routes"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=False)
    vehicle_plate: Mapped[str] = mapped_column(String(16))
    start_km: Mapped[int] = mapped_column(Integer)
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    total_occurrences: Mapped[int] = mapped_column(
        Integer, default=0, server_default="0"
    )
    synced_occurrences: Mapped[int] = mapped_column(
        Integer, default=0, server_default="0"
    )
    status: Mapped[str] = mapped_column(
        String(16),
        default=RouteStatus.ACTIVE.value,
        server_default=RouteStatus.ACTIVE.value,
        index=True,
    )


class SchemaVersionModel(Base):
    """Single-row table recording the applied schema version."""

    __tablename__ = "logistik_schema_version"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=False)
    version: Mapped[int] = mapped_column(Integer)
