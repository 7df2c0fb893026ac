"""Remote sync client for the Logistik backend."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from logistik_sync.config import LogistikSyncConfig
from logistik_sync.connectivity import ConnectivityMonitor
from logistik_sync.exceptions import (
    AuthenticationRequiredError,
    NetworkTransportError,
    PhotoUploadError,
    RemoteRejectedError,
    SyncTransportError,
)
from logistik_sync.photos import encode_data_url, resolve_photo_refs
from logistik_sync.protocols import SessionState
from logistik_sync.schemas import (
    BatchSyncResult,
    ErrorKind,
    Occurrence,
    RouteCreate,
    RouteResult,
    SyncResult,
)

logger = logging.getLogger(__name__)

REQUIRES_CONNECTION = "RequiresConnection"

FormFields = list[tuple[str, tuple[None, str]]]


def build_http_client(
    config: LogistikSyncConfig,
    cookies: httpx.Cookies | dict[str, str] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Create the HTTP client carrying the ambient session cookies."""
    return httpx.AsyncClient(
        base_url=config.api_base_url,
        timeout=config.request_timeout_seconds,
        cookies=cookies,
        transport=transport,
    )


def _field(name: str, value: Any) -> tuple[str, tuple[None, str]]:
    # A None filename makes httpx send a plain multipart form field.
    return (name, (None, str(value)))


def build_occurrence_form(
    record: Occurrence, photo_urls: list[str]
) -> FormFields:
    """Translate a stored occurrence into multipart wire fields."""
    fields: FormFields = [
        _field("code", record.scanned_code),
        _field("occurrence_type", record.occurrence_type.value),
        _field("occurrence_datetime", record.timestamp.isoformat()),
    ]
    if record.submission_id:
        fields.append(_field("client_submission_id", record.submission_id))
    if record.route_id is not None:
        fields.append(_field("roteiro_id", record.route_id))
    if record.vehicle_plate:
        fields.append(_field("vehicle_plate", record.vehicle_plate))
    if record.vehicle_km is not None:
        fields.append(_field("vehicle_km", record.vehicle_km))
    if record.receiver_name:
        fields.append(_field("receiver_name", record.receiver_name))
    if record.receiver_document:
        fields.append(_field("receiver_document", record.receiver_document))
    if record.latitude or record.longitude:
        fields.append(_field("latitude", record.latitude))
        fields.append(_field("longitude", record.longitude))
    for url in photo_urls:
        fields.append(_field("photo_urls", url))
    return fields


def parse_confirmation(response: httpx.Response) -> dict[str, Any]:
    """Return the JSON confirmation or raise a classified rejection."""
    status = response.status_code
    if status in (401, 403):
        raise AuthenticationRequiredError(
            f"Erro {status}: session rejected",
            status_code=status,
            body=response.text,
        )
    if not response.is_success:
        raise RemoteRejectedError(
            f"Erro {status}: {response.text[:200]}",
            status_code=status,
            body=response.text,
        )
    try:
        payload = response.json()
    except ValueError as exc:
        raise RemoteRejectedError(
            "Server returned non-JSON response.",
            status_code=status,
            body=response.text,
        ) from exc
    if not isinstance(payload, dict):
        raise RemoteRejectedError(
            "Server returned a malformed confirmation.",
            status_code=status,
            body=response.text,
        )
    return payload


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return None


def _error_kind(exc: SyncTransportError) -> ErrorKind:
    if isinstance(exc, AuthenticationRequiredError):
        return ErrorKind.AUTH_REQUIRED
    if isinstance(exc, RemoteRejectedError):
        return ErrorKind.REMOTE_REJECTED
    return ErrorKind.NETWORK_TRANSPORT


class RemoteSyncClient:
    """Sends occurrences, routes and photos to the backend.

    Every sync-facing method resolves to a result model; only
    ``upload_photo`` raises, because its callers decide the fallback.
    """

    def __init__(
        self,
        config: LogistikSyncConfig,
        monitor: ConnectivityMonitor,
        http_client: httpx.AsyncClient | None = None,
        session: SessionState | None = None,
    ) -> None:
        self.config = config
        self.monitor = monitor
        self.http_client = http_client or build_http_client(config)
        self.session = session

    async def aclose(self) -> None:
        await self.http_client.aclose()

    def _session_missing(self) -> bool:
        return self.session is not None and not self.session.is_authenticated()

    # ------------------------------------------------------------------
    # Occurrences
    # ------------------------------------------------------------------

    async def sync_occurrence(self, record: Occurrence) -> SyncResult:
        if not self.monitor.is_online:
            logger.info("Offline, occurrence %s kept locally", record.id)
            return SyncResult(
                local_id=record.id,
                success=True,
                deferred=True,
                message="Saved locally (offline)",
            )
        if self._session_missing():
            return SyncResult(
                local_id=record.id,
                success=False,
                error="No valid session",
                error_kind=ErrorKind.AUTH_REQUIRED,
            )

        try:
            photo_urls = await resolve_photo_refs(record.photos, self)
        except PhotoUploadError as exc:
            logger.error(
                "Photo upload for occurrence %s failed: %s", record.id, exc
            )
            kind = (
                ErrorKind.AUTH_REQUIRED
                if isinstance(exc.__cause__, AuthenticationRequiredError)
                else ErrorKind.PHOTO_UPLOAD
            )
            return SyncResult(
                local_id=record.id,
                success=False,
                error=f"Photo upload failed: {exc}",
                error_kind=kind,
                photo_urls=exc.refs,
            )
        except ValueError as exc:
            logger.error(
                "Occurrence %s has a corrupt pending photo: %s", record.id, exc
            )
            return SyncResult(
                local_id=record.id,
                success=False,
                error=f"Corrupt pending photo: {exc}",
                error_kind=ErrorKind.PHOTO_UPLOAD,
            )

        try:
            response = await self.http_client.post(
                self.config.occurrences_endpoint,
                files=build_occurrence_form(record, photo_urls),
            )
            payload = parse_confirmation(response)
        except httpx.HTTPError as exc:
            logger.error(
                "Occurrence %s not sent, transport error: %s", record.id, exc
            )
            return SyncResult(
                local_id=record.id,
                success=False,
                error=str(exc) or exc.__class__.__name__,
                error_kind=ErrorKind.NETWORK_TRANSPORT,
                photo_urls=photo_urls,
            )
        except RemoteRejectedError as exc:
            logger.error("Occurrence %s rejected: %s", record.id, exc)
            return SyncResult(
                local_id=record.id,
                success=False,
                error=str(exc),
                error_kind=_error_kind(exc),
                photo_urls=photo_urls,
            )

        remote_id = _as_int(payload.get("occurrence_id", payload.get("id")))
        logger.info(
            "Occurrence %s synced (remote id %s)", record.id, remote_id
        )
        return SyncResult(
            local_id=record.id,
            success=True,
            remote_id=remote_id,
            photo_urls=photo_urls,
        )

    async def sync_multiple(
        self, records: list[Occurrence]
    ) -> BatchSyncResult:
        """Sync records one at a time with a fixed pause between them."""
        batch = BatchSyncResult()
        logger.info("Syncing %d occurrences", len(records))

        for index, record in enumerate(records):
            if index:
                await asyncio.sleep(self.config.sync_pause_seconds)
            try:
                result = await self.sync_occurrence(record)
            except Exception as exc:
                logger.exception("Unexpected error syncing %s", record.id)
                result = SyncResult(
                    local_id=record.id,
                    success=False,
                    error=str(exc) or exc.__class__.__name__,
                )
            batch.results.append(result)
            if result.success:
                batch.success_count += 1
            else:
                batch.failure_count += 1

        logger.info(
            "Sync finished: %d succeeded, %d failed",
            batch.success_count,
            batch.failure_count,
        )
        return batch

    # ------------------------------------------------------------------
    # Routes
    # ------------------------------------------------------------------

    async def create_route(self, data: RouteCreate) -> RouteResult:
        """Create a route on the backend. Online only."""
        if not self.monitor.is_online:
            logger.warning("Route creation attempted while offline")
            return RouteResult(
                success=False,
                error=REQUIRES_CONNECTION,
                error_kind=ErrorKind.REQUIRES_CONNECTION,
            )
        if self._session_missing():
            return RouteResult(
                success=False,
                error="No valid session",
                error_kind=ErrorKind.AUTH_REQUIRED,
            )

        fields = [
            _field("vehicle_plate", data.vehicle_plate),
            _field("vehicle_km", data.start_km),
            _field("start_date", data.start_date.isoformat()),
        ]
        try:
            response = await self.http_client.post(
                self.config.routes_endpoint, files=fields
            )
            payload = parse_confirmation(response)
        except httpx.HTTPError as exc:
            logger.error("Route creation failed: %s", exc)
            return RouteResult(
                success=False,
                error=str(exc) or exc.__class__.__name__,
                error_kind=ErrorKind.NETWORK_TRANSPORT,
            )
        except RemoteRejectedError as exc:
            logger.error("Route creation rejected: %s", exc)
            return RouteResult(
                success=False, error=str(exc), error_kind=_error_kind(exc)
            )

        remote_id = _as_int(payload.get("roteiro_id", payload.get("id")))
        if remote_id is None:
            return RouteResult(
                success=False,
                error="Server did not return a route id.",
                error_kind=ErrorKind.REMOTE_REJECTED,
            )
        logger.info("Route created with remote id %s", remote_id)
        return RouteResult(success=True, remote_id=remote_id)

    # ------------------------------------------------------------------
    # Photos and reachability
    # ------------------------------------------------------------------

    async def upload_photo(self, blob: bytes, filename: str) -> str:
        """Upload an encoded image and return its public URL."""
        try:
            response = await self.http_client.post(
                self.config.photo_upload_endpoint,
                json={
                    "image_data": encode_data_url(blob),
                    "filename": filename,
                },
            )
        except httpx.HTTPError as exc:
            raise NetworkTransportError(f"Photo upload failed: {exc}") from exc

        payload = parse_confirmation(response)
        url = payload.get("url")
        if not payload.get("success") or not isinstance(url, str) or not url:
            raise RemoteRejectedError(
                str(payload.get("error") or "Upload failed"),
                status_code=response.status_code,
                body=response.text,
            )
        return url

    async def check_connection(self) -> bool:
        """Probe backend reachability, independent of the OS online flag."""
        try:
            response = await self.http_client.get(
                self.config.health_endpoint,
                timeout=self.config.probe_timeout_seconds,
            )
        except httpx.HTTPError as exc:
            logger.info("Backend not reachable: %s", exc)
            return False
        return response.is_success
