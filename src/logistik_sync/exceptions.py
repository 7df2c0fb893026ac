"""Sync engine exceptions and their HTTP mapping."""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


class LogistikSyncError(Exception):
    """Base exception for the sync engine."""


class StorageError(LogistikSyncError):
    """Local store failure."""


class StorageUnavailableError(StorageError):
    """The local store cannot be opened or used.

    Fatal for the current operation; never retried automatically.
    """


class StorageTransientError(StorageError):
    """Transient local store failure, retried a bounded number of times."""


class RequiresConnectionError(LogistikSyncError):
    """An online-only operation was attempted while offline."""

    def __init__(self, operation: str = "operation") -> None:
        self.operation = operation
        super().__init__(f"{operation} requires a network connection")


class SyncTransportError(LogistikSyncError):
    """A sync attempt did not reach a confirmed outcome."""


class NetworkTransportError(SyncTransportError):
    """DNS, timeout or connection-reset class failure."""


class RemoteRejectedError(SyncTransportError):
    """Backend returned a non-2xx status or a malformed payload."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        body: str = "",
    ) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class AuthenticationRequiredError(RemoteRejectedError):
    """Backend refused the ambient session (HTTP 401/403)."""


class PhotoUploadError(SyncTransportError):
    """A photo upload failed while resolving a record's photo refs.

    ``refs`` holds the refs resolved so far followed by the ones that
    were not, so URLs already obtained survive a retry. The upload
    failure is chained as ``__cause__``.
    """

    def __init__(self, message: str, *, refs: list[str]) -> None:
        self.refs = refs
        super().__init__(message)


class DataIntegrityWarning(LogistikSyncError):
    """A mutation would break a binding that must stay immutable."""


class PhotoCompressionError(LogistikSyncError):
    """Image data could not be decoded or re-encoded."""


class InvalidOccurrenceError(LogistikSyncError):
    """Occurrence data was rejected before being stored."""


class OccurrenceNotFoundError(LogistikSyncError):
    """Occurrence does not exist in the local store."""

    def __init__(self, occurrence_id: int) -> None:
        self.occurrence_id = occurrence_id
        super().__init__(f"Occurrence {occurrence_id} not found")


class RouteNotFoundError(LogistikSyncError):
    """Route does not exist in the local store."""

    def __init__(self, route_id: int | None) -> None:
        self.route_id = route_id
        super().__init__(f"Route {route_id} not found")


class RouteAlreadyFinalizedError(LogistikSyncError):
    """Finalizing is terminal and cannot happen twice."""

    def __init__(self, route_id: int) -> None:
        self.route_id = route_id
        super().__init__(f"Route {route_id} is already finalized")


class RouteAlreadyActiveError(LogistikSyncError):
    """A route cannot start while another one is still active."""

    def __init__(self, route_id: int) -> None:
        self.route_id = route_id
        super().__init__(f"Route {route_id} is still active")


def _error_response(
    status_code: int, exc: Exception, code: str
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "code": code},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register sync engine exception handlers on a FastAPI app.

    More specific handlers must be registered first so FastAPI
    matches them before the generic LogistikSyncError handler.

    Handler order (most specific first):
    1. OccurrenceNotFoundError / RouteNotFoundError → 404
    2. RouteAlreadyFinalizedError / RouteAlreadyActiveError → 409
    3. RequiresConnectionError → 409
    4. DataIntegrityWarning → 409
    5. AuthenticationRequiredError → 401
    6. StorageUnavailableError → 503
    7. LogistikSyncError → 400 (catch-all)
    """

    @app.exception_handler(OccurrenceNotFoundError)
    async def _occurrence_not_found(
        request: Request,
        exc: OccurrenceNotFoundError,
    ) -> JSONResponse:
        return _error_response(404, exc, "occurrence_not_found")

    @app.exception_handler(RouteNotFoundError)
    async def _route_not_found(
        request: Request,
        exc: RouteNotFoundError,
    ) -> JSONResponse:
        return _error_response(404, exc, "route_not_found")

    @app.exception_handler(RouteAlreadyFinalizedError)
    async def _route_finalized(
        request: Request,
        exc: RouteAlreadyFinalizedError,
    ) -> JSONResponse:
        return _error_response(409, exc, "route_finalized")

    @app.exception_handler(RouteAlreadyActiveError)
    async def _route_active(
        request: Request,
        exc: RouteAlreadyActiveError,
    ) -> JSONResponse:
        return _error_response(409, exc, "route_active")

    @app.exception_handler(RequiresConnectionError)
    async def _requires_connection(
        request: Request,
        exc: RequiresConnectionError,
    ) -> JSONResponse:
        return _error_response(409, exc, "requires_connection")

    @app.exception_handler(DataIntegrityWarning)
    async def _data_integrity(
        request: Request,
        exc: DataIntegrityWarning,
    ) -> JSONResponse:
        return _error_response(409, exc, "data_integrity")

    @app.exception_handler(AuthenticationRequiredError)
    async def _auth_required(
        request: Request,
        exc: AuthenticationRequiredError,
    ) -> JSONResponse:
        return _error_response(401, exc, "auth_required")

    @app.exception_handler(StorageUnavailableError)
    async def _storage_unavailable(
        request: Request,
        exc: StorageUnavailableError,
    ) -> JSONResponse:
        return _error_response(503, exc, "storage_unavailable")

    @app.exception_handler(LogistikSyncError)
    async def _sync_error(
        request: Request,
        exc: LogistikSyncError,
    ) -> JSONResponse:
        return _error_response(400, exc, "sync_error")
