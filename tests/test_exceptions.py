"""Exception handler tests."""

from fastapi import FastAPI
from fastapi.testclient import TestClient

from logistik_sync.exceptions import (
    AuthenticationRequiredError,
    DataIntegrityWarning,
    LogistikSyncError,
    OccurrenceNotFoundError,
    RemoteRejectedError,
    RequiresConnectionError,
    RouteAlreadyActiveError,
    RouteAlreadyFinalizedError,
    RouteNotFoundError,
    StorageUnavailableError,
    SyncTransportError,
    register_exception_handlers,
)


def _create_app(exc: Exception) -> TestClient:
    app = FastAPI()
    register_exception_handlers(app)

    @app.get("/boom")
    async def boom():
        raise exc

    return TestClient(app, raise_server_exceptions=False)


def test_route_not_found_error_has_route_id() -> None:
    exc = RouteNotFoundError(42)
    assert exc.route_id == 42
    assert "42" in str(exc)


def test_remote_rejected_error_keeps_status_and_body() -> None:
    exc = RemoteRejectedError("Erro 500", status_code=500, body="oops")
    assert exc.status_code == 500
    assert exc.body == "oops"
    assert isinstance(exc, SyncTransportError)


def test_authentication_required_is_a_rejection() -> None:
    exc = AuthenticationRequiredError("expired", status_code=401)
    assert isinstance(exc, RemoteRejectedError)


def test_occurrence_not_found_returns_404() -> None:
    resp = _create_app(OccurrenceNotFoundError(5)).get("/boom")
    assert resp.status_code == 404
    body = resp.json()
    assert body["code"] == "occurrence_not_found"
    assert "5" in body["detail"]


def test_route_not_found_returns_404() -> None:
    resp = _create_app(RouteNotFoundError(3)).get("/boom")
    assert resp.status_code == 404
    assert resp.json()["code"] == "route_not_found"


def test_route_finalized_returns_409() -> None:
    resp = _create_app(RouteAlreadyFinalizedError(3)).get("/boom")
    assert resp.status_code == 409
    assert resp.json()["code"] == "route_finalized"


def test_route_active_returns_409() -> None:
    resp = _create_app(RouteAlreadyActiveError(7)).get("/boom")
    assert resp.status_code == 409
    body = resp.json()
    assert body["code"] == "route_active"
    assert body["detail"] == "Route 7 is still active"


def test_requires_connection_returns_409() -> None:
    resp = _create_app(RequiresConnectionError("Route creation")).get("/boom")
    assert resp.status_code == 409
    body = resp.json()
    assert body["code"] == "requires_connection"
    assert body["detail"] == "Route creation requires a network connection"


def test_data_integrity_returns_409() -> None:
    resp = _create_app(DataIntegrityWarning("bound")).get("/boom")
    assert resp.status_code == 409
    assert resp.json()["code"] == "data_integrity"


def test_auth_required_returns_401() -> None:
    exc = AuthenticationRequiredError("Erro 401", status_code=401)
    resp = _create_app(exc).get("/boom")
    assert resp.status_code == 401
    assert resp.json()["code"] == "auth_required"


def test_storage_unavailable_returns_503() -> None:
    resp = _create_app(StorageUnavailableError("disk gone")).get("/boom")
    assert resp.status_code == 503
    assert resp.json() == {
        "detail": "disk gone",
        "code": "storage_unavailable",
    }


def test_base_error_returns_400() -> None:
    resp = _create_app(LogistikSyncError("generic")).get("/boom")
    assert resp.status_code == 400
    assert resp.json()["code"] == "sync_error"
