"""Shared fixtures for logistik-sync tests."""

from __future__ import annotations

import io
import json
import re

import httpx
import pytest
from PIL import Image
from sqlalchemy.ext.asyncio import create_async_engine

from logistik_sync.client import RemoteSyncClient, build_http_client
from logistik_sync.config import LogistikSyncConfig
from logistik_sync.connectivity import ConnectivityMonitor
from logistik_sync.context import RouteContext
from logistik_sync.contrib.sqlalchemy.store import SQLAlchemyLocalStore
from logistik_sync.orchestrator import SyncOrchestrator

BASE_URL = "https://backend.test"


def make_image(
    width: int = 64,
    height: int = 48,
    color: tuple[int, ...] = (200, 30, 30),
    fmt: str = "JPEG",
    mode: str = "RGB",
) -> bytes:
    buffer = io.BytesIO()
    Image.new(mode, (width, height), color).save(buffer, format=fmt)
    return buffer.getvalue()


def form_fields(request: httpx.Request) -> list[tuple[str, str]]:
    """Decode a multipart request body into (name, value) pairs."""
    content_type = request.headers["content-type"]
    boundary = content_type.split("boundary=", 1)[1].encode()
    fields: list[tuple[str, str]] = []
    for part in request.content.split(b"--" + boundary):
        head, sep, body = part.partition(b"\r\n\r\n")
        if not sep:
            continue
        match = re.search(rb'name="([^"]+)"', head)
        fields.append((match.group(1).decode(), body[:-2].decode()))
    return fields


def occurrence_data(**overrides) -> dict:
    data = {"scanned_code": "BR123456", "occurrence_type": "avaria"}
    data.update(overrides)
    return data


class FakeBackend:
    """In-process stand-in for the Logistik REST API."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.occurrence_statuses: list[int] = []
        self.photo_statuses: list[int] = []
        self.healthy = True
        self.route_id = 7
        self.fail_photos = False
        self._next_occurrence_id = 100
        self._photo_count = 0

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/health/":
            return httpx.Response(200 if self.healthy else 503)
        if path == "/api/roteiros/":
            return httpx.Response(201, json={"roteiro_id": self.route_id})
        if path == "/api/occurrence/upload-photo/":
            status = (
                self.photo_statuses.pop(0) if self.photo_statuses else 200
            )
            if self.fail_photos:
                status = 500
            if status >= 400:
                return httpx.Response(status, text="storage down")
            self._photo_count += 1
            return httpx.Response(
                200,
                json={
                    "success": True,
                    "url": f"https://cdn.test/photo-{self._photo_count}.jpg",
                },
            )
        if path == "/api/":
            status = (
                self.occurrence_statuses.pop(0)
                if self.occurrence_statuses
                else 201
            )
            if status >= 400:
                return httpx.Response(status, text="Internal Server Error")
            self._next_occurrence_id += 1
            return httpx.Response(
                status, json={"occurrence_id": self._next_occurrence_id}
            )
        return httpx.Response(404)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def requests_to(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    def photo_upload_payloads(self) -> list[dict]:
        return [
            json.loads(r.content)
            for r in self.requests_to("/api/occurrence/upload-photo/")
        ]


@pytest.fixture()
def config() -> LogistikSyncConfig:
    return LogistikSyncConfig(
        api_base_url=BASE_URL,
        sync_pause_seconds=0,
        storage_retry_delay=0,
        background_sync_enabled=False,
        verify_connection_before_manual_sync=False,
        database_url="sqlite+aiosqlite:///:memory:",
    )


@pytest.fixture()
def context() -> RouteContext:
    return RouteContext()


@pytest.fixture()
def monitor() -> ConnectivityMonitor:
    return ConnectivityMonitor(initial_online=True)


@pytest.fixture()
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture()
async def async_engine():
    """Create an in-memory aiosqlite async engine."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    yield engine
    await engine.dispose()


@pytest.fixture()
def store(async_engine, context, config) -> SQLAlchemyLocalStore:
    return SQLAlchemyLocalStore(async_engine, context, config)


@pytest.fixture()
async def remote_client(config, monitor, backend):
    client = RemoteSyncClient(
        config,
        monitor,
        http_client=build_http_client(config, transport=backend.transport),
    )
    yield client
    await client.aclose()


@pytest.fixture()
async def orchestrator(store, remote_client, monitor, context, config):
    orchestrator = SyncOrchestrator(
        store, remote_client, monitor, context, config
    )
    yield orchestrator
    await orchestrator.close()
