"""Offline-first occurrence sync engine public API."""

from typing import TYPE_CHECKING

__version__ = "0.1.0"

__all__ = [
    "ConnectivityMonitor",
    "LogistikSyncConfig",
    "LogistikSyncError",
    "PhotoPipeline",
    "RemoteSyncClient",
    "RouteContext",
    "SyncOrchestrator",
    "__version__",
    "create_sync_router",
    "register_exception_handlers",
]

if TYPE_CHECKING:
    from logistik_sync.client import RemoteSyncClient
    from logistik_sync.config import LogistikSyncConfig
    from logistik_sync.connectivity import ConnectivityMonitor
    from logistik_sync.context import RouteContext
    from logistik_sync.exceptions import (
        LogistikSyncError,
        register_exception_handlers,
    )
    from logistik_sync.orchestrator import SyncOrchestrator
    from logistik_sync.photos import PhotoPipeline
    from logistik_sync.router import create_sync_router


def __getattr__(name: str):
    # Lazy imports to avoid loading all submodules on package import.
    if name == "LogistikSyncConfig":
        from logistik_sync.config import LogistikSyncConfig

        return LogistikSyncConfig
    if name == "create_sync_router":
        from logistik_sync.router import create_sync_router

        return create_sync_router
    if name == "SyncOrchestrator":
        from logistik_sync.orchestrator import SyncOrchestrator

        return SyncOrchestrator
    if name == "RemoteSyncClient":
        from logistik_sync.client import RemoteSyncClient

        return RemoteSyncClient
    if name == "ConnectivityMonitor":
        from logistik_sync.connectivity import ConnectivityMonitor

        return ConnectivityMonitor
    if name == "PhotoPipeline":
        from logistik_sync.photos import PhotoPipeline

        return PhotoPipeline
    if name == "RouteContext":
        from logistik_sync.context import RouteContext

        return RouteContext
    if name in ("LogistikSyncError", "register_exception_handlers"):
        from logistik_sync import exceptions

        return getattr(exceptions, name)
    raise AttributeError(f"module 'logistik_sync' has no attribute {name!r}")
