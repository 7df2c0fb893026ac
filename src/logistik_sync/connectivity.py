"""Connectivity monitor: online/offline state and transition listeners."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable

from logistik_sync.protocols import ConnectivityListener

logger = logging.getLogger(__name__)


class ConnectivityMonitor:
    """Tracks whether the device is online and notifies on transitions.

    The platform (or a polling probe) feeds ``set_online``; listeners are
    only called when the state actually changes.
    """

    def __init__(
        self,
        initial_online: bool = True,
        probe: Callable[[], Awaitable[bool]] | None = None,
        poll_interval: float = 30.0,
    ) -> None:
        self._online = initial_online
        self._probe = probe
        self._poll_interval = poll_interval
        self._listeners: list[ConnectivityListener] = []
        self._task: asyncio.Task[None] | None = None

    @property
    def is_online(self) -> bool:
        return self._online

    def add_listener(self, listener: ConnectivityListener) -> None:
        """Register a callback fired with the new state on transitions."""
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: ConnectivityListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def set_online(self, online: bool) -> None:
        if online == self._online:
            return
        self._online = online
        logger.info(
            "Connectivity changed: %s", "online" if online else "offline"
        )
        for listener in list(self._listeners):
            try:
                result = listener(online)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Connectivity listener %r failed", listener)

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    async def poll_once(self) -> bool:
        """Run the probe once and record its verdict."""
        if self._probe is None:
            return self._online
        try:
            online = bool(await self._probe())
        except Exception as exc:
            logger.info("Connectivity probe failed: %s", exc)
            online = False
        await self.set_online(online)
        return online

    async def _poll_loop(self) -> None:
        while True:
            await self.poll_once()
            await asyncio.sleep(self._poll_interval)

    def start(self) -> None:
        """Start polling the probe in the background."""
        if self._probe is None or self._task is not None:
            return
        self._task = asyncio.create_task(
            self._poll_loop(), name="connectivity-monitor"
        )
        logger.info(
            "ConnectivityMonitor started (interval=%.0fs)", self._poll_interval
        )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
