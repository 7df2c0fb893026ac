"""Best-effort GPS acquisition."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from logistik_sync.schemas import GeoPoint

logger = logging.getLogger(__name__)

Locator = Callable[[], Awaitable[GeoPoint]]


async def acquire_position(
    locator: Locator | None, timeout: float = 5.0
) -> GeoPoint:
    """Ask the locator for a fix, falling back to 0/0.

    Submission never waits longer than ``timeout`` for a position.
    """
    if locator is None:
        return GeoPoint()
    try:
        return await asyncio.wait_for(locator(), timeout=timeout)
    except TimeoutError:
        logger.info("No GPS fix within %.1fs, using null coordinate", timeout)
    except Exception as exc:
        logger.info("GPS unavailable, using null coordinate: %s", exc)
    return GeoPoint()
