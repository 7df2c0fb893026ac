"""Bounded retry for transient local store failures."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError

from logistik_sync.exceptions import (
    StorageTransientError,
    StorageUnavailableError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def run_with_storage_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    attempts: int,
    delay: float,
    description: str = "storage operation",
) -> T:
    """Run a store operation, retrying transient failures.

    A fixed ``delay`` separates attempts. Once ``attempts`` are used up
    the last failure is escalated to StorageUnavailableError.
    """
    last_error: Exception | None = None

    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except (StorageTransientError, OperationalError) as exc:
            last_error = exc
            logger.info(
                "%s: transient failure on attempt %d/%d: %s",
                description,
                attempt,
                attempts,
                exc,
            )
        except DBAPIError as exc:
            raise StorageUnavailableError(
                f"{description} failed: {exc}"
            ) from exc

        if attempt < attempts:
            await asyncio.sleep(delay)

    logger.warning(
        "%s: giving up after %d attempts: %s",
        description,
        attempts,
        last_error,
    )
    raise StorageUnavailableError(
        f"{description} failed after {attempts} attempts: {last_error}"
    ) from last_error
