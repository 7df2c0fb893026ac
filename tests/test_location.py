"""GPS acquisition tests."""

import asyncio

from logistik_sync.location import acquire_position
from logistik_sync.schemas import GeoPoint


async def test_without_locator_returns_null_coordinate() -> None:
    point = await acquire_position(None)
    assert point == GeoPoint()
    assert point.is_null is True


async def test_returns_locator_fix() -> None:
    async def locator() -> GeoPoint:
        return GeoPoint(latitude=-23.55, longitude=-46.63)

    point = await acquire_position(locator)

    assert point.latitude == -23.55
    assert point.is_null is False


async def test_slow_locator_times_out() -> None:
    async def locator() -> GeoPoint:
        await asyncio.sleep(5)
        return GeoPoint(latitude=1.0, longitude=1.0)

    point = await acquire_position(locator, timeout=0.01)

    assert point.is_null is True


async def test_locator_error_falls_back() -> None:
    async def locator() -> GeoPoint:
        raise PermissionError("location denied")

    assert (await acquire_position(locator)).is_null is True
