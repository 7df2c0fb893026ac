"""Active route pointer tests."""

import logging

from logistik_sync.context import RouteContext


def test_starts_without_active_route() -> None:
    context = RouteContext()
    assert context.active_route_id is None
    assert context.has_active_route is False


def test_set_and_clear_active_route() -> None:
    context = RouteContext()
    context.set_active_route(12)
    assert context.active_route_id == 12
    assert context.has_active_route is True

    context.clear_active_route()
    assert context.active_route_id is None


def test_pointer_survives_restart(tmp_path) -> None:
    path = tmp_path / "state" / "route.json"
    RouteContext(path).set_active_route(9)

    assert RouteContext(path).active_route_id == 9


def test_cleared_pointer_is_persisted(tmp_path) -> None:
    path = tmp_path / "route.json"
    context = RouteContext(path)
    context.set_active_route(9)
    context.clear_active_route()

    assert RouteContext(path).active_route_id is None


def test_unreadable_state_is_treated_as_no_route(tmp_path, caplog) -> None:
    path = tmp_path / "route.json"
    path.write_text("{not json", encoding="utf-8")

    with caplog.at_level(logging.WARNING, logger="logistik_sync.context"):
        context = RouteContext(path)

    assert context.active_route_id is None
    assert "Unreadable route state" in caplog.text
