"""Active route pointer, kept outside the indexed store."""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)


class ActiveRouteState(BaseModel):
    active_route_id: int | None = None


class RouteContext:
    """Session state naming the route the courier is working on.

    Passed explicitly to the store and orchestrator. With a ``state_path``
    the pointer survives restarts as a small JSON document.
    """

    def __init__(self, state_path: Path | str | None = None) -> None:
        self._state_path = Path(state_path) if state_path else None
        self._state = self._load()

    def _load(self) -> ActiveRouteState:
        if self._state_path is None or not self._state_path.exists():
            return ActiveRouteState()
        try:
            return ActiveRouteState.model_validate_json(
                self._state_path.read_text(encoding="utf-8")
            )
        except (OSError, ValidationError) as exc:
            logger.warning(
                "Unreadable route state at %s, starting without an "
                "active route: %s",
                self._state_path,
                exc,
            )
            return ActiveRouteState()

    def _persist(self) -> None:
        if self._state_path is None:
            return
        self._state_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._state_path.with_suffix(".tmp")
        tmp_path.write_text(self._state.model_dump_json(), encoding="utf-8")
        tmp_path.replace(self._state_path)

    @property
    def active_route_id(self) -> int | None:
        return self._state.active_route_id

    @property
    def has_active_route(self) -> bool:
        return self._state.active_route_id is not None

    def set_active_route(self, route_id: int) -> None:
        self._state = ActiveRouteState(active_route_id=route_id)
        self._persist()
        logger.info("Active route set to %s", route_id)

    def clear_active_route(self) -> None:
        self._state = ActiveRouteState()
        self._persist()
