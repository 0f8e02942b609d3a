"""Last-known-good position cache, keyed by route id."""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from busfeed.models.position import PositionRecord


@dataclass(frozen=True, slots=True)
class RouteSnapshot:
    """Positions from the most recent successful tick of one route."""

    records: tuple[PositionRecord, ...]
    updated_at: float


class PositionCache:
    """Map route ids to their most recent successful aggregate.

    Writes overwrite unconditionally and entries never expire: stale data
    stays visible until the next successful tick replaces it.
    """

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._routes: dict[str, RouteSnapshot] = {}

    def get(self, route_id: str) -> list[PositionRecord] | None:
        snapshot = self._routes.get(route_id)
        if snapshot is None:
            return None
        return list(snapshot.records)

    def set(self, route_id: str, records: Iterable[PositionRecord]) -> None:
        self._routes[route_id] = RouteSnapshot(records=tuple(records), updated_at=self._clock())

    def age_seconds(self, route_id: str) -> float | None:
        """Seconds since the route was last written, or ``None`` if never."""
        snapshot = self._routes.get(route_id)
        if snapshot is None:
            return None
        return self._clock() - snapshot.updated_at

    def route_ids(self) -> set[str]:
        return set(self._routes)

    def __contains__(self, route_id: object) -> bool:
        return route_id in self._routes
