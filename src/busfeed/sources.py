"""Collaborator interfaces used by pollers.

Structural protocols so callers can plug in any route resolver or location
fetcher (including test doubles) while the HTTP implementations in
``busfeed._api`` stay concrete.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Protocol

from busfeed.models.position import PositionRecord


class RouteResolver(Protocol):
    """Map route ids to the upstream identifiers to poll."""

    async def resolve(self, route_id: str) -> Mapping[str, Sequence[str]]:
        ...


class LocationFetcher(Protocol):
    """Fetch the current positions reported for one upstream identifier."""

    async def fetch(self, vehicle_id: str) -> list[PositionRecord]:
        ...


class StaticRouteResolver:
    """Resolver backed by a fixed in-memory route map."""

    def __init__(self, mapping: Mapping[str, Sequence[str]]) -> None:
        self._mapping = {route_id: list(ids) for route_id, ids in mapping.items()}

    async def resolve(self, route_id: str) -> Mapping[str, Sequence[str]]:
        return self._mapping
