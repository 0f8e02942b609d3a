"""Route map download.

The route map is a JSON object mapping each route id to the upstream ids
that carry its buses (one per direction, typically)::

    {"101": ["DJB30300052", "DJB30300053"], "202": "DJB30300110"}
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from busfeed._constants import ROUTE_MAP_RETRY_BACKOFF
from busfeed._normalize import as_list, safe_str
from busfeed._transport import Transport
from busfeed.config import BusFeedConfig
from busfeed.exceptions import BusFeedConfigError, BusFeedError, RouteResolutionError

_logger = logging.getLogger(__name__)


def parse_route_map(payload: Any) -> dict[str, list[str]]:
    """Normalize a route map document to ``{route_id: [upstream_id, ...]}``."""
    if not isinstance(payload, dict):
        raise RouteResolutionError("Route map must be a JSON object")
    route_map: dict[str, list[str]] = {}
    for key, value in payload.items():
        route_id = safe_str(key)
        if route_id is None:
            continue
        ids = [text for text in (safe_str(item) for item in as_list(value)) if text is not None]
        route_map[route_id] = ids
    return route_map


class HttpRouteResolver:
    """Resolve routes from a downloaded route map, cached for ``route_map_ttl``.

    Concurrent callers share a single refresh. When a refresh fails and an
    older map is cached, the older map keeps being served and the next
    refresh is not attempted for ``ROUTE_MAP_RETRY_BACKOFF`` seconds.
    """

    def __init__(
        self,
        config: BusFeedConfig,
        transport: Transport,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if not config.route_map_url:
            raise BusFeedConfigError("route_map_url is required for the HTTP route resolver")
        self._url = config.route_map_url
        self._ttl = config.route_map_ttl
        self._transport = transport
        self._clock = clock
        self._lock = asyncio.Lock()
        self._route_map: dict[str, list[str]] | None = None
        self._fetched_at: float | None = None
        self._retry_at: float | None = None

    def _is_fresh(self) -> bool:
        if self._route_map is None or self._fetched_at is None:
            return False
        now = self._clock()
        if self._retry_at is not None and now < self._retry_at:
            return True
        return (now - self._fetched_at) < self._ttl

    async def resolve(self, route_id: str) -> Mapping[str, Sequence[str]]:
        if self._is_fresh():
            assert self._route_map is not None  # noqa: S101
            return self._route_map
        async with self._lock:
            if self._is_fresh():
                assert self._route_map is not None  # noqa: S101
                return self._route_map
            try:
                payload = await self._transport.get_json(self._url)
                route_map = parse_route_map(payload)
            except BusFeedError as exc:
                if self._route_map is not None:
                    self._retry_at = self._clock() + ROUTE_MAP_RETRY_BACKOFF
                    _logger.warning("Route map refresh failed, serving cached map: %s", exc)
                    return self._route_map
                raise RouteResolutionError(f"Route map unavailable: {exc}", route_id=route_id) from exc
            self._route_map = route_map
            self._fetched_at = self._clock()
            self._retry_at = None
            _logger.debug("Loaded route map with %d routes", len(route_map))
            return route_map
