"""High-level async entry point owning the cache, registry and pollers."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Any

import aiohttp

from busfeed._api.locations import HttpLocationFetcher
from busfeed._api.routes import HttpRouteResolver
from busfeed._transport import JsonTransport
from busfeed.config import BusFeedConfig
from busfeed.exceptions import BusFeedError
from busfeed.models.position import PositionRecord
from busfeed.models.signal import ErrorSignal
from busfeed.models.update import RouteUpdate
from busfeed.poller import RoutePoller
from busfeed.sources import LocationFetcher, RouteResolver
from busfeed.state.cache import PositionCache
from busfeed.state.registry import DataCallback, ErrorCallback, Subscription, SubscriptionRegistry

_logger = logging.getLogger(__name__)


class BusFeed:
    """Live bus positions per route, refreshed in the background.

    Usage::

        async with BusFeed(config) as feed:
            handle = feed.subscribe("101", on_data, on_error)
            ...
            feed.unsubscribe(handle)

    Each feed owns its own cache, subscription registry and pollers, so
    several feeds in one process never share state.
    """

    def __init__(
        self,
        config: BusFeedConfig | None = None,
        *,
        resolver: RouteResolver | None = None,
        fetcher: LocationFetcher | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._config = config or BusFeedConfig()
        self._resolver = resolver
        self._fetcher = fetcher
        self._external_session = session is not None
        self._http_session = session
        self._cache = PositionCache()
        self._registry = SubscriptionRegistry(self._cache)
        self._pollers: dict[str, RoutePoller] = {}
        # Pollers stopped by stop_when_idle whose tasks aclose() still awaits.
        self._retired: set[RoutePoller] = set()
        self._watch_queues: set[asyncio.Queue[RouteUpdate | None]] = set()
        self._started = False

    @property
    def config(self) -> BusFeedConfig:
        return self._config

    @property
    def cache(self) -> PositionCache:
        return self._cache

    @property
    def registry(self) -> SubscriptionRegistry:
        return self._registry

    @property
    def polling_routes(self) -> set[str]:
        return {route_id for route_id, poller in self._pollers.items() if poller.is_running}

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> BusFeed:
        if self._resolver is None or self._fetcher is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            transport = JsonTransport(self._http_session, timeout=self._config.request_timeout)
            try:
                if self._resolver is None:
                    self._resolver = HttpRouteResolver(self._config, transport)
                if self._fetcher is None:
                    self._fetcher = HttpLocationFetcher(self._config, transport)
            except BusFeedError:
                await self._close_session()
                raise
        self._started = True
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Stop every poller and release the HTTP session if owned."""
        self._started = False
        for queue in self._watch_queues:
            queue.put_nowait(None)
        pollers = [*self._pollers.values(), *self._retired]
        self._pollers.clear()
        self._retired.clear()
        for poller in pollers:
            poller.stop()
        if pollers:
            await asyncio.gather(*(poller.aclose() for poller in pollers))
        await self._close_session()

    async def _close_session(self) -> None:
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None

    def _require_started(self) -> tuple[RouteResolver, LocationFetcher]:
        if not self._started or self._resolver is None or self._fetcher is None:
            raise BusFeedError("Feed not started. Use 'async with BusFeed(...) as feed:'")
        return self._resolver, self._fetcher

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, route_id: str, on_data: DataCallback, on_error: ErrorCallback) -> Subscription:
        """Observe *route_id* and make sure it is being polled.

        Cached positions, if any, are delivered to *on_data* on the next
        event-loop iteration.
        """
        self._require_started()
        handle = self._registry.subscribe(route_id, on_data, on_error)
        self.start_polling(route_id)
        return handle

    def unsubscribe(self, handle: Subscription) -> None:
        """Stop delivering notifications to *handle*. Safe to call twice."""
        removed = self._registry.unsubscribe(handle)
        if removed and self._config.stop_when_idle and not self._registry.has_subscribers(handle.route_id):
            poller = self._pollers.pop(handle.route_id, None)
            if poller is not None:
                _logger.debug("Last subscriber left route %s; stopping poller", handle.route_id)
                poller.stop()
                self._retired = {old for old in self._retired if not old.is_finished}
                self._retired.add(poller)

    async def watch(self, route_id: str) -> AsyncIterator[RouteUpdate]:
        """Yield updates for *route_id* until the generator or the feed is closed."""
        queue: asyncio.Queue[RouteUpdate | None] = asyncio.Queue()

        def on_data(records: list[PositionRecord]) -> None:
            queue.put_nowait(RouteUpdate(route_id=route_id, records=tuple(records)))

        def on_error(signal: ErrorSignal) -> None:
            queue.put_nowait(RouteUpdate(route_id=route_id, error=signal))

        handle = self.subscribe(route_id, on_data, on_error)
        self._watch_queues.add(queue)
        try:
            while True:
                update = await queue.get()
                if update is None:
                    return
                yield update
        finally:
            self._watch_queues.discard(queue)
            self.unsubscribe(handle)

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    def start_polling(self, route_id: str) -> RoutePoller:
        """Return the route's running poller, starting one if needed."""
        resolver, fetcher = self._require_started()
        poller = self._pollers.get(route_id)
        if poller is not None and poller.is_running:
            return poller
        poller = RoutePoller(
            route_id,
            resolver=resolver,
            fetcher=fetcher,
            cache=self._cache,
            registry=self._registry,
            interval=self._config.poll_interval,
        )
        self._pollers[route_id] = poller
        poller.start()
        return poller

    async def stop_polling(self, route_id: str) -> None:
        poller = self._pollers.pop(route_id, None)
        if poller is not None:
            await poller.aclose()

    def get_poller(self, route_id: str) -> RoutePoller | None:
        return self._pollers.get(route_id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_positions(self, route_id: str) -> list[PositionRecord] | None:
        """Last known good positions for *route_id*, or ``None``."""
        return self._cache.get(route_id)

    def positions_age(self, route_id: str) -> float | None:
        """Seconds since *route_id* was last refreshed successfully."""
        return self._cache.age_seconds(route_id)
