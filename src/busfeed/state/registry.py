"""Per-route observer registry.

Observers register a pair of callbacks for a route and get back a
:class:`Subscription` handle. Removal is by handle identity, so two
observers registering structurally identical callbacks never remove each
other.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from busfeed.models.position import PositionRecord
from busfeed.models.signal import ErrorSignal
from busfeed.state.cache import PositionCache

_logger = logging.getLogger(__name__)

DataCallback = Callable[[list[PositionRecord]], None]
ErrorCallback = Callable[[ErrorSignal], None]

# Only the registry holds this token; it gates Subscription construction.
_HANDLE_TOKEN = object()


@dataclass(frozen=True, slots=True)
class _Observer:
    on_data: DataCallback
    on_error: ErrorCallback


class Subscription:
    """Opaque handle returned by :meth:`SubscriptionRegistry.subscribe`.

    Equality and hashing are by identity.
    """

    __slots__ = ("_registry", "_route_id")

    def __init__(self, registry: SubscriptionRegistry, route_id: str, *, _token: object = None) -> None:
        if _token is not _HANDLE_TOKEN:
            raise TypeError("Subscription handles are created by SubscriptionRegistry.subscribe()")
        self._registry = registry
        self._route_id = route_id

    @property
    def route_id(self) -> str:
        return self._route_id

    @property
    def active(self) -> bool:
        return self._registry.is_active(self)

    def cancel(self) -> bool:
        """Unsubscribe; same as ``registry.unsubscribe(handle)``."""
        return self._registry.unsubscribe(self)

    def __repr__(self) -> str:
        state = "active" if self.active else "cancelled"
        return f"<Subscription route={self._route_id!r} {state}>"


class SubscriptionRegistry:
    """Map route ids to the observers currently interested in them."""

    def __init__(self, cache: PositionCache) -> None:
        self._cache = cache
        self._routes: dict[str, dict[Subscription, _Observer]] = {}

    def subscribe(self, route_id: str, on_data: DataCallback, on_error: ErrorCallback) -> Subscription:
        """Register an observer pair for *route_id*.

        When the cache already holds data for the route, it is replayed to
        this observer's *on_data* on the next event-loop iteration, never
        from inside this call. Requires a running event loop in that case.
        """
        handle = Subscription(self, route_id, _token=_HANDLE_TOKEN)
        self._routes.setdefault(route_id, {})[handle] = _Observer(on_data=on_data, on_error=on_error)
        if route_id in self._cache:
            asyncio.get_running_loop().call_soon(self._replay, handle)
        return handle

    def unsubscribe(self, handle: Subscription) -> bool:
        """Remove the observer registered under *handle*.

        Returns ``False`` when it was already removed.
        """
        observers = self._routes.get(handle.route_id)
        if observers is None or observers.pop(handle, None) is None:
            return False
        if not observers:
            del self._routes[handle.route_id]
        return True

    def is_active(self, handle: Subscription) -> bool:
        return handle in self._routes.get(handle.route_id, {})

    def has_subscribers(self, route_id: str) -> bool:
        return bool(self._routes.get(route_id))

    def subscriber_count(self, route_id: str) -> int:
        return len(self._routes.get(route_id, {}))

    def route_ids(self) -> set[str]:
        return set(self._routes)

    def notify_data(self, route_id: str, records: Sequence[PositionRecord]) -> None:
        """Deliver *records* to every current data callback of *route_id*."""
        for handle, observer in self._snapshot(route_id):
            if self.is_active(handle):
                self._invoke(observer.on_data, list(records), route_id=route_id)

    def notify_error(self, route_id: str, signal: ErrorSignal) -> None:
        """Deliver *signal* to every current error callback of *route_id*."""
        for handle, observer in self._snapshot(route_id):
            if self.is_active(handle):
                self._invoke(observer.on_error, signal, route_id=route_id)

    def _snapshot(self, route_id: str) -> list[tuple[Subscription, _Observer]]:
        return list(self._routes.get(route_id, {}).items())

    def _replay(self, handle: Subscription) -> None:
        observer = self._routes.get(handle.route_id, {}).get(handle)
        if observer is None:
            return
        records = self._cache.get(handle.route_id)
        if records is None:
            return
        self._invoke(observer.on_data, records, route_id=handle.route_id)

    @staticmethod
    def _invoke(callback: Callable[[Any], None], payload: Any, *, route_id: str) -> None:
        try:
            callback(payload)
        except Exception:
            _logger.warning("Observer callback for route %s failed", route_id, exc_info=True)
