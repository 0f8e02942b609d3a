"""Per-route polling loop.

A :class:`RoutePoller` owns one asyncio task that repeatedly resolves the
route's upstream identifiers, fetches every identifier concurrently,
aggregates whatever succeeded, and publishes the result.

Scheduling discipline: each tick runs to completion, then the poller sleeps
for whatever is left of ``interval`` (measured from the tick's start).
Ticks for one route therefore never overlap; under sustained upstream
slowness the effective cadence stretches instead of piling up requests.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import StrEnum

from busfeed.exceptions import BusFeedError, RouteResolutionError
from busfeed.models.position import PositionRecord
from busfeed.models.signal import ErrorKind, ErrorSignal
from busfeed.sources import LocationFetcher, RouteResolver
from busfeed.state.cache import PositionCache
from busfeed.state.registry import SubscriptionRegistry

_logger = logging.getLogger(__name__)


class PollerState(StrEnum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


@dataclass(slots=True)
class TickResult:
    """Outcome of a single tick."""

    route_id: str
    succeeded: bool
    record_count: int = 0
    vehicle_count: int = 0
    failed_vehicles: list[str] = field(default_factory=list)
    error: ErrorSignal | None = None


class RoutePoller:
    """Poll one route on a fixed cadence and publish the aggregate.

    Usage::

        poller = RoutePoller("101", resolver=..., fetcher=..., cache=..., registry=...)
        poller.start()
        ...
        await poller.aclose()
    """

    def __init__(
        self,
        route_id: str,
        *,
        resolver: RouteResolver,
        fetcher: LocationFetcher,
        cache: PositionCache,
        registry: SubscriptionRegistry,
        interval: float,
    ) -> None:
        self._route_id = route_id
        self._resolver = resolver
        self._fetcher = fetcher
        self._cache = cache
        self._registry = registry
        self._interval = interval
        self._state = PollerState.IDLE
        self._task: asyncio.Task[None] | None = None
        self._tick_count = 0
        self._consecutive_failures = 0
        self._last_result: TickResult | None = None

    @property
    def route_id(self) -> str:
        return self._route_id

    @property
    def state(self) -> PollerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state == PollerState.RUNNING

    @property
    def is_finished(self) -> bool:
        """True once the polling task has completed (or was never started)."""
        return self._task is None or self._task.done()

    @property
    def tick_count(self) -> int:
        return self._tick_count

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    @property
    def last_result(self) -> TickResult | None:
        return self._last_result

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the polling task; the first tick runs immediately."""
        if self._state == PollerState.RUNNING:
            return
        if self._state == PollerState.STOPPED:
            raise BusFeedError(f"Poller for route {self._route_id} was stopped and cannot be restarted")
        self._task = asyncio.get_running_loop().create_task(
            self._run(),
            name=f"busfeed-poller-{self._route_id}",
        )
        self._state = PollerState.RUNNING
        _logger.debug("Started poller for route %s (interval %.1fs)", self._route_id, self._interval)

    def stop(self) -> None:
        """Cancel the polling task. No further ticks start after this."""
        if self._state == PollerState.STOPPED:
            return
        self._state = PollerState.STOPPED
        if self._task is not None and not self._task.done():
            self._task.cancel()
        _logger.debug("Stopped poller for route %s", self._route_id)

    async def aclose(self) -> None:
        """Stop the poller and wait for its task to finish."""
        self.stop()
        task = self._task
        if task is None:
            return
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        while True:
            started = loop.time()
            await self.run_once()
            remaining = self._interval - (loop.time() - started)
            await asyncio.sleep(max(0.0, remaining))

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    async def run_once(self) -> TickResult:
        """Run a single fetch-aggregate-notify cycle.

        Never raises except for cancellation: every failure is converted
        into an error notification for this route's observers.
        """
        self._tick_count += 1
        try:
            result = await self._tick()
        except Exception:
            _logger.exception("Unexpected error while polling route %s", self._route_id)
            result = self._fail(
                ErrorKind.UNEXPECTED,
                f"Unexpected error while polling route {self._route_id}",
            )
        if result.succeeded:
            self._consecutive_failures = 0
        else:
            self._consecutive_failures += 1
        self._last_result = result
        return result

    async def _tick(self) -> TickResult:
        try:
            vehicle_ids = await self._resolve_vehicle_ids()
        except RouteResolutionError as exc:
            return self._fail(ErrorKind.RESOLUTION, str(exc))

        # gather() schedules every fetch before awaiting any of them and
        # waits until all of them have settled.
        outcomes = await asyncio.gather(
            *(self._fetcher.fetch(vehicle_id) for vehicle_id in vehicle_ids),
            return_exceptions=True,
        )

        records: list[PositionRecord] = []
        failed: list[str] = []
        for vehicle_id, outcome in zip(vehicle_ids, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                failed.append(vehicle_id)
                _logger.debug(
                    "Fetch for vehicle %s on route %s failed: %r",
                    vehicle_id,
                    self._route_id,
                    outcome,
                )
                continue
            records.extend(outcome)

        if not records:
            if failed:
                message = (
                    f"No bus location data for route {self._route_id}: "
                    f"all {len(vehicle_ids)} fetches failed"
                )
            else:
                message = f"No bus location data for route {self._route_id}"
            return self._fail(ErrorKind.FETCH, message, vehicle_count=len(vehicle_ids), failed_vehicles=failed)

        self._cache.set(self._route_id, records)
        self._registry.notify_data(self._route_id, records)
        self._registry.notify_error(self._route_id, ErrorSignal.cleared())
        _logger.debug(
            "Route %s: %d positions from %d/%d vehicles",
            self._route_id,
            len(records),
            len(vehicle_ids) - len(failed),
            len(vehicle_ids),
        )
        return TickResult(
            route_id=self._route_id,
            succeeded=True,
            record_count=len(records),
            vehicle_count=len(vehicle_ids),
            failed_vehicles=failed,
        )

    async def _resolve_vehicle_ids(self) -> list[str]:
        try:
            mapping = await self._resolver.resolve(self._route_id)
        except RouteResolutionError:
            raise
        except Exception as exc:
            raise RouteResolutionError(
                f"Could not resolve vehicles for route {self._route_id}: {exc}",
                route_id=self._route_id,
            ) from exc

        vehicle_ids: Sequence[str] | None = mapping.get(self._route_id)
        if not vehicle_ids:
            raise RouteResolutionError(
                f"No vehicle ids found for route {self._route_id}",
                route_id=self._route_id,
            )
        return list(vehicle_ids)

    def _fail(
        self,
        kind: ErrorKind,
        message: str,
        *,
        vehicle_count: int = 0,
        failed_vehicles: list[str] | None = None,
    ) -> TickResult:
        signal = ErrorSignal.failure(kind, message)
        _logger.warning("Polling route %s failed: %s", self._route_id, message)
        self._registry.notify_error(self._route_id, signal)
        return TickResult(
            route_id=self._route_id,
            succeeded=False,
            vehicle_count=vehicle_count,
            failed_vehicles=failed_vehicles or [],
            error=signal,
        )
