from __future__ import annotations

import asyncio
from typing import Any

import pytest

from busfeed.exceptions import BusFeedError, LocationFetchError
from busfeed.models.signal import ErrorKind
from busfeed.poller import PollerState, RoutePoller
from busfeed.state.cache import PositionCache
from busfeed.state.registry import SubscriptionRegistry

from conftest import FakeFetcher, FakeResolver, Recorder, make_record


def _poller(
    route_id: str,
    *,
    resolver: Any,
    fetcher: Any,
    cache: PositionCache,
    registry: SubscriptionRegistry,
    interval: float = 60.0,
) -> RoutePoller:
    return RoutePoller(
        route_id,
        resolver=resolver,
        fetcher=fetcher,
        cache=cache,
        registry=registry,
        interval=interval,
    )


@pytest.mark.asyncio
async def test_partial_failure_is_absorbed(cache: PositionCache, registry: SubscriptionRegistry) -> None:
    resolver = FakeResolver({"101": ["v1", "v2"]})
    fetcher = FakeFetcher({"v1": [make_record("A")], "v2": LocationFetchError("down", vehicle_id="v2")})
    recorder = Recorder()
    registry.subscribe("101", recorder.on_data, recorder.on_error)

    result = await _poller("101", resolver=resolver, fetcher=fetcher, cache=cache, registry=registry).run_once()

    assert result.succeeded
    assert result.record_count == 1
    assert result.failed_vehicles == ["v2"]
    assert recorder.data == [[make_record("A")]]
    assert cache.get("101") == [make_record("A")]
    assert recorder.failures == []
    # Success clears any previously signalled error.
    assert len(recorder.errors) == 1
    assert recorder.errors[0].is_cleared


@pytest.mark.asyncio
async def test_aggregate_concatenates_all_successful_fetches(
    cache: PositionCache, registry: SubscriptionRegistry
) -> None:
    resolver = FakeResolver({"101": ["v1", "v2", "v3"]})
    fetcher = FakeFetcher(
        {
            "v1": [make_record("A"), make_record("B")],
            "v2": [make_record("C")],
            "v3": RuntimeError("timeout"),
        }
    )
    recorder = Recorder()
    registry.subscribe("101", recorder.on_data, recorder.on_error)

    await _poller("101", resolver=resolver, fetcher=fetcher, cache=cache, registry=registry).run_once()

    expected = {make_record("A"), make_record("B"), make_record("C")}
    assert set(cache.get("101") or []) == expected
    assert len(recorder.data) == 1
    assert set(recorder.data[0]) == expected


@pytest.mark.asyncio
async def test_empty_vehicle_list_is_resolution_failure(cache: PositionCache, registry: SubscriptionRegistry) -> None:
    resolver = FakeResolver({"202": []})
    fetcher = FakeFetcher()
    recorder = Recorder()
    registry.subscribe("202", recorder.on_data, recorder.on_error)

    result = await _poller("202", resolver=resolver, fetcher=fetcher, cache=cache, registry=registry).run_once()

    assert not result.succeeded
    assert len(recorder.failures) == 1
    assert recorder.failures[0].kind == ErrorKind.RESOLUTION
    assert recorder.failures[0].message
    assert cache.get("202") is None
    assert fetcher.calls == []


@pytest.mark.asyncio
async def test_missing_route_and_resolver_error_are_resolution_failures(
    cache: PositionCache, registry: SubscriptionRegistry
) -> None:
    recorder = Recorder()
    registry.subscribe("303", recorder.on_data, recorder.on_error)

    missing = FakeResolver({"101": ["v1"]})
    await _poller("303", resolver=missing, fetcher=FakeFetcher(), cache=cache, registry=registry).run_once()

    broken = FakeResolver(error=ConnectionError("route map offline"))
    await _poller("303", resolver=broken, fetcher=FakeFetcher(), cache=cache, registry=registry).run_once()

    assert [signal.kind for signal in recorder.failures] == [ErrorKind.RESOLUTION, ErrorKind.RESOLUTION]
    assert "route map offline" in (recorder.failures[1].message or "")


@pytest.mark.asyncio
async def test_total_failure_keeps_last_known_good(cache: PositionCache, registry: SubscriptionRegistry) -> None:
    resolver = FakeResolver({"101": ["v1", "v2"]})
    fetcher = FakeFetcher({"v1": [make_record("A")], "v2": [make_record("B")]})
    recorder = Recorder()
    registry.subscribe("101", recorder.on_data, recorder.on_error)
    poller = _poller("101", resolver=resolver, fetcher=fetcher, cache=cache, registry=registry)
    await poller.run_once()
    before = cache.get("101")

    fetcher.responses = {"v1": RuntimeError("down"), "v2": RuntimeError("down")}
    result = await poller.run_once()

    assert not result.succeeded
    assert result.failed_vehicles == ["v1", "v2"]
    assert cache.get("101") == before
    assert len(recorder.data) == 1
    assert recorder.failures[-1].kind == ErrorKind.FETCH
    assert recorder.failures[-1].message
    assert poller.consecutive_failures == 1


@pytest.mark.asyncio
async def test_zero_records_is_a_failed_tick(cache: PositionCache, registry: SubscriptionRegistry) -> None:
    resolver = FakeResolver({"101": ["v1"]})
    fetcher = FakeFetcher({"v1": []})
    recorder = Recorder()
    registry.subscribe("101", recorder.on_data, recorder.on_error)

    result = await _poller("101", resolver=resolver, fetcher=fetcher, cache=cache, registry=registry).run_once()

    assert not result.succeeded
    assert result.failed_vehicles == []
    assert recorder.data == []
    assert recorder.failures[0].kind == ErrorKind.FETCH
    assert cache.get("101") is None


@pytest.mark.asyncio
async def test_unexpected_error_is_reported_and_polling_survives(
    cache: PositionCache, registry: SubscriptionRegistry
) -> None:
    class _BadResolver:
        def __init__(self) -> None:
            self.calls = 0

        async def resolve(self, route_id: str) -> Any:
            self.calls += 1
            if self.calls == 1:
                return object()  # not a mapping
            return {"101": ["v1"]}

    fetcher = FakeFetcher({"v1": [make_record("A")]})
    recorder = Recorder()
    registry.subscribe("101", recorder.on_data, recorder.on_error)
    poller = _poller("101", resolver=_BadResolver(), fetcher=fetcher, cache=cache, registry=registry)

    first = await poller.run_once()
    second = await poller.run_once()

    assert not first.succeeded
    assert recorder.failures[0].kind == ErrorKind.UNEXPECTED
    assert second.succeeded
    assert cache.get("101") == [make_record("A")]
    assert poller.tick_count == 2
    assert poller.consecutive_failures == 0


@pytest.mark.asyncio
async def test_fetches_within_a_tick_run_concurrently(cache: PositionCache, registry: SubscriptionRegistry) -> None:
    both_started = asyncio.Event()
    started: list[str] = []

    class _BarrierFetcher:
        async def fetch(self, vehicle_id: str) -> list[Any]:
            started.append(vehicle_id)
            if len(started) == 2:
                both_started.set()
            # Deadlocks (and times out) if fetches are issued one at a time.
            await asyncio.wait_for(both_started.wait(), timeout=1.0)
            return [make_record(vehicle_id)]

    resolver = FakeResolver({"101": ["v1", "v2"]})
    poller = _poller("101", resolver=resolver, fetcher=_BarrierFetcher(), cache=cache, registry=registry)

    result = await poller.run_once()

    assert result.succeeded
    assert result.record_count == 2


@pytest.mark.asyncio
async def test_fault_in_one_route_is_invisible_to_another(
    cache: PositionCache, registry: SubscriptionRegistry
) -> None:
    resolver = FakeResolver({"A": ["a1"], "B": ["b1"]})
    fetcher = FakeFetcher({"a1": RuntimeError("injected"), "b1": [make_record("B1")]})
    route_a = Recorder()
    route_b = Recorder()
    registry.subscribe("A", route_a.on_data, route_a.on_error)
    registry.subscribe("B", route_b.on_data, route_b.on_error)

    await asyncio.gather(
        _poller("A", resolver=resolver, fetcher=fetcher, cache=cache, registry=registry).run_once(),
        _poller("B", resolver=resolver, fetcher=fetcher, cache=cache, registry=registry).run_once(),
    )

    assert cache.get("A") is None
    assert cache.get("B") == [make_record("B1")]
    assert route_b.failures == []
    assert route_b.data == [[make_record("B1")]]
    assert route_a.data == []
    assert len(route_a.failures) == 1


@pytest.mark.asyncio
async def test_first_tick_fires_immediately(cache: PositionCache, registry: SubscriptionRegistry) -> None:
    received = asyncio.Event()
    registry.subscribe("101", lambda _records: received.set(), lambda _signal: None)
    resolver = FakeResolver({"101": ["v1"]})
    fetcher = FakeFetcher({"v1": [make_record("A")]})
    poller = _poller("101", resolver=resolver, fetcher=fetcher, cache=cache, registry=registry, interval=3600.0)

    poller.start()
    try:
        await asyncio.wait_for(received.wait(), timeout=1.0)
    finally:
        await poller.aclose()

    assert poller.tick_count == 1


@pytest.mark.asyncio
async def test_loop_keeps_ticking_until_stopped(cache: PositionCache, registry: SubscriptionRegistry) -> None:
    resolver = FakeResolver({"101": ["v1"]})
    fetcher = FakeFetcher({"v1": RuntimeError("always down")})
    poller = _poller("101", resolver=resolver, fetcher=fetcher, cache=cache, registry=registry, interval=0.01)

    poller.start()
    poller.start()  # no second loop
    assert poller.state == PollerState.RUNNING
    for _ in range(200):
        if poller.tick_count >= 3:
            break
        await asyncio.sleep(0.01)
    await poller.aclose()
    ticks = poller.tick_count
    await asyncio.sleep(0.05)

    assert ticks >= 3
    assert poller.tick_count == ticks
    assert poller.state == PollerState.STOPPED
    assert poller.consecutive_failures >= ticks - 1


@pytest.mark.asyncio
async def test_stopped_poller_cannot_restart(cache: PositionCache, registry: SubscriptionRegistry) -> None:
    poller = _poller("101", resolver=FakeResolver(), fetcher=FakeFetcher(), cache=cache, registry=registry)
    assert poller.state == PollerState.IDLE

    poller.stop()

    with pytest.raises(BusFeedError):
        poller.start()


@pytest.mark.asyncio
async def test_slow_ticks_never_overlap_and_next_tick_starts_at_once(
    cache: PositionCache, registry: SubscriptionRegistry
) -> None:
    loop = asyncio.get_running_loop()
    in_flight = 0
    max_in_flight = 0
    spans: list[tuple[float, float]] = []

    class _SlowFetcher:
        async def fetch(self, vehicle_id: str) -> list[Any]:
            nonlocal in_flight, max_in_flight
            in_flight += 1
            max_in_flight = max(max_in_flight, in_flight)
            started = loop.time()
            try:
                await asyncio.sleep(0.15)
            finally:
                in_flight -= 1
            spans.append((started, loop.time()))
            return [make_record(vehicle_id)]

    resolver = FakeResolver({"101": ["v1"]})
    # Each fetch takes longer than the interval.
    poller = _poller("101", resolver=resolver, fetcher=_SlowFetcher(), cache=cache, registry=registry, interval=0.1)

    poller.start()
    try:
        for _ in range(200):
            if len(spans) >= 3:
                break
            await asyncio.sleep(0.01)
    finally:
        await poller.aclose()

    assert len(spans) >= 3
    assert max_in_flight == 1
    for (_, previous_end), (next_start, _) in zip(spans, spans[1:]):
        assert next_start >= previous_end
        # An overrunning tick is followed by the next one without waiting another interval.
        assert next_start - previous_end < 0.05
