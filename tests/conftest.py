from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

import pytest

from busfeed.models.position import PositionRecord
from busfeed.models.signal import ErrorSignal
from busfeed.state.cache import PositionCache
from busfeed.state.registry import SubscriptionRegistry


def make_record(vehicle_no: str, *, node_id: str = "N1") -> PositionRecord:
    return PositionRecord(
        latitude=36.35,
        longitude=127.38,
        vehicle_no=vehicle_no,
        node_name=f"Stop {node_id}",
        node_id=node_id,
    )


@dataclass
class FakeResolver:
    route_map: dict[str, list[str]] = field(default_factory=dict)
    error: Exception | None = None
    calls: int = 0

    async def resolve(self, route_id: str) -> Mapping[str, Sequence[str]]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.route_map


@dataclass
class FakeFetcher:
    """Per-vehicle canned responses; an Exception value is raised."""

    responses: dict[str, Any] = field(default_factory=dict)
    calls: list[str] = field(default_factory=list)

    async def fetch(self, vehicle_id: str) -> list[PositionRecord]:
        self.calls.append(vehicle_id)
        await asyncio.sleep(0)
        response = self.responses.get(vehicle_id)
        if isinstance(response, Exception):
            raise response
        if response is None:
            raise LookupError(f"no canned response for {vehicle_id}")
        return list(response)


@dataclass
class Recorder:
    """Collects what an observer receives."""

    data: list[list[PositionRecord]] = field(default_factory=list)
    errors: list[ErrorSignal] = field(default_factory=list)

    def on_data(self, records: list[PositionRecord]) -> None:
        self.data.append(records)

    def on_error(self, signal: ErrorSignal) -> None:
        self.errors.append(signal)

    @property
    def failures(self) -> list[ErrorSignal]:
        return [signal for signal in self.errors if not signal.is_cleared]


@pytest.fixture
def cache() -> PositionCache:
    return PositionCache()


@pytest.fixture
def registry(cache: PositionCache) -> SubscriptionRegistry:
    return SubscriptionRegistry(cache)
