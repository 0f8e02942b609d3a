"""Stream item model for :meth:`busfeed.BusFeed.watch`."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, model_validator

from busfeed.models.position import PositionRecord
from busfeed.models.signal import ErrorSignal


class RouteUpdate(BaseModel):
    """A data or error notification for one route.

    Exactly one of ``records`` (non-empty) or ``error`` is populated.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    route_id: str
    records: tuple[PositionRecord, ...] = ()
    error: ErrorSignal | None = None

    @model_validator(mode="after")
    def _check_payload(self) -> RouteUpdate:
        if (self.error is None) == (not self.records):
            raise ValueError("RouteUpdate carries either records or an error signal")
        return self

    @property
    def is_error(self) -> bool:
        """True for failure signals; cleared signals are not errors."""
        return self.error is not None and not self.error.is_cleared
