"""Data models for busfeed."""

from busfeed.models.position import PositionRecord
from busfeed.models.signal import ErrorKind, ErrorSignal
from busfeed.models.update import RouteUpdate

__all__ = [
    "ErrorKind",
    "ErrorSignal",
    "PositionRecord",
    "RouteUpdate",
]
