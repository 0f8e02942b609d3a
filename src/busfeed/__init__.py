"""busfeed - Live bus positions per route, polled and fanned out to observers."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("busfeed")
except PackageNotFoundError:
    __version__ = "0+local"
from busfeed.config import BusFeedConfig
from busfeed.exceptions import (
    BusFeedApiError,
    BusFeedConfigError,
    BusFeedError,
    BusFeedTransportError,
    LocationFetchError,
    RouteResolutionError,
)
from busfeed.feed import BusFeed
from busfeed.models import ErrorKind, ErrorSignal, PositionRecord, RouteUpdate
from busfeed.poller import PollerState, RoutePoller, TickResult
from busfeed.sources import LocationFetcher, RouteResolver, StaticRouteResolver
from busfeed.state.cache import PositionCache
from busfeed.state.registry import Subscription, SubscriptionRegistry

__all__ = [
    "__version__",
    "BusFeed",
    "BusFeedApiError",
    "BusFeedConfig",
    "BusFeedConfigError",
    "BusFeedError",
    "BusFeedTransportError",
    "ErrorKind",
    "ErrorSignal",
    "LocationFetchError",
    "LocationFetcher",
    "PollerState",
    "PositionCache",
    "PositionRecord",
    "RoutePoller",
    "RouteResolutionError",
    "RouteResolver",
    "RouteUpdate",
    "StaticRouteResolver",
    "Subscription",
    "SubscriptionRegistry",
    "TickResult",
]
