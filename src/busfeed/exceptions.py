"""Custom exception hierarchy for busfeed."""

from __future__ import annotations


class BusFeedError(Exception):
    """Base exception for all busfeed errors."""


class BusFeedConfigError(BusFeedError):
    """Invalid or missing configuration."""


class BusFeedTransportError(BusFeedError):
    """HTTP-level failure (network, timeout, non-200, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class BusFeedApiError(BusFeedError):
    """Upstream API answered with a non-success result code."""

    def __init__(
        self,
        message: str,
        *,
        code: str = "",
        endpoint: str = "",
    ) -> None:
        self.code = code
        self.endpoint = endpoint
        super().__init__(message)


class RouteResolutionError(BusFeedError):
    """A route could not be mapped to any upstream vehicle identifier.

    Covers resolver failures as well as a missing or empty entry for the
    route. Pollers report it to observers and keep polling.
    """

    def __init__(self, message: str, *, route_id: str = "") -> None:
        self.route_id = route_id
        super().__init__(message)


class LocationFetchError(BusFeedError):
    """Fetching positions for a single vehicle identifier failed."""

    def __init__(self, message: str, *, vehicle_id: str = "") -> None:
        self.vehicle_id = vehicle_id
        super().__init__(message)
