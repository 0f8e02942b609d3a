"""Feed configuration for busfeed."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from busfeed._constants import (
    BASE_URL,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_ROUTE_MAP_TTL,
)
from busfeed.exceptions import BusFeedConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_float(env_key: str, value: str) -> float:
    try:
        return float(value)
    except ValueError as exc:
        raise BusFeedConfigError(f"{env_key} must be a number, got {value!r}") from exc


@dataclasses.dataclass(frozen=True)
class BusFeedConfig:
    """Feed configuration.

    Parameters
    ----------
    service_key : str or None
        API key for the bus location service. Required only when the
        built-in HTTP location fetcher is used.
    city_code : str or None
        City code sent with every location query.
    base_url : str
        Base URL of the bus location service.
    route_map_url : str or None
        URL of the JSON document mapping route ids to upstream ids.
        Required only when the built-in HTTP route resolver is used.
    poll_interval : float
        Seconds between the start of one tick and the start of the next.
        A tick that takes longer than this is followed immediately by
        the next one; ticks for the same route never overlap.
    request_timeout : float
        Total timeout in seconds for a single HTTP request.
    route_map_ttl : float
        Seconds a downloaded route map is reused before refreshing.
    stop_when_idle : bool
        Stop a route's poller when its last subscriber leaves and restart
        it on the next subscription. When ``False`` (the default) pollers
        keep the cache warm until the feed is closed.
    """

    service_key: str | None = None
    city_code: str | None = None
    base_url: str = BASE_URL
    route_map_url: str | None = None
    poll_interval: float = DEFAULT_POLL_INTERVAL
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    route_map_ttl: float = DEFAULT_ROUTE_MAP_TTL
    stop_when_idle: bool = False

    def __post_init__(self) -> None:
        if self.poll_interval <= 0:
            raise BusFeedConfigError(f"poll_interval must be positive, got {self.poll_interval}")
        if self.request_timeout <= 0:
            raise BusFeedConfigError(f"request_timeout must be positive, got {self.request_timeout}")
        if self.route_map_ttl < 0:
            raise BusFeedConfigError(f"route_map_ttl must not be negative, got {self.route_map_ttl}")

    @classmethod
    def from_env(cls, **overrides: Any) -> BusFeedConfig:
        """Create configuration from environment variables.

        Reads optional ``BUSFEED_*`` variables. Explicit keyword
        arguments override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        BusFeedConfig
            Populated configuration.
        """
        env = os.environ

        _ENV_CONFIG_MAP = {
            "BUSFEED_SERVICE_KEY": "service_key",
            "BUSFEED_CITY_CODE": "city_code",
            "BUSFEED_BASE_URL": "base_url",
            "BUSFEED_ROUTE_MAP_URL": "route_map_url",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        _ENV_FLOAT_MAP = {
            "BUSFEED_POLL_INTERVAL": "poll_interval",
            "BUSFEED_REQUEST_TIMEOUT": "request_timeout",
            "BUSFEED_ROUTE_MAP_TTL": "route_map_ttl",
        }
        for env_key, field_name in _ENV_FLOAT_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = _env_float(env_key, val)

        if "stop_when_idle" not in overrides:
            config_kwargs["stop_when_idle"] = _env_bool(env.get("BUSFEED_STOP_WHEN_IDLE"), False)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
