"""HTTP transport for JSON GET requests."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any, Protocol

import aiohttp

from busfeed._constants import USER_AGENT
from busfeed._redact import redact_params
from busfeed.exceptions import BusFeedTransportError

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Structural transport interface used by the HTTP adapters.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (`JsonTransport`) concrete.
    """

    async def get_json(self, url: str, params: Mapping[str, Any] | None = None) -> Any:
        ...


class JsonTransport:
    """aiohttp-backed transport that decodes JSON response bodies."""

    def __init__(self, http_session: aiohttp.ClientSession, *, timeout: float) -> None:
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def get_json(self, url: str, params: Mapping[str, Any] | None = None) -> Any:
        """GET *url* and return the decoded JSON body.

        Raises :class:`BusFeedTransportError` on network errors, timeouts,
        non-200 responses and bodies that are not JSON.
        """
        headers = {
            "accept": "application/json",
            "user-agent": USER_AGENT,
        }
        query = {key: str(value) for key, value in (params or {}).items() if value is not None}

        _logger.debug("GET %s params=%s", url, redact_params(query))

        try:
            async with self._http.get(url, params=query, headers=headers, timeout=self._timeout) as resp:
                text = await resp.text()
                if resp.status != 200:
                    raise BusFeedTransportError(
                        f"HTTP {resp.status} from {url}: {text[:200]}",
                        status_code=resp.status,
                        endpoint=url,
                    )
        except BusFeedTransportError:
            raise
        except TimeoutError as exc:
            raise BusFeedTransportError(f"Request to {url} timed out", endpoint=url) from exc
        except aiohttp.ClientError as exc:
            raise BusFeedTransportError(f"Request to {url} failed: {exc}", endpoint=url) from exc

        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise BusFeedTransportError(
                f"Invalid JSON from {url}: {text[:200]}",
                endpoint=url,
            ) from exc
