"""Bus location endpoint.

Endpoint:
  - /getRouteAcctoBusLcList (positions of every bus on one upstream route id)

Response shape::

    {"response": {
        "header": {"resultCode": "00", "resultMsg": "NORMAL SERVICE."},
        "body": {"items": {"item": [{"gpslati": ..., "gpslong": ..., ...}]},
                 "totalCount": 2}}}

``items`` is an empty string when no bus is running, and ``item`` is a bare
object when exactly one is.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from busfeed._constants import API_SUCCESS_CODE, LOCATION_ENDPOINT, MAX_ROWS
from busfeed._normalize import as_list, safe_str
from busfeed._transport import Transport
from busfeed.config import BusFeedConfig
from busfeed.exceptions import BusFeedApiError, BusFeedConfigError, BusFeedError, LocationFetchError
from busfeed.models.position import PositionRecord

_logger = logging.getLogger(__name__)


def _build_params(config: BusFeedConfig, vehicle_id: str) -> dict[str, Any]:
    return {
        "serviceKey": config.service_key,
        "cityCode": config.city_code,
        "routeId": vehicle_id,
        "numOfRows": MAX_ROWS,
        "pageNo": 1,
        "_type": "json",
    }


def parse_location_response(payload: Any, *, endpoint: str = LOCATION_ENDPOINT) -> list[PositionRecord]:
    """Parse a location API response into position records.

    Items that are missing coordinates or a vehicle number are skipped.
    """
    if not isinstance(payload, dict) or not isinstance(payload.get("response"), dict):
        raise BusFeedApiError("Missing 'response' object", endpoint=endpoint)
    response = payload["response"]

    header = response.get("header")
    header = header if isinstance(header, dict) else {}
    code = safe_str(header.get("resultCode")) or ""
    if code != API_SUCCESS_CODE:
        message = safe_str(header.get("resultMsg")) or "unknown error"
        raise BusFeedApiError(f"{endpoint} failed: {message} (code {code or '?'})", code=code, endpoint=endpoint)

    body = response.get("body")
    items = body.get("items") if isinstance(body, dict) else None
    raw_items = as_list(items.get("item")) if isinstance(items, dict) else []

    records: list[PositionRecord] = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            continue
        try:
            records.append(PositionRecord.model_validate(raw))
        except ValidationError:
            _logger.debug("Skipping unparseable location item: %s", raw)
    return records


class HttpLocationFetcher:
    """Fetch positions from the bus location API."""

    def __init__(self, config: BusFeedConfig, transport: Transport) -> None:
        if not config.service_key:
            raise BusFeedConfigError("service_key is required for the HTTP location fetcher")
        self._config = config
        self._transport = transport

    async def fetch(self, vehicle_id: str) -> list[PositionRecord]:
        url = f"{self._config.base_url}{LOCATION_ENDPOINT}"
        try:
            payload = await self._transport.get_json(url, _build_params(self._config, vehicle_id))
            return parse_location_response(payload)
        except BusFeedError as exc:
            raise LocationFetchError(
                f"Fetching positions for {vehicle_id} failed: {exc}",
                vehicle_id=vehicle_id,
            ) from exc
