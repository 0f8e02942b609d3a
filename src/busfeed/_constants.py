"""Internal constants shared across the library."""

BASE_URL = "https://apis.data.go.kr/1613000/BusLcInfoInqireService"
LOCATION_ENDPOINT = "/getRouteAcctoBusLcList"
USER_AGENT = "busfeed/1.0"

#: Result code the location API uses for a successful response.
API_SUCCESS_CODE = "00"

#: Upper bound on rows requested per location query.
MAX_ROWS = 100

DEFAULT_POLL_INTERVAL: float = 10.0
DEFAULT_REQUEST_TIMEOUT: float = 10.0
DEFAULT_ROUTE_MAP_TTL: float = 3600.0

#: Seconds to keep serving a stale route map after a failed refresh.
ROUTE_MAP_RETRY_BACKOFF: float = 30.0
