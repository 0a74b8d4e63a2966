"""
google_maps.py

Minimal Google Maps web-service clients (Distance Matrix + Geocoding).

Both return a result object instead of raising: callers branch on
DistanceOk / DistanceFailed (GeocodeOk / GeocodeFailed). Transient network
errors (connection problems, timeouts, HTTP 5xx) are retried with exponential
backoff; API-level rejections (OVER_QUERY_LIMIT, NOT_FOUND, ...) are not.
"""
from __future__ import annotations

import json
import time
import urllib.error
import urllib.parse
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Union
from urllib.request import Request, urlopen


DISTANCE_MATRIX_URL = "https://maps.googleapis.com/maps/api/distancematrix/json"
GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"

TRAVEL_MODE = "bicycling"
METERS_PER_MILE = 1609.344

USER_AGENT = "kiosk-distances/1.0"


# -----------------------------
# Results
# -----------------------------
@dataclass(frozen=True)
class DistanceOk:
    miles: float
    seconds: int


@dataclass(frozen=True)
class DistanceFailed:
    reason: str


DistanceResult = Union[DistanceOk, DistanceFailed]


@dataclass(frozen=True)
class GeocodeOk:
    longitude: float
    latitude: float


@dataclass(frozen=True)
class GeocodeFailed:
    reason: str


GeocodeResult = Union[GeocodeOk, GeocodeFailed]


class ApiError(RuntimeError):
    pass


# -----------------------------
# HTTP
# -----------------------------
def _http_get_bytes(url: str, timeout: float) -> bytes:
    req = Request(url, headers={"User-Agent": USER_AGENT, "Accept": "application/json"})
    with urlopen(req, timeout=timeout) as resp:
        return resp.read()


def _is_transient(e: Exception) -> bool:
    if isinstance(e, urllib.error.HTTPError):
        return e.code >= 500 or e.code == 429
    return isinstance(e, (urllib.error.URLError, TimeoutError, ConnectionError))


def _safe_get(d: Any, *keys: Any) -> Any:
    cur = d
    for k in keys:
        if isinstance(cur, dict):
            cur = cur.get(k)
        elif isinstance(cur, list) and isinstance(k, int) and -len(cur) <= k < len(cur):
            cur = cur[k]
        else:
            return None
    return cur


class GoogleMapsClient:
    """Shared request/retry plumbing. `http_get(url) -> bytes` is injectable for tests."""

    def __init__(
        self,
        api_key: str,
        timeout: float = 30.0,
        retries: int = 3,
        backoff: float = 1.0,
        http_get: Optional[Callable[[str], bytes]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if not api_key:
            raise ValueError("api_key is required")
        if retries < 1:
            raise ValueError(f"retries must be >= 1, got {retries}")
        self.api_key = api_key
        self.timeout = float(timeout)
        self.retries = int(retries)
        self.backoff = float(backoff)
        self._http_get = http_get or (lambda url: _http_get_bytes(url, timeout=self.timeout))
        self._sleep = sleep

    def _build_url(self, base_url: str, params: Dict[str, Any]) -> str:
        q = urllib.parse.urlencode({**{k: v for k, v in params.items() if v is not None}, "key": self.api_key})
        return f"{base_url}?{q}"

    def _get_json(self, base_url: str, params: Dict[str, Any]) -> Dict[str, Any]:
        url = self._build_url(base_url, params)
        for attempt in range(1, self.retries + 1):
            try:
                raw = self._http_get(url)
                break
            except Exception as e:
                if not _is_transient(e) or attempt == self.retries:
                    raise ApiError(f"request failed after {attempt} attempt(s): {e!r}") from e
                self._sleep(self.backoff * (2 ** (attempt - 1)))

        try:
            data = json.loads(raw.decode("utf-8", errors="replace"))
        except ValueError as e:
            raise ApiError(f"response is not JSON: {e}") from e
        if not isinstance(data, dict):
            raise ApiError(f"unexpected response type: {type(data).__name__}")

        status = data.get("status")
        if status != "OK":
            detail = data.get("error_message")
            raise ApiError(f"status={status}" + (f" ({detail})" if detail else ""))
        return data


class DistanceMatrixClient(GoogleMapsClient):
    def fetch(self, origin: str, destination: str) -> DistanceResult:
        """Bicycling distance (miles) and duration (seconds) between two addresses."""
        try:
            data = self._get_json(
                DISTANCE_MATRIX_URL,
                {
                    "origins": origin,
                    "destinations": destination,
                    "mode": TRAVEL_MODE,
                    "units": "imperial",
                },
            )
        except ApiError as e:
            return DistanceFailed(str(e))

        element = _safe_get(data, "rows", 0, "elements", 0)
        if not isinstance(element, dict):
            return DistanceFailed("no route element in response")
        if element.get("status") != "OK":
            return DistanceFailed(f"element status={element.get('status')}")

        meters = _safe_get(element, "distance", "value")
        seconds = _safe_get(element, "duration", "value")
        try:
            return DistanceOk(miles=float(meters) / METERS_PER_MILE, seconds=int(seconds))
        except (TypeError, ValueError):
            return DistanceFailed(f"bad distance/duration values: {meters!r}, {seconds!r}")


class GeocodingClient(GoogleMapsClient):
    def geocode(self, address: str) -> GeocodeResult:
        try:
            data = self._get_json(GEOCODE_URL, {"address": address})
        except ApiError as e:
            return GeocodeFailed(str(e))

        location = _safe_get(data, "results", 0, "geometry", "location")
        if not isinstance(location, dict):
            return GeocodeFailed("no geometry in response")
        try:
            return GeocodeOk(longitude=float(location["lng"]), latitude=float(location["lat"]))
        except (KeyError, TypeError, ValueError):
            return GeocodeFailed(f"bad location values: {location!r}")
