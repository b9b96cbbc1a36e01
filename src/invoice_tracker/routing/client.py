from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from typing import Any

import requests

from ..errors import (
    ConfigError,
    GeocodeError,
    ProviderUnavailable,
    RateLimitExceeded,
    RouteError,
)
from ..models.config_models import RoutingConfig
from .rate_limiter import RateLimiter

"""OpenRouteService client: geocode, directions and distance matrix.

Every outbound call:
1. fails pre-flight with ConfigError when no API key is configured
2. waits on the shared RateLimiter
3. is retried up to `max_attempts` times on HTTP 429 (sleep
   max(Retry-After, attempt * 2s)) and on network errors (sleep attempt * 2s)

Distances come back in meters and are converted to kilometers here.
Coordinates are (lat, lng) tuples on our side; the provider wants [lng, lat].
"""

logger = logging.getLogger(__name__)

__all__ = [
    "Coordinates",
    "GeoRoutingClient",
    "DEFAULT_RETRY_AFTER_SECONDS",
]

Coordinates = tuple[float, float]  # (lat, lng)

DEFAULT_RETRY_AFTER_SECONDS = 5
BACKOFF_STEP_SECONDS = 2


def _retry_after(response: requests.Response) -> float:
    raw = response.headers.get("Retry-After")
    try:
        return float(int(raw)) if raw is not None else float(DEFAULT_RETRY_AFTER_SECONDS)
    except (TypeError, ValueError):
        return float(DEFAULT_RETRY_AFTER_SECONDS)


class GeoRoutingClient:
    def __init__(
        self,
        config: RoutingConfig,
        *,
        session: requests.Session | None = None,
        limiter: RateLimiter | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self.session = session or requests.Session()
        self.limiter = limiter or RateLimiter(config.min_interval_seconds)
        self._sleep = sleep

    # ------------------------------------------------------------------
    def _require_key(self) -> str:
        key = (self.config.api_key or "").strip()
        if not key:
            raise ConfigError("routing api_key is not configured (set ORS_API_KEY or routing.api_key)")
        return key

    def _request_with_retry(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        """Send one logical request; returns the first non-429 response."""
        attempts = max(1, int(self.config.max_attempts))
        last_error: requests.RequestException | None = None
        for attempt in range(attempts):
            self.limiter.wait()
            final = attempt == attempts - 1
            try:
                response = self.session.request(
                    method, url, timeout=self.config.timeout_seconds, **kwargs
                )
            except requests.RequestException as e:
                last_error = e
                if final:
                    break
                wait_for = (attempt + 1) * BACKOFF_STEP_SECONDS
                logger.warning(
                    "request failed (%s); retry %d/%d in %ss", e, attempt + 1, attempts, wait_for
                )
                self._sleep(wait_for)
                continue

            if response.status_code != 429:
                return response
            if final:
                raise RateLimitExceeded(f"rate limited (429) after {attempts} attempts: {url}")
            wait_for = max(_retry_after(response), float((attempt + 1) * BACKOFF_STEP_SECONDS))
            logger.warning("rate limited (429); retry %d/%d in %ss", attempt + 1, attempts, wait_for)
            self._sleep(wait_for)

        raise ProviderUnavailable(f"routing provider unreachable after {attempts} attempts: {last_error}") from last_error

    @staticmethod
    def _json(response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return None

    # ------------------------------------------------------------------
    def geocode(self, address: str) -> Coordinates:
        """Free-text address -> (lat, lng); GeocodeError when empty or unmatched."""
        text = (address or "").strip()
        if not text:
            raise GeocodeError("address is empty")
        key = self._require_key()

        response = self._request_with_retry(
            "GET",
            f"{self.config.base_url}/geocode/search",
            params={"api_key": key, "text": text, "size": 1},
        )
        if not response.ok:
            raise GeocodeError(f"geocoding failed for {text!r}: HTTP {response.status_code}")
        data = self._json(response) or {}
        features = data.get("features") or []
        if not features:
            raise GeocodeError(f"no geocoding match for {text!r}")
        try:
            lng, lat = features[0]["geometry"]["coordinates"][:2]
            return float(lat), float(lng)
        except (KeyError, TypeError, ValueError) as e:
            raise GeocodeError(f"malformed geocoding response for {text!r}") from e

    def distance(self, origin: Coordinates, destination: Coordinates) -> float:
        """Driving distance in km between two points; RouteError when no route."""
        key = self._require_key()
        response = self._request_with_retry(
            "POST",
            f"{self.config.base_url}/v2/directions/{self.config.profile}",
            headers={"Authorization": key, "Content-Type": "application/json"},
            json={"coordinates": [[origin[1], origin[0]], [destination[1], destination[0]]]},
        )
        if not response.ok:
            raise RouteError(f"directions failed: HTTP {response.status_code}")
        data = self._json(response) or {}
        routes = data.get("routes") or []
        if not routes:
            raise RouteError("no route between the given points")
        summary = routes[0].get("summary") or {}
        # ORS は距離 0 のとき distance キーを省略する
        meters = summary.get("distance", 0.0)
        try:
            return float(meters) / 1000
        except (TypeError, ValueError) as e:
            raise RouteError("malformed directions response") from e

    def distance_matrix(self, locations: Sequence[Coordinates]) -> list[list[float | None]]:
        """Pairwise km matrix: result[i][j] is the distance from i to j (None when unroutable)."""
        key = self._require_key()
        if len(locations) < 2:
            return [[0.0] for _ in locations]
        response = self._request_with_retry(
            "POST",
            f"{self.config.base_url}/v2/matrix/{self.config.profile}",
            headers={"Authorization": key, "Content-Type": "application/json"},
            json={"locations": [[lng, lat] for lat, lng in locations], "metrics": ["distance"]},
        )
        if not response.ok:
            raise RouteError(f"matrix failed: HTTP {response.status_code}")
        data = self._json(response) or {}
        distances = data.get("distances")
        if not isinstance(distances, list):
            raise RouteError("matrix response has no distances")
        return [[(float(m) / 1000 if m is not None else None) for m in row] for row in distances]

    def close(self) -> None:
        self.session.close()
