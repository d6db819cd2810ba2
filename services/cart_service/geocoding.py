"""
geocoding.py - City Name to Coordinates

Resolves free-text place names with the OpenStreetMap Nominatim search API.

Contract:
    geocode_city() never raises. It returns Coordinates, or None when the city
    is unknown, the payload is malformed, or the service cannot be reached
    (timeout, network error, non-2xx). Callers treat None as an expected outcome.

Nominatim requires an identifying User-Agent on every request. Successful
lookups are cached in Redis per normalized city name. Misses are never cached.
"""

import logging
from typing import Optional

import httpx
import redis
from pydantic import ValidationError

from services.cart_service.errors import UpstreamUnavailableError
from shared.shipping import Coordinates

logger = logging.getLogger(__name__)


def normalize_city(city: str) -> str:
    return " ".join(city.split()).casefold()


class GeocodeCache:
    """Redis cache of successful lookups."""

    KEY_PREFIX = "geocode:"

    def __init__(self, redis_client: redis.Redis, ttl: int = 7 * 24 * 3600):
        self.redis = redis_client
        self.ttl = ttl

    def get(self, city: str) -> Optional[Coordinates]:
        key = f"{self.KEY_PREFIX}{normalize_city(city)}"
        try:
            cached = self.redis.get(key)
        except redis.RedisError as e:
            logger.warning(f"Geocode cache read failed for {city!r}: {e}")
            return None
        if not cached:
            return None

        try:
            return Coordinates.model_validate_json(cached)
        except ValidationError:
            logger.warning(f"Discarding unreadable geocode cache entry for {city!r}")
            self._discard(key)
            return None

    def _discard(self, key: str) -> None:
        try:
            self.redis.delete(key)
        except redis.RedisError as e:
            logger.warning(f"Geocode cache delete failed for {key}: {e}")

    def set(self, city: str, coords: Coordinates) -> None:
        try:
            self.redis.set(f"{self.KEY_PREFIX}{normalize_city(city)}", coords.model_dump_json(), ex=self.ttl)
        except redis.RedisError as e:
            logger.warning(f"Geocode cache write failed for {city!r}: {e}")


class NominatimGeocoder:
    """Async Nominatim client with timeout, optional retry and cache."""

    def __init__(
        self,
        base_url: str = "https://nominatim.openstreetmap.org/search",
        user_agent: str = "FurnitureApp/1.0",
        timeout: float = 5.0,
        max_attempts: int = 1,
        cache: Optional[GeocodeCache] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """
        Initialize the geocoder.

        Args:
            base_url: Nominatim search endpoint
            user_agent: Client identification required by Nominatim
            timeout: Seconds before a lookup counts as failed
            max_attempts: Transport attempts per lookup (1 = no retry)
            cache: Optional Redis cache of successful lookups
            client: Injected httpx client (tests); created when omitted
        """
        self.base_url = base_url
        self.max_attempts = max(1, max_attempts)
        self.cache = cache
        self.client = client or httpx.AsyncClient(timeout=timeout)
        self.timeout = timeout
        self.headers = {"User-Agent": user_agent, "Accept": "application/json"}

    async def geocode_city(self, city: str) -> Optional[Coordinates]:
        """Coordinates for ``city``, or None when it cannot be resolved."""
        if not city or not city.strip():
            return None

        if self.cache is not None:
            cached = self.cache.get(city)
            if cached is not None:
                logger.debug(f"Geocode cache hit for {city!r}")
                return cached

        coords = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                coords = await self._lookup(city)
                break
            except UpstreamUnavailableError as e:
                logger.error(
                    f"Geocoding error for city {city!r} (attempt {attempt}/{self.max_attempts}): {e.message}"
                )

        if coords is not None and self.cache is not None:
            self.cache.set(city, coords)
        return coords

    async def _lookup(self, city: str) -> Optional[Coordinates]:
        try:
            response = await self.client.get(
                self.base_url,
                params={"q": city.strip(), "format": "json", "limit": 1},
                headers=self.headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise UpstreamUnavailableError(f"timed out after {self.timeout}s") from e
        except httpx.HTTPStatusError as e:
            raise UpstreamUnavailableError(f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise UpstreamUnavailableError(str(e) or e.__class__.__name__) from e

        try:
            results = response.json()
        except ValueError:
            logger.warning(f"Malformed geocoding response for city {city!r}")
            return None

        if not isinstance(results, list) or not results:
            logger.warning(f"City not found: {city!r}")
            return None

        first = results[0]
        if not isinstance(first, dict):
            logger.warning(f"Malformed geocoding result for city {city!r}: {first!r}")
            return None
        try:
            return Coordinates(latitude=first.get("lat"), longitude=first.get("lon"))
        except ValidationError:
            logger.warning(f"Malformed geocoding result for city {city!r}: {first!r}")
            return None

    async def aclose(self) -> None:
        await self.client.aclose()
