# backend/civicpulse/integrations/maps_client.py
"""
Geocoding integration for CivicPulse.

Incidents are placed either by coordinates (reverse lookup gives the display
name) or by a typed place name (forward lookup gives the coordinates). The
lookup service is OpenStreetMap/Nominatim; every call fails soft and returns
None so that a geocoding outage never blocks a report that already has
coordinates.
"""

import asyncio
import hashlib
import json
from dataclasses import dataclass
from typing import Any, Dict, Optional

import aiohttp
from cachetools import TTLCache
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from civicpulse.core.config import GeocodingConfig
from civicpulse.core.logging_config import get_logger
from civicpulse.services.utils.geo import to_coordinate

logger = get_logger(__name__)


@dataclass(frozen=True)
class GeocodeResult:
    """Coordinates and display name returned by a forward lookup."""
    latitude: float
    longitude: float
    display_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "display_name": self.display_name,
        }


class TransientGeocodingError(Exception):
    """Raised for responses worth retrying (rate limiting, server errors)."""


class BaseGeocoder:
    """Base class for geocoding providers."""

    async def reverse_lookup(self, latitude: float, longitude: float) -> Optional[str]:
        """Convert coordinates to a display name."""
        raise NotImplementedError("Subclasses must implement reverse_lookup")

    async def forward_lookup(self, place_name: str) -> Optional[GeocodeResult]:
        """Convert a place name to coordinates."""
        raise NotImplementedError("Subclasses must implement forward_lookup")

    async def close(self) -> None:
        pass


class NullGeocoder(BaseGeocoder):
    """Geocoder used when lookups are disabled; never resolves anything."""

    async def reverse_lookup(self, latitude: float, longitude: float) -> Optional[str]:
        return None

    async def forward_lookup(self, place_name: str) -> Optional[GeocodeResult]:
        return None


class NominatimGeocoder(BaseGeocoder):
    """
    OpenStreetMap/Nominatim geocoder (free, no API key required).

    Successful lookups are cached for ``cache_ttl_seconds``; failures are not
    cached so a later request can succeed once the service recovers.
    """

    def __init__(self, config: Optional[GeocodingConfig] = None):
        self.config = config or GeocodingConfig()
        self.base_url = self.config.base_url.rstrip("/")
        self.headers = {
            "User-Agent": self.config.user_agent,
            "Accept": "application/json",
        }
        if self.config.email:
            self.headers["From"] = self.config.email

        self._session: Optional[aiohttp.ClientSession] = None
        self._session_lock = asyncio.Lock()

        self.cache = TTLCache(
            maxsize=self.config.cache_max_entries,
            ttl=self.config.cache_ttl_seconds,
        )

        logger.info(f"Nominatim geocoder initialized for {self.base_url}")

    def _generate_cache_key(self, prefix: str, data: Any) -> str:
        key_str = json.dumps(data, sort_keys=True, default=str)
        key_hash = hashlib.md5(key_str.encode()).hexdigest()
        return f"{prefix}:{key_hash}"

    async def _get_session(self) -> aiohttp.ClientSession:
        async with self._session_lock:
            if self._session is None or self._session.closed:
                timeout = aiohttp.ClientTimeout(total=self.config.timeout_seconds)
                self._session = aiohttp.ClientSession(headers=self.headers, timeout=timeout)
            return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _fetch_json(self, path: str, params: Dict[str, Any]) -> Any:
        session = await self._get_session()
        async with session.get(f"{self.base_url}{path}", params=params) as response:
            if response.status == 429 or response.status >= 500:
                raise TransientGeocodingError(f"Nominatim returned {response.status}")
            if response.status != 200:
                logger.warning(f"Nominatim {path} failed with status: {response.status}")
                return None
            return await response.json(content_type=None)

    async def _request_json(self, path: str, params: Dict[str, Any]) -> Any:
        """GET ``path`` with retries on transient failures."""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.config.retry_attempts),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
            retry=retry_if_exception_type(
                (aiohttp.ClientError, asyncio.TimeoutError, TransientGeocodingError)
            ),
            reraise=True,
        ):
            with attempt:
                return await self._fetch_json(path, params)
        return None

    @staticmethod
    def _display_name_from(data: Any) -> Optional[str]:
        if not isinstance(data, dict):
            return None
        if data.get("display_name"):
            return str(data["display_name"])

        # Fallback: build a short name from the address parts
        address = data.get("address") or {}
        parts = [
            address.get("road") or address.get("suburb") or address.get("neighbourhood"),
            address.get("city") or address.get("town") or address.get("village"),
            address.get("state"),
        ]
        parts = [p for p in parts if p]
        return ", ".join(parts) if parts else None

    async def reverse_lookup(self, latitude: float, longitude: float) -> Optional[str]:
        """
        Reverse geocode coordinates.

        Args:
            latitude: Latitude in degrees
            longitude: Longitude in degrees

        Returns:
            Human-readable place name, or None when the lookup fails
        """
        cache_key = self._generate_cache_key("reverse", {"lat": latitude, "lon": longitude})
        if cache_key in self.cache:
            logger.debug(f"Cache hit for reverse lookup: {latitude}, {longitude}")
            return self.cache[cache_key]

        try:
            data = await self._request_json(
                "/reverse",
                {"lat": latitude, "lon": longitude, "format": "json"},
            )
        except Exception as e:
            logger.warning(f"Reverse geocoding failed for {latitude}, {longitude}: {e}")
            return None

        name = self._display_name_from(data)
        if name:
            self.cache[cache_key] = name
        return name

    async def forward_lookup(self, place_name: str) -> Optional[GeocodeResult]:
        """
        Geocode a place name.

        Args:
            place_name: Free-text place name

        Returns:
            Best match, or None when nothing was found or the lookup fails
        """
        query = (place_name or "").strip()
        if not query:
            return None

        cache_key = self._generate_cache_key("forward", {"q": query})
        if cache_key in self.cache:
            logger.debug(f"Cache hit for forward lookup: {query}")
            return self.cache[cache_key]

        try:
            data = await self._request_json(
                "/search",
                {"q": query, "format": "json", "limit": 1},
            )
        except Exception as e:
            logger.warning(f"Forward geocoding failed for '{query}': {e}")
            return None

        if not isinstance(data, list) or not data or not isinstance(data[0], dict):
            return None

        best = data[0]
        latitude = to_coordinate(best.get("lat"))
        longitude = to_coordinate(best.get("lon"))
        if latitude is None or longitude is None:
            logger.warning(f"Forward geocoding for '{query}' returned unusable coordinates")
            return None

        result = GeocodeResult(
            latitude=latitude,
            longitude=longitude,
            display_name=best.get("display_name") or None,
        )
        self.cache[cache_key] = result
        return result


def build_geocoder(config: GeocodingConfig) -> BaseGeocoder:
    """Create the geocoder selected by ``config``."""
    if not config.enabled:
        logger.info("Geocoding disabled; display locations fall back to coordinates")
        return NullGeocoder()
    return NominatimGeocoder(config)
