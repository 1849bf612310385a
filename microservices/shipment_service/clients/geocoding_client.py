"""
Geocoding Client

Forward geocoding of "city, UF" through the Mapbox places API.
Used at shipment creation when the draft carries no coordinates.
"""

import logging
from typing import Optional, Tuple
from urllib.parse import quote

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..protocols import GeocodingError

logger = logging.getLogger(__name__)


class GeocodingClient:
    """Mapbox forward geocoder restricted to Brazil"""

    def __init__(
        self,
        base_url: str,
        access_token: Optional[str] = None,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            base_url: Places endpoint, e.g. https://api.mapbox.com/geocoding/v5/mapbox.places
            access_token: Mapbox token (geocoding fails fast without one)
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests)
        """
        self.base_url = base_url.rstrip("/")
        self.access_token = access_token
        self.client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def close(self):
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def _fetch(self, query: str) -> dict:
        url = f"{self.base_url}/{quote(query)}.json"
        params = {
            "access_token": self.access_token,
            "country": "br",
            "types": "place",
            "limit": 1,
            "language": "pt",
        }
        response = await self.client.get(url, params=params)
        response.raise_for_status()
        return response.json()

    async def geocode(self, city: str, state: str) -> Tuple[float, float]:
        """
        Resolve a city/state pair to (latitude, longitude).

        Raises:
            GeocodingError: missing token, transport/HTTP failure or no match
        """
        if not self.access_token:
            raise GeocodingError("Geocoding token not configured")

        query = f"{city}, {state}, Brasil"
        try:
            data = await self._fetch(query)
        except httpx.HTTPError as e:
            raise GeocodingError(f"Geocoding request failed for '{query}': {e}") from e

        features = data.get("features") or []
        if not features:
            raise GeocodingError(f"No geocoding result for '{query}'")

        longitude, latitude = features[0]["center"][:2]
        logger.debug(f"Geocoded '{query}' -> ({latitude}, {longitude})")
        return float(latitude), float(longitude)
