from dataclasses import dataclass
from typing import Optional
import asyncio
import logging

import aiohttp

from app.core.config import settings
from app.core.exceptions import GeocodingError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float

    def to_wkt(self) -> str:
        """EWKT point for PostGIS; longitude comes first"""
        return f"SRID=4326;POINT({self.longitude} {self.latitude})"


class NominatimGeocoder:
    """Service for geocoding through the Nominatim search API"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        user_agent: Optional[str] = None,
        timeout_seconds: Optional[int] = None
    ):
        self.base_url = base_url or settings.NOMINATIM_URL
        self.user_agent = user_agent or settings.NOMINATIM_USER_AGENT
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds or settings.GEOCODING_TIMEOUT_SECONDS)

    async def geocode(self, query: str) -> Optional[Coordinates]:
        """Get coordinates for a free-form query, or None when nothing matches"""
        params = {
            "format": "json",
            "q": query,
            "limit": "1"
        }
        headers = {
            "User-Agent": self.user_agent
        }

        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.get(self.base_url, params=params, headers=headers) as response:
                    if response.status != 200:
                        raise GeocodingError(f"Nominatim API error: {response.status}")

                    data = await response.json(content_type=None)

        except aiohttp.ClientError as e:
            logger.error(f"Geocoding request for {query!r} failed: {e}")
            raise GeocodingError(f"Failed to geocode {query}")
        except asyncio.TimeoutError:
            logger.error(f"Geocoding request for {query!r} timed out")
            raise GeocodingError(f"Failed to geocode {query}")
        except ValueError as e:
            logger.error(f"Geocoding response for {query!r} is not JSON: {e}")
            raise GeocodingError(f"Failed to geocode {query}")

        if not data:
            logger.info(f"No geocoding result for {query!r}")
            return None

        try:
            return Coordinates(latitude=float(data[0]["lat"]), longitude=float(data[0]["lon"]))
        except (KeyError, IndexError, TypeError, ValueError):
            raise GeocodingError(f"Unexpected geocoding response for {query}")

    async def geocode_postal_code(self, postal_code: str) -> Optional[Coordinates]:
        return await self.geocode(f"{postal_code.strip()}, {settings.DEFAULT_COUNTRY}")
