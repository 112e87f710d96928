"""Geocoding client for Smart Reminder Service.

Resolves place names found by the parser into coordinates using the Google Maps
web services (Geocoding, Find Place from Text, Nearby Search) over httpx.

All calls are async so a slow provider never blocks other requests. Every
provider failure is raised as GeocodeError; callers decide whether to absorb it.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import httpx

from config import settings
from errors import GeocodeError
from logger_config import setup_logger

logger = setup_logger(__name__, 'geocoder.log')


@dataclass
class GeocodeResult:
    """Enrichment data for a place name."""

    coordinates: Tuple[float, float]  # (longitude, latitude)
    address: str
    place_type: str


@dataclass
class Place:
    """A place returned by a text or nearby search."""

    name: str
    address: str
    coordinates: Tuple[float, float]  # (longitude, latitude)
    place_id: str
    types: List[str] = field(default_factory=list)


class GeocodeResolver:
    """Interface for place-name -> coordinates providers."""

    async def geocode(self, place_name: str) -> Optional[GeocodeResult]:
        """Return enrichment data, None when the provider knows no such place.

        Raises:
            GeocodeError: On network, quota or configuration failures
        """
        raise NotImplementedError


def _coordinates(geometry: dict) -> Tuple[float, float]:
    location = geometry['location']
    return (float(location['lng']), float(location['lat']))


class GoogleMapsGeocoder(GeocodeResolver):
    """GeocodeResolver backed by the Google Maps web services.

    Args:
        api_key: Google Maps API key
        base_url: Service base URL (default: settings.GOOGLE_MAPS_BASE_URL)
        timeout: Per-request timeout in seconds
        transport: Optional httpx transport (tests use httpx.MockTransport)
    """

    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = (base_url or settings.GOOGLE_MAPS_BASE_URL).rstrip('/')
        self.timeout = timeout if timeout is not None else settings.GEOCODE_TIMEOUT
        self.transport = transport

    async def _get(self, path: str, params: dict) -> dict:
        if not self.api_key:
            raise GeocodeError("Google Maps API key is not configured")

        url = f"{self.base_url}/{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(url, params={**params, 'key': self.api_key})
                response.raise_for_status()
                data = response.json()
        except httpx.TimeoutException as e:
            raise GeocodeError(f"Timeout calling {path}") from e
        except httpx.HTTPError as e:
            raise GeocodeError(f"HTTP error calling {path}: {str(e)}") from e
        except ValueError as e:
            raise GeocodeError(f"Invalid JSON from {path}") from e

        status = data.get('status')
        if status not in ('OK', 'ZERO_RESULTS'):
            message = data.get('error_message', '')
            raise GeocodeError(f"{path} returned status {status} {message}".strip())
        return data

    async def geocode(self, place_name: str) -> Optional[GeocodeResult]:
        data = await self._get('geocode/json', {'address': place_name})

        results = data.get('results') or []
        if not results:
            logger.info(f"No geocoding results for '{place_name}'")
            return None

        first = results[0]
        try:
            result = GeocodeResult(
                coordinates=_coordinates(first['geometry']),
                address=first.get('formatted_address', ''),
                place_type=(first.get('types') or ['unknown'])[0],
            )
        except (KeyError, TypeError, ValueError) as e:
            raise GeocodeError(f"Malformed geocoding result for '{place_name}'") from e

        logger.info(f"Geocoded '{place_name}' -> {result.coordinates} ({result.address})")
        return result

    async def search_places(self, query: str) -> List[Place]:
        """Find places matching a free-text query."""
        data = await self._get(
            'place/findplacefromtext/json',
            {
                'input': query,
                'inputtype': 'textquery',
                'fields': 'formatted_address,geometry,name,place_id,types',
            },
        )
        try:
            return [
                Place(
                    name=candidate.get('name', ''),
                    address=candidate.get('formatted_address', ''),
                    coordinates=_coordinates(candidate['geometry']),
                    place_id=candidate.get('place_id', ''),
                    types=candidate.get('types', []),
                )
                for candidate in data.get('candidates') or []
            ]
        except (KeyError, TypeError, ValueError) as e:
            raise GeocodeError(f"Malformed place search result for '{query}'") from e

    async def find_nearby_places(
        self, place_type: str, lat: float, lng: float, radius: int = 5000
    ) -> List[Place]:
        """Find places of a given type (e.g. 'grocery_or_supermarket') around a point."""
        data = await self._get(
            'place/nearbysearch/json',
            {'location': f"{lat},{lng}", 'radius': radius, 'type': place_type},
        )
        try:
            return [
                Place(
                    name=place.get('name', ''),
                    address=place.get('vicinity', ''),
                    coordinates=_coordinates(place['geometry']),
                    place_id=place.get('place_id', ''),
                    types=place.get('types', []),
                )
                for place in data.get('results') or []
            ]
        except (KeyError, TypeError, ValueError) as e:
            raise GeocodeError(f"Malformed nearby search result for '{place_type}'") from e
