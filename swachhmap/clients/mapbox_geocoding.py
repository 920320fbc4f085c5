from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx

from ..config import get_settings
from ..security.secrets import optional_secret

logger = logging.getLogger(__name__)


class GeocoderError(RuntimeError):
    """Base class for geocoding failures."""


class GeocoderConfigurationError(GeocoderError):
    """Raised when no Mapbox access token is configured."""


class GeocodeValidationError(GeocoderError):
    """Raised when the query is empty."""


class GeocodeNotFoundError(GeocoderError):
    """Raised when the provider has no match for the query."""


class GeocoderUpstreamError(GeocoderError):
    """Raised when the provider call fails or returns an unusable body."""


@dataclass(frozen=True)
class Coordinates:
    lat: float
    lng: float


def _access_token() -> str:
    token = optional_secret("MAPBOX_API_KEY")
    if token is None:
        raise GeocoderConfigurationError("Mapbox API key is not configured")
    return token


async def _search(query: str, *, client: httpx.AsyncClient | None) -> list[dict[str, Any]]:
    settings = get_settings()
    url = f"{settings.mapbox_geocoding_url.rstrip('/')}/{quote(query, safe=',')}.json"
    params = {"access_token": _access_token(), "limit": 1}

    try:
        if client is not None:
            response = await client.get(url, params=params)
        else:
            async with httpx.AsyncClient(timeout=settings.geocoder_timeout) as owned_client:
                response = await owned_client.get(url, params=params)
        response.raise_for_status()
        data = response.json()
    except (httpx.HTTPError, ValueError) as exc:
        logger.warning("Mapbox geocoding request failed: %s", exc)
        raise GeocoderUpstreamError("Geocoding provider request failed") from exc

    features = data.get("features") if isinstance(data, dict) else None
    if not isinstance(features, list):
        raise GeocoderUpstreamError("Invalid geocoding response")
    return features


async def forward_geocode(address: str, *, client: httpx.AsyncClient | None = None) -> Coordinates:
    """Resolve ``address`` to the coordinates of the provider's best match."""

    query = (address or "").strip()
    if not query:
        raise GeocodeValidationError("Valid place name is required")

    features = await _search(query, client=client)
    if not features:
        raise GeocodeNotFoundError("No coordinates found for the given address")

    center = features[0].get("center")
    try:
        lng, lat = (float(value) for value in center)
    except (TypeError, ValueError) as exc:
        raise GeocoderUpstreamError("Geocoding match is missing coordinates") from exc
    return Coordinates(lat=lat, lng=lng)


async def reverse_geocode(lat: float, lng: float, *, client: httpx.AsyncClient | None = None) -> str | None:
    """Return the place name closest to the coordinates, if any."""

    features = await _search(f"{lng},{lat}", client=client)
    if not features:
        return None
    place_name = features[0].get("place_name")
    return place_name if isinstance(place_name, str) and place_name.strip() else None


__all__ = [
    "Coordinates",
    "GeocoderError",
    "GeocoderConfigurationError",
    "GeocodeValidationError",
    "GeocodeNotFoundError",
    "GeocoderUpstreamError",
    "forward_geocode",
    "reverse_geocode",
]
