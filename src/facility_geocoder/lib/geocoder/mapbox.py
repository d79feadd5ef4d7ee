"""Mapbox Geocoding API v6 provider.

Uses the Mapbox Geocoding API v6
(https://docs.mapbox.com/api/search/geocoding-v6/)
for address-to-coordinate resolution. Requires an access token.
"""

import asyncio

import httpx
from loguru import logger

from facility_geocoder.lib.geocoder.base import (
    AddressNotFoundError,
    BaseGeocoder,
    GeocodingProviderError,
    GeocodingResult,
    RateLimitedError,
    StructuredAddress,
)

MAPBOX_API_URL = "https://api.mapbox.com/search/geocode/v6/forward"
DEFAULT_TIMEOUT = 30.0


class MapboxGeocoder(BaseGeocoder):
    """Mapbox geocoder provider."""

    def __init__(
        self,
        api_key: str,
        timeout: float = DEFAULT_TIMEOUT,
        country_code: str = "br",
        user_agent: str | None = None,
    ) -> None:
        self._api_key = api_key
        self._timeout = timeout
        self._country_code = country_code
        self._user_agent = user_agent

    @property
    def provider_name(self) -> str:
        return "mapbox"

    @property
    def requires_api_key(self) -> bool:
        return True

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    async def geocode(self, address: str) -> GeocodingResult:
        """Geocode a single address using the Mapbox API.

        Args:
            address: Lightly cleaned address string.

        Returns:
            GeocodingResult for the best match.

        Raises:
            AddressNotFoundError: Empty feature collection.
            RateLimitedError: HTTP 429.
            GeocodingProviderError: On transport or service errors.
        """
        return await self._forward({"q": address})

    async def geocode_structured(self, query: StructuredAddress) -> GeocodingResult:
        """Geocode using Mapbox v6 structured input (``place``/``region``/``country``)."""
        params: dict[str, str] = {"place": query.city}
        if query.state:
            params["region"] = query.state
        if query.postal_code:
            params["postcode"] = query.postal_code
        return await self._forward(params)

    async def _forward(self, query_params: dict[str, str]) -> GeocodingResult:
        if not self.is_configured:
            raise GeocodingProviderError("mapbox", "Mapbox access token not configured")

        params: dict[str, str | int] = {
            **query_params,
            "access_token": self._api_key,
            "country": self._country_code,
            "language": "pt",
            "limit": 1,
        }
        headers = {"User-Agent": self._user_agent} if self._user_agent else None

        try:
            async with asyncio.timeout(self._timeout), httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.get(MAPBOX_API_URL, params=params, headers=headers)
                if response.status_code == 429:
                    raise RateLimitedError("mapbox")
                response.raise_for_status()

            data = response.json()
            return self._parse_response(data)

        except (httpx.TimeoutException, TimeoutError) as e:
            logger.warning("Mapbox geocoder timeout for address (redacted)")
            raise GeocodingProviderError("mapbox", "Geocoding request timed out") from e
        except httpx.HTTPStatusError as e:
            logger.warning(f"Mapbox geocoder HTTP error {e.response.status_code}")
            raise GeocodingProviderError(
                "mapbox",
                f"Provider returned HTTP {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.ConnectError as e:
            logger.warning("Mapbox geocoder connection error")
            raise GeocodingProviderError("mapbox", "Connection to geocoding provider failed") from e
        except (GeocodingProviderError, AddressNotFoundError):
            raise
        except Exception as e:
            logger.exception("Mapbox geocoder unexpected error")
            raise GeocodingProviderError("mapbox", f"Unexpected error: {e}") from e

    def _parse_response(self, data: dict) -> GeocodingResult:
        """Parse Mapbox API response into a GeocodingResult."""
        if not isinstance(data, dict):
            raise GeocodingProviderError("mapbox", "Unexpected response shape")
        features = data.get("features", [])
        if not features:
            raise AddressNotFoundError("mapbox")

        best = features[0]
        try:
            coords = best["geometry"]["coordinates"]
            lng = float(coords[0])
            lat = float(coords[1])
            properties = best.get("properties", {})
            return GeocodingResult(
                latitude=lat,
                longitude=lng,
                display_name=properties.get("full_address") or properties.get("name"),
                raw_response={
                    "mapbox_id": properties.get("mapbox_id"),
                    "feature_type": properties.get("feature_type"),
                },
            )
        except (KeyError, IndexError, ValueError, TypeError) as e:
            logger.warning(f"Failed to parse Mapbox response: {e}")
            raise GeocodingProviderError("mapbox", f"Failed to parse response: {e}") from e
