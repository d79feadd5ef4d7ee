"""OpenStreetMap Nominatim geocoder provider.

Uses the Nominatim API (https://nominatim.org/release-docs/develop/api/Search/)
for address-to-coordinate resolution. Free but rate-limited to 1 req/sec, and
its usage policy requires a descriptive User-Agent on every request.
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

NOMINATIM_API_URL = "https://nominatim.openstreetmap.org/search"
DEFAULT_TIMEOUT = 30.0
DEFAULT_USER_AGENT = "CredenciamentoApp/1.0"


class NominatimGeocoder(BaseGeocoder):
    """OpenStreetMap Nominatim geocoder provider."""

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        email: str = "",
        user_agent: str = DEFAULT_USER_AGENT,
        country_code: str = "br",
    ) -> None:
        if not user_agent.strip():
            msg = "Nominatim requires a descriptive User-Agent"
            raise ValueError(msg)
        self._timeout = timeout
        self._email = email
        self._user_agent = user_agent
        self._country_code = country_code

    @property
    def provider_name(self) -> str:
        return "nominatim"

    @property
    def rate_limit_delay(self) -> float:
        return 1.0

    async def geocode(self, address: str) -> GeocodingResult:
        """Geocode a free-text address using the Nominatim API.

        Args:
            address: Lightly cleaned address string.

        Returns:
            GeocodingResult for the best match.

        Raises:
            AddressNotFoundError: Empty result set.
            RateLimitedError: HTTP 429.
            GeocodingProviderError: On transport or service errors.
        """
        return await self._search({"q": address})

    async def geocode_structured(self, query: StructuredAddress) -> GeocodingResult:
        """Geocode using Nominatim's structured ``city/state/country`` parameters."""
        params: dict[str, str] = {"city": query.city}
        if query.state:
            params["state"] = query.state
        if query.country:
            params["country"] = query.country
        if query.postal_code:
            params["postalcode"] = query.postal_code
        return await self._search(params)

    async def _search(self, query_params: dict[str, str]) -> GeocodingResult:
        params: dict[str, str | int] = {
            **query_params,
            "format": "json",
            "limit": 1,
            "addressdetails": 1,
            "countrycodes": self._country_code,
        }
        if self._email:
            params["email"] = self._email

        headers = {
            "User-Agent": self._user_agent,
            "Accept": "application/json",
            "Accept-Language": "pt-BR,pt;q=0.9",
        }

        try:
            async with asyncio.timeout(self._timeout), httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.get(NOMINATIM_API_URL, params=params, headers=headers)
                if response.status_code == 429:
                    raise RateLimitedError("nominatim")
                response.raise_for_status()

            data = response.json()
            return self._parse_response(data)

        except (httpx.TimeoutException, TimeoutError) as e:
            logger.warning("Nominatim geocoder timeout for address (redacted)")
            raise GeocodingProviderError("nominatim", "Geocoding request timed out") from e
        except httpx.HTTPStatusError as e:
            logger.warning(f"Nominatim geocoder HTTP error {e.response.status_code}")
            raise GeocodingProviderError(
                "nominatim",
                f"Provider returned HTTP {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.ConnectError as e:
            logger.warning("Nominatim geocoder connection error")
            raise GeocodingProviderError("nominatim", "Connection to geocoding provider failed") from e
        except (GeocodingProviderError, AddressNotFoundError):
            raise
        except Exception as e:
            logger.exception("Nominatim geocoder unexpected error")
            raise GeocodingProviderError("nominatim", f"Unexpected error: {e}") from e

    def _parse_response(self, data: list[dict]) -> GeocodingResult:
        """Parse Nominatim API response into a GeocodingResult.

        Args:
            data: Raw JSON response (list of results) from Nominatim API.

        Returns:
            GeocodingResult for the first result.

        Raises:
            AddressNotFoundError: Empty result list.
            GeocodingProviderError: Result present but unparseable.
        """
        if not isinstance(data, list):
            raise GeocodingProviderError("nominatim", "Unexpected response shape")
        if not data:
            raise AddressNotFoundError("nominatim")

        best = data[0]
        try:
            lat = float(best["lat"])
            lon = float(best["lon"])
            return GeocodingResult(
                latitude=lat,
                longitude=lon,
                display_name=best.get("display_name"),
                raw_response={
                    "osm_type": best.get("osm_type"),
                    "osm_id": best.get("osm_id"),
                    "importance": best.get("importance"),
                },
            )
        except (KeyError, ValueError, TypeError) as e:
            logger.warning(f"Failed to parse Nominatim response: {e}")
            raise GeocodingProviderError("nominatim", f"Failed to parse response: {e}") from e
