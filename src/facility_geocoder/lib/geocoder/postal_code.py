"""Brazilian postal-code (CEP) directory lookup via ViaCEP.

Resolves a CEP to its locality (city and state) so the fallback resolver can
geocode a city-level centroid when the street address itself cannot be matched.
"""

import asyncio
from dataclasses import dataclass

import httpx
from loguru import logger

from facility_geocoder.lib.geocoder.address import clean_postal_code
from facility_geocoder.lib.geocoder.base import (
    AddressNotFoundError,
    GeocodingProviderError,
    RateLimitedError,
)

VIACEP_BASE_URL = "https://viacep.com.br/ws"
DEFAULT_TIMEOUT = 30.0
CEP_LENGTH = 8


@dataclass(frozen=True)
class PostalCodeLocality:
    """Locality a postal code belongs to."""

    postal_code: str
    city: str
    state: str | None = None
    district: str | None = None
    street: str | None = None


class ViaCepDirectory:
    """ViaCEP client (https://viacep.com.br/)."""

    def __init__(
        self,
        base_url: str = VIACEP_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        user_agent: str | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._user_agent = user_agent

    @property
    def provider_name(self) -> str:
        return "viacep"

    async def lookup(self, postal_code: str) -> PostalCodeLocality:
        """Resolve a CEP to its locality.

        Args:
            postal_code: CEP in any formatting ("01310-100", "01310100").

        Returns:
            PostalCodeLocality with at least the city populated.

        Raises:
            AddressNotFoundError: Malformed CEP or unknown to the directory.
            RateLimitedError: HTTP 429.
            GeocodingProviderError: On transport or service errors.
        """
        digits = clean_postal_code(postal_code)
        if len(digits) != CEP_LENGTH:
            raise AddressNotFoundError("viacep", f"Invalid postal code {postal_code!r}")

        url = f"{self._base_url}/{digits}/json/"
        headers = {"User-Agent": self._user_agent} if self._user_agent else None

        try:
            async with asyncio.timeout(self._timeout), httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.get(url, headers=headers)
                if response.status_code == 429:
                    raise RateLimitedError("viacep")
                # ViaCEP answers 400 for syntactically invalid CEPs
                if response.status_code == 400:
                    raise AddressNotFoundError("viacep", f"Invalid postal code {postal_code!r}")
                response.raise_for_status()

            data = response.json()
            return self._parse_response(digits, data)

        except (httpx.TimeoutException, TimeoutError) as e:
            logger.warning("ViaCEP lookup timeout")
            raise GeocodingProviderError("viacep", "Postal code lookup timed out") from e
        except httpx.HTTPStatusError as e:
            logger.warning(f"ViaCEP HTTP error {e.response.status_code}")
            raise GeocodingProviderError(
                "viacep",
                f"Provider returned HTTP {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.ConnectError as e:
            logger.warning("ViaCEP connection error")
            raise GeocodingProviderError("viacep", "Connection to postal code directory failed") from e
        except (GeocodingProviderError, AddressNotFoundError):
            raise
        except Exception as e:
            logger.exception("ViaCEP unexpected error")
            raise GeocodingProviderError("viacep", f"Unexpected error: {e}") from e

    def _parse_response(self, digits: str, data: dict) -> PostalCodeLocality:
        if not isinstance(data, dict):
            raise GeocodingProviderError("viacep", "Unexpected response shape")
        if data.get("erro"):
            raise AddressNotFoundError("viacep", f"Postal code {digits} not found")

        city = (data.get("localidade") or "").strip()
        if not city:
            raise AddressNotFoundError("viacep", f"Postal code {digits} has no locality")

        return PostalCodeLocality(
            postal_code=digits,
            city=city,
            state=(data.get("uf") or "").strip() or None,
            district=(data.get("bairro") or "").strip() or None,
            street=(data.get("logradouro") or "").strip() or None,
        )
