"""Geocoder library — address resolution with normalization, caching, retry and fallback.

Public API:
    - normalize_address: Canonicalize an address for cache keying
    - clean_query_text: Light cleaning applied to text sent to providers
    - BaseGeocoder: Abstract provider interface
    - GeocodingResult: Provider result dataclass
    - NominatimGeocoder: OpenStreetMap Nominatim provider
    - MapboxGeocoder: Mapbox provider
    - ViaCepDirectory: Brazilian postal-code directory
    - with_retry / RetryPolicy: Bounded retry with exponential backoff
    - FallbackResolver: Tiered resolution across variants and providers
    - GeocodeCacheStore / InMemoryCacheStore / SqlCacheStore: Content-addressed cache
    - get_geocoder: Provider factory/registry
    - build_resolver: Build a FallbackResolver from settings
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from facility_geocoder.lib.geocoder.address import (
    NormalizedAddress,
    clean_postal_code,
    clean_query_text,
    join_address_parts,
    normalize_address,
)
from facility_geocoder.lib.geocoder.base import (
    AddressNotFoundError,
    AllStrategiesExhaustedError,
    BaseGeocoder,
    GeocoderConfigurationError,
    GeocoderProvider,
    GeocodingError,
    GeocodingProviderError,
    GeocodingResult,
    InvalidInputError,
    RateLimitedError,
    ResolutionTrace,
    StructuredAddress,
)
from facility_geocoder.lib.geocoder.cache import (
    CacheEntry,
    CacheStats,
    GeocodeCacheStore,
    InMemoryCacheStore,
    SqlCacheStore,
)
from facility_geocoder.lib.geocoder.fallback import (
    AddressQuery,
    FailureKind,
    FallbackResolver,
    ResolutionResult,
    ResolutionStrategy,
)
from facility_geocoder.lib.geocoder.mapbox import MapboxGeocoder
from facility_geocoder.lib.geocoder.nominatim import NominatimGeocoder
from facility_geocoder.lib.geocoder.postal_code import PostalCodeLocality, ViaCepDirectory
from facility_geocoder.lib.geocoder.retry import RetryPolicy, Sleeper, with_retry

if TYPE_CHECKING:
    from facility_geocoder.core.config import Settings

# Provider registry: closed set of supported backends
_PROVIDERS: dict[str, type[BaseGeocoder]] = {
    GeocoderProvider.NOMINATIM: NominatimGeocoder,
    GeocoderProvider.MAPBOX: MapboxGeocoder,
}


def get_available_providers() -> list[str]:
    """Return the names of all registered geocoder providers."""
    return sorted(str(name) for name in _PROVIDERS)


def get_geocoder(provider: str = "nominatim", **kwargs: Any) -> BaseGeocoder:
    """Get a geocoder instance by provider name.

    Args:
        provider: Provider name (e.g., "nominatim").
        **kwargs: Additional arguments forwarded to the provider constructor
            (e.g., ``timeout=2.0``).

    Returns:
        An instance of the requested geocoder provider.

    Raises:
        ValueError: If the provider is not registered.
    """
    cls = _PROVIDERS.get(provider)
    if cls is None:
        msg = f"Unknown geocoder provider: {provider!r}. Available: {get_available_providers()}"
        raise ValueError(msg)
    return cls(**kwargs)


def _provider_kwargs(name: str, settings: Settings) -> dict[str, Any]:
    if name == GeocoderProvider.NOMINATIM:
        return {
            "timeout": settings.geocoder_timeout,
            "email": settings.geocoder_nominatim_email,
            "user_agent": settings.geocoder_user_agent,
            "country_code": settings.geocoder_country_code,
        }
    return {
        "api_key": settings.geocoder_mapbox_api_key or "",
        "timeout": settings.geocoder_timeout,
        "country_code": settings.geocoder_country_code,
        "user_agent": settings.geocoder_user_agent,
    }


def build_providers(settings: Settings) -> tuple[BaseGeocoder, BaseGeocoder | None]:
    """Instantiate the default provider and, when applicable, the alternate one.

    The alternate provider exists only when the default is Nominatim and a
    Mapbox key is configured.

    Args:
        settings: Application settings.

    Returns:
        ``(default, alternate)``; ``alternate`` is None when unavailable.

    Raises:
        GeocoderConfigurationError: The default provider lacks required configuration.
    """
    name = settings.geocoder_default_provider
    default = get_geocoder(name, **_provider_kwargs(name, settings))
    if not default.is_configured:
        msg = f"Default geocoder {default.provider_name!r} is not configured (missing API key?)"
        raise GeocoderConfigurationError(msg)

    alternate: BaseGeocoder | None = None
    if default.provider_name == GeocoderProvider.NOMINATIM and settings.geocoder_mapbox_api_key:
        alternate = get_geocoder(GeocoderProvider.MAPBOX, **_provider_kwargs(GeocoderProvider.MAPBOX, settings))
    return default, alternate


def build_resolver(settings: Settings, sleep: Sleeper | None = None) -> FallbackResolver:
    """Build a FallbackResolver wired from settings.

    Args:
        settings: Application settings.
        sleep: Optional backoff sleep override.

    Returns:
        Resolver with the default provider, the ViaCEP directory and the
        alternate provider when one is configured.
    """
    default, alternate = build_providers(settings)
    directory = ViaCepDirectory(
        base_url=settings.postal_code_directory_url,
        timeout=settings.geocoder_timeout,
        user_agent=settings.geocoder_user_agent,
    )
    policy = RetryPolicy(
        max_attempts=settings.geocoder_max_retries,
        base_delay_ms=settings.geocoder_retry_base_delay_ms,
    )
    kwargs: dict[str, Any] = {}
    if sleep is not None:
        kwargs["sleep"] = sleep
    return FallbackResolver(
        default,
        postal_directory=directory,
        alternate_geocoder=alternate,
        retry_policy=policy,
        country_name=settings.geocoder_country_name,
        **kwargs,
    )


__all__ = [
    "AddressNotFoundError",
    "AddressQuery",
    "AllStrategiesExhaustedError",
    "BaseGeocoder",
    "CacheEntry",
    "CacheStats",
    "FailureKind",
    "FallbackResolver",
    "GeocodeCacheStore",
    "GeocoderConfigurationError",
    "GeocoderProvider",
    "GeocodingError",
    "GeocodingProviderError",
    "GeocodingResult",
    "InMemoryCacheStore",
    "InvalidInputError",
    "MapboxGeocoder",
    "NominatimGeocoder",
    "NormalizedAddress",
    "PostalCodeLocality",
    "RateLimitedError",
    "ResolutionResult",
    "ResolutionStrategy",
    "ResolutionTrace",
    "RetryPolicy",
    "SqlCacheStore",
    "StructuredAddress",
    "ViaCepDirectory",
    "build_providers",
    "build_resolver",
    "clean_postal_code",
    "clean_query_text",
    "get_available_providers",
    "get_geocoder",
    "join_address_parts",
    "normalize_address",
    "with_retry",
]
