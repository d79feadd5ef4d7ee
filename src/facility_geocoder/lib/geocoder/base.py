"""Abstract base geocoder interface, result types and error taxonomy."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import StrEnum


class GeocoderProvider(StrEnum):
    """Closed set of supported geocoding backends."""

    NOMINATIM = "nominatim"
    MAPBOX = "mapbox"


class AttemptOutcome(StrEnum):
    """Outcome of a single provider call."""

    SUCCESS = "success"
    RATE_LIMITED = "rate_limited"
    NOT_FOUND = "not_found"
    ERROR = "error"


@dataclass(frozen=True)
class StructuredAddress:
    """Structured query for providers that accept field-by-field input."""

    city: str
    state: str | None = None
    country: str | None = None
    postal_code: str | None = None

    def to_text(self) -> str:
        """Render as a "city, region, country" free-text query."""
        parts = [self.city, self.state, self.country]
        return ", ".join(p.strip() for p in parts if p and p.strip())


@dataclass
class GeocodingResult:
    """Coordinates returned by a provider for one address variant."""

    latitude: float
    longitude: float
    display_name: str | None = None
    raw_response: dict | None = None

    def __post_init__(self) -> None:
        if not (-90 <= self.latitude <= 90):
            msg = f"latitude must be between -90 and 90, got {self.latitude}"
            raise ValueError(msg)
        if not (-180 <= self.longitude <= 180):
            msg = f"longitude must be between -180 and 180, got {self.longitude}"
            raise ValueError(msg)


@dataclass
class GeocodeAttempt:
    """One call to one provider for one address variant (log record only)."""

    provider: str
    variant: str
    attempt: int
    elapsed_ms: float
    outcome: AttemptOutcome
    error: str | None = None

    def as_log_fields(self) -> dict[str, object]:
        fields: dict[str, object] = {
            "provider": self.provider,
            "variant": self.variant,
            "attempt": self.attempt,
            "elapsed_ms": round(self.elapsed_ms, 1),
            "outcome": self.outcome.value,
        }
        if self.error:
            fields["error"] = self.error
        return fields


class GeocodingError(Exception):
    """Base class for every failure raised by the resolution engine."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class InvalidInputError(GeocodingError):
    """The query carries neither an address nor a resolvable record reference."""


class AddressNotFoundError(GeocodingError):
    """The provider answered successfully but had no match for the address.

    Never retried: the same variant will not start matching on a second try.
    """

    def __init__(self, provider_name: str, message: str = "Address not found") -> None:
        self.provider_name = provider_name
        super().__init__(f"{provider_name}: {message}")


class GeocodingProviderError(GeocodingError):
    """Raised when a geocoding provider experiences a transport or service error.

    Distinguishes provider failures (timeout, HTTP error, connection error,
    malformed body) from a successful response with no match.

    Args:
        provider_name: Name of the failing provider.
        message: Human-readable error description.
        status_code: Optional HTTP status code from the provider.
    """

    def __init__(self, provider_name: str, message: str, status_code: int | None = None) -> None:
        self.provider_name = provider_name
        self.status_code = status_code
        super().__init__(f"{provider_name}: {message}")


class RateLimitedError(GeocodingProviderError):
    """Provider answered HTTP 429. Transient; retried with backoff."""

    def __init__(self, provider_name: str, message: str = "Rate limit exceeded") -> None:
        super().__init__(provider_name, message, status_code=429)


class AllStrategiesExhaustedError(GeocodingError):
    """Every fallback tier failed.

    Args:
        last_error: Error raised by the last tier that was attempted.
        strategies: Strategies attempted, in order.
    """

    def __init__(self, last_error: GeocodingError, strategies: list[str] | None = None) -> None:
        self.last_error = last_error
        self.strategies = strategies or []
        super().__init__(last_error.message)


class GeocoderConfigurationError(ValueError):
    """A provider required by the settings lacks its configuration (e.g. an API key).

    A deployment problem, not a client one: raised while wiring providers,
    never from a provider call.
    """


def classify_error(error: BaseException) -> AttemptOutcome:
    """Map an exception raised by a provider call to an attempt outcome."""
    if isinstance(error, RateLimitedError):
        return AttemptOutcome.RATE_LIMITED
    if isinstance(error, AddressNotFoundError):
        return AttemptOutcome.NOT_FOUND
    return AttemptOutcome.ERROR


class BaseGeocoder(ABC):
    """Abstract geocoder interface. All providers must implement this."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Unique name identifying this geocoder provider."""

    @property
    def requires_api_key(self) -> bool:
        """Whether this provider requires an API key to function."""
        return False

    @property
    def is_configured(self) -> bool:
        """Whether this provider has all required configuration (e.g., API keys)."""
        return True

    @property
    def rate_limit_delay(self) -> float:
        """Minimum delay in seconds between requests advertised by the provider's policy."""
        return 0.0

    @abstractmethod
    async def geocode(self, address: str) -> GeocodingResult:
        """Geocode a free-text address.

        Args:
            address: Lightly cleaned address text.

        Returns:
            GeocodingResult for the best match.

        Raises:
            AddressNotFoundError: The provider returned no match.
            RateLimitedError: The provider answered HTTP 429.
            GeocodingProviderError: Transport, HTTP or parsing failure.
        """

    async def geocode_structured(self, query: StructuredAddress) -> GeocodingResult:
        """Geocode a structured query.

        Default implementation renders the query as free text. Providers
        with a native structured endpoint override this.
        """
        return await self.geocode(query.to_text())


@dataclass
class ResolutionTrace:
    """Attempts made while resolving one query, in call order."""

    attempts: list[GeocodeAttempt] = field(default_factory=list)

    def record(self, attempt: GeocodeAttempt) -> None:
        self.attempts.append(attempt)

    def count(self, variant: str | None = None) -> int:
        if variant is None:
            return len(self.attempts)
        return sum(1 for a in self.attempts if a.variant == variant)
