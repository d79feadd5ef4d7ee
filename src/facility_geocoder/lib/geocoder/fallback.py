"""Tiered fallback resolution across address variants and providers.

Tiers run strictly in order and the first success wins:

1. ``primary_address``: the query's main text on the default provider.
2. ``alternate_address``: a secondary address (e.g. a service location) on
   the default provider.
3. ``cep_only``: the postal code is resolved to its locality and the
   locality is geocoded as "city, state, country". City-level precision.
4. ``alternate_provider``: the primary text on a second provider, only when
   one is configured.

Each tier goes through :func:`with_retry`, so transient errors are retried
inside a tier while ``AddressNotFoundError`` advances the chain at once.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import StrEnum

from loguru import logger

from facility_geocoder.lib.geocoder.address import clean_postal_code, clean_query_text, normalize_address
from facility_geocoder.lib.geocoder.base import (
    AllStrategiesExhaustedError,
    BaseGeocoder,
    GeocodingError,
    GeocodingResult,
    InvalidInputError,
    ResolutionTrace,
    StructuredAddress,
)
from facility_geocoder.lib.geocoder.postal_code import ViaCepDirectory
from facility_geocoder.lib.geocoder.retry import RetryPolicy, Sleeper, with_retry


class ResolutionStrategy(StrEnum):
    """Fallback tier that produced a result."""

    PRIMARY_ADDRESS = "primary_address"
    ALTERNATE_ADDRESS = "alternate_address"
    CEP_ONLY = "cep_only"
    ALTERNATE_PROVIDER = "alternate_provider"


class FailureKind(StrEnum):
    """Why a resolution did not produce coordinates."""

    INVALID_INPUT = "invalid_input"
    EXHAUSTED = "exhausted"
    INTERNAL = "internal"


@dataclass
class AddressQuery:
    """A resolution request.

    ``address_text`` and ``full_address_text`` are interchangeable sources of
    the primary text; ``address_text`` wins when both are set.
    """

    address_text: str | None = None
    full_address_text: str | None = None
    alternate_address_text: str | None = None
    postal_code: str | None = None
    record_reference: str | None = None
    location_reference: str | None = None
    force_refresh: bool = False

    @property
    def primary_text(self) -> str:
        return clean_query_text(self.address_text) or clean_query_text(self.full_address_text)

    @property
    def alternate_text(self) -> str:
        return clean_query_text(self.alternate_address_text)

    @property
    def has_record_reference(self) -> bool:
        return bool(self.record_reference or self.location_reference)


@dataclass
class ResolutionResult:
    """Outcome of one resolution request."""

    success: bool
    latitude: float | None = None
    longitude: float | None = None
    source: str | None = None
    cached: bool = False
    message: str | None = None
    provider: str | None = None
    strategy: str | None = None
    display_name: str | None = None
    attempts: int = 0
    strategies_tried: list[str] = field(default_factory=list)
    error_type: FailureKind | None = None

    @classmethod
    def failure(
        cls,
        message: str,
        error_type: FailureKind,
        *,
        attempts: int = 0,
        strategies_tried: list[str] | None = None,
    ) -> "ResolutionResult":
        return cls(
            success=False,
            message=message,
            error_type=error_type,
            attempts=attempts,
            strategies_tried=strategies_tried or [],
        )


TierCall = Callable[[], Awaitable[GeocodingResult]]


@dataclass
class _Tier:
    strategy: ResolutionStrategy
    provider: str
    run: TierCall


class FallbackResolver:
    """Run the fallback tiers for a query and return the first success.

    Args:
        geocoder: Default provider, used by the first three tiers.
        postal_directory: Postal-code directory for the ``cep_only`` tier.
            The tier is skipped when None.
        alternate_geocoder: Second provider for the ``alternate_provider``
            tier. The tier is skipped when None or not configured.
        retry_policy: Retry policy applied inside every tier.
        country_name: Country appended to the ``cep_only`` structured query.
        sleep: Awaitable sleep used for backoff (injectable for tests).
    """

    def __init__(
        self,
        geocoder: BaseGeocoder,
        postal_directory: ViaCepDirectory | None = None,
        alternate_geocoder: BaseGeocoder | None = None,
        retry_policy: RetryPolicy | None = None,
        country_name: str = "Brasil",
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self._geocoder = geocoder
        self._postal_directory = postal_directory
        self._alternate_geocoder = alternate_geocoder
        self._policy = retry_policy or RetryPolicy()
        self._country_name = country_name
        self._sleep = sleep

    @property
    def geocoder(self) -> BaseGeocoder:
        return self._geocoder

    @property
    def alternate_geocoder(self) -> BaseGeocoder | None:
        return self._alternate_geocoder

    async def resolve(self, query: AddressQuery, trace: ResolutionTrace | None = None) -> ResolutionResult:
        """Resolve ``query`` through the fallback tiers.

        Args:
            query: Query whose record reference, if any, is already expanded.
            trace: Optional trace collecting every provider attempt.

        Returns:
            Successful ResolutionResult naming the provider and tier used.

        Raises:
            InvalidInputError: No tier has anything to resolve.
            AllStrategiesExhaustedError: Every applicable tier failed.
        """
        trace = trace if trace is not None else ResolutionTrace()
        tiers = self._plan(query, trace)
        if not tiers:
            msg = "Query has no address text or postal code to resolve"
            raise InvalidInputError(msg)

        tried: list[str] = []
        errors: list[GeocodingError] = []
        for tier in tiers:
            tried.append(tier.strategy.value)
            try:
                result = await tier.run()
            except GeocodingError as e:
                errors.append(e)
                logger.bind(
                    json_output=True, strategy=tier.strategy.value, provider=tier.provider, error=str(e)
                ).warning("tier_failed")
                continue

            return ResolutionResult(
                success=True,
                latitude=result.latitude,
                longitude=result.longitude,
                source=tier.provider,
                cached=False,
                message=_success_message(tier.strategy),
                provider=tier.provider,
                strategy=tier.strategy.value,
                display_name=result.display_name,
                attempts=trace.count(),
                strategies_tried=tried,
            )

        raise AllStrategiesExhaustedError(errors[-1], tried)

    def _plan(self, query: AddressQuery, trace: ResolutionTrace) -> list[_Tier]:
        tiers: list[_Tier] = []
        primary = query.primary_text
        alternate = query.alternate_text
        postal_code = clean_postal_code(query.postal_code)
        geocoder = self._geocoder

        if primary:
            tiers.append(
                _Tier(
                    ResolutionStrategy.PRIMARY_ADDRESS,
                    geocoder.provider_name,
                    self._free_text(geocoder, primary, ResolutionStrategy.PRIMARY_ADDRESS, trace),
                )
            )

        # An alternate that normalizes to the primary would repeat tier 1
        if alternate and normalize_address(alternate) != normalize_address(primary):
            tiers.append(
                _Tier(
                    ResolutionStrategy.ALTERNATE_ADDRESS,
                    geocoder.provider_name,
                    self._free_text(geocoder, alternate, ResolutionStrategy.ALTERNATE_ADDRESS, trace),
                )
            )

        if postal_code and self._postal_directory is not None:
            tiers.append(
                _Tier(
                    ResolutionStrategy.CEP_ONLY,
                    geocoder.provider_name,
                    self._postal_code_only(self._postal_directory, postal_code, trace),
                )
            )

        fallback = self._alternate_geocoder
        if primary and fallback is not None and fallback.is_configured:
            tiers.append(
                _Tier(
                    ResolutionStrategy.ALTERNATE_PROVIDER,
                    fallback.provider_name,
                    self._free_text(fallback, primary, ResolutionStrategy.ALTERNATE_PROVIDER, trace),
                )
            )
        return tiers

    def _free_text(
        self, geocoder: BaseGeocoder, text: str, strategy: ResolutionStrategy, trace: ResolutionTrace
    ) -> TierCall:
        async def run() -> GeocodingResult:
            return await with_retry(
                lambda: geocoder.geocode(text),
                self._policy,
                provider=geocoder.provider_name,
                variant=strategy.value,
                trace=trace,
                sleep=self._sleep,
            )

        return run

    def _postal_code_only(
        self, directory: ViaCepDirectory, postal_code: str, trace: ResolutionTrace
    ) -> TierCall:
        geocoder = self._geocoder

        async def run() -> GeocodingResult:
            locality = await with_retry(
                lambda: directory.lookup(postal_code),
                self._policy,
                provider=directory.provider_name,
                variant=ResolutionStrategy.CEP_ONLY.value,
                trace=trace,
                sleep=self._sleep,
            )
            structured = StructuredAddress(
                city=locality.city,
                state=locality.state,
                country=self._country_name,
            )
            return await with_retry(
                lambda: geocoder.geocode_structured(structured),
                self._policy,
                provider=geocoder.provider_name,
                variant=ResolutionStrategy.CEP_ONLY.value,
                trace=trace,
                sleep=self._sleep,
            )

        return run


def _success_message(strategy: ResolutionStrategy) -> str:
    if strategy is ResolutionStrategy.CEP_ONLY:
        return "Geocoded by postal code (city-level precision)"
    if strategy is ResolutionStrategy.ALTERNATE_ADDRESS:
        return "Geocoded using the alternate address"
    if strategy is ResolutionStrategy.ALTERNATE_PROVIDER:
        return "Geocoded using the alternate provider"
    return "Geocoded successfully"
