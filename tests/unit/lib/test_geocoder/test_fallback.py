"""Unit tests for FallbackResolver tier ordering and outcomes."""

from unittest.mock import AsyncMock

import pytest

from facility_geocoder.lib.geocoder.base import (
    AddressNotFoundError,
    AllStrategiesExhaustedError,
    GeocodingProviderError,
    GeocodingResult,
    InvalidInputError,
    RateLimitedError,
    ResolutionTrace,
)
from facility_geocoder.lib.geocoder.fallback import AddressQuery, FallbackResolver, ResolutionStrategy
from facility_geocoder.lib.geocoder.postal_code import PostalCodeLocality
from facility_geocoder.lib.geocoder.retry import RetryPolicy

PRIMARY = "Rua Teste, 123, São Paulo"
ALTERNATE = "Avenida Paulista, 1000, São Paulo"
SAO_PAULO = GeocodingResult(latitude=-23.5505, longitude=-46.6333, display_name="São Paulo, SP")
PAULISTA = GeocodingResult(latitude=-23.5613, longitude=-46.6565, display_name="Avenida Paulista")


class TestTierOrdering:
    """Tiers run in order and the first success wins."""

    async def test_primary_success(self, make_geocoder, no_sleep: AsyncMock) -> None:
        geocoder = make_geocoder(script={PRIMARY: [PAULISTA]})
        resolver = FallbackResolver(geocoder, sleep=no_sleep)

        result = await resolver.resolve(AddressQuery(address_text=PRIMARY, alternate_address_text=ALTERNATE))

        assert result.success is True
        assert result.strategy == ResolutionStrategy.PRIMARY_ADDRESS
        assert result.source == "nominatim"
        assert result.provider == "nominatim"
        assert result.cached is False
        assert result.display_name == "Avenida Paulista"
        assert result.strategies_tried == ["primary_address"]
        assert geocoder.calls == [PRIMARY]

    async def test_full_address_text_used_when_address_missing(self, make_geocoder, no_sleep: AsyncMock) -> None:
        geocoder = make_geocoder(script={PRIMARY: [PAULISTA]})
        resolver = FallbackResolver(geocoder, sleep=no_sleep)

        result = await resolver.resolve(AddressQuery(full_address_text=f"  {PRIMARY}  "))

        assert result.strategy == "primary_address"
        assert geocoder.calls == [PRIMARY]

    async def test_alternate_address_after_primary_miss(self, make_geocoder, no_sleep: AsyncMock) -> None:
        geocoder = make_geocoder(script={ALTERNATE: [PAULISTA]})
        resolver = FallbackResolver(geocoder, sleep=no_sleep)

        result = await resolver.resolve(AddressQuery(address_text=PRIMARY, alternate_address_text=ALTERNATE))

        assert result.strategy == ResolutionStrategy.ALTERNATE_ADDRESS
        assert result.strategies_tried == ["primary_address", "alternate_address"]
        assert geocoder.calls == [PRIMARY, ALTERNATE]

    async def test_alternate_equal_to_primary_is_skipped(self, make_geocoder, no_sleep: AsyncMock) -> None:
        geocoder = make_geocoder()
        resolver = FallbackResolver(geocoder, sleep=no_sleep)

        with pytest.raises(AllStrategiesExhaustedError) as exc_info:
            await resolver.resolve(AddressQuery(address_text="Rua Teste, 123", alternate_address_text="R. Teste, 123"))

        assert exc_info.value.strategies == ["primary_address"]
        assert geocoder.calls == ["Rua Teste, 123"]

    async def test_cep_only_after_address_misses(self, make_geocoder, make_directory, no_sleep: AsyncMock) -> None:
        """Primary and alternate miss; the postal code resolves to a city centroid."""
        geocoder = make_geocoder(script={"São Paulo, SP, Brasil": [SAO_PAULO]})
        directory = make_directory(PostalCodeLocality(postal_code="01310100", city="São Paulo", state="SP"))
        resolver = FallbackResolver(geocoder, postal_directory=directory, sleep=no_sleep)

        result = await resolver.resolve(
            AddressQuery(address_text=PRIMARY, alternate_address_text=ALTERNATE, postal_code="01310-100")
        )

        assert result.success is True
        assert result.strategy == ResolutionStrategy.CEP_ONLY
        assert result.source == "nominatim"
        assert result.latitude == pytest.approx(-23.5505)
        assert result.strategies_tried == ["primary_address", "alternate_address", "cep_only"]
        assert "city-level" in result.message
        directory.lookup.assert_awaited_once_with("01310100")
        assert geocoder.calls == [PRIMARY, ALTERNATE, "São Paulo, SP, Brasil"]

    async def test_cep_only_without_address(self, make_geocoder, make_directory, no_sleep: AsyncMock) -> None:
        geocoder = make_geocoder(default=SAO_PAULO)
        directory = make_directory(PostalCodeLocality(postal_code="01310100", city="São Paulo", state="SP"))
        resolver = FallbackResolver(geocoder, postal_directory=directory, sleep=no_sleep)

        result = await resolver.resolve(AddressQuery(postal_code="01310100"))

        assert result.strategy == "cep_only"
        assert result.strategies_tried == ["cep_only"]

    async def test_cep_directory_miss_moves_on(self, make_geocoder, make_directory, no_sleep: AsyncMock) -> None:
        geocoder = make_geocoder()
        mapbox = make_geocoder(name="mapbox", script={PRIMARY: [PAULISTA]})
        directory = make_directory(AddressNotFoundError("viacep", "Postal code 99999999 not found"))
        resolver = FallbackResolver(geocoder, postal_directory=directory, alternate_geocoder=mapbox, sleep=no_sleep)

        result = await resolver.resolve(AddressQuery(address_text=PRIMARY, postal_code="99999999"))

        assert result.strategy == ResolutionStrategy.ALTERNATE_PROVIDER
        assert result.strategies_tried == ["primary_address", "cep_only", "alternate_provider"]

    async def test_alternate_provider_last(self, make_geocoder, no_sleep: AsyncMock) -> None:
        geocoder = make_geocoder()
        mapbox = make_geocoder(name="mapbox", script={PRIMARY: [PAULISTA]})
        resolver = FallbackResolver(geocoder, alternate_geocoder=mapbox, sleep=no_sleep)

        result = await resolver.resolve(AddressQuery(address_text=PRIMARY))

        assert result.strategy == ResolutionStrategy.ALTERNATE_PROVIDER
        assert result.source == "mapbox"
        assert result.provider == "mapbox"
        assert mapbox.calls == [PRIMARY]

    async def test_unconfigured_alternate_provider_skipped(self, make_geocoder, no_sleep: AsyncMock) -> None:
        geocoder = make_geocoder()
        mapbox = make_geocoder(name="mapbox", default=PAULISTA, configured=False)
        resolver = FallbackResolver(geocoder, alternate_geocoder=mapbox, sleep=no_sleep)

        with pytest.raises(AllStrategiesExhaustedError) as exc_info:
            await resolver.resolve(AddressQuery(address_text=PRIMARY))

        assert exc_info.value.strategies == ["primary_address"]
        assert mapbox.calls == []


class TestRetriesWithinTier:
    """Transient errors are retried inside a tier before the chain advances."""

    async def test_rate_limit_retried_then_success(self, make_geocoder, no_sleep: AsyncMock) -> None:
        geocoder = make_geocoder(
            script={PRIMARY: [RateLimitedError("nominatim"), RateLimitedError("nominatim"), PAULISTA]}
        )
        policy = RetryPolicy(max_attempts=3, base_delay_ms=1000)
        resolver = FallbackResolver(geocoder, retry_policy=policy, sleep=no_sleep)
        trace = ResolutionTrace()

        result = await resolver.resolve(AddressQuery(address_text=PRIMARY), trace)

        assert result.strategy == "primary_address"
        assert result.attempts == 3
        assert trace.count("primary_address") == 3
        assert [c.args[0] for c in no_sleep.await_args_list] == [1.0, 2.0]

    async def test_exhausted_tier_advances(self, make_geocoder, no_sleep: AsyncMock) -> None:
        geocoder = make_geocoder(
            script={PRIMARY: [GeocodingProviderError("nominatim", "HTTP 503")], ALTERNATE: [PAULISTA]}
        )
        policy = RetryPolicy(max_attempts=2, base_delay_ms=1)
        resolver = FallbackResolver(geocoder, retry_policy=policy, sleep=no_sleep)

        result = await resolver.resolve(AddressQuery(address_text=PRIMARY, alternate_address_text=ALTERNATE))

        assert result.strategy == "alternate_address"
        assert geocoder.calls == [PRIMARY, PRIMARY, ALTERNATE]
        assert result.attempts == 3


class TestResolverFailures:
    """Failures surface as typed errors."""

    async def test_everything_fails(self, make_geocoder, make_directory, no_sleep: AsyncMock) -> None:
        geocoder = make_geocoder()
        mapbox = make_geocoder(name="mapbox")
        directory = make_directory(PostalCodeLocality(postal_code="01310100", city="São Paulo", state="SP"))
        resolver = FallbackResolver(geocoder, postal_directory=directory, alternate_geocoder=mapbox, sleep=no_sleep)

        with pytest.raises(AllStrategiesExhaustedError) as exc_info:
            await resolver.resolve(
                AddressQuery(address_text=PRIMARY, alternate_address_text=ALTERNATE, postal_code="01310-100")
            )

        assert exc_info.value.strategies == [
            "primary_address",
            "alternate_address",
            "cep_only",
            "alternate_provider",
        ]
        assert isinstance(exc_info.value.last_error, AddressNotFoundError)
        assert "mapbox" in exc_info.value.message

    async def test_empty_query_is_invalid(self, make_geocoder, no_sleep: AsyncMock) -> None:
        resolver = FallbackResolver(make_geocoder(), sleep=no_sleep)

        with pytest.raises(InvalidInputError):
            await resolver.resolve(AddressQuery(address_text="   "))

    async def test_postal_code_without_directory_is_invalid(self, make_geocoder, no_sleep: AsyncMock) -> None:
        resolver = FallbackResolver(make_geocoder(), sleep=no_sleep)

        with pytest.raises(InvalidInputError):
            await resolver.resolve(AddressQuery(postal_code="01310-100"))
