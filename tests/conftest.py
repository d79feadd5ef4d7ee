"""Shared test fixtures: async SQLite database, scripted providers and in-memory collaborators."""

from collections.abc import AsyncGenerator, Callable
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from facility_geocoder.core.config import Settings
from facility_geocoder.lib.geocoder import (
    AddressNotFoundError,
    BaseGeocoder,
    GeocodingResult,
    InvalidInputError,
    PostalCodeLocality,
    ViaCepDirectory,
)
from facility_geocoder.models.base import Base
from facility_geocoder.services.record_store import RecordAddress, RecordStore

Outcome = GeocodingResult | Exception


class ScriptedGeocoder(BaseGeocoder):
    """Provider whose answers are scripted per address text.

    Each address maps to a list of outcomes consumed in order; the last
    outcome repeats once the list is exhausted. Unscripted addresses get
    ``default`` or, when None, ``AddressNotFoundError``.
    """

    def __init__(
        self,
        name: str = "nominatim",
        script: dict[str, list[Outcome]] | None = None,
        default: Outcome | None = None,
        configured: bool = True,
    ) -> None:
        self._name = name
        self._script = {k: list(v) for k, v in (script or {}).items()}
        self._default = default
        self._configured = configured
        self.calls: list[str] = []

    @property
    def provider_name(self) -> str:
        return self._name

    @property
    def is_configured(self) -> bool:
        return self._configured

    async def geocode(self, address: str) -> GeocodingResult:
        self.calls.append(address)
        outcomes = self._script.get(address)
        if outcomes:
            outcome = outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]
        elif self._default is not None:
            outcome = self._default
        else:
            outcome = AddressNotFoundError(self._name)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeRecordStore(RecordStore):
    """Dictionary-backed record store that remembers coordinate writes."""

    def __init__(self, addresses: dict[str, RecordAddress] | None = None) -> None:
        self.addresses = dict(addresses or {})
        self.writes: list[tuple[str | None, str | None, float, float]] = []

    async def expand(self, record_reference: str | None, location_reference: str | None) -> RecordAddress:
        expanded = RecordAddress()
        for reference in (location_reference, record_reference):
            if not reference:
                continue
            record = self.addresses.get(reference)
            if record is None:
                msg = f"Record not found: {reference}"
                raise InvalidInputError(msg)
            expanded.candidates.extend(c for c in record.candidates if c not in expanded.candidates)
            expanded.postal_code = expanded.postal_code or record.postal_code
        return expanded

    async def write_coordinates(
        self,
        record_reference: str | None,
        location_reference: str | None,
        latitude: float,
        longitude: float,
    ) -> None:
        self.writes.append((record_reference, location_reference, latitude, longitude))


@pytest.fixture
def settings() -> Settings:
    """Test application settings."""
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        geocoder_retry_base_delay_ms=1,
        _env_file=None,  # type: ignore[call-arg]
    )


@pytest.fixture
def make_geocoder() -> Callable[..., ScriptedGeocoder]:
    """Factory for scripted providers."""
    return ScriptedGeocoder


@pytest.fixture
def make_record_store() -> Callable[..., FakeRecordStore]:
    """Factory for dictionary-backed record stores."""
    return FakeRecordStore


@pytest.fixture
def make_directory() -> Callable[..., ViaCepDirectory]:
    """Factory for a ViaCEP directory whose lookup is an AsyncMock."""

    def _make(result: PostalCodeLocality | Exception | None = None) -> ViaCepDirectory:
        directory = ViaCepDirectory()
        if isinstance(result, Exception):
            directory.lookup = AsyncMock(side_effect=result)  # type: ignore[method-assign]
        else:
            directory.lookup = AsyncMock(return_value=result)  # type: ignore[method-assign]
        return directory

    return _make


@pytest.fixture
def no_sleep() -> AsyncMock:
    """Awaitable sleep stand-in that records requested delays."""
    return AsyncMock(return_value=None)


@pytest.fixture
async def async_engine() -> AsyncGenerator[AsyncEngine]:
    """Create an in-memory async SQLite engine for testing."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return async_sessionmaker(async_engine, expire_on_commit=False)


@pytest.fixture
async def async_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession]:
    """Per-test async session."""
    async with session_factory() as session:
        yield session
