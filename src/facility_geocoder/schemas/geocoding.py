"""Pydantic v2 schemas for address resolution."""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from facility_geocoder.lib.geocoder import AddressQuery, CacheStats, ResolutionResult


class ResolveAddressRequest(BaseModel):
    """Request to resolve an address (or a facility/location record) to coordinates."""

    record_reference: str | None = Field(default=None, description="Facility identifier")
    location_reference: str | None = Field(default=None, description="Service-location identifier")
    address_text: str | None = Field(default=None, max_length=500)
    full_address_text: str | None = Field(default=None, max_length=500)
    alternate_address_text: str | None = Field(default=None, max_length=500)
    postal_code: str | None = Field(default=None, max_length=20, description="CEP, any formatting")
    force_refresh: bool = False

    def to_query(self) -> AddressQuery:
        return AddressQuery(
            address_text=self.address_text,
            full_address_text=self.full_address_text,
            alternate_address_text=self.alternate_address_text,
            postal_code=self.postal_code,
            record_reference=self.record_reference,
            location_reference=self.location_reference,
            force_refresh=self.force_refresh,
        )


class ResolutionResponse(BaseModel):
    """Outcome of a resolution request."""

    success: bool
    lat: float | None = None
    lon: float | None = None
    source: str | None = None
    cached: bool | None = None
    provider: str | None = None
    strategy: str | None = None
    message: str | None = None

    @classmethod
    def from_result(cls, result: ResolutionResult) -> "ResolutionResponse":
        if not result.success:
            return cls(success=False, message=result.message)
        return cls(
            success=True,
            lat=result.latitude,
            lon=result.longitude,
            source=result.source,
            cached=result.cached,
            provider=result.provider,
            strategy=result.strategy,
            message=result.message,
        )


class CacheStatsResponse(BaseModel):
    """Aggregate statistics over the geocode cache."""

    model_config = {"from_attributes": True}

    total_entries: int
    total_hits: int
    entries_by_provider: dict[str, int]
    oldest_entry: datetime | None = None
    newest_entry: datetime | None = None

    @classmethod
    def from_stats(cls, stats: CacheStats) -> "CacheStatsResponse":
        return cls.model_validate(stats)


class CoverageStatsResponse(BaseModel):
    """Facility-wide geocoding coverage."""

    model_config = {"from_attributes": True}

    total: int
    geocoded: int
    missing: int
    max_attempts_reached: int
    success_rate_percent: float
    last_geocoded_at: datetime | None = None


class StateCoverageResponse(BaseModel):
    """Geocoding coverage for one state."""

    model_config = {"from_attributes": True}

    state: str | None
    total: int
    geocoded: int
    missing: int
    success_rate_percent: float


class FacilityFailureResponse(BaseModel):
    """A facility attempted by the backfill that still has no coordinates."""

    model_config = {"from_attributes": True}

    id: uuid.UUID
    name: str
    address: str | None = None
    city: str | None = None
    state: str | None = None
    postal_code: str | None = None
    geocode_attempts: int
    last_geocode_attempt: datetime | None = None
