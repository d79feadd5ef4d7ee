"""Geocoding coverage monitoring: how many facilities have coordinates, per state, and which keep failing."""

import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import and_, case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from facility_geocoder.models.facility import Facility


@dataclass
class CoverageStats:
    """Facility-wide geocoding coverage."""

    total: int
    geocoded: int
    missing: int
    max_attempts_reached: int
    success_rate_percent: float
    last_geocoded_at: datetime | None = None


@dataclass
class StateCoverage:
    """Coverage for the facilities of one state."""

    state: str | None
    total: int
    geocoded: int
    missing: int
    success_rate_percent: float


@dataclass
class FacilityFailure:
    """A facility that was attempted and still has no coordinates."""

    id: uuid.UUID
    name: str
    address: str | None
    city: str | None
    state: str | None
    postal_code: str | None
    geocode_attempts: int
    last_geocode_attempt: datetime | None


def _success_rate(geocoded: int, total: int) -> float:
    return round(geocoded * 100.0 / total, 2) if total else 0.0


_GEOCODED = case((Facility.latitude.is_not(None), 1), else_=0)


async def get_coverage_stats(session: AsyncSession, max_attempts: int) -> CoverageStats:
    """Count facilities with and without coordinates.

    Args:
        session: Database session.
        max_attempts: Backfill attempt ceiling; facilities at or above it
            without coordinates count as ``max_attempts_reached``.

    Returns:
        CoverageStats over every facility.
    """
    gave_up = case(
        (and_(Facility.latitude.is_(None), Facility.geocode_attempts >= max_attempts), 1),
        else_=0,
    )
    row = (
        await session.execute(
            select(
                func.count(Facility.id),
                func.coalesce(func.sum(_GEOCODED), 0),
                func.coalesce(func.sum(gave_up), 0),
                func.max(Facility.geocoded_at),
            )
        )
    ).one()
    total, geocoded = int(row[0]), int(row[1])
    return CoverageStats(
        total=total,
        geocoded=geocoded,
        missing=total - geocoded,
        max_attempts_reached=int(row[2]),
        success_rate_percent=_success_rate(geocoded, total),
        last_geocoded_at=row[3],
    )


async def get_state_distribution(session: AsyncSession) -> list[StateCoverage]:
    """Coverage grouped by state, largest states first."""
    total = func.count(Facility.id)
    result = await session.execute(
        select(Facility.state, total, func.coalesce(func.sum(_GEOCODED), 0))
        .group_by(Facility.state)
        .order_by(total.desc(), Facility.state)
    )
    distribution = []
    for state, state_total, state_geocoded in result.all():
        count, geocoded = int(state_total), int(state_geocoded)
        distribution.append(
            StateCoverage(
                state=state,
                total=count,
                geocoded=geocoded,
                missing=count - geocoded,
                success_rate_percent=_success_rate(geocoded, count),
            )
        )
    return distribution


async def list_recent_failures(session: AsyncSession, limit: int = 50) -> list[FacilityFailure]:
    """Facilities attempted at least once that still lack coordinates, most recent attempt first."""
    result = await session.execute(
        select(Facility)
        .where(Facility.latitude.is_(None), Facility.geocode_attempts > 0)
        .order_by(Facility.last_geocode_attempt.desc())
        .limit(limit)
    )
    return [
        FacilityFailure(
            id=facility.id,
            name=facility.name,
            address=facility.address,
            city=facility.city,
            state=facility.state,
            postal_code=facility.postal_code,
            geocode_attempts=facility.geocode_attempts,
            last_geocode_attempt=facility.last_geocode_attempt,
        )
        for facility in result.scalars().all()
    ]
