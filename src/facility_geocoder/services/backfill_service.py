"""Backfill driver — resolves facilities that still have no coordinates, one batch at a time.

Calls are spaced by ``delay_seconds`` so a bulk run stays within the
community provider's one-request-per-second policy; the engine's own
backoff only handles the occasional 429 that slips through.
"""

import asyncio
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from facility_geocoder.lib.geocoder import AddressQuery
from facility_geocoder.lib.geocoder.retry import Sleeper
from facility_geocoder.models.facility import Facility
from facility_geocoder.services.geocoding_service import ResolutionService


@dataclass
class BackfillFailure:
    """A facility the backfill could not resolve."""

    id: str
    name: str
    error: str


@dataclass
class BackfillReport:
    """Summary of one backfill run."""

    processed: int = 0
    succeeded: int = 0
    failed: list[BackfillFailure] = field(default_factory=list)
    duration_ms: float = 0.0


async def select_pending_facilities(
    session: AsyncSession,
    batch_size: int,
    max_attempts: int,
    force: bool = False,
) -> list[tuple[uuid.UUID, str]]:
    """Return ``(id, name)`` of facilities with an address but no coordinates.

    Args:
        session: Database session.
        batch_size: Maximum number of facilities returned.
        max_attempts: Facilities with this many failed attempts are skipped.
        force: Ignore the attempt ceiling.

    Returns:
        Facilities ordered by fewest attempts first.
    """
    stmt = select(Facility.id, Facility.name).where(Facility.latitude.is_(None), Facility.address.is_not(None))
    if not force:
        stmt = stmt.where(Facility.geocode_attempts < max_attempts)
    stmt = stmt.order_by(Facility.geocode_attempts, Facility.created_at).limit(batch_size)
    result = await session.execute(stmt)
    return [(row.id, row.name) for row in result.all()]


async def run_backfill(
    session_factory: async_sessionmaker[AsyncSession],
    service_builder: Callable[[AsyncSession], ResolutionService],
    batch_size: int = 50,
    max_attempts: int = 5,
    delay_seconds: float = 1.1,
    force: bool = False,
    sleep: Sleeper = asyncio.sleep,
) -> BackfillReport:
    """Resolve one batch of facilities lacking coordinates.

    Each facility's ``geocode_attempts`` is incremented and
    ``last_geocode_attempt`` stamped before it is resolved, so facilities
    that keep failing eventually drop out of the batch.

    Args:
        session_factory: Factory for database sessions.
        service_builder: Builds a ResolutionService bound to a session.
        batch_size: Facilities processed in this run.
        max_attempts: Per-facility attempt ceiling.
        delay_seconds: Pause between consecutive resolutions.
        force: Reprocess facilities that reached the attempt ceiling.
        sleep: Awaitable sleep (injectable for tests).

    Returns:
        BackfillReport with counts, failures and elapsed time.
    """
    started = time.perf_counter()
    report = BackfillReport()
    logger.bind(json_output=True, batch_size=batch_size, max_attempts=max_attempts, force=force).info(
        "backfill_started"
    )

    async with session_factory() as session:
        pending = await select_pending_facilities(session, batch_size, max_attempts, force)
    if not pending:
        logger.info("No facilities pending geocoding")

    for index, (facility_id, name) in enumerate(pending):
        if index:
            await sleep(delay_seconds)
        report.processed += 1

        # Fresh session per facility: a failed transaction stays with its facility
        async with session_factory() as session:
            try:
                await _record_attempt(session, facility_id)
            except SQLAlchemyError as e:
                await session.rollback()
                error = f"Failed to record geocoding attempt: {e}"
                report.failed.append(BackfillFailure(id=str(facility_id), name=name, error=error))
                logger.bind(json_output=True, facility_id=str(facility_id), error=error).error("backfill_failed")
                continue

            service = service_builder(session)
            result = await service.resolve_address(AddressQuery(record_reference=str(facility_id)))

        if result.success:
            report.succeeded += 1
            logger.bind(json_output=True, facility_id=str(facility_id), source=result.source).info(
                "backfill_resolved"
            )
        else:
            error = result.message or "Geocoding failed"
            report.failed.append(BackfillFailure(id=str(facility_id), name=name, error=error))
            logger.bind(json_output=True, facility_id=str(facility_id), error=error).warning("backfill_failed")

    report.duration_ms = (time.perf_counter() - started) * 1000.0
    logger.bind(
        json_output=True,
        processed=report.processed,
        succeeded=report.succeeded,
        failed=len(report.failed),
        duration_ms=round(report.duration_ms, 1),
    ).info("backfill_completed")
    return report


async def _record_attempt(session: AsyncSession, facility_id: uuid.UUID) -> None:
    """Bump the attempt counter before resolving, so a crash still counts."""
    await session.execute(
        update(Facility)
        .where(Facility.id == facility_id)
        .values(
            geocode_attempts=Facility.geocode_attempts + 1,
            last_geocode_attempt=datetime.now(UTC),
        )
    )
    await session.commit()
