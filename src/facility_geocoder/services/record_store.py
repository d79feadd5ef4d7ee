"""Record store — expands facility/location references into addresses and writes coordinates back."""

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from facility_geocoder.lib.geocoder.address import join_address_parts
from facility_geocoder.lib.geocoder.base import InvalidInputError
from facility_geocoder.models.facility import Facility
from facility_geocoder.models.service_location import ServiceLocation


@dataclass
class RecordAddress:
    """Address candidates expanded from a record reference.

    ``candidates`` is ordered most specific first: a service location's
    address precedes its facility's.
    """

    candidates: list[str] = field(default_factory=list)
    postal_code: str | None = None


class RecordStore(ABC):
    """Collaborator owning facility addresses and their coordinates."""

    @abstractmethod
    async def expand(self, record_reference: str | None, location_reference: str | None) -> RecordAddress:
        """Expand references into address text.

        Raises:
            InvalidInputError: A reference is malformed or names no record.
        """

    @abstractmethod
    async def write_coordinates(
        self,
        record_reference: str | None,
        location_reference: str | None,
        latitude: float,
        longitude: float,
    ) -> None:
        """Persist ``{latitude, longitude, geocoded_at}`` on every referenced record."""


def parse_reference(value: str, kind: str) -> uuid.UUID:
    """Parse an opaque record reference into a UUID.

    Raises:
        InvalidInputError: The reference is not a valid UUID.
    """
    try:
        return uuid.UUID(str(value))
    except ValueError as e:
        msg = f"Invalid {kind} reference: {value!r}"
        raise InvalidInputError(msg) from e


class SqlRecordStore(RecordStore):
    """Record store over the ``facilities`` and ``service_locations`` tables."""

    def __init__(self, session: AsyncSession, country_name: str = "Brasil") -> None:
        self._session = session
        self._country_name = country_name

    async def expand(self, record_reference: str | None, location_reference: str | None) -> RecordAddress:
        expanded = RecordAddress()

        if location_reference:
            location = await self._get_location(location_reference)
            text = join_address_parts(
                location.street,
                location.number,
                location.district,
                location.city,
                location.state,
                country=self._country_name,
            )
            if text:
                expanded.candidates.append(text)
            expanded.postal_code = location.postal_code

        if record_reference:
            facility = await self._get_facility(record_reference)
            text = join_address_parts(facility.address, facility.city, facility.state, country=self._country_name)
            if text and text not in expanded.candidates:
                expanded.candidates.append(text)
            if not expanded.postal_code:
                expanded.postal_code = facility.postal_code

        return expanded

    async def write_coordinates(
        self,
        record_reference: str | None,
        location_reference: str | None,
        latitude: float,
        longitude: float,
    ) -> None:
        now = datetime.now(UTC)
        try:
            if location_reference:
                await self._session.execute(
                    update(ServiceLocation)
                    .where(ServiceLocation.id == parse_reference(location_reference, "location"))
                    .values(latitude=latitude, longitude=longitude, geocoded_at=now)
                )
            if record_reference:
                await self._session.execute(
                    update(Facility)
                    .where(Facility.id == parse_reference(record_reference, "facility"))
                    .values(latitude=latitude, longitude=longitude, geocoded_at=now)
                )
            await self._session.commit()
        except SQLAlchemyError:
            await self._session.rollback()
            raise

    async def _get_facility(self, reference: str) -> Facility:
        facility_id = parse_reference(reference, "facility")
        result = await self._session.execute(select(Facility).where(Facility.id == facility_id))
        facility = result.scalar_one_or_none()
        if facility is None:
            msg = f"Facility not found: {reference}"
            raise InvalidInputError(msg)
        return facility

    async def _get_location(self, reference: str) -> ServiceLocation:
        location_id = parse_reference(reference, "location")
        result = await self._session.execute(select(ServiceLocation).where(ServiceLocation.id == location_id))
        location = result.scalar_one_or_none()
        if location is None:
            msg = f"Service location not found: {reference}"
            raise InvalidInputError(msg)
        return location
