"""Facility model — an accredited provider whose address is geocoded."""

from datetime import datetime

from sqlalchemy import DateTime, Double, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from facility_geocoder.models.base import Base, UUIDMixin


class Facility(Base, UUIDMixin):
    """Accredited facility with a single postal address and its coordinates."""

    __tablename__ = "facilities"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    city: Mapped[str | None] = mapped_column(String(120), nullable=True)
    state: Mapped[str | None] = mapped_column(String(2), nullable=True)
    postal_code: Mapped[str | None] = mapped_column(String(9), nullable=True)

    latitude: Mapped[float | None] = mapped_column(Double, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Double, nullable=True)
    geocoded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Backfill bookkeeping
    geocode_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    last_geocode_attempt: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    locations = relationship("ServiceLocation", back_populates="facility", lazy="selectin")
