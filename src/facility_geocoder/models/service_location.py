"""ServiceLocation model — an additional office where a facility attends."""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Double, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from facility_geocoder.models.base import Base, UUIDMixin


class ServiceLocation(Base, UUIDMixin):
    """Sub-location of a facility, stored as decomposed address components."""

    __tablename__ = "service_locations"

    facility_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("facilities.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    street: Mapped[str | None] = mapped_column(String(255), nullable=True)
    number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    district: Mapped[str | None] = mapped_column(String(120), nullable=True)
    city: Mapped[str | None] = mapped_column(String(120), nullable=True)
    state: Mapped[str | None] = mapped_column(String(2), nullable=True)
    postal_code: Mapped[str | None] = mapped_column(String(9), nullable=True)

    latitude: Mapped[float | None] = mapped_column(Double, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Double, nullable=True)
    geocoded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    facility = relationship("Facility", back_populates="locations")
