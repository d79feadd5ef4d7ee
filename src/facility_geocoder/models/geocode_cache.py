"""GeocodeCache model — content-addressed geocoding results keyed by normalized-address hash."""

from datetime import datetime

from sqlalchemy import DateTime, Double, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from facility_geocoder.models.base import Base, JSONType


class GeocodeCache(Base):
    """One resolved coordinate pair per normalized-address hash."""

    __tablename__ = "geocode_cache"

    address_hash: Mapped[str] = mapped_column(String(64), primary_key=True)
    address_text: Mapped[str] = mapped_column(Text, nullable=False)
    latitude: Mapped[float] = mapped_column(Double, nullable=False)
    longitude: Mapped[float] = mapped_column(Double, nullable=False)
    provider: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    # "metadata" is reserved on declarative classes
    details: Mapped[dict | None] = mapped_column("metadata", JSONType, nullable=True)
    hit_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    last_used_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
