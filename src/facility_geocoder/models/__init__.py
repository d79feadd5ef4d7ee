"""ORM model registry — import all models so Alembic autogenerate discovers them."""

from facility_geocoder.models.facility import Facility
from facility_geocoder.models.geocode_cache import GeocodeCache
from facility_geocoder.models.service_location import ServiceLocation

__all__ = [
    "Facility",
    "GeocodeCache",
    "ServiceLocation",
]
