"""Root API router with /api/v1 prefix and middleware registration."""

from fastapi import APIRouter, FastAPI

from facility_geocoder.api.middleware import setup_cors
from facility_geocoder.core.config import Settings


def create_router(settings: Settings) -> APIRouter:
    """Create the root API router with all sub-routers included.

    Args:
        settings: Application settings.

    Returns:
        Configured API router.
    """
    from facility_geocoder.api.v1.geocoding import geocoding_router

    root_router = APIRouter(prefix=settings.api_v1_prefix)
    root_router.include_router(geocoding_router)

    return root_router


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Register all middleware on the FastAPI app.

    Args:
        app: The FastAPI application.
        settings: Application settings.
    """
    setup_cors(app, settings)
