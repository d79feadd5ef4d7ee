"""FastAPI dependency injection for database sessions and the resolution service."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from facility_geocoder.core.config import Settings, get_settings
from facility_geocoder.core.database import get_session_factory
from facility_geocoder.services.geocoding_service import ResolutionService, build_resolution_service


async def get_async_session() -> AsyncGenerator[AsyncSession]:
    """Yield an async database session with per-request lifecycle."""
    factory = get_session_factory()
    async with factory() as session:
        yield session


def get_resolution_service(
    request: Request,
    session: Annotated[AsyncSession, Depends(get_async_session)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> ResolutionService:
    """Build a ResolutionService bound to the request's session.

    Reuses the resolver built at startup; falls back to wiring one from
    settings when the app runs without its lifespan.
    """
    resolver = getattr(request.app.state, "resolver", None)
    return build_resolution_service(session, settings, resolver=resolver)
