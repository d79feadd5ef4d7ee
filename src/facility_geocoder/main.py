"""FastAPI application factory.

Creates the FastAPI app with lifespan management, exception handlers,
and OpenAPI metadata.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger

from facility_geocoder.core.config import get_settings
from facility_geocoder.core.database import dispose_engine, init_engine
from facility_geocoder.core.logging import setup_logging
from facility_geocoder.lib.geocoder import GeocoderConfigurationError, build_resolver


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Manage application lifecycle.

    The resolver is built once at startup and shared by every request, so a
    misconfigured default provider stops the app before it serves traffic.
    """
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_dir)
    app.state.resolver = build_resolver(settings)
    init_engine(settings.database_url, echo=False)

    yield

    await dispose_engine()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="Facility Geocoder",
        description="Resolves facility addresses to coordinates with caching, retry and tiered fallback",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Register exception handlers
    @app.exception_handler(GeocoderConfigurationError)
    async def configuration_error_handler(request: Request, exc: GeocoderConfigurationError) -> JSONResponse:
        logger.error(f"Geocoder misconfigured: {exc}")
        return JSONResponse(
            status_code=500,
            content={"success": False, "message": "Geocoding service is not configured"},
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"success": False, "message": str(exc)},
        )

    # Register middleware and routers
    from facility_geocoder.api.router import create_router, setup_middleware

    setup_middleware(app, settings)
    app.include_router(create_router(settings))

    return app
