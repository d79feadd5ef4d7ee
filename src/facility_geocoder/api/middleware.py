"""CORS middleware."""

from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from facility_geocoder.core.config import Settings


def setup_cors(app: FastAPI, settings: Settings) -> None:
    """Configure CORS middleware on the FastAPI app.

    Only registered when origins are configured; the resolve endpoint is
    called server-to-server by default.

    Args:
        app: The FastAPI application.
        settings: Application settings.
    """
    if not settings.cors_origin_list:
        return
    kwargs: dict[str, Any] = {
        "allow_origins": settings.cors_origin_list,
        "allow_credentials": True,
        "allow_methods": ["GET", "POST", "OPTIONS"],
        "allow_headers": ["authorization", "x-client-info", "apikey", "content-type"],
    }
    app.add_middleware(CORSMiddleware, **kwargs)
