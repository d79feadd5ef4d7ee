"""Typer CLI root application with serve command."""

import typer

from facility_geocoder.core.config import get_settings
from facility_geocoder.core.logging import setup_logging

app = typer.Typer(name="facility-geocoder", help="Facility address resolution CLI")


@app.callback()
def _main_callback() -> None:
    """Initialize logging for all CLI commands."""
    settings = get_settings()
    setup_logging(settings.log_level, log_dir=settings.log_dir)


@app.command()
def serve(
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload for development"),
    host: str = typer.Option("0.0.0.0", "--host", help="Bind host"),  # noqa: S104
    port: int = typer.Option(8000, "--port", help="Bind port"),
) -> None:
    """Start the API server."""
    import uvicorn

    uvicorn.run(
        "facility_geocoder.main:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
    )


def _register_subcommands() -> None:
    """Register all CLI subcommand groups."""
    from facility_geocoder.cli.db_cmd import db_app
    from facility_geocoder.cli.geocode_cmd import geocode_app

    app.add_typer(db_app, name="db", help="Database migration commands")
    app.add_typer(geocode_app, name="geocode", help="Geocoding commands")


_register_subcommands()
