"""Database migration CLI commands using Alembic programmatically."""

from pathlib import Path
from typing import TYPE_CHECKING

import typer
from loguru import logger

if TYPE_CHECKING:
    from alembic.config import Config

db_app = typer.Typer()


def _alembic_config(config_path: str) -> "Config":
    """Load the Alembic config, failing early with a readable message."""
    from alembic.config import Config

    if not Path(config_path).is_file():
        typer.echo(f"Alembic config not found: {config_path}", err=True)
        raise typer.Exit(code=1)
    return Config(config_path)


@db_app.command()
def upgrade(
    revision: str = typer.Argument("head", help="Target revision"),
    config_path: str = typer.Option("alembic.ini", "--config", help="Path to alembic.ini"),
) -> None:
    """Create or migrate the cache, facility and service-location tables."""
    from alembic import command

    logger.info(f"Upgrading database to {revision}")
    command.upgrade(_alembic_config(config_path), revision)
    logger.info("Database upgrade complete")


@db_app.command()
def downgrade(
    revision: str = typer.Argument("-1", help="Target revision"),
    config_path: str = typer.Option("alembic.ini", "--config", help="Path to alembic.ini"),
) -> None:
    """Roll the schema back to the target revision."""
    from alembic import command

    logger.info(f"Downgrading database to {revision}")
    command.downgrade(_alembic_config(config_path), revision)
    logger.info("Database downgrade complete")


@db_app.command()
def current(
    config_path: str = typer.Option("alembic.ini", "--config", help="Path to alembic.ini"),
) -> None:
    """Show the current database migration revision."""
    from alembic import command

    command.current(_alembic_config(config_path), verbose=True)
