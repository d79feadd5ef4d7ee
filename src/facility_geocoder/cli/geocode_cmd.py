"""Geocoding CLI commands: single-address resolution, facility backfill, cache and coverage statistics."""

import asyncio

import typer

from facility_geocoder.lib.geocoder import AddressQuery, ResolutionResult

geocode_app = typer.Typer()


@geocode_app.command("resolve")
def resolve(
    address: str = typer.Argument(..., help="Free-text address to resolve"),
    postal_code: str | None = typer.Option(None, "--postal-code", help="CEP used by the postal-code fallback"),
    alternate: str | None = typer.Option(None, "--alternate", help="Alternate address tried after the primary"),
    force: bool = typer.Option(False, "--force", help="Bypass the cache and overwrite its entry"),  # noqa: FBT001
    no_db: bool = typer.Option(False, "--no-db", help="Use an in-memory cache, no database"),  # noqa: FBT001
) -> None:
    """Resolve one address through the cache and the fallback chain."""
    query = AddressQuery(
        address_text=address,
        alternate_address_text=alternate,
        postal_code=postal_code,
        force_refresh=force,
    )
    result = asyncio.run(_resolve(query, no_db))
    _print_result(result)
    if not result.success:
        raise typer.Exit(code=1)


@geocode_app.command("backfill")
def backfill(
    batch_size: int | None = typer.Option(None, "--batch-size", help="Facilities per run"),
    max_attempts: int | None = typer.Option(None, "--max-attempts", help="Skip facilities that failed this often"),
    delay: float | None = typer.Option(None, "--delay", help="Seconds between consecutive resolutions"),
    force: bool = typer.Option(False, "--force", help="Ignore the attempt ceiling"),  # noqa: FBT001
) -> None:
    """Resolve facilities that still have no coordinates."""
    asyncio.run(_backfill(batch_size, max_attempts, delay, force))


@geocode_app.command("cache-stats")
def cache_stats() -> None:
    """Show geocode cache statistics."""
    asyncio.run(_cache_stats())


@geocode_app.command("coverage")
def coverage() -> None:
    """Show how many facilities have coordinates, overall and per state."""
    asyncio.run(_coverage())


@geocode_app.command("failures")
def failures(
    limit: int = typer.Option(50, "--limit", min=1, help="Maximum facilities listed"),
) -> None:
    """List facilities the backfill attempted that still have no coordinates."""
    asyncio.run(_failures(limit))


def _print_result(result: ResolutionResult) -> None:
    if not result.success:
        typer.echo(f"Resolution failed: {result.message}", err=True)
        return
    typer.echo(f"Latitude:   {result.latitude}")
    typer.echo(f"Longitude:  {result.longitude}")
    typer.echo(f"Source:     {result.source}")
    typer.echo(f"Provider:   {result.provider}")
    typer.echo(f"Strategy:   {result.strategy or '-'}")
    typer.echo(f"Cached:     {'yes' if result.cached else 'no'}")
    if result.display_name:
        typer.echo(f"Match:      {result.display_name}")


async def _resolve(query: AddressQuery, no_db: bool) -> ResolutionResult:
    """Async implementation of single-address resolution."""
    from facility_geocoder.core.config import get_settings
    from facility_geocoder.core.database import database_session_factory
    from facility_geocoder.lib.geocoder import InMemoryCacheStore, build_resolver
    from facility_geocoder.services.geocoding_service import ResolutionService, build_resolution_service

    settings = get_settings()
    if no_db:
        service = ResolutionService(build_resolver(settings), InMemoryCacheStore())
        return await service.resolve_address(query)

    async with database_session_factory(settings.database_url) as factory, factory() as session:
        service = build_resolution_service(session, settings)
        return await service.resolve_address(query)


async def _backfill(batch_size: int | None, max_attempts: int | None, delay: float | None, force: bool) -> None:
    """Async implementation of the facility backfill."""
    from facility_geocoder.core.config import get_settings
    from facility_geocoder.core.database import database_session_factory
    from facility_geocoder.lib.geocoder import build_resolver
    from facility_geocoder.services.backfill_service import run_backfill
    from facility_geocoder.services.geocoding_service import build_resolution_service

    settings = get_settings()
    resolver = build_resolver(settings)
    if delay is None:
        # Never space calls tighter than the provider's published policy
        delay = max(settings.backfill_delay_seconds, resolver.geocoder.rate_limit_delay)

    async with database_session_factory(settings.database_url) as factory:
        report = await run_backfill(
            factory,
            lambda session: build_resolution_service(session, settings, resolver=resolver),
            batch_size=batch_size or settings.backfill_batch_size,
            max_attempts=max_attempts or settings.backfill_max_attempts,
            delay_seconds=delay,
            force=force,
        )

    typer.echo("\nBackfill complete:")
    typer.echo(f"  Processed:  {report.processed}")
    typer.echo(f"  Succeeded:  {report.succeeded}")
    typer.echo(f"  Failed:     {len(report.failed)}")
    typer.echo(f"  Duration:   {report.duration_ms / 1000:.1f}s")
    for failure in report.failed:
        typer.echo(f"    {failure.id} ({failure.name}): {failure.error}")


async def _cache_stats() -> None:
    """Async implementation of cache statistics."""
    from facility_geocoder.core.config import get_settings
    from facility_geocoder.core.database import database_session_factory
    from facility_geocoder.lib.geocoder import SqlCacheStore

    settings = get_settings()
    async with database_session_factory(settings.database_url) as factory, factory() as session:
        stats = await SqlCacheStore(session).stats()

    typer.echo(f"Entries:      {stats.total_entries}")
    typer.echo(f"Total hits:   {stats.total_hits}")
    typer.echo(f"Oldest entry: {stats.oldest_entry or '-'}")
    typer.echo(f"Newest entry: {stats.newest_entry or '-'}")
    for provider, count in sorted(stats.entries_by_provider.items()):
        typer.echo(f"  {provider:<12} {count}")


async def _coverage() -> None:
    """Async implementation of coverage statistics."""
    from facility_geocoder.core.config import get_settings
    from facility_geocoder.core.database import database_session_factory
    from facility_geocoder.services.monitor_service import get_coverage_stats, get_state_distribution

    settings = get_settings()
    async with database_session_factory(settings.database_url) as factory, factory() as session:
        stats = await get_coverage_stats(session, settings.backfill_max_attempts)
        distribution = await get_state_distribution(session)

    typer.echo(f"Facilities:   {stats.total}")
    typer.echo(f"Geocoded:     {stats.geocoded} ({stats.success_rate_percent:.1f}%)")
    typer.echo(f"Missing:      {stats.missing}")
    typer.echo(f"Gave up:      {stats.max_attempts_reached}")
    typer.echo(f"Last success: {stats.last_geocoded_at or '-'}")
    for row in distribution:
        typer.echo(f"  {row.state or '--':<4} {row.geocoded:>6}/{row.total:<6} {row.success_rate_percent:.1f}%")


async def _failures(limit: int) -> None:
    """Async implementation of the recent-failures listing."""
    from facility_geocoder.core.config import get_settings
    from facility_geocoder.core.database import database_session_factory
    from facility_geocoder.services.monitor_service import list_recent_failures

    settings = get_settings()
    async with database_session_factory(settings.database_url) as factory, factory() as session:
        rows = await list_recent_failures(session, limit=limit)

    if not rows:
        typer.echo("No failed facilities")
        return
    for row in rows:
        location = ", ".join(part for part in (row.city, row.state) if part) or "-"
        typer.echo(
            f"{row.id}  {row.name} ({location})  attempts={row.geocode_attempts}  last={row.last_geocode_attempt}"
        )
