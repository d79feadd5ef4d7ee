"""Resolution service — validates queries, consults the cache, runs the fallback resolver and persists results."""

import uuid
from typing import TYPE_CHECKING

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from facility_geocoder.core.config import Settings
from facility_geocoder.lib.geocoder import (
    AddressQuery,
    AllStrategiesExhaustedError,
    CacheEntry,
    CacheStats,
    FailureKind,
    FallbackResolver,
    GeocodeCacheStore,
    GeocodingError,
    InvalidInputError,
    NormalizedAddress,
    ResolutionResult,
    ResolutionTrace,
    SqlCacheStore,
    build_resolver,
    normalize_address,
)
from facility_geocoder.services.record_store import RecordStore, SqlRecordStore

if TYPE_CHECKING:
    from loguru import Logger


class ResolutionService:
    """Sole entrypoint for resolving an address query to coordinates.

    Never raises for a failed resolution: every failure path returns a
    ``ResolutionResult`` with ``success=False``. Cache and record-store
    writes happen only after a successful resolution or a cache hit.

    Args:
        resolver: Fallback resolver used on cache miss or forced refresh.
        cache: Content-addressed cache store.
        records: Record store used to expand references and persist
            coordinates. References are rejected when None.
    """

    def __init__(
        self,
        resolver: FallbackResolver,
        cache: GeocodeCacheStore,
        records: RecordStore | None = None,
    ) -> None:
        self._resolver = resolver
        self._cache = cache
        self._records = records

    async def resolve_address(self, query: AddressQuery) -> ResolutionResult:
        """Resolve one address query.

        Args:
            query: Raw text and/or record references plus options.

        Returns:
            ResolutionResult; ``cached=True`` when served from the cache.
        """
        request_id = uuid.uuid4().hex[:12]
        log = logger.bind(request_id=request_id)
        try:
            return await self._resolve(query, request_id)
        except InvalidInputError as e:
            log.bind(json_output=True, error=e.message).warning("resolution_failed")
            return ResolutionResult.failure(e.message, FailureKind.INVALID_INPUT)
        except AllStrategiesExhaustedError as e:
            log.bind(json_output=True, error=e.message, strategies=e.strategies).warning("resolution_failed")
            return ResolutionResult.failure(
                f"All geocoding strategies failed: {e.message}",
                FailureKind.EXHAUSTED,
                strategies_tried=e.strategies,
            )
        except GeocodingError as e:
            log.bind(json_output=True, error=e.message).warning("resolution_failed")
            return ResolutionResult.failure(e.message, FailureKind.EXHAUSTED)
        except Exception as e:
            log.exception(f"Unexpected error during address resolution: {e}")
            return ResolutionResult.failure(f"Internal error: {e}", FailureKind.INTERNAL)

    async def cache_stats(self) -> CacheStats:
        """Return aggregate cache statistics."""
        return await self._cache.stats()

    async def _resolve(self, query: AddressQuery, request_id: str) -> ResolutionResult:
        prepared = await self._prepare(query)
        normalized = normalize_address(prepared.primary_text)
        if not normalized.value:
            msg = "Address is empty or invalid"
            raise InvalidInputError(msg)

        address_hash = normalized.cache_key
        log = logger.bind(request_id=request_id, address_hash=address_hash)
        log.debug(f"Resolving {prepared.primary_text!r}")

        if not query.force_refresh:
            entry = await self._cache_get(normalized, log)
            if entry is not None:
                log.bind(json_output=True, provider=entry.provider, hit_count=entry.hit_count + 1).info("cache_hit")
                await self._touch(address_hash, log)
                await self._write_record(prepared, entry.latitude, entry.longitude, log)
                return _from_cache(entry)
            log.bind(json_output=True).info("cache_miss")

        trace = ResolutionTrace()
        result = await self._resolver.resolve(prepared, trace)

        metadata = {
            "display_name": result.display_name,
            "strategy": result.strategy,
            "strategies_tried": result.strategies_tried,
            "attempts": result.attempts,
        }
        try:
            await self._cache.put(
                normalized,
                prepared.primary_text,
                result.latitude,
                result.longitude,
                result.provider,
                metadata,
            )
        except Exception as e:
            log.error(f"Failed to store geocoding result in cache: {e}")
        await self._write_record(prepared, result.latitude, result.longitude, log)

        log.bind(
            json_output=True,
            provider=result.provider,
            strategy=result.strategy,
            attempts=result.attempts,
        ).info("resolved")
        return result

    async def _prepare(self, query: AddressQuery) -> AddressQuery:
        """Expand record references and fill in primary/alternate text and postal code."""
        primary = query.primary_text
        alternate = query.alternate_text
        postal_code = query.postal_code

        if query.has_record_reference:
            if self._records is None:
                msg = "Record references are not supported without a record store"
                raise InvalidInputError(msg)
            expanded = await self._records.expand(query.record_reference, query.location_reference)
            candidates = list(expanded.candidates)
            if not primary and candidates:
                primary = candidates.pop(0)
            if not alternate:
                primary_key = normalize_address(primary)
                alternate = next((c for c in candidates if normalize_address(c) != primary_key), "")
            postal_code = postal_code or expanded.postal_code

        if not primary:
            msg = "An address or a record reference is required"
            raise InvalidInputError(msg)

        return AddressQuery(
            address_text=primary,
            alternate_address_text=alternate or None,
            postal_code=postal_code,
            record_reference=query.record_reference,
            location_reference=query.location_reference,
            force_refresh=query.force_refresh,
        )

    async def _cache_get(self, normalized: NormalizedAddress, log: "Logger") -> CacheEntry | None:
        try:
            return await self._cache.get(normalized)
        except Exception as e:
            log.warning(f"Cache lookup failed, treating as miss: {e}")
            return None

    async def _touch(self, address_hash: str, log: "Logger") -> None:
        try:
            await self._cache.touch(address_hash)
        except Exception as e:
            log.warning(f"Failed to update cache hit counter: {e}")

    async def _write_record(self, query: AddressQuery, latitude: float, longitude: float, log: "Logger") -> None:
        if self._records is None or not query.has_record_reference:
            return
        try:
            await self._records.write_coordinates(query.record_reference, query.location_reference, latitude, longitude)
        except Exception as e:
            log.error(f"Failed to persist coordinates on record: {e}")


def _from_cache(entry: CacheEntry) -> ResolutionResult:
    return ResolutionResult(
        success=True,
        latitude=entry.latitude,
        longitude=entry.longitude,
        source="cache",
        cached=True,
        message="Coordinates served from cache",
        provider=entry.provider,
        strategy=entry.metadata.get("strategy"),
        display_name=entry.metadata.get("display_name"),
    )


def build_resolution_service(
    session: AsyncSession,
    settings: Settings,
    resolver: FallbackResolver | None = None,
) -> ResolutionService:
    """Wire a ResolutionService over the SQL cache and record store.

    Args:
        session: Database session shared by the cache and record store.
        settings: Application settings.
        resolver: Optional pre-built resolver; built from settings when None.

    Returns:
        ResolutionService ready to resolve queries.
    """
    return ResolutionService(
        resolver or build_resolver(settings),
        SqlCacheStore(session),
        SqlRecordStore(session, country_name=settings.geocoder_country_name),
    )
