"""Content-addressed caching layer for geocoding results.

Entries are keyed by the SHA-256 digest of the normalized address text. Reads
never touch the network. Writes are upserts: one entry per hash, with the hit
counter incremented rather than reset when an entry is overwritten.
"""

import asyncio
import dataclasses
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Result
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.expression import Executable

from facility_geocoder.lib.geocoder.address import NormalizedAddress
from facility_geocoder.models.geocode_cache import GeocodeCache


@dataclass
class CacheEntry:
    """One cached coordinate pair with its provenance."""

    address_hash: str
    address_text: str
    latitude: float
    longitude: float
    provider: str
    metadata: dict = field(default_factory=dict)
    hit_count: int = 0
    created_at: datetime | None = None
    last_used_at: datetime | None = None


@dataclass
class CacheStats:
    """Aggregate view over the whole cache."""

    total_entries: int = 0
    total_hits: int = 0
    entries_by_provider: dict[str, int] = field(default_factory=dict)
    oldest_entry: datetime | None = None
    newest_entry: datetime | None = None


class GeocodeCacheStore(ABC):
    """Key-value store over normalized-address hashes.

    Implementations must be safe under concurrent callers; concurrent ``put``
    calls for the same hash resolve as last-writer-wins.
    """

    @abstractmethod
    async def get(self, address: NormalizedAddress) -> CacheEntry | None:
        """Return the entry for ``address``, or None on a miss."""

    @abstractmethod
    async def put(
        self,
        address: NormalizedAddress,
        original_text: str,
        latitude: float,
        longitude: float,
        provider: str,
        metadata: dict | None = None,
    ) -> None:
        """Insert or overwrite the entry for ``address``."""

    @abstractmethod
    async def touch(self, address_hash: str) -> None:
        """Increment the hit counter and refresh ``last_used_at``."""

    @abstractmethod
    async def stats(self) -> CacheStats:
        """Summarize cache contents."""


class InMemoryCacheStore(GeocodeCacheStore):
    """Process-local cache store, used in tests and one-off CLI runs."""

    def __init__(self) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, address: NormalizedAddress) -> CacheEntry | None:
        async with self._lock:
            entry = self._entries.get(address.cache_key)
            return dataclasses.replace(entry) if entry else None

    async def put(
        self,
        address: NormalizedAddress,
        original_text: str,
        latitude: float,
        longitude: float,
        provider: str,
        metadata: dict | None = None,
    ) -> None:
        now = datetime.now(UTC)
        key = address.cache_key
        async with self._lock:
            existing = self._entries.get(key)
            self._entries[key] = CacheEntry(
                address_hash=key,
                address_text=original_text,
                latitude=latitude,
                longitude=longitude,
                provider=provider,
                metadata=dict(metadata or {}),
                hit_count=existing.hit_count + 1 if existing else 0,
                created_at=existing.created_at if existing else now,
                last_used_at=now,
            )

    async def touch(self, address_hash: str) -> None:
        async with self._lock:
            entry = self._entries.get(address_hash)
            if entry is not None:
                entry.hit_count += 1
                entry.last_used_at = datetime.now(UTC)

    async def stats(self) -> CacheStats:
        async with self._lock:
            entries = list(self._entries.values())
        by_provider: dict[str, int] = {}
        for entry in entries:
            by_provider[entry.provider] = by_provider.get(entry.provider, 0) + 1
        created = [e.created_at for e in entries if e.created_at is not None]
        return CacheStats(
            total_entries=len(entries),
            total_hits=sum(e.hit_count for e in entries),
            entries_by_provider=by_provider,
            oldest_entry=min(created) if created else None,
            newest_entry=max(created) if created else None,
        )


class SqlCacheStore(GeocodeCacheStore):
    """Cache store backed by the ``geocode_cache`` table.

    Each write is committed on its own so a failed cache write never leaves
    the caller's session in a half-finished transaction.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, address: NormalizedAddress) -> CacheEntry | None:
        result = await self._execute_read(
            select(GeocodeCache)
            .where(GeocodeCache.address_hash == address.cache_key)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        if row is None:
            return None
        return CacheEntry(
            address_hash=row.address_hash,
            address_text=row.address_text,
            latitude=row.latitude,
            longitude=row.longitude,
            provider=row.provider,
            metadata=dict(row.details or {}),
            hit_count=row.hit_count,
            created_at=row.created_at,
            last_used_at=row.last_used_at,
        )

    async def put(
        self,
        address: NormalizedAddress,
        original_text: str,
        latitude: float,
        longitude: float,
        provider: str,
        metadata: dict | None = None,
    ) -> None:
        now = datetime.now(UTC)
        table = GeocodeCache.__table__
        metadata_col = GeocodeCache.details.property.columns[0]
        insert = self._insert_for_dialect()
        stmt = insert(table).values(
            {
                table.c.address_hash: address.cache_key,
                table.c.address_text: original_text,
                table.c.latitude: latitude,
                table.c.longitude: longitude,
                table.c.provider: provider,
                metadata_col: metadata or {},
                table.c.hit_count: 0,
                table.c.created_at: now,
                table.c.last_used_at: now,
            }
        )
        overwritten = (table.c.address_text, table.c.latitude, table.c.longitude, table.c.provider, metadata_col)
        set_ = {col: stmt.excluded[col.key] for col in overwritten}
        set_[table.c.hit_count] = table.c.hit_count + 1
        set_[table.c.last_used_at] = stmt.excluded[table.c.last_used_at.key]
        stmt = stmt.on_conflict_do_update(index_elements=[table.c.address_hash], set_=set_)
        await self._execute_and_commit(stmt)

    async def touch(self, address_hash: str) -> None:
        stmt = (
            update(GeocodeCache)
            .where(GeocodeCache.address_hash == address_hash)
            .values(hit_count=GeocodeCache.hit_count + 1, last_used_at=datetime.now(UTC))
        )
        await self._execute_and_commit(stmt)

    async def stats(self) -> CacheStats:
        totals = (
            await self._execute_read(
                select(
                    func.count(GeocodeCache.address_hash),
                    func.coalesce(func.sum(GeocodeCache.hit_count), 0),
                    func.min(GeocodeCache.created_at),
                    func.max(GeocodeCache.created_at),
                )
            )
        ).one()
        by_provider = await self._execute_read(
            select(GeocodeCache.provider, func.count(GeocodeCache.address_hash)).group_by(GeocodeCache.provider)
        )
        return CacheStats(
            total_entries=totals[0],
            total_hits=int(totals[1]),
            entries_by_provider={provider: count for provider, count in by_provider.all()},
            oldest_entry=totals[2],
            newest_entry=totals[3],
        )

    def _insert_for_dialect(self) -> Callable[..., Any]:
        dialect = self._session.get_bind().dialect.name
        if dialect == "postgresql":
            return postgresql.insert
        if dialect == "sqlite":
            return sqlite.insert
        msg = f"Unsupported database dialect for cache upsert: {dialect}"
        raise ValueError(msg)

    async def _execute_read(self, stmt: Executable) -> Result[Any]:
        try:
            return await self._session.execute(stmt)
        except SQLAlchemyError:
            await self._session.rollback()
            raise

    async def _execute_and_commit(self, stmt: Executable) -> None:
        try:
            await self._session.execute(stmt)
            await self._session.commit()
        except SQLAlchemyError:
            await self._session.rollback()
            raise
