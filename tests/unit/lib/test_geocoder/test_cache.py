"""Unit tests for the geocode cache stores.

SQL-backed store tests against a real database live in tests/integration/.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from facility_geocoder.lib.geocoder.address import normalize_address
from facility_geocoder.lib.geocoder.cache import InMemoryCacheStore, SqlCacheStore


class TestInMemoryCacheStore:
    """Tests for InMemoryCacheStore."""

    async def test_miss_returns_none(self) -> None:
        store = InMemoryCacheStore()
        assert await store.get(normalize_address("Rua Teste, 123")) is None

    async def test_put_then_get(self) -> None:
        store = InMemoryCacheStore()
        address = normalize_address("Rua Teste, 123")

        await store.put(address, "Rua Teste, 123", -23.5, -46.6, "nominatim", {"strategy": "primary_address"})
        entry = await store.get(address)

        assert entry is not None
        assert entry.address_hash == address.cache_key
        assert entry.address_text == "Rua Teste, 123"
        assert (entry.latitude, entry.longitude) == (-23.5, -46.6)
        assert entry.provider == "nominatim"
        assert entry.metadata == {"strategy": "primary_address"}
        assert entry.hit_count == 0
        assert entry.created_at is not None

    async def test_variant_spelling_hits_same_entry(self) -> None:
        store = InMemoryCacheStore()
        await store.put(normalize_address("Rua Teste, 123"), "Rua Teste, 123", -23.5, -46.6, "nominatim")

        entry = await store.get(normalize_address("R. TESTE,  123, Brasil"))

        assert entry is not None
        assert entry.latitude == -23.5

    async def test_overwrite_keeps_one_entry_and_increments_hits(self) -> None:
        store = InMemoryCacheStore()
        address = normalize_address("Rua Teste, 123")
        await store.put(address, "Rua Teste, 123", -23.5, -46.6, "nominatim")
        first = await store.get(address)

        await store.put(address, "R. Teste, 123", -23.6, -46.7, "mapbox")
        second = await store.get(address)

        assert len(store) == 1
        assert second.provider == "mapbox"
        assert second.latitude == -23.6
        assert second.hit_count == 1
        assert second.created_at == first.created_at

    async def test_touch_increments_hit_count(self) -> None:
        store = InMemoryCacheStore()
        address = normalize_address("Rua Teste, 123")
        await store.put(address, "Rua Teste, 123", -23.5, -46.6, "nominatim")

        await store.touch(address.cache_key)
        await store.touch(address.cache_key)

        assert (await store.get(address)).hit_count == 2

    async def test_touch_unknown_hash_is_noop(self) -> None:
        store = InMemoryCacheStore()
        await store.touch("0" * 64)
        assert len(store) == 0

    async def test_get_returns_copy(self) -> None:
        store = InMemoryCacheStore()
        address = normalize_address("Rua Teste, 123")
        await store.put(address, "Rua Teste, 123", -23.5, -46.6, "nominatim")

        entry = await store.get(address)
        entry.hit_count = 99

        assert (await store.get(address)).hit_count == 0

    async def test_stats(self) -> None:
        store = InMemoryCacheStore()
        a = normalize_address("Rua A, 1")
        await store.put(a, "Rua A, 1", -23.5, -46.6, "nominatim")
        await store.put(normalize_address("Rua B, 2"), "Rua B, 2", -23.4, -46.5, "nominatim")
        await store.put(normalize_address("Rua C, 3"), "Rua C, 3", -23.3, -46.4, "mapbox")
        await store.touch(a.cache_key)

        stats = await store.stats()

        assert stats.total_entries == 3
        assert stats.total_hits == 1
        assert stats.entries_by_provider == {"nominatim": 2, "mapbox": 1}
        assert stats.oldest_entry <= stats.newest_entry

    async def test_stats_empty(self) -> None:
        stats = await InMemoryCacheStore().stats()
        assert stats.total_entries == 0
        assert stats.oldest_entry is None

    async def test_concurrent_puts_keep_one_entry_per_hash(self) -> None:
        store = InMemoryCacheStore()
        spellings = ["Rua Teste, 123", "R. Teste, 123", "RUA TESTE, 123", "Rua Teste, 123, Brasil"]

        await asyncio.gather(
            *(
                store.put(normalize_address(text), text, -23.5 - i, -46.6, "nominatim")
                for i, text in enumerate(spellings)
            )
        )

        entry = await store.get(normalize_address("Rua Teste, 123"))
        assert len(store) == 1
        assert entry.hit_count == len(spellings) - 1
        assert entry.address_text in spellings


def _failing_session() -> MagicMock:
    session = MagicMock(spec=AsyncSession)
    session.execute = AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("transaction aborted")))
    session.rollback = AsyncMock()
    return session


class TestSqlCacheStoreReadFailures:
    """A failed read leaves the session usable for the caller's next statement."""

    async def test_get_rolls_back(self) -> None:
        session = _failing_session()

        with pytest.raises(OperationalError):
            await SqlCacheStore(session).get(normalize_address("Rua Teste, 123"))

        session.rollback.assert_awaited_once()

    async def test_stats_rolls_back(self) -> None:
        session = _failing_session()

        with pytest.raises(OperationalError):
            await SqlCacheStore(session).stats()

        session.rollback.assert_awaited_once()
