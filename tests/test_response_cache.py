"""
Tests for the tiered response cache.
"""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from app.cache import MemoryCache, ResponseCache, create_user_cache_key
from app.models import utc_now


# =============================================================================
# Unit Tests - Keys
# =============================================================================

def test_user_cache_key():
    assert create_user_cache_key("digital-twin", "user_1", "new", 100) == "digital-twin:user_1:new:100"


# =============================================================================
# Unit Tests - MemoryCache
# =============================================================================

class TestMemoryCache:

    def test_get_before_expiry(self):
        cache = MemoryCache()
        now = utc_now()
        cache.set("k", {"a": 1}, ttl_seconds=60, now=now)

        assert cache.get("k", now=now + timedelta(seconds=59)) == {"a": 1}

    def test_expired_entry_is_dropped(self):
        cache = MemoryCache()
        now = utc_now()
        cache.set("k", "v", ttl_seconds=60, now=now)

        assert cache.get("k", now=now + timedelta(seconds=61)) is None
        assert cache.get("k", now=now) is None

    def test_default_ttl(self):
        cache = MemoryCache(default_ttl_seconds=10)
        now = utc_now()
        cache.set("k", "v", now=now)

        assert cache.get("k", now=now + timedelta(seconds=11)) is None

    def test_oldest_entry_evicted(self):
        cache = MemoryCache(max_entries=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)

        assert cache.get("a") is None
        assert cache.get("b") == 2
        assert cache.get("c") == 3

    def test_overwrite_does_not_evict(self):
        cache = MemoryCache(max_entries=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("a", 10)

        assert cache.get("a") == 10
        assert cache.get("b") == 2

    def test_ttl_is_per_entry(self):
        cache = MemoryCache()
        now = utc_now()
        cache.set("short", 1, ttl_seconds=1, now=now)
        cache.set("long", 2, ttl_seconds=100, now=now)

        assert cache.get("short", now=now + timedelta(seconds=5)) is None
        assert cache.get("long", now=now + timedelta(seconds=5)) == 2


# =============================================================================
# Unit Tests - ResponseCache
# =============================================================================

class TestResponseCache:

    @pytest.mark.asyncio
    async def test_memory_hit_skips_database(self, mock_db):
        memory = MemoryCache()
        memory.set("k", {"cached": True})
        cache = ResponseCache(mock_db, memory=memory)

        with patch.object(cache, "_get_db_entry", AsyncMock()) as get_entry:
            assert await cache.get("k") == {"cached": True}

        get_entry.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_database_hit_backfills_memory(self, mock_db):
        memory = MemoryCache()
        cache = ResponseCache(mock_db, memory=memory)
        entry = MagicMock(response_data={"from": "db"}, expires_at=utc_now() + timedelta(hours=1))

        with patch.object(cache, "_get_db_entry", AsyncMock(return_value=entry)):
            assert await cache.get("k") == {"from": "db"}

        assert memory.get("k") == {"from": "db"}

    @pytest.mark.asyncio
    async def test_miss(self, mock_db):
        cache = ResponseCache(mock_db, memory=MemoryCache())

        with patch.object(cache, "_get_db_entry", AsyncMock(return_value=None)):
            assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_read_failure_is_a_miss(self, mock_db):
        cache = ResponseCache(mock_db)

        with patch.object(cache, "_get_db_entry", AsyncMock(side_effect=RuntimeError("db down"))):
            assert await cache.get("k") is None

        mock_db.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_database_read_filters_expired_rows(self, mock_db):
        cache = ResponseCache(mock_db)

        assert await cache.get("k") is None

        query = str(mock_db.execute.await_args.args[0])
        assert "api_response_cache.expires_at >" in query
        mock_db.rollback.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_set_writes_both_tiers(self, mock_db):
        memory = MemoryCache()
        cache = ResponseCache(mock_db, memory=memory)

        with patch.object(cache, "_upsert_db_entry", AsyncMock()) as upsert:
            await cache.set("k", {"v": 1}, cache_type="test", user_id="user_1", ttl_seconds=60)

        upsert.assert_awaited_once_with("k", {"v": 1}, "test", "user_1", 60)
        assert memory.get("k") == {"v": 1}

    @pytest.mark.asyncio
    async def test_write_failure_is_swallowed(self, mock_db):
        cache = ResponseCache(mock_db, memory=MemoryCache())

        with patch.object(cache, "_upsert_db_entry", AsyncMock(side_effect=RuntimeError("db down"))):
            await cache.set("k", {"v": 1}, cache_type="test")

        mock_db.rollback.assert_awaited_once()
        assert cache.memory.get("k") == {"v": 1}

    @pytest.mark.asyncio
    async def test_upsert_executes_and_commits(self, mock_db):
        cache = ResponseCache(mock_db)

        await cache.set("k", {"v": 1}, cache_type="test", user_id="user_1")

        mock_db.execute.assert_awaited_once()
        mock_db.commit.assert_awaited_once()
