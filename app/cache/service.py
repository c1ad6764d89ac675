"""Response cache for expensive computations.

Two tiers:
- an in-process TTL map that survives between requests on a warm worker
- the ``api_response_cache`` table, which survives restarts and is shared
  across workers

Cache failures never fail a request: reads degrade to a miss and writes are
dropped with a warning.
"""
import logging
from typing import Dict, Any, Optional
from datetime import datetime, timedelta, timezone
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models import ApiResponseCache, utc_now

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300


def create_user_cache_key(prefix: str, user_id: str, *parts: Any) -> str:
    """Create a user-scoped cache key, e.g. ``digital-twin:user_1:new:100``."""
    return ":".join([prefix, user_id, *(str(p) for p in parts)])


@dataclass
class CacheEntry:
    """A cached value with expiration."""
    data: Any
    expires_at: datetime


class MemoryCache:
    """
    Simple in-memory TTL cache.

    Each entry carries its own TTL. When ``max_entries`` is reached the
    oldest inserted entry is evicted. Entries are never invalidated; they
    only expire or get evicted.
    """

    def __init__(self, max_entries: int = 100, default_ttl_seconds: int = DEFAULT_TTL_SECONDS):
        self._cache: Dict[str, CacheEntry] = {}
        self._max_entries = max_entries
        self._default_ttl = default_ttl_seconds

    def get(self, key: str, now: Optional[datetime] = None) -> Optional[Any]:
        """Get cached value if not expired."""
        now = now or utc_now()
        entry = self._cache.get(key)

        if entry is None:
            return None

        if now > entry.expires_at:
            # Expired, remove from cache
            del self._cache[key]
            return None

        return entry.data

    def set(self, key: str, data: Any, ttl_seconds: Optional[int] = None, now: Optional[datetime] = None) -> None:
        """Cache a value with TTL."""
        now = now or utc_now()
        ttl = self._default_ttl if ttl_seconds is None else ttl_seconds

        if key not in self._cache and len(self._cache) >= self._max_entries:
            oldest_key = next(iter(self._cache))
            del self._cache[oldest_key]

        self._cache[key] = CacheEntry(
            data=data,
            expires_at=now + timedelta(seconds=ttl),
        )


class ResponseCache:
    """Tiered cache: memory first, then the database table."""

    def __init__(self, db: AsyncSession, memory: Optional[MemoryCache] = None):
        self.db = db
        self.memory = memory

    async def get(self, cache_key: str) -> Optional[Any]:
        """Return the cached payload, or None on miss, expiry or cache failure."""
        if self.memory is not None:
            value = self.memory.get(cache_key)
            if value is not None:
                return value

        try:
            entry = await self._get_db_entry(cache_key)
        except Exception as e:
            logger.warning(f"Cache read failed for {cache_key}: {e}")
            # A failed statement aborts the transaction; later queries need a clean one
            await self.db.rollback()
            return None

        if entry is None:
            return None

        if self.memory is not None:
            remaining = int((entry.expires_at - utc_now()).total_seconds())
            if remaining > 0:
                self.memory.set(cache_key, entry.response_data, ttl_seconds=remaining)

        return entry.response_data

    async def set(
        self,
        cache_key: str,
        data: Any,
        cache_type: str,
        user_id: Optional[str] = None,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
    ) -> None:
        """Store a payload in both tiers. Overwrites any previous entry."""
        if self.memory is not None:
            self.memory.set(cache_key, data, ttl_seconds=ttl_seconds)

        try:
            await self._upsert_db_entry(cache_key, data, cache_type, user_id, ttl_seconds)
        except Exception as e:
            logger.warning(f"Cache write failed for {cache_key}: {e}")
            await self.db.rollback()

    async def _get_db_entry(self, cache_key: str) -> Optional[ApiResponseCache]:
        result = await self.db.execute(
            select(ApiResponseCache).where(
                ApiResponseCache.cache_key == cache_key,
                ApiResponseCache.expires_at > utc_now(),
            )
        )
        return result.scalar_one_or_none()

    async def _upsert_db_entry(
        self,
        cache_key: str,
        data: Any,
        cache_type: str,
        user_id: Optional[str],
        ttl_seconds: int,
    ) -> None:
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=ttl_seconds)
        stmt = insert(ApiResponseCache).values(
            cache_key=cache_key,
            cache_type=cache_type,
            user_id=user_id,
            response_data=data,
            expires_at=expires_at,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[ApiResponseCache.cache_key],
            set_={
                "cache_type": stmt.excluded.cache_type,
                "response_data": stmt.excluded.response_data,
                "expires_at": stmt.excluded.expires_at,
                "created_at": utc_now(),
            },
        )
        await self.db.execute(stmt)
        await self.db.commit()


# Process-wide memory tier, shared by every request on this worker
memory_cache = MemoryCache(max_entries=settings.MEMORY_CACHE_MAX_ENTRIES)
