"""Response cache - memory and database tiers."""
from app.cache.service import (
    CacheEntry,
    MemoryCache,
    ResponseCache,
    create_user_cache_key,
    memory_cache,
)

__all__ = [
    "CacheEntry",
    "MemoryCache",
    "ResponseCache",
    "create_user_cache_key",
    "memory_cache",
]
