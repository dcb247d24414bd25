from inventory_oracle.cache.store import (
    CacheEntry,
    CacheStore,
    InMemoryCacheStore,
    SqliteCacheStore,
    make_cache_key,
)

__all__ = [
    "CacheEntry",
    "CacheStore",
    "InMemoryCacheStore",
    "SqliteCacheStore",
    "make_cache_key",
]
