"""Cache backends used to memoize provider responses."""

from .base import Cache, CacheEntry, InMemoryTTLCache, StorageError

__all__ = [
    "Cache",
    "CacheEntry",
    "InMemoryTTLCache",
    "StorageError",
]
