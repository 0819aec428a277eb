"""Base definitions for cache backends."""

from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, Optional


class StorageError(RuntimeError):
    """Raised when a cache backend encounters an unrecoverable error."""


@dataclass(frozen=True)
class CacheEntry:
    """A cached value with its absolute expiry (monotonic seconds)."""

    value: Any
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class Cache(ABC):
    """Abstract base class for TTL caches injected into the analytics service."""

    @abstractmethod
    def get(self, key: Hashable) -> Optional[Any]:
        """Return the cached value or ``None`` when missing or expired."""

    @abstractmethod
    def set(self, key: Hashable, value: Any, ttl_seconds: Optional[float] = None) -> None:
        """Store ``value`` under ``key`` for ``ttl_seconds``."""

    @abstractmethod
    def delete(self, key: Hashable) -> None:
        """Remove ``key`` if present."""

    @abstractmethod
    def clear(self) -> None:
        """Drop every entry."""

    def get_or_set(self, key: Hashable, factory: Callable[[], Any], ttl_seconds: Optional[float] = None) -> Any:
        cached = self.get(key)
        if cached is not None:
            return cached
        value = factory()
        if value is not None:
            self.set(key, value, ttl_seconds)
        return value


class InMemoryTTLCache(Cache):
    """Process-local cache keyed by arbitrary hashables."""

    def __init__(self, ttl_seconds: float = 900, clock: Callable[[], float] = time.monotonic) -> None:
        if ttl_seconds <= 0:
            raise StorageError("ttl_seconds must be positive")
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[Hashable, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(self._clock()):
                del self._entries[key]
                return None
            return entry.value

    def set(self, key: Hashable, value: Any, ttl_seconds: Optional[float] = None) -> None:
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        with self._lock:
            now = self._clock()
            self._purge_expired(now)
            self._entries[key] = CacheEntry(value=value, expires_at=now + ttl)

    def _purge_expired(self, now: float) -> None:
        expired = [name for name, entry in self._entries.items() if entry.is_expired(now)]
        for name in expired:
            del self._entries[name]

    def delete(self, key: Hashable) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            now = self._clock()
            return sum(1 for entry in self._entries.values() if not entry.is_expired(now))


__all__ = ["Cache", "CacheEntry", "InMemoryTTLCache", "StorageError"]
