"""
In-memory cache backend for development and testing.
"""

from __future__ import annotations

import fnmatch
import time
from typing import Any, Callable
from datetime import timedelta
from dataclasses import dataclass


@dataclass
class CacheEntry:
    """Cache entry with value and expiration (clock seconds)."""
    value: Any
    expires_at: float | None = None

    def is_expired(self, now: float) -> bool:
        if self.expires_at is None:
            return False
        return now >= self.expires_at


class MemoryCacheBackend:
    """
    In-memory cache backend for development and testing.

    Note: Not suitable for multi-process deployments.
    Data is not persisted and not shared between processes.

    Usage:
        cache = MemoryCacheBackend()
        await cache.set("key", "value", ttl=60)
        value = await cache.get("key")

    The clock is injectable so tests can move time forward deterministically.
    """

    def __init__(
        self,
        default_ttl: int = 3600,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.default_ttl = default_ttl
        self._clock = clock
        self._store: dict[str, CacheEntry] = {}

    def _ttl_seconds(self, ttl: int | timedelta | None) -> int | None:
        if ttl is None:
            return self.default_ttl
        if isinstance(ttl, timedelta):
            return int(ttl.total_seconds())
        return ttl

    def _live_entry(self, key: str) -> CacheEntry | None:
        entry = self._store.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            del self._store[key]
            return None
        return entry

    async def get(self, key: str) -> Any | None:
        entry = self._live_entry(key)
        return entry.value if entry else None

    async def set(
        self,
        key: str,
        value: Any,
        ttl: int | timedelta | None = None,
    ) -> bool:
        ttl_seconds = self._ttl_seconds(ttl)
        expires_at = None
        if ttl_seconds:
            expires_at = self._clock() + ttl_seconds

        self._store[key] = CacheEntry(value=value, expires_at=expires_at)
        return True

    async def delete(self, key: str) -> bool:
        if key in self._store:
            del self._store[key]
            return True
        return False

    async def exists(self, key: str) -> bool:
        return self._live_entry(key) is not None

    async def delete_pattern(self, pattern: str) -> int:
        # Redis glob patterns are compatible with fnmatch for '*' and '?'
        matching_keys = [k for k in self._store if fnmatch.fnmatchcase(k, pattern)]
        for key in matching_keys:
            del self._store[key]
        return len(matching_keys)

    async def ttl(self, key: str) -> int | None:
        entry = self._live_entry(key)
        if entry is None or entry.expires_at is None:
            return None
        return max(0, int(entry.expires_at - self._clock()))

    async def clear(self) -> None:
        """Clear all cache entries."""
        self._store.clear()

    def __len__(self) -> int:
        return len(self._store)
