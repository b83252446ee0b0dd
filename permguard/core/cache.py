"""
Cache backend protocol.
Implementations: MemoryCacheBackend, RedisCacheBackend

The permission engine only uses the cache as a read-through accelerator
for resolved per-user permission sets. It is never the source of truth.
"""
from __future__ import annotations

from typing import Protocol, Any
from datetime import timedelta


class CacheBackend(Protocol):
    """
    Protocol for cache backends.

    Example implementations:
    - RedisCacheBackend: Redis-based caching (shared between processes)
    - MemoryCacheBackend: In-process cache (for testing/dev)
    """

    async def get(self, key: str) -> Any | None:
        """Get value by key. Returns None if not found or expired."""
        ...

    async def set(
        self,
        key: str,
        value: Any,
        ttl: int | timedelta | None = None,
    ) -> bool:
        """Set value with optional TTL (seconds or timedelta)."""
        ...

    async def delete(self, key: str) -> bool:
        """Delete key. Returns True if deleted."""
        ...

    async def exists(self, key: str) -> bool:
        """Check if key exists."""
        ...

    async def delete_pattern(self, pattern: str) -> int:
        """Delete keys matching pattern (e.g., 'user_permissions:*'). Returns count."""
        ...

    async def ttl(self, key: str) -> int | None:
        """Get remaining TTL in seconds. None if no TTL or key missing."""
        ...
