"""
Redis cache backend implementation.
"""

from __future__ import annotations

import json
from typing import Any
from datetime import timedelta

import redis.asyncio as redis
import structlog

logger = structlog.get_logger()


class RedisCacheBackend:
    """
    Shared resolved-permission cache.

    Entries are JSON documents (ResolvedPermissions.to_cache()), so every
    API process sees the same per-user sets and one invalidate_all() call
    clears them for all of them.

    Usage:
        cache = RedisCacheBackend(redis_url="redis://localhost:6379/0")
        await cache.connect()

        await cache.set("user_permissions:42", {"permissions": [...]}, ttl=3600)
        value = await cache.get("user_permissions:42")
        await cache.delete_pattern("user_permissions:*")
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        prefix: str = "",
        default_ttl: int = 3600,
        max_connections: int = 10,
        scan_batch: int = 500,
    ):
        self.redis_url = redis_url
        self.prefix = prefix
        self.default_ttl = default_ttl
        self.max_connections = max_connections
        self.scan_batch = scan_batch
        self._client: redis.Redis | None = None

    async def connect(self) -> None:
        if self._client is None:
            self._client = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                max_connections=self.max_connections,
            )
            logger.info("Permission cache connected", backend="redis")

    async def disconnect(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            raise RuntimeError("Cache not connected. Call connect() first.")
        return self._client

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def _ttl_seconds(self, ttl: int | timedelta | None) -> int:
        if ttl is None:
            return self.default_ttl
        if isinstance(ttl, timedelta):
            return int(ttl.total_seconds())
        return ttl

    async def get(self, key: str) -> Any | None:
        raw = await self.client.get(self._key(key))
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            # Treated as a miss; the next resolution overwrites it
            logger.warning("Undecodable cache entry", key=key)
            return None

    async def set(
        self,
        key: str,
        value: Any,
        ttl: int | timedelta | None = None,
    ) -> bool:
        result = await self.client.set(
            self._key(key),
            json.dumps(value),
            ex=self._ttl_seconds(ttl) or None,
        )
        return bool(result)

    async def delete(self, key: str) -> bool:
        return await self.client.delete(self._key(key)) > 0

    async def exists(self, key: str) -> bool:
        return await self.client.exists(self._key(key)) > 0

    async def delete_pattern(self, pattern: str) -> int:
        """Unlink every key matching a glob pattern, in SCAN-sized batches."""
        removed = 0
        batch: list[str] = []
        async for key in self.client.scan_iter(match=self._key(pattern), count=self.scan_batch):
            batch.append(key)
            if len(batch) >= self.scan_batch:
                removed += await self.client.unlink(*batch)
                batch.clear()
        if batch:
            removed += await self.client.unlink(*batch)
        return removed

    async def ttl(self, key: str) -> int | None:
        result = await self.client.ttl(self._key(key))
        if result < 0:  # -1 no TTL, -2 missing
            return None
        return result
