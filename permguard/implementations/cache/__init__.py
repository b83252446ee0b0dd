"""Cache backend implementations."""

from permguard.core.config import Settings
from permguard.implementations.cache.redis import RedisCacheBackend
from permguard.implementations.cache.memory import MemoryCacheBackend


def create_cache_backend(settings: Settings) -> MemoryCacheBackend | RedisCacheBackend:
    """Build the resolved-permission cache configured in settings."""
    if settings.permissions.cache_backend == "redis":
        return RedisCacheBackend(
            redis_url=str(settings.redis.url),
            default_ttl=settings.permissions.cache_ttl,
            max_connections=settings.redis.max_connections,
        )
    return MemoryCacheBackend(default_ttl=settings.permissions.cache_ttl)


__all__ = ["RedisCacheBackend", "MemoryCacheBackend", "create_cache_backend"]
