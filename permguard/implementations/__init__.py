"""
Backend implementations for core interfaces.
"""

from permguard.implementations.cache import (
    RedisCacheBackend,
    MemoryCacheBackend,
    create_cache_backend,
)

__all__ = [
    "RedisCacheBackend",
    "MemoryCacheBackend",
    "create_cache_backend",
]
