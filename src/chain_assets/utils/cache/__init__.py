"""Caching system with memory and Redis backends."""

from .cache_manager import CacheFactory, CacheManager
from .interface import CacheError, CacheInterface
from .keys import CacheKeys
from .memory_cache import CacheEntry, MemoryCache
from .redis_cache import RedisCache

__all__ = [
    "CacheEntry",
    "CacheError",
    "CacheFactory",
    "CacheInterface",
    "CacheKeys",
    "CacheManager",
    "MemoryCache",
    "RedisCache",
]
