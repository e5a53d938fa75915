"""Utility modules: caching, rate limiting and logging setup."""

from .cache import CacheFactory, CacheInterface, CacheKeys, CacheManager, MemoryCache, RedisCache
from .logging_setup import setup_logging
from .rate_limiter import IngressRateLimiter, RateLimitDecision

__all__ = [
    "CacheFactory",
    "CacheInterface",
    "CacheKeys",
    "CacheManager",
    "IngressRateLimiter",
    "MemoryCache",
    "RateLimitDecision",
    "RedisCache",
    "setup_logging",
]
