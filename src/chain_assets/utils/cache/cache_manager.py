"""Cache factory and the single-flight cache manager."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from ...config import CacheBackend, CacheConfig
from .interface import CacheError, CacheInterface
from .memory_cache import MemoryCache
from .redis_cache import RedisCache

logger = logging.getLogger(__name__)

Fetcher = Callable[[], Awaitable[Any]]


class CacheFactory:
    """Creates cache backends from configuration."""

    @staticmethod
    def create_cache(config: CacheConfig, default_ttl: int | None = None) -> CacheInterface:
        ttl = default_ttl or config.ttl_nfts

        if config.backend == CacheBackend.MEMORY:
            return MemoryCache(
                default_ttl=ttl,
                max_entries=config.max_memory_entries,
                key_prefix=config.key_prefix,
            )

        if config.backend == CacheBackend.REDIS:
            return RedisCache(
                redis_url=config.redis_url,
                default_ttl=ttl,
                key_prefix=config.key_prefix,
            )

        raise ValueError(f"Unsupported cache backend: {config.backend}")


class CacheManager:
    """Shared TTL cache in front of every expensive upstream fetch.

    ``get_or_fetch`` collapses concurrent misses for the same key into a single
    fetch: the first caller starts it, later callers await the same task. The
    result is written once with ``expires_at = now + ttl``. A failing fetch
    propagates to every waiter and writes nothing.

    Backend failures never fail a request: reads degrade to a miss and writes
    are skipped, both logged.
    """

    def __init__(self, config: CacheConfig, cache: CacheInterface | None = None):
        self.config = config
        self._cache = cache
        self._in_flight: dict[str, asyncio.Task] = {}
        self._stats = {"hits": 0, "misses": 0, "fetches": 0, "coalesced": 0, "fetch_errors": 0, "backend_errors": 0}

    @property
    def cache(self) -> CacheInterface:
        if self._cache is None:
            self._cache = CacheFactory.create_cache(self.config)
            logger.info(f"💾 Initialized {self.config.backend.value} cache")
        return self._cache

    async def get(self, key: str) -> Any:
        try:
            return await self.cache.get(key)
        except CacheError as e:
            self._stats["backend_errors"] += 1
            logger.warning(f"⚠️ Cache read failed for {key}, treating as miss: {e}")
            return None

    async def get_many(self, keys: list[str]) -> dict[str, Any]:
        """Live values for the keys that have one; a backend failure reads as all misses."""
        try:
            return await self.cache.get_many(keys)
        except CacheError as e:
            self._stats["backend_errors"] += 1
            logger.warning(f"⚠️ Cache batch read failed for {len(keys)} keys, treating as misses: {e}")
            return {}

    async def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        try:
            return await self.cache.set(key, value, ttl=ttl)
        except CacheError as e:
            self._stats["backend_errors"] += 1
            logger.warning(f"⚠️ Cache write skipped for {key}: {e}")
            return False

    async def delete(self, key: str) -> bool:
        try:
            return await self.cache.delete(key)
        except CacheError as e:
            self._stats["backend_errors"] += 1
            logger.warning(f"⚠️ Cache delete failed for {key}: {e}")
            return False

    async def incr(self, key: str, ttl: int) -> int:
        """Counter increment; backend errors propagate to the caller."""
        return await self.cache.incr(key, ttl)

    async def get_or_fetch(self, key: str, ttl_seconds: int, fetcher: Fetcher) -> Any:
        value, _ = await self.get_or_fetch_with_status(key, ttl_seconds, fetcher)
        return value

    async def get_or_fetch_with_status(self, key: str, ttl_seconds: int, fetcher: Fetcher) -> tuple[Any, bool]:
        """Return ``(value, cached)``; ``cached`` is True for a live-entry hit."""
        cached = await self.get(key)
        if cached is not None:
            self._stats["hits"] += 1
            logger.debug(f"💾 Cache hit for key: {key}")
            return cached, True

        self._stats["misses"] += 1
        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.create_task(self._fetch_and_store(key, ttl_seconds, fetcher))
            self._in_flight[key] = task
            task.add_done_callback(lambda done, k=key: self._release(k, done))
        else:
            self._stats["coalesced"] += 1
            logger.debug(f"🔗 Joining in-flight fetch for key: {key}")

        # a cancelled waiter must not cancel the fetch other waiters share
        return await asyncio.shield(task), False

    def _release(self, key: str, task: asyncio.Task) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]

    async def _fetch_and_store(self, key: str, ttl_seconds: int, fetcher: Fetcher) -> Any:
        self._stats["fetches"] += 1
        try:
            value = await fetcher()
        except Exception:
            self._stats["fetch_errors"] += 1
            raise
        if value is not None:
            await self.set(key, value, ttl=ttl_seconds)
        return value

    def in_flight_count(self) -> int:
        return len(self._in_flight)

    async def clear(self) -> bool:
        try:
            return await self.cache.clear()
        except CacheError as e:
            logger.warning(f"⚠️ Cache clear failed: {e}")
            return False

    async def health_check(self) -> dict[str, bool]:
        try:
            healthy = await self.cache.health_check()
        except CacheError as e:
            logger.warning(f"⚠️ Cache health check failed: {e}")
            healthy = False
        return {"cache": healthy}

    async def get_stats(self) -> dict[str, Any]:
        return {
            "manager": {**self._stats, "in_flight": len(self._in_flight)},
            "cache": self.cache.get_stats(),
        }

    async def close(self) -> None:
        for task in list(self._in_flight.values()):
            task.cancel()
        self._in_flight.clear()
        if self._cache is not None:
            await self._cache.close()
            logger.info("🔌 Cache manager closed")
