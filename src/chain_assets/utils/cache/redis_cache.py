"""Redis cache backend."""

import json
import logging
from typing import Any

import redis.asyncio as redis
from redis.exceptions import RedisError

from .interface import CacheError, CacheInterface

logger = logging.getLogger(__name__)


class RedisCache(CacheInterface):
    """Shared cache in Redis; values are stored as JSON with ``SET EX``."""

    def __init__(self, redis_url: str, default_ttl: int = 300, key_prefix: str = "chain_assets:"):
        self.redis_url = redis_url
        self.default_ttl = default_ttl
        self.key_prefix = key_prefix
        self._client: redis.Redis | None = None
        self._stats = {"hits": 0, "misses": 0, "sets": 0, "deletes": 0, "errors": 0}

    def _get_client(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.from_url(self.redis_url, decode_responses=True)
            logger.info("🔌 Redis cache client created")
        return self._client

    def _make_key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    def _error(self, operation: str, error: Exception) -> CacheError:
        self._stats["errors"] += 1
        return CacheError(f"Redis {operation} failed: {error}")

    async def get(self, key: str) -> Any:
        try:
            raw = await self._get_client().get(self._make_key(key))
        except RedisError as e:
            raise self._error("get", e) from e
        if raw is None:
            self._stats["misses"] += 1
            return None
        self._stats["hits"] += 1
        return json.loads(raw)

    async def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        try:
            await self._get_client().set(
                self._make_key(key),
                json.dumps(value, default=str),
                ex=ttl if ttl is not None else self.default_ttl,
            )
        except RedisError as e:
            raise self._error("set", e) from e
        self._stats["sets"] += 1
        return True

    async def delete(self, key: str) -> bool:
        try:
            removed = await self._get_client().delete(self._make_key(key))
        except RedisError as e:
            raise self._error("delete", e) from e
        self._stats["deletes"] += removed
        return removed > 0

    async def exists(self, key: str) -> bool:
        try:
            return bool(await self._get_client().exists(self._make_key(key)))
        except RedisError as e:
            raise self._error("exists", e) from e

    async def clear(self) -> bool:
        """Delete every key under this cache's prefix."""
        client = self._get_client()
        try:
            keys = [key async for key in client.scan_iter(match=f"{self.key_prefix}*")]
            if keys:
                await client.delete(*keys)
        except RedisError as e:
            raise self._error("clear", e) from e
        logger.info(f"🗑️ Cleared {len(keys)} Redis keys")
        return True

    async def get_many(self, keys: list[str]) -> dict[str, Any]:
        if not keys:
            return {}
        try:
            values = await self._get_client().mget([self._make_key(key) for key in keys])
        except RedisError as e:
            raise self._error("mget", e) from e
        result = {}
        for key, raw in zip(keys, values, strict=True):
            if raw is not None:
                result[key] = json.loads(raw)
        return result

    async def incr(self, key: str, ttl: int) -> int:
        """INCR and EXPIRE in one MULTI block, atomic across processes."""
        try:
            async with self._get_client().pipeline(transaction=True) as pipe:
                pipe.incr(self._make_key(key))
                pipe.expire(self._make_key(key), ttl)
                count, _ = await pipe.execute()
        except RedisError as e:
            raise self._error("incr", e) from e
        return int(count)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("🔌 Redis cache connection closed")

    async def health_check(self) -> bool:
        try:
            return bool(await self._get_client().ping())
        except RedisError as e:
            logger.warning(f"⚠️ Redis health check failed: {e}")
            return False

    def get_stats(self) -> dict[str, Any]:
        total = self._stats["hits"] + self._stats["misses"]
        hit_rate = (self._stats["hits"] / total * 100) if total else 0.0
        return {
            "backend": "redis",
            **self._stats,
            "hit_rate_percent": round(hit_rate, 2),
        }
