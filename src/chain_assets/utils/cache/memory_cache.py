"""In-process cache backend."""

import asyncio
import logging
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from .interface import CacheInterface

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    key: str
    value: Any
    expires_at_epoch_ms: int

    def is_live(self, now_ms: int) -> bool:
        return now_ms < self.expires_at_epoch_ms


class MemoryCache(CacheInterface):
    """Dictionary-backed cache with an injectable clock.

    ``clock`` returns seconds since the epoch (``time.time`` by default); tests
    swap it for a controllable one. When ``max_entries`` is reached, expired
    entries are purged first and then the oldest writes are evicted.
    """

    def __init__(
        self,
        default_ttl: int = 300,
        max_entries: int = 10_000,
        key_prefix: str = "",
        clock: Callable[[], float] | None = None,
    ):
        self.default_ttl = default_ttl
        self.max_entries = max_entries
        self.key_prefix = key_prefix
        self.clock = clock or time.time

        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = asyncio.Lock()
        self._stats = {"hits": 0, "misses": 0, "sets": 0, "deletes": 0, "evictions": 0}

    def _make_key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    def _live_entry(self, full_key: str) -> CacheEntry | None:
        entry = self._entries.get(full_key)
        if entry is None:
            return None
        if not entry.is_live(self._now_ms()):
            del self._entries[full_key]
            return None
        return entry

    def _write(self, full_key: str, value: Any, ttl: int | None) -> None:
        ttl_seconds = ttl if ttl is not None else self.default_ttl
        expires_at = self._now_ms() + int(ttl_seconds * 1000)
        self._entries.pop(full_key, None)
        self._entries[full_key] = CacheEntry(full_key, value, expires_at)
        self._stats["sets"] += 1
        self._evict_if_needed()

    def _evict_if_needed(self) -> None:
        if len(self._entries) <= self.max_entries:
            return
        now_ms = self._now_ms()
        for key in [key for key, entry in self._entries.items() if not entry.is_live(now_ms)]:
            del self._entries[key]
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)
            self._stats["evictions"] += 1

    async def get(self, key: str) -> Any:
        entry = self._live_entry(self._make_key(key))
        if entry is None:
            self._stats["misses"] += 1
            return None
        self._stats["hits"] += 1
        return entry.value

    async def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        self._write(self._make_key(key), value, ttl)
        return True

    async def delete(self, key: str) -> bool:
        removed = self._entries.pop(self._make_key(key), None) is not None
        if removed:
            self._stats["deletes"] += 1
        return removed

    async def exists(self, key: str) -> bool:
        return self._live_entry(self._make_key(key)) is not None

    async def clear(self) -> bool:
        self._entries.clear()
        logger.info("🗑️ Memory cache cleared")
        return True

    async def get_many(self, keys: list[str]) -> dict[str, Any]:
        result = {}
        for key in keys:
            value = await self.get(key)
            if value is not None:
                result[key] = value
        return result

    async def incr(self, key: str, ttl: int) -> int:
        async with self._lock:
            full_key = self._make_key(key)
            entry = self._live_entry(full_key)
            if entry is None:
                self._write(full_key, 1, ttl)
                return 1
            count = int(entry.value) + 1
            self._entries[full_key] = CacheEntry(full_key, count, entry.expires_at_epoch_ms)
            return count

    async def ttl_remaining(self, key: str) -> float | None:
        """Seconds until ``key`` expires, or None when absent."""
        entry = self._live_entry(self._make_key(key))
        if entry is None:
            return None
        return (entry.expires_at_epoch_ms - self._now_ms()) / 1000

    async def close(self) -> None:
        self._entries.clear()

    async def health_check(self) -> bool:
        return True

    def get_stats(self) -> dict[str, Any]:
        total = self._stats["hits"] + self._stats["misses"]
        hit_rate = (self._stats["hits"] / total * 100) if total else 0.0
        return {
            "backend": "memory",
            **self._stats,
            "entries": len(self._entries),
            "max_entries": self.max_entries,
            "hit_rate_percent": round(hit_rate, 2),
        }
