"""Cache backend interface."""

from abc import ABC, abstractmethod
from typing import Any


class CacheError(Exception):
    """Cache backend error."""

    pass


class CacheInterface(ABC):
    """Async key/value store with per-key TTL.

    Values are JSON-compatible. ``get`` never returns an entry at or past its
    expiry.
    """

    @abstractmethod
    async def get(self, key: str) -> Any:
        """Return the live value for ``key`` or None."""

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        """Write ``value`` with ``ttl`` seconds to live; overwrites."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        pass

    @abstractmethod
    async def exists(self, key: str) -> bool:
        pass

    @abstractmethod
    async def clear(self) -> bool:
        pass

    @abstractmethod
    async def get_many(self, keys: list[str]) -> dict[str, Any]:
        """Return live values for the keys that have one."""

    @abstractmethod
    async def incr(self, key: str, ttl: int) -> int:
        """Atomically increment a counter, starting its TTL on first increment."""

    @abstractmethod
    async def close(self) -> None:
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        pass

    @abstractmethod
    def get_stats(self) -> dict[str, Any]:
        pass
