"""Fixed-window ingress rate limiting per client identity."""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from ..config import RateLimitConfig
from ..errors import RateLimitExceededError
from .cache import CacheKeys, CacheManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_at_ms: int
    retry_after_seconds: float = 0.0

    def headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_at_ms),
        }


class IngressRateLimiter:
    """Counts requests per identity in fixed windows.

    Counters live in the cache backend (``INCR`` + ``EXPIRE`` in Redis) so the
    limit holds across processes. When the counter store fails the request is
    allowed and the failure logged.
    """

    def __init__(
        self,
        config: RateLimitConfig,
        cache_manager: CacheManager,
        clock: Callable[[], float] | None = None,
    ):
        self.config = config
        self.cache_manager = cache_manager
        self.clock = clock or time.time
        self._stats = {"checked": 0, "rejected": 0, "store_errors": 0}

    def scoped_identity(self, identity: str, route: str | None = None) -> str:
        identity = identity or "unknown"
        if self.config.scope == "ip" or not route:
            return identity
        return f"{identity}:{route}"

    async def check(self, identity: str, route: str | None = None) -> RateLimitDecision:
        window_ms = self.config.window_seconds * 1000
        now_ms = int(self.clock() * 1000)
        window = now_ms // window_ms
        reset_at_ms = (window + 1) * window_ms
        limit = self.config.max_requests

        if not self.config.enabled:
            return RateLimitDecision(allowed=True, limit=limit, remaining=limit, reset_at_ms=reset_at_ms)

        self._stats["checked"] += 1
        key = CacheKeys.rate_limit(self.scoped_identity(identity, route), window)

        try:
            count = await self.cache_manager.incr(key, self.config.window_seconds)
        except Exception as e:
            self._stats["store_errors"] += 1
            logger.error(f"❌ Rate limiter store error, allowing request: {e}")
            return RateLimitDecision(allowed=True, limit=limit, remaining=limit, reset_at_ms=reset_at_ms)

        allowed = count <= limit
        if not allowed:
            self._stats["rejected"] += 1
            logger.warning(f"⚠️ Rate limit exceeded for {identity} ({count}/{limit})")

        return RateLimitDecision(
            allowed=allowed,
            limit=limit,
            remaining=max(0, limit - count),
            reset_at_ms=reset_at_ms,
            retry_after_seconds=0.0 if allowed else max(0.0, (reset_at_ms - now_ms) / 1000),
        )

    async def enforce(self, identity: str, route: str | None = None) -> RateLimitDecision:
        """Like ``check`` but raises ``RateLimitExceededError`` when over the limit."""
        decision = await self.check(identity, route)
        if not decision.allowed:
            raise RateLimitExceededError(identity, decision.limit, decision.retry_after_seconds)
        return decision

    def get_stats(self) -> dict[str, int]:
        return dict(self._stats)
