"""Tests for ingress rate limiting."""

from unittest.mock import AsyncMock

import pytest
from conftest import FakeClock

from chain_assets.config import RateLimitConfig
from chain_assets.errors import RateLimitExceededError
from chain_assets.utils.cache import CacheManager
from chain_assets.utils.rate_limiter import IngressRateLimiter


def _limiter(cache_manager: CacheManager, clock: FakeClock, **overrides) -> IngressRateLimiter:
    settings = {"max_requests": 2, "window_seconds": 60, "scope": "path", **overrides}
    return IngressRateLimiter(RateLimitConfig(**settings), cache_manager, clock=clock)


class TestIngressRateLimiter:
    @pytest.mark.asyncio
    async def test_requests_over_limit_are_rejected(self, cache_manager: CacheManager, clock: FakeClock) -> None:
        limiter = _limiter(cache_manager, clock)

        first = await limiter.check("10.0.0.1", "/nfts")
        second = await limiter.check("10.0.0.1", "/nfts")
        third = await limiter.check("10.0.0.1", "/nfts")

        assert (first.allowed, first.remaining) == (True, 1)
        assert (second.allowed, second.remaining) == (True, 0)
        assert third.allowed is False
        assert third.remaining == 0
        assert third.reset_at_ms == 1_700_000_040_000
        assert third.retry_after_seconds == 40.0
        assert limiter.get_stats()["rejected"] == 1

    @pytest.mark.asyncio
    async def test_next_window_resets_count(self, cache_manager: CacheManager, clock: FakeClock) -> None:
        limiter = _limiter(cache_manager, clock, max_requests=1)

        assert (await limiter.check("10.0.0.1")).allowed is True
        assert (await limiter.check("10.0.0.1")).allowed is False

        clock.advance(40)
        decision = await limiter.check("10.0.0.1")
        assert decision.allowed is True
        assert decision.reset_at_ms == 1_700_000_100_000

    @pytest.mark.asyncio
    async def test_path_scope_counts_routes_separately(self, cache_manager: CacheManager, clock: FakeClock) -> None:
        limiter = _limiter(cache_manager, clock, max_requests=1)

        assert (await limiter.check("10.0.0.1", "/nfts")).allowed is True
        assert (await limiter.check("10.0.0.1", "/transactions")).allowed is True
        assert (await limiter.check("10.0.0.2", "/nfts")).allowed is True

    @pytest.mark.asyncio
    async def test_ip_scope_shares_one_budget(self, cache_manager: CacheManager, clock: FakeClock) -> None:
        limiter = _limiter(cache_manager, clock, max_requests=1, scope="ip")

        assert (await limiter.check("10.0.0.1", "/nfts")).allowed is True
        assert (await limiter.check("10.0.0.1", "/transactions")).allowed is False

    @pytest.mark.asyncio
    async def test_store_failure_fails_open(self, cache_manager: CacheManager, clock: FakeClock) -> None:
        cache_manager.incr = AsyncMock(side_effect=ConnectionError("redis down"))
        limiter = _limiter(cache_manager, clock, max_requests=1)

        for _ in range(3):
            decision = await limiter.check("10.0.0.1")
            assert decision.allowed is True

        assert limiter.get_stats()["store_errors"] == 3

    @pytest.mark.asyncio
    async def test_disabled_limiter_allows_everything(self, cache_manager: CacheManager, clock: FakeClock) -> None:
        limiter = _limiter(cache_manager, clock, max_requests=1, enabled=False)

        for _ in range(5):
            assert (await limiter.check("10.0.0.1")).allowed is True

    @pytest.mark.asyncio
    async def test_enforce_raises(self, cache_manager: CacheManager, clock: FakeClock) -> None:
        limiter = _limiter(cache_manager, clock, max_requests=1)
        await limiter.enforce("10.0.0.1")

        with pytest.raises(RateLimitExceededError) as exc_info:
            await limiter.enforce("10.0.0.1")

        assert exc_info.value.limit == 1
        assert exc_info.value.retry_after_seconds == 40.0

    @pytest.mark.asyncio
    async def test_decision_headers(self, cache_manager: CacheManager, clock: FakeClock) -> None:
        decision = await _limiter(cache_manager, clock).check("10.0.0.1")

        assert decision.headers() == {
            "X-RateLimit-Limit": "2",
            "X-RateLimit-Remaining": "1",
            "X-RateLimit-Reset": "1700000040000",
        }

    def test_invalid_scope_rejected(self) -> None:
        with pytest.raises(ValueError):
            RateLimitConfig(scope="country")
