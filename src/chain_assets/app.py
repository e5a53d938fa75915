"""Application wiring and the downstream query surface."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from .clients import EndpointPool, IndexerClient, PricingClient, RetryingRPCClient
from .clients.chain_types import AssetRecord, NativeBalance, TokenBalance, TransactionRecord
from .config import AppConfig, get_config
from .pipeline import (
    AggregateOptions,
    AggregateRequest,
    BalanceService,
    BatchAssetsQuery,
    BatchAssetsResult,
    BatchBalanceQuery,
    BatchBalanceResult,
    BatchTokenBalanceQuery,
    BatchTokenBalanceResult,
    BatchTransactionsQuery,
    BatchTransactionsResult,
    ChainAssets,
    MetadataResolver,
    MultiChainAggregator,
    StandardClassifier,
    TokenEnumerator,
    TransactionHistoryService,
)
from .utils.cache import CacheManager
from .utils.rate_limiter import IngressRateLimiter, RateLimitDecision

logger = logging.getLogger(__name__)


class Application:
    """Owns every client and service; one instance per process.

    Collaborators may be injected (tests pass fakes); anything not injected is
    built from ``config``.
    """

    def __init__(
        self,
        config: AppConfig,
        cache_manager: CacheManager | None = None,
        rpc_client: RetryingRPCClient | None = None,
        indexer: IndexerClient | None = None,
        pricing_client: PricingClient | None = None,
    ):
        self.config = config
        self.cache_manager = cache_manager or CacheManager(config.cache)
        self.rpc_client = rpc_client or RetryingRPCClient(config.rpc, EndpointPool(config.rpc))
        self.indexer = indexer or IndexerClient(config.indexer)
        self.pricing_client = pricing_client or PricingClient(config.pricing, self.cache_manager)

        self.classifier = StandardClassifier(self.rpc_client, self.cache_manager)
        self.enumerator = TokenEnumerator(self.rpc_client, config.pipeline, self.indexer)
        self.resolver = MetadataResolver(self.rpc_client, self.pricing_client, self.cache_manager)
        self.aggregator = MultiChainAggregator(
            self.classifier,
            self.enumerator,
            self.resolver,
            config.pipeline,
            self.cache_manager,
            indexer=self.indexer,
        )
        self.transactions = TransactionHistoryService(self.indexer, self.cache_manager, config.indexer)
        self.balances = BalanceService(self.rpc_client, self.cache_manager, config.pipeline)
        self.rate_limiter = IngressRateLimiter(config.rate_limit, self.cache_manager)

        self._closed = False
        logger.info(f"⚙️ Application initialized ({config.cache.backend.value} cache)")

    async def get_assets(
        self,
        chain_id: int,
        owner_address: str,
        contract_address: str | None = None,
        limit: int | None = None,
    ) -> list[AssetRecord]:
        return await self.aggregator.get_assets(chain_id, owner_address, contract_address, bound=limit)

    async def get_assets_batch(self, items: list[BatchAssetsQuery]) -> list[BatchAssetsResult]:
        return await self.aggregator.get_assets_batch(items)

    async def get_portfolio(
        self,
        requests: list[AggregateRequest],
        options: AggregateOptions | None = None,
    ) -> dict[str, dict[int, ChainAssets]]:
        return await self.aggregator.aggregate(requests, options)

    async def get_transactions(self, chain_id: int, address: str, limit: int = 20) -> list[TransactionRecord]:
        return await self.transactions.get_transactions(chain_id, address, limit)

    async def get_transactions_batch(self, items: list[BatchTransactionsQuery]) -> list[BatchTransactionsResult]:
        return await self.transactions.get_transactions_batch(items)

    async def get_balance(self, chain_id: int, address: str) -> NativeBalance:
        return await self.balances.get_native_balance(chain_id, address)

    async def get_balances_batch(self, items: list[BatchBalanceQuery]) -> list[BatchBalanceResult]:
        return await self.balances.get_native_balances_batch(items)

    async def get_token_balance(self, chain_id: int, token_address: str, owner_address: str) -> TokenBalance | None:
        """ERC-20 balance of ``owner_address``; ``None`` when it holds none."""
        return await self.balances.get_token_balance(chain_id, token_address, owner_address)

    async def get_token_balances_batch(self, items: list[BatchTokenBalanceQuery]) -> list[BatchTokenBalanceResult]:
        return await self.balances.get_token_balances_batch(items)

    async def check_rate_limit(self, identity: str, route: str | None = None) -> RateLimitDecision:
        return await self.rate_limiter.check(identity, route)

    async def health_check(self, chain_ids: list[int] | None = None) -> dict[str, bool]:
        """Check the cache and one RPC endpoint per chain."""
        health = await self.cache_manager.health_check()
        for chain_id in chain_ids or [1]:
            health[f"rpc_{chain_id}"] = await self.rpc_client.health_check(chain_id)

        unhealthy = [name for name, ok in health.items() if not ok]
        if unhealthy:
            logger.warning(f"⚠️ Unhealthy components: {', '.join(unhealthy)}")
        return health

    async def get_stats(self) -> dict[str, Any]:
        return {
            "cache": await self.cache_manager.get_stats(),
            "rpc": self.rpc_client.get_stats(),
            "indexer": self.indexer.get_stats(),
            "pricing": self.pricing_client.get_stats(),
            "enumerator": self.enumerator.get_stats(),
            "resolver": self.resolver.get_stats(),
            "aggregator": self.aggregator.get_stats(),
            "transactions": self.transactions.get_stats(),
            "balances": self.balances.get_stats(),
            "rate_limiter": self.rate_limiter.get_stats(),
        }

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for resource in (self.rpc_client, self.indexer, self.pricing_client, self.cache_manager):
            try:
                await resource.close()
            except Exception as e:
                logger.error(f"❌ Error closing {resource.__class__.__name__}: {e}")
        logger.info("🔌 Application closed")


@asynccontextmanager
async def create_application(config: AppConfig | None = None, **overrides: Any) -> AsyncIterator[Application]:
    """Build an ``Application`` and close it on exit."""
    app = Application(config or get_config(), **overrides)
    try:
        yield app
    finally:
        await app.close()
