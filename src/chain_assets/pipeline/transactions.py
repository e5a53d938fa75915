"""Transaction history from the indexer's transfers API."""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any

from asyncio_throttle import Throttler

from ..clients.chain_types import TransactionRecord, normalize_address
from ..clients.indexer_client import IndexerClient
from ..config import IndexerConfig
from ..errors import describe_error
from ..utils.cache import CacheKeys, CacheManager

logger = logging.getLogger(__name__)


@dataclass
class BatchTransactionsQuery:
    chain_id: int
    owner_address: str
    limit: int = 20


@dataclass
class BatchTransactionsResult:
    chain_id: int
    owner_address: str
    transactions: list[TransactionRecord] = field(default_factory=list)
    cached: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "chain_id": self.chain_id,
            "owner_address": self.owner_address,
            "transactions": [tx.to_dict() for tx in self.transactions],
            "cached": self.cached,
        }
        if self.error:
            data["error"] = self.error
        return data


class TransactionHistoryService:
    """Recent incoming and outgoing transfers for an address.

    The transfers API has a tighter per-second ceiling than the NFT API, so
    every upstream call passes a fixed-interval throttle. Batch lookups
    answer cache hits first and only send misses upstream.
    """

    def __init__(
        self,
        indexer: IndexerClient,
        cache_manager: CacheManager,
        config: IndexerConfig,
        cache_ttl: int | None = None,
    ):
        self.indexer = indexer
        self.cache_manager = cache_manager
        self.config = config
        self.cache_ttl = cache_ttl or cache_manager.config.ttl_transactions
        self.throttler = Throttler(rate_limit=1, period=config.transfers_min_interval)
        self._stats = {"requests": 0, "cache_hits": 0, "upstream_fetches": 0, "failed": 0}

    async def get_transactions(self, chain_id: int, address: str, limit: int = 20) -> list[TransactionRecord]:
        transactions, _ = await self._get_with_status(chain_id, normalize_address(address), limit)
        return transactions

    async def _get_with_status(self, chain_id: int, address: str, limit: int) -> tuple[list[TransactionRecord], bool]:
        if limit < 1:
            raise ValueError("limit must be at least 1")
        self._stats["requests"] += 1
        payload, cached = await self.cache_manager.get_or_fetch_with_status(
            CacheKeys.transactions(chain_id, address, limit),
            self.cache_ttl,
            lambda: self._fetch(chain_id, address, limit),
        )
        if cached:
            self._stats["cache_hits"] += 1
        return [TransactionRecord.from_dict(item) for item in payload], cached

    async def _fetch(self, chain_id: int, address: str, limit: int) -> list[dict[str, Any]]:
        if not self.indexer.is_available(chain_id, nft=False):
            logger.info(f"📋 Transfers API unavailable for chain {chain_id}, returning empty history")
            return []

        self._stats["upstream_fetches"] += 1
        outgoing = await self._throttled_transfers(chain_id, address, "from", limit * 2)
        incoming = await self._throttled_transfers(chain_id, address, "to", limit * 2)

        now_ms = int(time.time() * 1000)
        seen: set[tuple] = set()
        transactions: list[TransactionRecord] = []
        for transfer in outgoing + incoming:
            identity = (transfer.hash, transfer.from_address, transfer.to_address, transfer.asset, transfer.value)
            if identity in seen:
                continue
            seen.add(identity)
            transactions.append(transfer.to_record(chain_id, address, now_ms))

        transactions.sort(key=lambda tx: tx.timestamp, reverse=True)
        return [tx.to_dict() for tx in transactions[:limit]]

    async def _throttled_transfers(self, chain_id: int, address: str, direction: str, max_count: int):
        async with self.throttler:
            return await self.indexer.get_asset_transfers(chain_id, address, direction=direction, max_count=max_count)

    async def get_transactions_batch(self, items: list[BatchTransactionsQuery]) -> list[BatchTransactionsResult]:
        """One slot per query, in input order; a failing query is annotated in its slot."""
        if not items:
            raise ValueError("At least one query is required")

        results: list[BatchTransactionsResult | None] = [None] * len(items)
        keys: dict[int, tuple[str, str]] = {}

        for index, item in enumerate(items):
            try:
                address = normalize_address(item.owner_address)
            except Exception as e:
                results[index] = self._failed(item, e)
                continue
            keys[index] = (address, CacheKeys.transactions(item.chain_id, address, item.limit))

        hits = await self.cache_manager.get_many([key for _, key in keys.values()])

        misses: list[int] = []
        for index, (address, key) in keys.items():
            if key not in hits:
                misses.append(index)
                continue
            self._stats["cache_hits"] += 1
            results[index] = BatchTransactionsResult(
                chain_id=items[index].chain_id,
                owner_address=address,
                transactions=[TransactionRecord.from_dict(tx) for tx in hits[key]],
                cached=True,
            )

        if misses:
            logger.info(f"📋 Fetching {len(misses)}/{len(items)} transaction histories upstream")
            fetched = await asyncio.gather(*(self._run_miss(items[index]) for index in misses))
            for index, result in zip(misses, fetched, strict=True):
                results[index] = result

        return [result for result in results if result is not None]

    async def _run_miss(self, item: BatchTransactionsQuery) -> BatchTransactionsResult:
        try:
            address = normalize_address(item.owner_address)
            transactions, cached = await self._get_with_status(item.chain_id, address, item.limit)
        except Exception as e:
            return self._failed(item, e)
        return BatchTransactionsResult(
            chain_id=item.chain_id,
            owner_address=address,
            transactions=transactions,
            cached=cached,
        )

    def _failed(self, item: BatchTransactionsQuery, error: Exception) -> BatchTransactionsResult:
        self._stats["failed"] += 1
        logger.error(f"❌ Transactions failed for {item.owner_address} on chain {item.chain_id}: {error}")
        return BatchTransactionsResult(
            chain_id=item.chain_id,
            owner_address=item.owner_address,
            error=describe_error(error),
        )

    def get_stats(self) -> dict[str, int]:
        return dict(self._stats)
