"""Multi-chain fan-out of classification, enumeration and resolution."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from ..clients.chain_types import (
    AssetRecord,
    TokenStandard,
    asset_from_dict,
    dedupe_records,
    normalize_address,
)
from ..clients.indexer_client import IndexerClient
from ..config import PipelineConfig
from ..errors import (
    DeterministicRPCError,
    ErrorClass,
    IndexerError,
    IndexerUnavailableError,
    classify_error,
    describe_error,
)
from ..utils.cache import CacheKeys, CacheManager
from .classifier import StandardClassifier
from .enumerator import TokenEnumerator
from .resolver import MetadataResolver

logger = logging.getLogger(__name__)


@dataclass
class AggregateRequest:
    address: str
    chain_ids: list[int]


@dataclass
class AggregateOptions:
    contract_addresses: list[str] | None = None
    page_key: str | None = None
    page_size: int | None = None
    bound: int | None = None


@dataclass
class ChainAssets:
    """Result for one (address, chain) pair; ``error`` set when the pair failed."""

    records: list[AssetRecord] = field(default_factory=list)
    total_count: int | None = None
    page_key: str | None = None
    cached: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "records": [record.to_dict() for record in self.records],
            "cached": self.cached,
        }
        if self.total_count is not None:
            data["total_count"] = self.total_count
        if self.page_key:
            data["page_key"] = self.page_key
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class BatchAssetsQuery:
    chain_id: int
    owner_address: str
    contract_address: str | None = None
    limit: int | None = None


@dataclass
class BatchAssetsResult:
    chain_id: int
    owner_address: str
    records: list[AssetRecord] = field(default_factory=list)
    cached: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "chain_id": self.chain_id,
            "owner_address": self.owner_address,
            "records": [record.to_dict() for record in self.records],
            "cached": self.cached,
        }
        if self.error:
            data["error"] = self.error
        return data


class MultiChainAggregator:
    """Fans asset lookups out across (address, chain) pairs.

    Pairs run on a bounded worker pool; each pair is memoized through the
    shared cache. A failing pair becomes an empty ``ChainAssets`` with an
    error annotation and never affects its siblings.
    """

    def __init__(
        self,
        classifier: StandardClassifier,
        enumerator: TokenEnumerator,
        resolver: MetadataResolver,
        config: PipelineConfig,
        cache_manager: CacheManager,
        indexer: IndexerClient | None = None,
        cache_ttl: int | None = None,
    ):
        self.classifier = classifier
        self.enumerator = enumerator
        self.resolver = resolver
        self.config = config
        self.cache_manager = cache_manager
        self.indexer = indexer
        self.cache_ttl = cache_ttl or cache_manager.config.ttl_nfts

        self._semaphore = asyncio.Semaphore(config.max_workers)
        self._stats = {"pairs": 0, "failed_pairs": 0, "cached_pairs": 0, "records": 0}

    async def aggregate(
        self,
        requests: list[AggregateRequest],
        options: AggregateOptions | None = None,
    ) -> dict[str, dict[int, ChainAssets]]:
        options = options or AggregateOptions()
        pairs = self._validate_requests(requests)

        logger.info(f"🚀 Aggregating {len(pairs)} address/chain pairs with {self.config.max_workers} workers")
        outcomes = await asyncio.gather(*(self._run_pair(address, chain_id, options) for address, chain_id in pairs))

        results: dict[str, dict[int, ChainAssets]] = {}
        for (address, chain_id), chain_assets in zip(pairs, outcomes, strict=True):
            results.setdefault(address, {})[chain_id] = chain_assets
        return results

    def _validate_requests(self, requests: list[AggregateRequest]) -> list[tuple[str, int]]:
        if not requests:
            raise ValueError("At least one address request is required")
        if len(requests) > self.config.max_addresses_per_request:
            raise ValueError(f"At most {self.config.max_addresses_per_request} addresses per request")

        pairs: list[tuple[str, int]] = []
        for request in requests:
            if len(request.chain_ids) > self.config.max_chains_per_address:
                raise ValueError(f"At most {self.config.max_chains_per_address} chains per address")
            address = normalize_address(request.address)
            for chain_id in request.chain_ids:
                if (address, chain_id) not in pairs:
                    pairs.append((address, chain_id))
        return pairs

    async def _run_pair(self, address: str, chain_id: int, options: AggregateOptions) -> ChainAssets:
        async with self._semaphore:
            self._stats["pairs"] += 1
            try:
                chain_assets = await self._fetch_pair(address, chain_id, options)
            except Exception as e:
                self._stats["failed_pairs"] += 1
                self._log_pair_failure(address, chain_id, e)
                return ChainAssets(error=describe_error(e))

        if chain_assets.cached:
            self._stats["cached_pairs"] += 1
        self._stats["records"] += len(chain_assets.records)
        return chain_assets

    @staticmethod
    def _log_pair_failure(address: str, chain_id: int, error: Exception) -> None:
        if classify_error(error) is ErrorClass.UPSTREAM_ABSENT:
            logger.warning(f"⚠️ Skipping {address} on chain {chain_id}: {error}")
        else:
            logger.error(f"❌ Failed to aggregate {address} on chain {chain_id}: {describe_error(error)}")

    async def _fetch_pair(self, address: str, chain_id: int, options: AggregateOptions) -> ChainAssets:
        contracts = sorted({normalize_address(c) for c in options.contract_addresses or []})
        key = CacheKeys.nft_list(
            chain_id,
            address,
            ",".join(contracts) or None,
            page_key=options.page_key,
            page_size=options.page_size,
            limit=options.bound,
        )

        payload, cached = await self.cache_manager.get_or_fetch_with_status(
            key,
            self.cache_ttl,
            lambda: self._collect(address, chain_id, contracts, options),
        )
        return ChainAssets(
            records=[asset_from_dict(record) for record in payload["records"]],
            total_count=payload.get("total_count"),
            page_key=payload.get("page_key"),
            cached=cached,
        )

    async def _collect(self, address: str, chain_id: int, contracts: list[str], options: AggregateOptions) -> dict:
        """Uncached lookup for one pair, serialized for the cache."""
        bound = self.config.enumeration_bound if options.bound is None else options.bound
        registry_contracts = [normalize_address(c) for c in self.config.registry_contracts.get(chain_id, [])]

        if contracts:
            records = await self._resolve_contracts(address, chain_id, contracts, bound)
            return self._payload(records, total_count=len(records))

        indexer_ready = self.indexer is not None and self.indexer.is_available(chain_id)
        if not indexer_ready:
            records = await self._resolve_contracts(address, chain_id, registry_contracts, bound)
            return self._payload(records, total_count=len(records))

        try:
            page = await self.indexer.get_nfts_for_owner(
                chain_id,
                address,
                page_key=options.page_key,
                page_size=options.page_size,
            )
        except IndexerUnavailableError:
            records = await self._resolve_contracts(address, chain_id, registry_contracts, bound)
            return self._payload(records, total_count=len(records))
        except IndexerError as e:
            if not registry_contracts:
                raise
            logger.warning(f"⚠️ Indexer failed for {address} on chain {chain_id}, using registry contracts: {e}")
            records = await self._resolve_contracts(address, chain_id, registry_contracts, bound)
            return self._payload(records, total_count=len(records))

        records = await self.resolver.price_records(page.records, chain_id)
        if registry_contracts and not options.page_key:
            # registry records carry decoded traits; they win the dedup
            registry_records = await self._resolve_contracts(address, chain_id, registry_contracts, bound)
            records = registry_records + records

        return self._payload(records, total_count=page.total_count, page_key=page.page_key)

    @staticmethod
    def _payload(records: list[AssetRecord], total_count: int | None = None, page_key: str | None = None) -> dict:
        unique = dedupe_records(records)
        return {
            "records": [record.to_dict() for record in unique],
            "total_count": total_count if total_count is not None else len(unique),
            "page_key": page_key,
        }

    async def _resolve_contracts(
        self,
        address: str,
        chain_id: int,
        contracts: list[str],
        bound: int,
    ) -> list[AssetRecord]:
        records: list[AssetRecord] = []
        for contract in contracts:
            try:
                records.extend(await self._resolve_contract(address, chain_id, contract, bound))
            except DeterministicRPCError as e:
                logger.warning(f"⚠️ Skipping contract {contract} on chain {chain_id}: {e}")
        return records

    async def _resolve_contract(self, address: str, chain_id: int, contract: str, bound: int) -> list[AssetRecord]:
        """Classify, enumerate and resolve one contract for one owner."""
        standard = await self.classifier.classify(chain_id, contract)
        if standard is TokenStandard.UNKNOWN:
            return []

        tokens = await self.enumerator.enumerate(address, contract, standard, chain_id, bound)
        if not tokens:
            return []

        collection = await self.resolver.resolve_collection(contract, chain_id)
        records: list[AssetRecord] = []
        window = self.config.window_size
        for start in range(0, len(tokens), window):
            records.extend(
                await asyncio.gather(
                    *(
                        self.resolver.resolve(token, address, contract, standard, chain_id, collection)
                        for token in tokens[start : start + window]
                    )
                )
            )

        logger.debug(f"📋 Resolved {len(records)} {standard.value} tokens in {contract} for {address}")
        return records

    async def get_assets(
        self,
        chain_id: int,
        owner_address: str,
        contract_address: str | None = None,
        bound: int | None = None,
    ) -> list[AssetRecord]:
        """Single-pair query; raises on failure instead of annotating."""
        options = AggregateOptions(
            contract_addresses=[contract_address] if contract_address else None,
            bound=bound,
        )
        chain_assets = await self._fetch_pair(normalize_address(owner_address), chain_id, options)
        return chain_assets.records

    async def get_assets_batch(self, items: list[BatchAssetsQuery]) -> list[BatchAssetsResult]:
        """One result slot per query, in input order, failures annotated in their slot."""
        if not items:
            raise ValueError("At least one query is required")
        return list(await asyncio.gather(*(self._run_batch_item(item) for item in items)))

    async def _run_batch_item(self, item: BatchAssetsQuery) -> BatchAssetsResult:
        async with self._semaphore:
            try:
                owner = normalize_address(item.owner_address)
                options = AggregateOptions(
                    contract_addresses=[item.contract_address] if item.contract_address else None,
                    bound=item.limit,
                )
                chain_assets = await self._fetch_pair(owner, item.chain_id, options)
            except Exception as e:
                self._stats["failed_pairs"] += 1
                self._log_pair_failure(item.owner_address, item.chain_id, e)
                return BatchAssetsResult(
                    chain_id=item.chain_id,
                    owner_address=item.owner_address,
                    error=describe_error(e),
                )

        return BatchAssetsResult(
            chain_id=item.chain_id,
            owner_address=owner,
            records=chain_assets.records,
            cached=chain_assets.cached,
        )

    def get_stats(self) -> dict[str, int]:
        return dict(self._stats)
