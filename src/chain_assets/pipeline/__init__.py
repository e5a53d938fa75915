"""Asset resolution pipeline: classify, enumerate, resolve, aggregate."""

from .aggregator import (
    AggregateOptions,
    AggregateRequest,
    BatchAssetsQuery,
    BatchAssetsResult,
    ChainAssets,
    MultiChainAggregator,
)
from .balances import (
    BalanceService,
    BatchBalanceQuery,
    BatchBalanceResult,
    BatchTokenBalanceQuery,
    BatchTokenBalanceResult,
)
from .classifier import StandardClassifier
from .enumerator import TokenEnumerator
from .resolver import MetadataResolver
from .transactions import BatchTransactionsQuery, BatchTransactionsResult, TransactionHistoryService

__all__ = [
    "AggregateOptions",
    "AggregateRequest",
    "BalanceService",
    "BatchAssetsQuery",
    "BatchAssetsResult",
    "BatchBalanceQuery",
    "BatchBalanceResult",
    "BatchTokenBalanceQuery",
    "BatchTokenBalanceResult",
    "BatchTransactionsQuery",
    "BatchTransactionsResult",
    "ChainAssets",
    "MetadataResolver",
    "MultiChainAggregator",
    "StandardClassifier",
    "TokenEnumerator",
    "TransactionHistoryService",
]
