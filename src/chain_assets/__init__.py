"""Resilient on-chain asset resolution across EVM chains."""

from .app import Application, create_application
from .clients.chain_types import (
    AssetRecord,
    AssetRegistryRecord,
    NativeBalance,
    TokenBalance,
    TokenStandard,
    TransactionRecord,
)
from .config import AppConfig, get_config, reload_config
from .pipeline import (
    AggregateOptions,
    AggregateRequest,
    BatchAssetsQuery,
    BatchBalanceQuery,
    BatchTokenBalanceQuery,
    BatchTransactionsQuery,
)

__version__ = "0.1.0"

__all__ = [
    "AggregateOptions",
    "AggregateRequest",
    "AppConfig",
    "Application",
    "AssetRecord",
    "AssetRegistryRecord",
    "NativeBalance",
    "BatchAssetsQuery",
    "BatchBalanceQuery",
    "BatchTokenBalanceQuery",
    "BatchTransactionsQuery",
    "TokenBalance",
    "TokenStandard",
    "TransactionRecord",
    "create_application",
    "get_config",
    "reload_config",
]
