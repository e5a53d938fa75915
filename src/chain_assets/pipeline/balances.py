"""Native and ERC-20 balance lookups over JSON-RPC."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from eth_utils import from_wei

from ..chains import get_chain
from ..clients import abi
from ..clients.chain_types import (
    NativeBalance,
    TokenBalance,
    checksum_address,
    format_units,
    normalize_address,
)
from ..clients.rpc_client import RetryingRPCClient
from ..config import PipelineConfig
from ..errors import DeterministicRPCError, MalformedResponseError, describe_error
from ..utils.cache import CacheKeys, CacheManager

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_SYMBOL = "UNKNOWN"
DEFAULT_TOKEN_NAME = "Unknown Token"
DEFAULT_TOKEN_DECIMALS = 18


@dataclass
class BatchBalanceQuery:
    chain_id: int
    address: str


@dataclass
class BatchBalanceResult:
    chain_id: int
    address: str
    balance: NativeBalance | None = None
    cached: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "chain_id": self.chain_id,
            "address": self.address,
            "balance": self.balance.to_dict() if self.balance else None,
            "cached": self.cached,
        }
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class BatchTokenBalanceQuery:
    chain_id: int
    token_address: str
    owner_address: str


@dataclass
class BatchTokenBalanceResult:
    chain_id: int
    token_address: str
    owner_address: str
    balance: TokenBalance | None = None
    cached: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "chain_id": self.chain_id,
            "token_address": self.token_address,
            "owner_address": self.owner_address,
            "balance": self.balance.to_dict() if self.balance else None,
            "cached": self.cached,
        }
        if self.error:
            data["error"] = self.error
        return data


class BalanceService:
    """Cached native and ERC-20 balances.

    Native balances come from ``eth_getBalance`` at the latest block. Token
    balances need ``balanceOf``; a token that reverts on ``symbol``, ``name``
    or ``decimals`` gets the display defaults instead. Transient RPC failures
    propagate and nothing is cached for them.

    A zero token balance is cached like any other but reads back as ``None``.
    """

    def __init__(self, rpc_client: RetryingRPCClient, cache_manager: CacheManager, config: PipelineConfig):
        self.rpc_client = rpc_client
        self.cache_manager = cache_manager
        self.config = config
        self._stats = {"requests": 0, "cache_hits": 0, "upstream_fetches": 0, "zero_balances": 0, "failed": 0}

    async def get_native_balance(self, chain_id: int, address: str) -> NativeBalance:
        balance, _ = await self._native_with_status(chain_id, normalize_address(address))
        return balance

    async def _native_with_status(self, chain_id: int, address: str) -> tuple[NativeBalance, bool]:
        self._stats["requests"] += 1
        payload, cached = await self.cache_manager.get_or_fetch_with_status(
            CacheKeys.balance(chain_id, address),
            self.cache_manager.config.ttl_balance,
            lambda: self._fetch_native(chain_id, address),
        )
        if cached:
            self._stats["cache_hits"] += 1
        return NativeBalance.from_dict(payload), cached

    async def _fetch_native(self, chain_id: int, address: str) -> dict[str, Any]:
        self._stats["upstream_fetches"] += 1
        result = await self.rpc_client.request(chain_id, "eth_getBalance", [checksum_address(address), "latest"])
        try:
            wei = int(result, 16)
        except (TypeError, ValueError) as e:
            raise MalformedResponseError(f"eth_getBalance returned {result!r}") from e

        chain = get_chain(chain_id)
        balance = NativeBalance(
            chain_id=chain_id,
            address=address,
            symbol=chain.native_symbol if chain else "ETH",
            balance=f"{from_wei(wei, 'ether'):.4f}",
            balance_wei=str(wei),
        )
        logger.debug(f"💰 {address} holds {balance.balance} {balance.symbol} on chain {chain_id}")
        return balance.to_dict()

    async def get_token_balance(self, chain_id: int, token_address: str, owner_address: str) -> TokenBalance | None:
        balance, _ = await self._token_with_status(
            chain_id, normalize_address(token_address), normalize_address(owner_address)
        )
        return balance

    async def _token_with_status(self, chain_id: int, token: str, owner: str) -> tuple[TokenBalance | None, bool]:
        self._stats["requests"] += 1
        payload, cached = await self.cache_manager.get_or_fetch_with_status(
            CacheKeys.token_balance(chain_id, token, owner),
            self.cache_manager.config.ttl_token_balance,
            lambda: self._fetch_token(chain_id, token, owner),
        )
        if cached:
            self._stats["cache_hits"] += 1

        balance = TokenBalance.from_dict(payload)
        if balance.is_zero:
            self._stats["zero_balances"] += 1
            return None, cached
        return balance, cached

    async def _fetch_token(self, chain_id: int, token: str, owner: str) -> dict[str, Any]:
        async def optional(method: abi.ContractMethod, default: Any) -> Any:
            try:
                value = await self.rpc_client.call(chain_id, token, method)
            except DeterministicRPCError as e:
                logger.debug(f"🔍 Token {token} has no usable {method.name}(): {e}")
                return default
            return default if value in (None, "") else value

        self._stats["upstream_fetches"] += 1
        raw, symbol, name, decimals = await asyncio.gather(
            self.rpc_client.call(chain_id, token, abi.BALANCE_OF, (checksum_address(owner),)),
            optional(abi.SYMBOL, DEFAULT_TOKEN_SYMBOL),
            optional(abi.NAME, DEFAULT_TOKEN_NAME),
            optional(abi.DECIMALS, DEFAULT_TOKEN_DECIMALS),
        )
        return TokenBalance(
            chain_id=chain_id,
            token_address=token,
            owner_address=owner,
            symbol=symbol,
            name=name,
            decimals=int(decimals),
            balance=format_units(int(raw), int(decimals)),
            balance_raw=str(raw),
        ).to_dict()

    async def get_native_balances_batch(self, items: list[BatchBalanceQuery]) -> list[BatchBalanceResult]:
        """One slot per query, in input order; a failing query is annotated in its slot."""
        if not items:
            raise ValueError("At least one query is required")
        semaphore = asyncio.Semaphore(self.config.max_workers)

        async def run(item: BatchBalanceQuery) -> BatchBalanceResult:
            async with semaphore:
                try:
                    address = normalize_address(item.address)
                    balance, cached = await self._native_with_status(item.chain_id, address)
                except Exception as e:
                    self._failed(f"Balance of {item.address}", item.chain_id, e)
                    return BatchBalanceResult(item.chain_id, item.address, error=describe_error(e))
            return BatchBalanceResult(item.chain_id, address, balance=balance, cached=cached)

        results = await asyncio.gather(*(run(item) for item in items))
        logger.info(f"💰 Resolved {sum(1 for r in results if not r.error)}/{len(items)} native balances")
        return list(results)

    async def get_token_balances_batch(self, items: list[BatchTokenBalanceQuery]) -> list[BatchTokenBalanceResult]:
        """One slot per query, in input order; zero balances leave ``balance`` empty."""
        if not items:
            raise ValueError("At least one query is required")
        semaphore = asyncio.Semaphore(self.config.max_workers)

        async def run(item: BatchTokenBalanceQuery) -> BatchTokenBalanceResult:
            async with semaphore:
                try:
                    token = normalize_address(item.token_address)
                    owner = normalize_address(item.owner_address)
                    balance, cached = await self._token_with_status(item.chain_id, token, owner)
                except Exception as e:
                    self._failed(f"Token {item.token_address} balance of {item.owner_address}", item.chain_id, e)
                    return BatchTokenBalanceResult(
                        item.chain_id, item.token_address, item.owner_address, error=describe_error(e)
                    )
            return BatchTokenBalanceResult(item.chain_id, token, owner, balance=balance, cached=cached)

        results = await asyncio.gather(*(run(item) for item in items))
        logger.info(f"🪙 Resolved {sum(1 for r in results if not r.error)}/{len(items)} token balances")
        return list(results)

    def _failed(self, what: str, chain_id: int, error: Exception) -> None:
        self._stats["failed"] += 1
        logger.error(f"❌ {what} failed on chain {chain_id}: {error}")

    def get_stats(self) -> dict[str, int]:
        return dict(self._stats)
