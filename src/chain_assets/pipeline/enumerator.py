"""Token enumeration: indexer first, bounded on-chain fallback."""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from ..clients import abi
from ..clients.chain_types import OwnedToken, TokenStandard, addresses_equal, checksum_address, normalize_address
from ..clients.indexer_client import IndexerClient
from ..clients.rpc_client import RetryingRPCClient
from ..config import PipelineConfig
from ..errors import DeterministicRPCError, IndexerUnavailableError, RPCError

logger = logging.getLogger(__name__)

Strategy = Callable[[str, str, int, int], Awaitable[list[OwnedToken]]]


class TokenEnumerator:
    """Lists the token ids an owner holds in one contract.

    The indexer is asked first. Without one (or when it fails) the on-chain
    strategy for the contract's standard runs, reading at most ``bound``
    tokens. Ownership beyond the bound is truncated without error.
    """

    def __init__(
        self,
        rpc_client: RetryingRPCClient,
        config: PipelineConfig,
        indexer: IndexerClient | None = None,
    ):
        self.rpc_client = rpc_client
        self.config = config
        self.indexer = indexer

        self._strategies: dict[TokenStandard, Strategy] = {
            TokenStandard.SINGLE_OWNER: self._enumerate_single_owner,
            TokenStandard.ASSET_REGISTRY: self._enumerate_single_owner,
            TokenStandard.MULTI_BALANCE: self._enumerate_multi_balance,
        }
        self._stats = {"indexer_hits": 0, "indexer_fallbacks": 0, "onchain_enumerations": 0, "index_errors": 0}

    async def enumerate(
        self,
        owner_address: str,
        contract_address: str,
        standard: TokenStandard,
        chain_id: int,
        bound: int | None = None,
    ) -> list[OwnedToken]:
        strategy = self._strategies.get(standard)
        if strategy is None:
            return []

        owner = normalize_address(owner_address)
        contract = normalize_address(contract_address)
        if bound is None:
            bound = self.config.enumeration_bound
        if bound < 0:
            raise ValueError(f"bound must be non-negative, got {bound}")
        if bound == 0:
            return []

        tokens = await self._from_indexer(owner, contract, chain_id, bound)
        if tokens is not None:
            return tokens[:bound]

        self._stats["onchain_enumerations"] += 1
        return await strategy(owner, contract, chain_id, bound)

    async def _from_indexer(self, owner: str, contract: str, chain_id: int, bound: int) -> list[OwnedToken] | None:
        if self.indexer is None or not self.indexer.is_available(chain_id):
            return None
        try:
            tokens = await self.indexer.get_owned_tokens(chain_id, owner, contract, limit=bound)
        except IndexerUnavailableError:
            return None
        except Exception as e:
            self._stats["indexer_fallbacks"] += 1
            logger.warning(f"⚠️ Indexer failed for {owner} in {contract}, enumerating on-chain: {e}")
            return None
        self._stats["indexer_hits"] += 1
        return tokens

    async def _enumerate_single_owner(self, owner: str, contract: str, chain_id: int, bound: int) -> list[OwnedToken]:
        owner_arg = checksum_address(owner)
        count = await self.rpc_client.call(chain_id, contract, abi.BALANCE_OF, (owner_arg,))
        limit = min(int(count), bound)
        if limit <= 0:
            return []
        if count > bound:
            logger.info(f"📋 {owner} holds {count} tokens in {contract}, reading the first {bound}")

        try:
            first = await self.rpc_client.call(chain_id, contract, abi.TOKEN_OF_OWNER_BY_INDEX, (owner_arg, 0))
        except DeterministicRPCError as e:
            logger.info(f"🔍 {contract} is not enumerable by owner ({e}), scanning supply")
            return await self._scan_supply(owner, contract, chain_id, limit)

        tokens = [OwnedToken(token_id=int(first))]
        token_ids = await self._windowed(
            range(1, limit),
            lambda index: self.rpc_client.call(chain_id, contract, abi.TOKEN_OF_OWNER_BY_INDEX, (owner_arg, index)),
            f"tokenOfOwnerByIndex on {contract}",
        )
        tokens.extend(OwnedToken(token_id=int(token_id)) for _, token_id in token_ids)
        return tokens

    async def _scan_supply(self, owner: str, contract: str, chain_id: int, bound: int) -> list[OwnedToken]:
        """Walk ``tokenByIndex``/``ownerOf`` over the first supply indices."""
        try:
            total_supply = await self.rpc_client.call(chain_id, contract, abi.TOTAL_SUPPLY)
        except DeterministicRPCError as e:
            logger.warning(f"⚠️ Cannot enumerate {contract}: no totalSupply ({e})")
            return []

        scan_limit = min(int(total_supply), self.config.supply_scan_limit)
        tokens: list[OwnedToken] = []

        async def owned_token_at(index: int) -> int | None:
            token_id = await self.rpc_client.call(chain_id, contract, abi.TOKEN_BY_INDEX, (index,))
            token_owner = await self.rpc_client.call(chain_id, contract, abi.OWNER_OF, (token_id,))
            return int(token_id) if addresses_equal(token_owner, owner) else None

        window = self.config.window_size
        for start in range(0, scan_limit, window):
            found = await self._windowed(
                range(start, min(start + window, scan_limit)),
                owned_token_at,
                f"supply scan on {contract}",
            )
            tokens.extend(OwnedToken(token_id=token_id) for _, token_id in found if token_id is not None)
            if len(tokens) >= bound:
                break

        return tokens[:bound]

    async def _enumerate_multi_balance(self, owner: str, contract: str, chain_id: int, bound: int) -> list[OwnedToken]:
        """Scan ``balanceOf(owner, id)`` over a fixed id range.

        Balances on ids outside the range are not found; the indexer is the
        complete source for this standard.
        """
        owner_arg = checksum_address(owner)
        tokens: list[OwnedToken] = []
        id_range = self.config.multi_balance_id_range
        window = self.config.window_size

        for start in range(0, id_range, window):
            balances = await self._windowed(
                range(start, min(start + window, id_range)),
                lambda token_id: self.rpc_client.call(chain_id, contract, abi.BALANCE_OF_ID, (owner_arg, token_id)),
                f"balanceOf scan on {contract}",
            )
            tokens.extend(
                OwnedToken(token_id=token_id, amount=int(balance)) for token_id, balance in balances if balance > 0
            )
            if len(tokens) >= bound:
                break

        return tokens[:bound]

    async def _windowed(self, items: range, call: Callable[[int], Awaitable], label: str) -> list[tuple[int, object]]:
        """Run ``call`` for ``items`` in windows; concurrent inside a window, sequential across.

        Returns ``(item, result)`` pairs in input order, dropping items whose
        call failed.
        """
        results: list[tuple[int, object]] = []
        window = self.config.window_size
        items = list(items)

        for start in range(0, len(items), window):
            batch = items[start : start + window]
            outcomes = await asyncio.gather(*(call(item) for item in batch), return_exceptions=True)
            for item, outcome in zip(batch, outcomes, strict=True):
                if isinstance(outcome, RPCError):
                    self._stats["index_errors"] += 1
                    logger.warning(f"⚠️ {label} failed at {item}: {outcome}")
                    continue
                if isinstance(outcome, BaseException):
                    raise outcome
                results.append((item, outcome))

        return results

    def get_stats(self) -> dict[str, int]:
        return dict(self._stats)
