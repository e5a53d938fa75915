"""Token standard detection for a contract."""

import logging

from ..clients import abi
from ..clients.abi import ContractMethod
from ..clients.chain_types import SENTINEL_ADDRESS, TokenStandard, checksum_address, normalize_address
from ..clients.rpc_client import RetryingRPCClient
from ..errors import DeterministicRPCError
from ..utils.cache import CacheKeys, CacheManager

logger = logging.getLogger(__name__)

_SAMPLE_TOKEN_IDS = (1, 0)


class StandardClassifier:
    """Resolves a contract's token standard once, so callers dispatch on it.

    Order: ERC-165 ``supportsInterface`` check, then a behavioral check
    against a sentinel owner when the interface query is unsupported or
    inconclusive. Registry contracts are single-owner contracts that also
    answer trait queries. A contract confirming neither standard is
    ``UNKNOWN``; transient RPC failures propagate and nothing is cached.
    """

    def __init__(
        self,
        rpc_client: RetryingRPCClient,
        cache_manager: CacheManager | None = None,
        cache_ttl: int | None = None,
    ):
        self.rpc_client = rpc_client
        self.cache_manager = cache_manager
        self.cache_ttl = cache_ttl or (cache_manager.config.ttl_classification if cache_manager else 86_400)

    async def classify(self, chain_id: int, contract_address: str) -> TokenStandard:
        contract = normalize_address(contract_address)
        if self.cache_manager is None:
            return await self._classify_uncached(chain_id, contract)

        value = await self.cache_manager.get_or_fetch(
            CacheKeys.classification(chain_id, contract),
            self.cache_ttl,
            lambda: self._classify_for_cache(chain_id, contract),
        )
        return TokenStandard(value)

    async def _classify_for_cache(self, chain_id: int, contract: str) -> str:
        return (await self._classify_uncached(chain_id, contract)).value

    async def _classify_uncached(self, chain_id: int, contract: str) -> TokenStandard:
        standard = await self._check_interfaces(chain_id, contract)
        if standard is None:
            standard = await self._check_behavior(chain_id, contract)

        if standard is TokenStandard.SINGLE_OWNER and await self._has_trait_queries(chain_id, contract):
            standard = TokenStandard.ASSET_REGISTRY

        if standard is TokenStandard.UNKNOWN:
            logger.info(f"🔍 No supported token standard detected for {contract} on chain {chain_id}")
        else:
            logger.debug(f"🔍 Classified {contract} on chain {chain_id} as {standard.value}")
        return standard

    async def _check_interfaces(self, chain_id: int, contract: str) -> TokenStandard | None:
        """ERC-165 check; None means unsupported or inconclusive."""
        try:
            if await self._call(chain_id, contract, abi.SUPPORTS_INTERFACE, (abi.INTERFACE_ERC1155,)):
                return TokenStandard.MULTI_BALANCE
            if await self._call(chain_id, contract, abi.SUPPORTS_INTERFACE, (abi.INTERFACE_ERC721,)):
                return TokenStandard.SINGLE_OWNER
        except DeterministicRPCError as e:
            logger.debug(f"🔍 supportsInterface unsupported on {contract}: {e}")
        return None

    async def _check_behavior(self, chain_id: int, contract: str) -> TokenStandard:
        sentinel = checksum_address(SENTINEL_ADDRESS)

        if await self._succeeds(chain_id, contract, abi.BALANCE_OF_ID, (sentinel, 0)):
            return TokenStandard.MULTI_BALANCE

        if not await self._succeeds(chain_id, contract, abi.BALANCE_OF, (sentinel,)):
            return TokenStandard.UNKNOWN

        for token_id in _SAMPLE_TOKEN_IDS:
            if await self._succeeds(chain_id, contract, abi.OWNER_OF, (token_id,)):
                return TokenStandard.SINGLE_OWNER

        # ids 0 and 1 may not exist; ask the contract for one that does
        try:
            first_token = await self._call(chain_id, contract, abi.TOKEN_BY_INDEX, (0,))
        except DeterministicRPCError:
            return TokenStandard.UNKNOWN
        if await self._succeeds(chain_id, contract, abi.OWNER_OF, (first_token,)):
            return TokenStandard.SINGLE_OWNER
        return TokenStandard.UNKNOWN

    async def _has_trait_queries(self, chain_id: int, contract: str) -> bool:
        if await self._succeeds(chain_id, contract, abi.GET_TRAIT_METADATA_URI):
            return True
        for token_id in _SAMPLE_TOKEN_IDS:
            if await self._succeeds(chain_id, contract, abi.GET_TRAIT_VALUE, (token_id, abi.TRAIT_ASSET_TYPE)):
                return True
        return False

    async def _call(self, chain_id: int, contract: str, method: ContractMethod, args: tuple = ()):
        return await self.rpc_client.call(chain_id, contract, method, args)

    async def _succeeds(self, chain_id: int, contract: str, method: ContractMethod, args: tuple = ()) -> bool:
        """True when the call returns decodable data; deterministic failure is False."""
        try:
            await self._call(chain_id, contract, method, args)
            return True
        except DeterministicRPCError:
            return False
