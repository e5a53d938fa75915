"""Tests for token standard classification."""

from unittest.mock import AsyncMock

import pytest
from conftest import CONTRACT, OWNER, FakeRPCClient, counting

from chain_assets.clients import abi
from chain_assets.clients.chain_types import TokenStandard
from chain_assets.clients.rpc_client import RetryingRPCClient
from chain_assets.config import RPCConfig
from chain_assets.errors import EndpointsExhaustedError, UnsupportedMethodError
from chain_assets.pipeline import StandardClassifier
from chain_assets.utils.cache import CacheKeys, CacheManager


def _supports(*interfaces: bytes):
    return lambda contract, args: args[0] in interfaces


class TestStandardClassifier:
    @pytest.mark.asyncio
    async def test_interface_check_multi_balance(self) -> None:
        rpc = FakeRPCClient({"supportsInterface(bytes4)": _supports(abi.INTERFACE_ERC1155)})

        assert await StandardClassifier(rpc).classify(1, CONTRACT) is TokenStandard.MULTI_BALANCE

    @pytest.mark.asyncio
    async def test_interface_check_single_owner(self) -> None:
        rpc = FakeRPCClient({"supportsInterface(bytes4)": _supports(abi.INTERFACE_ERC721)})

        assert await StandardClassifier(rpc).classify(1, CONTRACT) is TokenStandard.SINGLE_OWNER

    @pytest.mark.asyncio
    async def test_trait_queries_upgrade_to_registry(self) -> None:
        rpc = FakeRPCClient(
            {
                "supportsInterface(bytes4)": _supports(abi.INTERFACE_ERC721),
                "getTraitMetadataURI()": "ipfs://traits",
            }
        )

        assert await StandardClassifier(rpc).classify(1, CONTRACT) is TokenStandard.ASSET_REGISTRY

    @pytest.mark.asyncio
    async def test_behavioral_check_without_erc165(self) -> None:
        """balanceOf(address) and ownerOf answer, nothing else does."""
        rpc = FakeRPCClient(
            {
                "balanceOf(address)": 0,
                "ownerOf(uint256)": OWNER,
            }
        )

        assert await StandardClassifier(rpc).classify(1, CONTRACT) is TokenStandard.SINGLE_OWNER

    @pytest.mark.asyncio
    async def test_behavioral_check_uses_first_indexed_token(self) -> None:
        rpc = FakeRPCClient(
            {
                "balanceOf(address)": 0,
                "tokenByIndex(uint256)": 77,
                "ownerOf(uint256)": _owner_of_only(77),
            }
        )

        assert await StandardClassifier(rpc).classify(1, CONTRACT) is TokenStandard.SINGLE_OWNER

    @pytest.mark.asyncio
    async def test_behavioral_check_multi_balance(self) -> None:
        rpc = FakeRPCClient({"balanceOf(address,uint256)": 0})

        assert await StandardClassifier(rpc).classify(1, CONTRACT) is TokenStandard.MULTI_BALANCE

    @pytest.mark.asyncio
    async def test_no_standard_confirmed_is_unknown(self) -> None:
        rpc = FakeRPCClient({"name()": "Not a token"})

        assert await StandardClassifier(rpc).classify(1, CONTRACT) is TokenStandard.UNKNOWN

    @pytest.mark.asyncio
    async def test_classification_is_cached(self, cache_manager: CacheManager) -> None:
        supports = counting(_supports(abi.INTERFACE_ERC721))
        rpc = FakeRPCClient({"supportsInterface(bytes4)": supports})
        classifier = StandardClassifier(rpc, cache_manager)

        first = await classifier.classify(1, CONTRACT)
        second = await classifier.classify(1, CONTRACT)

        assert first is second is TokenStandard.SINGLE_OWNER
        assert supports.count == 2
        assert await cache_manager.get(CacheKeys.classification(1, CONTRACT)) == "SingleOwner"

    @pytest.mark.asyncio
    async def test_transient_failure_propagates_and_is_not_cached(self, cache_manager: CacheManager) -> None:
        rpc = FakeRPCClient({"supportsInterface(bytes4)": EndpointsExhaustedError("all endpoints down")})
        classifier = StandardClassifier(rpc, cache_manager)

        with pytest.raises(EndpointsExhaustedError):
            await classifier.classify(1, CONTRACT)

        assert await cache_manager.get(CacheKeys.classification(1, CONTRACT)) is None


def _owner_of_only(token_id: int):
    def owner_of(contract, args):
        if args[0] != token_id:
            raise UnsupportedMethodError("nonexistent token")
        return OWNER

    return owner_of

    @pytest.mark.asyncio
    async def test_rejecting_endpoint_is_not_cached_as_unknown(self, cache_manager: CacheManager) -> None:
        config = RPCConfig(
            alchemy_api_key=None,
            custom_urls={999: "https://node.example"},
            include_public_fallbacks=False,
            base_delay=0,
            max_delay=0,
        )
        rpc = RetryingRPCClient(config)
        rpc._post_json = AsyncMock(return_value=(403, "Forbidden"))
        classifier = StandardClassifier(rpc, cache_manager)

        with pytest.raises(EndpointsExhaustedError):
            await classifier.classify(999, CONTRACT)

        assert rpc._post_json.await_count == 1
        assert await cache_manager.get(CacheKeys.classification(999, CONTRACT)) is None
