"""Tests for metadata and trait resolution."""

from unittest.mock import AsyncMock

import aiohttp
import pytest
from conftest import CONTRACT, OTHER_OWNER, OWNER, FakePricing, FakeRPCClient, counting
from eth_abi import encode

from chain_assets.clients import abi
from chain_assets.clients.chain_types import (
    ZERO_ADDRESS,
    AssetRegistryRecord,
    CollectionInfo,
    OwnedToken,
    TokenStandard,
    asset_from_dict,
)
from chain_assets.clients.rpc_client import RetryingRPCClient
from chain_assets.config import RPCConfig
from chain_assets.errors import ContractRevertError, RPCTimeoutError
from chain_assets.pipeline import MetadataResolver
from chain_assets.pipeline.resolver import default_definition, expand_uri_template
from chain_assets.utils.cache import CacheManager


def _traits(values: dict[bytes, bytes]):
    def get_trait_value(contract, args):
        if args[1] not in values:
            raise ContractRevertError("trait not set")
        return values[args[1]]

    return get_trait_value


def _registry_contract(definition: bytes) -> FakeRPCClient:
    return FakeRPCClient(
        {
            "tokenURI(uint256)": lambda contract, args: f"ipfs://registry/{args[0]}",
            "getTraitValue(uint256,bytes32)": _traits(
                {
                    abi.TRAIT_ASSET_TYPE: encode(["uint8"], [2]),
                    abi.TRAIT_DEFINITION: definition,
                    abi.TRAIT_CONFIGURATION: encode(["string"], ["cfg-v1"]),
                }
            ),
            "getValidationStatus(uint256)": (True, OTHER_OWNER),
            "token(uint256)": CONTRACT,
            "salt(uint256)": 99,
        }
    )


class TestMetadataResolver:
    @pytest.mark.asyncio
    async def test_single_owner_record(self) -> None:
        rpc = FakeRPCClient({"tokenURI(uint256)": " ipfs://collection/7 "})
        resolver = MetadataResolver(rpc)
        collection = CollectionInfo(name="Collection", symbol="COL", price_usd=12.5)

        record = await resolver.resolve(7, OWNER, CONTRACT, TokenStandard.SINGLE_OWNER, 1, collection)

        assert record.token_id == "7"
        assert record.uri == "ipfs://collection/7"
        assert record.amount == "1"
        assert record.owner_address == OWNER
        assert record.name == "Collection"
        assert record.price_usd == 12.5

    @pytest.mark.asyncio
    async def test_failing_uri_leaves_it_empty(self) -> None:
        rpc = FakeRPCClient({"tokenURI(uint256)": RPCTimeoutError("slow")})

        record = await MetadataResolver(rpc).resolve(3, OWNER, CONTRACT, TokenStandard.SINGLE_OWNER, 1)

        assert record.uri == ""
        assert record.token_id == "3"

    @pytest.mark.asyncio
    async def test_multi_balance_uri_and_amount(self) -> None:
        rpc = FakeRPCClient({"uri(uint256)": "https://meta.example/{id}.json"})

        record = await MetadataResolver(rpc).resolve(
            OwnedToken(token_id=10, amount=4), OWNER, CONTRACT, TokenStandard.MULTI_BALANCE, 1
        )

        assert record.amount == "4"
        assert record.uri == "https://meta.example/" + "0" * 63 + "a.json"

    @pytest.mark.asyncio
    async def test_unknown_standard_rejected(self) -> None:
        with pytest.raises(ValueError):
            await MetadataResolver(FakeRPCClient()).resolve(1, OWNER, CONTRACT, TokenStandard.UNKNOWN, 1)

    @pytest.mark.asyncio
    async def test_registry_traits_decoded(self) -> None:
        rpc = _registry_contract(encode(["string"], ["Gold bar"]))

        record = await MetadataResolver(rpc).resolve(7, OWNER, CONTRACT, TokenStandard.ASSET_REGISTRY, 1)

        assert isinstance(record, AssetRegistryRecord)
        assert record.uri == "ipfs://registry/7"
        assert record.asset_type == 2
        assert record.definition == "Gold bar"
        assert record.configuration == "cfg-v1"
        assert record.is_validated is True
        assert record.validator_address == OTHER_OWNER
        assert record.payment_token == CONTRACT
        assert record.salt == "99"
        assert record.degraded_fields == ()

    @pytest.mark.asyncio
    async def test_undecodable_definition_defaults(self) -> None:
        """A bad definition trait degrades that field only."""
        rpc = _registry_contract(b"\x00\x01")

        record = await MetadataResolver(rpc).resolve(7, OWNER, CONTRACT, TokenStandard.ASSET_REGISTRY, 1)

        assert record.definition == "Asset #7"
        assert record.degraded_fields == ("definition",)
        assert record.asset_type == 2
        assert record.configuration == "cfg-v1"

    @pytest.mark.asyncio
    async def test_failing_trait_calls_default(self) -> None:
        rpc = _registry_contract(encode(["string"], [""]))
        rpc.handlers["getValidationStatus(uint256)"] = ContractRevertError("no validator")
        del rpc.handlers["salt(uint256)"]
        resolver = MetadataResolver(rpc)

        record = await resolver.resolve(5, OWNER, CONTRACT, TokenStandard.ASSET_REGISTRY, 1)

        assert record.definition == default_definition(5)
        assert record.is_validated is False
        assert record.validator_address == ZERO_ADDRESS
        assert record.salt == "0"
        assert set(record.degraded_fields) == {"validation", "salt"}
        assert resolver.get_stats()["degraded_records"] == 1

    @pytest.mark.asyncio
    async def test_unset_traits_keep_defaults_without_degrading(self) -> None:
        rpc = _registry_contract(b"")
        rpc.handlers["getTraitValue(uint256,bytes32)"] = b""
        resolver = MetadataResolver(rpc)

        record = await resolver.resolve(4, OWNER, CONTRACT, TokenStandard.ASSET_REGISTRY, 1)

        assert record.asset_type == 0
        assert record.definition == "Asset #4"
        assert record.configuration == ""
        assert record.degraded_fields == ()
        assert resolver.get_stats()["degraded_records"] == 0

    @pytest.mark.asyncio
    async def test_unvalidated_token_has_no_validator(self) -> None:
        rpc = _registry_contract(encode(["string"], ["Gold bar"]))
        rpc.handlers["getValidationStatus(uint256)"] = (False, OTHER_OWNER)

        record = await MetadataResolver(rpc).resolve(7, OWNER, CONTRACT, TokenStandard.ASSET_REGISTRY, 1)

        assert record.is_validated is False
        assert record.validator_address == ZERO_ADDRESS
        assert record.degraded_fields == ()

    @pytest.mark.asyncio
    async def test_truncated_response_leaves_uri_empty(self) -> None:
        config = RPCConfig(
            alchemy_api_key=None,
            custom_urls={999: "https://node.example"},
            include_public_fallbacks=False,
            max_attempts_per_endpoint=2,
            base_delay=0,
            max_delay=0,
        )
        rpc = RetryingRPCClient(config)
        rpc._post_json = AsyncMock(side_effect=aiohttp.ClientPayloadError("Response payload is not completed"))

        record = await MetadataResolver(rpc).resolve(3, OWNER, CONTRACT, TokenStandard.SINGLE_OWNER, 999)

        assert record.uri == ""
        assert rpc._post_json.await_count == 2

    @pytest.mark.asyncio
    async def test_registry_record_survives_serialization(self) -> None:
        rpc = _registry_contract(b"\x00\x01")
        record = await MetadataResolver(rpc).resolve(7, OWNER, CONTRACT, TokenStandard.ASSET_REGISTRY, 1)

        assert asset_from_dict(record.to_dict()) == record

    @pytest.mark.asyncio
    async def test_collection_is_resolved_once(self, cache_manager: CacheManager) -> None:
        name = counting(lambda contract, args: "Collection")
        rpc = FakeRPCClient({"name()": name})
        pricing = FakePricing(price=1500.0)
        resolver = MetadataResolver(rpc, pricing, cache_manager)

        first = await resolver.resolve_collection(CONTRACT, 1)
        second = await resolver.resolve_collection(CONTRACT, 1)

        assert first == second == CollectionInfo(name="Collection", symbol=None, price_usd=1500.0)
        assert name.count == 1
        assert pricing.lookups == 1

    @pytest.mark.asyncio
    async def test_collection_without_pricing(self) -> None:
        rpc = FakeRPCClient({"name()": "", "symbol()": "SYM"})

        collection = await MetadataResolver(rpc).resolve_collection(CONTRACT, 1)

        assert collection == CollectionInfo(name=None, symbol="SYM", price_usd=None)


def test_expand_uri_template_leaves_plain_uris() -> None:
    assert expand_uri_template("ipfs://fixed", 1) == "ipfs://fixed"
