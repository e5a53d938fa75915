"""Tests for bounded token enumeration."""

import asyncio

import pytest
from conftest import CONTRACT, OTHER_OWNER, OWNER, FakeIndexer, FakeRPCClient

from chain_assets.clients.chain_types import OwnedToken, TokenStandard
from chain_assets.config import PipelineConfig
from chain_assets.errors import IndexerError, ServiceUnavailableError
from chain_assets.pipeline import TokenEnumerator


def _enumerable_contract(owned: int) -> FakeRPCClient:
    """Owner-enumerable contract where the owner's i-th token id is 1000 + i."""
    return FakeRPCClient(
        {
            "balanceOf(address)": owned,
            "tokenOfOwnerByIndex(address,uint256)": lambda contract, args: 1000 + args[1],
        }
    )


class TestTokenEnumerator:
    @pytest.mark.asyncio
    async def test_enumeration_is_bounded(self, pipeline_config: PipelineConfig) -> None:
        """An owner of 500 tokens yields exactly the bound, in index order."""
        rpc = _enumerable_contract(500)
        enumerator = TokenEnumerator(rpc, pipeline_config)

        tokens = await enumerator.enumerate(OWNER, CONTRACT, TokenStandard.SINGLE_OWNER, 1, bound=100)

        assert len(tokens) == 100
        assert [token.token_id for token in tokens] == list(range(1000, 1100))
        assert len(rpc.calls_to("tokenOfOwnerByIndex(address,uint256)")) == 100

    @pytest.mark.asyncio
    async def test_default_bound_from_config(self) -> None:
        config = PipelineConfig(enumeration_bound=5, window_size=2)
        enumerator = TokenEnumerator(_enumerable_contract(20), config)

        tokens = await enumerator.enumerate(OWNER, CONTRACT, TokenStandard.ASSET_REGISTRY, 1)

        assert len(tokens) == 5

    @pytest.mark.asyncio
    async def test_zero_bound_reads_nothing(self, pipeline_config: PipelineConfig) -> None:
        rpc = _enumerable_contract(20)
        enumerator = TokenEnumerator(rpc, pipeline_config)

        assert await enumerator.enumerate(OWNER, CONTRACT, TokenStandard.SINGLE_OWNER, 1, bound=0) == []
        assert rpc.calls == []

        with pytest.raises(ValueError):
            await enumerator.enumerate(OWNER, CONTRACT, TokenStandard.SINGLE_OWNER, 1, bound=-1)

    @pytest.mark.asyncio
    async def test_unknown_standard_yields_nothing(self, pipeline_config: PipelineConfig) -> None:
        rpc = _enumerable_contract(3)
        enumerator = TokenEnumerator(rpc, pipeline_config)

        assert await enumerator.enumerate(OWNER, CONTRACT, TokenStandard.UNKNOWN, 1) == []
        assert rpc.calls == []

    @pytest.mark.asyncio
    async def test_empty_balance(self, pipeline_config: PipelineConfig) -> None:
        rpc = _enumerable_contract(0)

        tokens = await TokenEnumerator(rpc, pipeline_config).enumerate(OWNER, CONTRACT, TokenStandard.SINGLE_OWNER, 1)

        assert tokens == []
        assert rpc.calls_to("tokenOfOwnerByIndex(address,uint256)") == []

    @pytest.mark.asyncio
    async def test_failed_index_is_skipped(self, pipeline_config: PipelineConfig) -> None:
        def token_at(contract, args):
            if args[1] == 2:
                raise ServiceUnavailableError("flaky node")
            return 1000 + args[1]

        rpc = FakeRPCClient({"balanceOf(address)": 4, "tokenOfOwnerByIndex(address,uint256)": token_at})
        enumerator = TokenEnumerator(rpc, pipeline_config)

        tokens = await enumerator.enumerate(OWNER, CONTRACT, TokenStandard.SINGLE_OWNER, 1)

        assert [token.token_id for token in tokens] == [1000, 1001, 1003]
        assert enumerator.get_stats()["index_errors"] == 1

    @pytest.mark.asyncio
    async def test_supply_scan_when_not_owner_enumerable(self, pipeline_config: PipelineConfig) -> None:
        """Without tokenOfOwnerByIndex, walk the supply and match owners."""
        rpc = FakeRPCClient(
            {
                "balanceOf(address)": 10,
                "totalSupply()": 30,
                "tokenByIndex(uint256)": lambda contract, args: args[0] + 1,
                "ownerOf(uint256)": lambda contract, args: OWNER if args[0] % 3 == 0 else OTHER_OWNER,
            }
        )

        tokens = await TokenEnumerator(rpc, pipeline_config).enumerate(OWNER, CONTRACT, TokenStandard.SINGLE_OWNER, 1)

        assert [token.token_id for token in tokens] == [3, 6, 9, 12, 15, 18, 21, 24, 27, 30]

    @pytest.mark.asyncio
    async def test_supply_scan_respects_scan_limit(self) -> None:
        config = PipelineConfig(supply_scan_limit=6, window_size=3)
        rpc = FakeRPCClient(
            {
                "balanceOf(address)": 10,
                "totalSupply()": 30,
                "tokenByIndex(uint256)": lambda contract, args: args[0] + 1,
                "ownerOf(uint256)": OWNER,
            }
        )

        tokens = await TokenEnumerator(rpc, config).enumerate(OWNER, CONTRACT, TokenStandard.SINGLE_OWNER, 1)

        assert [token.token_id for token in tokens] == [1, 2, 3, 4, 5, 6]
        assert len(rpc.calls_to("tokenByIndex(uint256)")) == 6

    @pytest.mark.asyncio
    async def test_multi_balance_scans_id_range(self, pipeline_config: PipelineConfig) -> None:
        balances = {3: 5, 42: 1}
        rpc = FakeRPCClient({"balanceOf(address,uint256)": lambda contract, args: balances.get(args[1], 0)})

        tokens = await TokenEnumerator(rpc, pipeline_config).enumerate(OWNER, CONTRACT, TokenStandard.MULTI_BALANCE, 1)

        assert tokens == [OwnedToken(token_id=3, amount=5), OwnedToken(token_id=42, amount=1)]
        assert len(rpc.calls_to("balanceOf(address,uint256)")) == 100

    @pytest.mark.asyncio
    async def test_window_limits_concurrency(self, pipeline_config: PipelineConfig) -> None:
        active = 0
        peak = 0

        async def balance_of(contract, args):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0)
            active -= 1
            return 0

        rpc = FakeRPCClient({"balanceOf(address,uint256)": balance_of})

        await TokenEnumerator(rpc, pipeline_config).enumerate(OWNER, CONTRACT, TokenStandard.MULTI_BALANCE, 1)

        assert peak == pipeline_config.window_size

    @pytest.mark.asyncio
    async def test_indexer_answer_skips_onchain(self, pipeline_config: PipelineConfig) -> None:
        indexer = FakeIndexer(owned={(OWNER, CONTRACT): [OwnedToken(token_id=i) for i in range(150)]})
        rpc = _enumerable_contract(150)
        enumerator = TokenEnumerator(rpc, pipeline_config, indexer)

        tokens = await enumerator.enumerate(OWNER, CONTRACT, TokenStandard.SINGLE_OWNER, 1, bound=100)

        assert len(tokens) == 100
        assert rpc.calls == []
        assert enumerator.get_stats()["indexer_hits"] == 1

    @pytest.mark.asyncio
    async def test_unindexed_chain_falls_back_silently(self, pipeline_config: PipelineConfig) -> None:
        indexer = FakeIndexer(available_chains=set())
        enumerator = TokenEnumerator(_enumerable_contract(2), pipeline_config, indexer)

        tokens = await enumerator.enumerate(OWNER, CONTRACT, TokenStandard.SINGLE_OWNER, 100)

        assert [token.token_id for token in tokens] == [1000, 1001]
        assert indexer.requests == []

    @pytest.mark.asyncio
    async def test_indexer_failure_falls_back_onchain(self, pipeline_config: PipelineConfig) -> None:
        indexer = FakeIndexer(error=IndexerError("HTTP 500"))
        enumerator = TokenEnumerator(_enumerable_contract(2), pipeline_config, indexer)

        tokens = await enumerator.enumerate(OWNER, CONTRACT, TokenStandard.SINGLE_OWNER, 1)

        assert [token.token_id for token in tokens] == [1000, 1001]
        stats = enumerator.get_stats()
        assert stats["indexer_fallbacks"] == 1
        assert stats["onchain_enumerations"] == 1
