"""Basic usage examples for chain_assets.

This file demonstrates:
- Listing the tokens an address holds in one contract
- A multi-chain portfolio with per-chain error annotations
- Batch transaction history
- Health checks and configuration
- Native and ERC-20 balances

Set ALCHEMY_API_KEY (and optionally <CHAIN>_RPC_URL overrides) before running.
"""

import asyncio
import logging

from chain_assets import (
    AggregateOptions,
    AggregateRequest,
    BatchBalanceQuery,
    BatchTransactionsQuery,
    create_application,
    get_config,
)
from chain_assets.errors import ChainAssetsError, InvalidAddressError
from chain_assets.utils import setup_logging

logger = logging.getLogger(__name__)

WALLET = "0xd8dA6BF26964aF9D7eEd9e03E53415D37aA96045"
COLLECTION = "0xBC4CA0EdA7647A8aB7C2061c2E118A18a936f13D"
USDC = "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"


async def example_1_single_collection():
    """Example 1: Tokens held in one collection on mainnet."""

    print("🖼️ Example 1: Single Collection")
    print("=" * 50)

    async with create_application() as app:
        try:
            records = await app.get_assets(1, WALLET, COLLECTION, limit=10)
        except InvalidAddressError as e:
            print(f"❌ Invalid address: {e}")
            return []
        except ChainAssetsError as e:
            print(f"❌ Lookup failed: {e}")
            return []

        print(f"✅ Found {len(records)} tokens")
        for record in records:
            price = f"${record.price_usd:,.2f}" if record.price_usd else "n/a"
            print(f"   #{record.token_id} {record.symbol or ''} floor {price} {record.uri or '(no uri)'}")
        return records


async def example_2_portfolio():
    """Example 2: Whole-wallet view across several chains."""

    print("\n🌐 Example 2: Multi-Chain Portfolio")
    print("=" * 50)

    async with create_application() as app:
        results = await app.get_portfolio(
            [AggregateRequest(address=WALLET, chain_ids=[1, 8453, 137])],
            AggregateOptions(page_size=20),
        )

        for address, chains in results.items():
            print(f"📊 {address}")
            for chain_id, chain_assets in chains.items():
                if chain_assets.error:
                    print(f"   ⚠️ chain {chain_id}: {chain_assets.error}")
                    continue
                source = "cache" if chain_assets.cached else "upstream"
                print(f"   ✅ chain {chain_id}: {len(chain_assets.records)} of {chain_assets.total_count} ({source})")
        return results


async def example_3_transactions():
    """Example 3: Recent transfers for several chains in one batch."""

    print("\n📋 Example 3: Transaction History")
    print("=" * 50)

    async with create_application() as app:
        results = await app.get_transactions_batch(
            [BatchTransactionsQuery(chain_id=chain_id, owner_address=WALLET, limit=5) for chain_id in (1, 8453)]
        )

        for result in results:
            if result.error:
                print(f"   ❌ chain {result.chain_id}: {result.error}")
                continue
            print(f"   chain {result.chain_id}:")
            for tx in result.transactions:
                print(f"     {tx.date} {tx.type:<8} {tx.amount} {tx.asset_symbol}")
        return results


async def example_4_health_and_config():
    """Example 4: Configuration and service health."""

    print("\n⚙️ Example 4: Health and Configuration")
    print("=" * 50)

    config = get_config()
    print(f"   Cache backend: {config.cache.backend.value}")
    print(f"   Workers: {config.pipeline.max_workers}, enumeration bound: {config.pipeline.enumeration_bound}")
    print(f"   Indexer configured: {bool(config.indexer.api_key)}")

    async with create_application(config) as app:
        health = await app.health_check([1, 8453])
        for service, is_healthy in health.items():
            print(f"   {'✅' if is_healthy else '❌'} {service}")
        return health


async def example_5_balances():
    """Example 5: Native and ERC-20 balances across chains."""

    print("\n💰 Example 5: Balances")
    print("=" * 50)

    async with create_application() as app:
        natives = await app.get_balances_batch(
            [BatchBalanceQuery(chain_id=chain_id, address=WALLET) for chain_id in (1, 8453)]
        )
        for result in natives:
            if result.error:
                print(f"   ❌ chain {result.chain_id}: {result.error}")
            else:
                print(f"   chain {result.chain_id}: {result.balance.balance} {result.balance.symbol}")

        usdc = await app.get_token_balance(1, USDC, WALLET)
        print(f"   🪙 {usdc.balance} {usdc.symbol}" if usdc else "   🪙 no USDC")
        return natives, usdc


async def run_all_examples():
    setup_logging(get_config().log_level)
    examples = (
        example_1_single_collection,
        example_2_portfolio,
        example_3_transactions,
        example_4_health_and_config,
        example_5_balances,
    )
    for example in examples:
        try:
            await example()
        except Exception as e:
            logger.error(f"❌ {example.__name__} failed: {e}")


if __name__ == "__main__":
    asyncio.run(run_all_examples())
