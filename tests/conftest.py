"""Shared fixtures and fakes for unit tests."""

import inspect
from collections.abc import Callable
from typing import Any

import pytest

from chain_assets.clients.abi import ContractMethod
from chain_assets.clients.chain_types import OwnedToken
from chain_assets.clients.indexer_client import NFTPage
from chain_assets.config import CacheBackend, CacheConfig, PipelineConfig
from chain_assets.errors import ContractRevertError, IndexerUnavailableError
from chain_assets.utils.cache import CacheManager, MemoryCache

OWNER = "0x742d35cc6634c0532925a3b8d40e3f337abc7b86"
OTHER_OWNER = "0x8ba1f109551bd432803012645ac136ddd64dba72"
CONTRACT = "0x1111111111111111111111111111111111111111"
OTHER_CONTRACT = "0x2222222222222222222222222222222222222222"


class FakeClock:
    """Controllable replacement for ``time.time``."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRPCClient:
    """Contract-call fake dispatching on method signature.

    ``handlers`` maps a signature such as ``"balanceOf(address)"`` to a value,
    an exception instance, or a callable ``(contract, args)`` (sync or async).
    Unknown signatures revert, like a contract without the method.
    ``rpc_results`` answers raw ``request`` calls by JSON-RPC method name.
    """

    def __init__(self, handlers: dict[str, Any] | None = None, rpc_results: dict[str, Any] | None = None):
        self.handlers = handlers or {}
        self.rpc_results = rpc_results or {}
        self.requests: list[tuple[int, str, list]] = []
        self.calls: list[tuple[int, str, str, tuple]] = []
        self.chain_errors: dict[int, Exception] = {}
        self.healthy = True

    async def call(self, chain_id: int, contract_address: str, method: ContractMethod, args=(), block="latest"):
        args = tuple(args)
        self.calls.append((chain_id, contract_address.lower(), method.signature, args))

        if chain_id in self.chain_errors:
            raise self.chain_errors[chain_id]
        if method.signature not in self.handlers:
            raise ContractRevertError(f"execution reverted: {method.signature}")

        handler = self.handlers[method.signature]
        if isinstance(handler, Exception):
            raise handler
        if callable(handler):
            result = handler(contract_address.lower(), args)
            if inspect.isawaitable(result):
                result = await result
            return result
        return handler

    async def request(self, chain_id: int, rpc_method: str, params: list, timeout: float | None = None):
        self.requests.append((chain_id, rpc_method, list(params)))
        if chain_id in self.chain_errors:
            raise self.chain_errors[chain_id]
        result = self.rpc_results[rpc_method]
        if isinstance(result, Exception):
            raise result
        return result

    def calls_to(self, signature: str) -> list[tuple]:
        return [call for call in self.calls if call[2] == signature]

    async def health_check(self, chain_id: int) -> bool:
        return self.healthy

    def get_stats(self) -> dict[str, Any]:
        return {"calls": len(self.calls)}

    async def close(self) -> None:
        pass


class FakeIndexer:
    """Indexer fake; unavailable unless tokens, pages or transfers are set."""

    def __init__(
        self,
        owned: dict[tuple[str, str], list[OwnedToken]] | None = None,
        pages: dict[tuple[int, str], NFTPage] | None = None,
        transfers: dict[tuple[int, str, str], list] | None = None,
        error: Exception | None = None,
        available_chains: set[int] | None = None,
    ):
        self.owned = owned or {}
        self.pages = pages or {}
        self.transfers = transfers or {}
        self.error = error
        self.available_chains = available_chains if available_chains is not None else {1}
        self.requests: list[tuple] = []
        self.transfer_errors: dict[str, Exception] = {}

    def is_available(self, chain_id: int, nft: bool = True) -> bool:
        return chain_id in self.available_chains

    async def get_owned_tokens(self, chain_id, owner, contract, limit=None):
        self.requests.append(("owned", chain_id, owner, contract))
        if self.error:
            raise self.error
        if (owner, contract) not in self.owned:
            raise IndexerUnavailableError("not indexed")
        return self.owned[(owner, contract)]

    async def get_nfts_for_owner(self, chain_id, owner, contract_addresses=None, page_key=None, page_size=None):
        self.requests.append(("page", chain_id, owner, page_key))
        if self.error:
            raise self.error
        return self.pages.get((chain_id, owner), NFTPage())

    async def get_asset_transfers(self, chain_id, address, direction="from", max_count=100, categories=None):
        self.requests.append(("transfers", chain_id, address.lower(), direction))
        if address.lower() in self.transfer_errors:
            raise self.transfer_errors[address.lower()]
        return self.transfers.get((chain_id, address.lower(), direction), [])

    def get_stats(self) -> dict[str, Any]:
        return {"requests": len(self.requests)}

    async def close(self) -> None:
        pass


class FakePricing:
    def __init__(self, price: float | None = None):
        self.price = price
        self.lookups = 0

    async def get_collection_price_usd(self, chain_id: int, contract_address: str) -> float | None:
        self.lookups += 1
        return self.price

    def get_stats(self) -> dict[str, Any]:
        return {"lookups": self.lookups}

    async def close(self) -> None:
        pass


def counting(func: Callable) -> Callable:
    """Wrap a handler and count its invocations in ``wrapper.count``."""

    def wrapper(*args):
        wrapper.count += 1
        return func(*args)

    wrapper.count = 0
    return wrapper


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache_config() -> CacheConfig:
    return CacheConfig(backend=CacheBackend.MEMORY, key_prefix="test:")


@pytest.fixture
def memory_cache(clock: FakeClock) -> MemoryCache:
    return MemoryCache(default_ttl=60, max_entries=1000, key_prefix="test:", clock=clock)


@pytest.fixture
def cache_manager(cache_config: CacheConfig, memory_cache: MemoryCache) -> CacheManager:
    return CacheManager(cache_config, cache=memory_cache)


@pytest.fixture
def pipeline_config() -> PipelineConfig:
    return PipelineConfig(
        max_workers=4,
        enumeration_bound=100,
        multi_balance_id_range=100,
        window_size=10,
        supply_scan_limit=1000,
        registry_contracts={},
    )
