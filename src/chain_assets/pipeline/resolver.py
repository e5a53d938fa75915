"""Token metadata and registry trait resolution."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import replace
from typing import Any

from ..clients import abi
from ..clients.chain_types import (
    ZERO_ADDRESS,
    AssetRecord,
    AssetRegistryRecord,
    CollectionInfo,
    OwnedToken,
    TokenStandard,
    normalize_address,
)
from ..clients.pricing_client import PricingClient
from ..clients.rpc_client import RetryingRPCClient
from ..errors import AbiDecodeError, RPCError
from ..utils.cache import CacheKeys, CacheManager

logger = logging.getLogger(__name__)


def default_definition(token_id: int) -> str:
    return f"Asset #{token_id}"


def expand_uri_template(uri: str, token_id: int) -> str:
    """Substitute ``{id}`` with the 64-hex-digit token id (ERC-1155 metadata URI)."""
    return uri.replace("{id}", f"{token_id:064x}")


def _trait_decoder(field: str, abi_type: str, convert: Callable[[Any], Any] = lambda value: value):
    def decode(raw: bytes) -> dict[str, Any]:
        # an unset trait comes back as empty bytes and keeps its default
        if not raw:
            return {}
        return {field: convert(abi.decode_value(abi_type, raw))}

    return decode


def _decode_validation(raw: tuple) -> dict[str, Any]:
    is_validated = bool(raw[0])
    return {"is_validated": is_validated, "validator_address": raw[1].lower() if is_validated else ZERO_ADDRESS}


class MetadataResolver:
    """Builds canonical records for enumerated tokens.

    A missing or failing URI leaves ``uri`` empty. For registry tokens every
    trait field is fetched concurrently; a field that fails to fetch or decode
    falls back to its default and is listed in ``degraded_fields``.
    Collection metadata and price are resolved once per contract.
    """

    def __init__(
        self,
        rpc_client: RetryingRPCClient,
        pricing_client: PricingClient | None = None,
        cache_manager: CacheManager | None = None,
    ):
        self.rpc_client = rpc_client
        self.pricing_client = pricing_client
        self.cache_manager = cache_manager
        self._stats = {"resolved": 0, "empty_uris": 0, "degraded_records": 0}

    async def resolve(
        self,
        token: OwnedToken | int,
        owner_address: str,
        contract_address: str,
        standard: TokenStandard,
        chain_id: int,
        collection: CollectionInfo | None = None,
    ) -> AssetRecord:
        if isinstance(token, int):
            token = OwnedToken(token_id=token)
        if standard is TokenStandard.UNKNOWN:
            raise ValueError("Cannot resolve a token of unknown standard")

        owner = normalize_address(owner_address)
        contract = normalize_address(contract_address)
        collection = collection or CollectionInfo()

        base = {
            "token_id": str(token.token_id),
            "owner_address": owner,
            "contract_address": contract,
            "standard": standard,
            "amount": str(token.amount) if standard is TokenStandard.MULTI_BALANCE else "1",
            "chain_id": chain_id,
            "name": collection.name,
            "symbol": collection.symbol,
            "price_usd": collection.price_usd,
        }

        if standard is TokenStandard.ASSET_REGISTRY:
            uri, traits = await asyncio.gather(
                self._resolve_uri(chain_id, contract, token.token_id, standard),
                self._resolve_registry_traits(chain_id, contract, token.token_id),
            )
            record = AssetRegistryRecord(uri=uri, **base, **traits)
        else:
            uri = await self._resolve_uri(chain_id, contract, token.token_id, standard)
            record = AssetRecord(uri=uri, **base)

        self._stats["resolved"] += 1
        return record

    async def _resolve_uri(self, chain_id: int, contract: str, token_id: int, standard: TokenStandard) -> str:
        method = abi.URI if standard is TokenStandard.MULTI_BALANCE else abi.TOKEN_URI
        try:
            uri = await self.rpc_client.call(chain_id, contract, method, (token_id,))
        except RPCError as e:
            self._stats["empty_uris"] += 1
            logger.warning(f"⚠️ No URI for token {token_id} in {contract} on chain {chain_id}: {e}")
            return ""

        uri = (uri or "").strip()
        if standard is TokenStandard.MULTI_BALANCE:
            uri = expand_uri_template(uri, token_id)
        return uri

    async def _resolve_registry_traits(self, chain_id: int, contract: str, token_id: int) -> dict[str, Any]:
        def call(method, *args) -> Awaitable:
            return self.rpc_client.call(chain_id, contract, method, args)

        fields = {
            "asset_type": call(abi.GET_TRAIT_VALUE, token_id, abi.TRAIT_ASSET_TYPE),
            "definition": call(abi.GET_TRAIT_VALUE, token_id, abi.TRAIT_DEFINITION),
            "configuration": call(abi.GET_TRAIT_VALUE, token_id, abi.TRAIT_CONFIGURATION),
            "validation": call(abi.GET_VALIDATION_STATUS, token_id),
            "payment_token": call(abi.PAYMENT_TOKEN, token_id),
            "salt": call(abi.SALT, token_id),
        }
        outcomes = dict(zip(fields, await asyncio.gather(*fields.values(), return_exceptions=True), strict=True))

        traits: dict[str, Any] = {
            "asset_type": 0,
            "definition": default_definition(token_id),
            "configuration": "",
            "validator_address": ZERO_ADDRESS,
            "payment_token": ZERO_ADDRESS,
            "salt": "0",
            "is_validated": False,
        }
        degraded: list[str] = []

        decoders = {
            "asset_type": _trait_decoder("asset_type", "uint8", int),
            "definition": _trait_decoder("definition", "string"),
            "configuration": _trait_decoder("configuration", "string"),
            "validation": _decode_validation,
            "payment_token": lambda raw: {"payment_token": raw.lower()},
            "salt": lambda raw: {"salt": str(raw)},
        }

        for name, outcome in outcomes.items():
            if isinstance(outcome, RPCError):
                degraded.append(name)
                logger.debug(f"🔍 Trait {name} unavailable for token {token_id} in {contract}: {outcome}")
                continue
            if isinstance(outcome, BaseException):
                raise outcome
            try:
                traits.update(decoders[name](outcome))
            except (AbiDecodeError, IndexError, TypeError, AttributeError) as e:
                degraded.append(name)
                logger.debug(f"🔍 Trait {name} undecodable for token {token_id} in {contract}: {e}")

        if not traits["definition"]:
            traits["definition"] = default_definition(token_id)

        if degraded:
            self._stats["degraded_records"] += 1
            logger.warning(
                f"⚠️ Token {token_id} in {contract} on chain {chain_id} "
                f"resolved with defaults for: {', '.join(degraded)}"
            )
        traits["degraded_fields"] = tuple(degraded)
        return traits

    async def resolve_collection(self, contract_address: str, chain_id: int) -> CollectionInfo:
        """Name, symbol and price for a contract; best effort, cached per contract."""
        contract = normalize_address(contract_address)
        if self.cache_manager is None:
            return CollectionInfo.from_dict(await self._fetch_collection(contract, chain_id))

        data = await self.cache_manager.get_or_fetch(
            CacheKeys.collection(chain_id, contract),
            self.cache_manager.config.ttl_collection,
            lambda: self._fetch_collection(contract, chain_id),
        )
        return CollectionInfo.from_dict(data)

    async def _fetch_collection(self, contract: str, chain_id: int) -> dict[str, Any]:
        async def optional(coro: Awaitable) -> Any:
            try:
                return await coro
            except RPCError as e:
                logger.debug(f"🔍 Collection field unavailable for {contract}: {e}")
                return None

        price_lookup = (
            self.pricing_client.get_collection_price_usd(chain_id, contract)
            if self.pricing_client
            else asyncio.sleep(0, result=None)
        )
        name, symbol, price = await asyncio.gather(
            optional(self.rpc_client.call(chain_id, contract, abi.NAME)),
            optional(self.rpc_client.call(chain_id, contract, abi.SYMBOL)),
            price_lookup,
        )
        return CollectionInfo(name=name or None, symbol=symbol or None, price_usd=price).to_dict()

    async def price_records(self, records: list[AssetRecord], chain_id: int) -> list[AssetRecord]:
        """Attach USD collection prices to indexed records, one lookup per contract."""
        if self.pricing_client is None or not records:
            return records

        contracts = sorted({record.contract_address for record in records})
        prices = await asyncio.gather(
            *(self.pricing_client.get_collection_price_usd(chain_id, contract) for contract in contracts)
        )
        by_contract = dict(zip(contracts, prices, strict=True))
        return [replace(record, price_usd=by_contract[record.contract_address]) for record in records]

    def get_stats(self) -> dict[str, int]:
        return dict(self._stats)
