"""Pydantic models for upstream API response shapes.

Upstream payloads are validated here and converted to the canonical types in
``chain_types``; nothing past the client boundary sees raw JSON.
"""

from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from .chain_types import (
    AssetRecord,
    TokenStandard,
    TransactionRecord,
    addresses_equal,
    epoch_ms_to_iso,
)

_UNSUPPORTED_TOKEN_TYPES = {"NO_SUPPORTED_NFT_STANDARD", "NOT_A_CONTRACT", "UNKNOWN"}


class _UpstreamModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


# JSON-RPC


class JsonRpcError(_UpstreamModel):
    code: int | None = None
    message: str = ""
    data: Any = None


class JsonRpcResponse(_UpstreamModel):
    jsonrpc: str = "2.0"
    id: int | str | None = None
    result: Any = None
    error: JsonRpcError | None = None


# NFT API v3: getNFTsForOwner


class OpenSeaMetadata(_UpstreamModel):
    collection_name: str | None = Field(default=None, alias="collectionName")


class NFTContract(_UpstreamModel):
    address: str
    name: str | None = None
    symbol: str | None = None
    token_type: str | None = Field(default=None, alias="tokenType")
    opensea_metadata: OpenSeaMetadata | None = Field(
        default=None,
        validation_alias=AliasChoices("openSeaMetadata", "openseaMetadata"),
    )


class NFTRaw(_UpstreamModel):
    token_uri: str | None = Field(default=None, alias="tokenUri")
    metadata: dict[str, Any] | str | None = None


class OwnedNFT(_UpstreamModel):
    contract: NFTContract
    token_id: str = Field(alias="tokenId")
    token_type: str | None = Field(default=None, alias="tokenType")
    name: str | None = None
    token_uri: str | None = Field(default=None, alias="tokenUri")
    balance: str | None = None
    raw: NFTRaw | None = None

    @field_validator("token_uri", mode="before")
    @classmethod
    def _flatten_token_uri(cls, value: Any) -> Any:
        # v2 responses carry {"raw": ..., "gateway": ...}
        if isinstance(value, dict):
            return value.get("raw") or value.get("gateway")
        return value

    @property
    def standard(self) -> TokenStandard:
        return TokenStandard.from_indexer_type(self.contract.token_type or self.token_type)

    @property
    def is_supported(self) -> bool:
        token_type = (self.contract.token_type or self.token_type or "").upper()
        return token_type not in _UNSUPPORTED_TOKEN_TYPES and self.standard is not TokenStandard.UNKNOWN

    def token_id_int(self) -> int:
        return int(self.token_id, 16) if self.token_id.startswith("0x") else int(self.token_id)

    def to_record(self, owner_address: str, chain_id: int) -> AssetRecord:
        """Convert to the canonical record; amount is 1 unless a balance is reported."""
        standard = self.standard
        amount = "1"
        if standard is TokenStandard.MULTI_BALANCE and self.balance:
            amount = str(int(self.balance))
        raw_uri = self.raw.token_uri if self.raw else None
        opensea_name = self.contract.opensea_metadata.collection_name if self.contract.opensea_metadata else None
        return AssetRecord(
            token_id=str(self.token_id_int()),
            owner_address=owner_address.lower(),
            contract_address=self.contract.address.lower(),
            standard=standard,
            uri=self.token_uri or raw_uri or "",
            amount=amount,
            chain_id=chain_id,
            name=self.contract.name or opensea_name or self.name,
            symbol=self.contract.symbol,
        )


class OwnedNFTsPage(_UpstreamModel):
    owned_nfts: list[OwnedNFT] = Field(default_factory=list, alias="ownedNfts")
    total_count: int | None = Field(default=None, alias="totalCount")
    page_key: str | None = Field(default=None, alias="pageKey")


# alchemy_getAssetTransfers


class RawContract(_UpstreamModel):
    address: str | None = None
    decimal: str | None = None
    symbol: str | None = None


class TransferMetadata(_UpstreamModel):
    block_timestamp: datetime | None = Field(default=None, alias="blockTimestamp")


class AssetTransfer(_UpstreamModel):
    block_num: str = Field(default="0x0", alias="blockNum")
    hash: str
    from_address: str = Field(default="", alias="from")
    to_address: str | None = Field(default=None, alias="to")
    value: float | None = None
    asset: str | None = None
    category: str
    raw_contract: RawContract | None = Field(default=None, alias="rawContract")
    metadata: TransferMetadata | None = None

    @field_validator("category")
    @classmethod
    def _upper_category(cls, value: str) -> str:
        return value.upper()

    def timestamp_ms(self, default_ms: int) -> int:
        if self.metadata and self.metadata.block_timestamp:
            return int(self.metadata.block_timestamp.timestamp() * 1000)
        return default_ms

    def transaction_type(self, address: str) -> str:
        """Classify the transfer from the point of view of ``address``."""
        is_from = addresses_equal(self.from_address, address)
        is_to = addresses_equal(self.to_address, address)
        value = self.value or 0

        if is_from and value > 0:
            return "withdraw"
        if is_to and value > 0:
            return "deposit"
        if self.category in ("ERC721", "ERC1155"):
            return "mint" if is_to else "transfer"
        if self.category == "INTERNAL":
            return "contract"
        return "transfer"

    def to_record(self, chain_id: int, address: str, default_ms: int) -> TransactionRecord:
        symbol = "ETH"
        if self.raw_contract and self.raw_contract.symbol:
            symbol = self.raw_contract.symbol
        elif self.category in ("ERC20", "ERC721", "ERC1155"):
            symbol = self.asset or "TOKEN"

        timestamp = self.timestamp_ms(default_ms)
        return TransactionRecord(
            id=f"{chain_id}-{self.hash}",
            type=self.transaction_type(address),
            asset_symbol=symbol,
            amount=float(self.value or 0),
            currency=symbol,
            date=epoch_ms_to_iso(timestamp),
            status="completed",
            hash=self.hash,
            timestamp=timestamp,
            from_address=self.from_address or None,
            to_address=self.to_address,
        )


class AssetTransfersResult(_UpstreamModel):
    transfers: list[AssetTransfer] = Field(default_factory=list)
    page_key: str | None = Field(default=None, alias="pageKey")


# Pricing


class MarketplaceFloor(_UpstreamModel):
    floor_price: float | None = Field(default=None, alias="floorPrice")
    price_currency: str | None = Field(default=None, alias="priceCurrency")


class FloorPriceResponse(_UpstreamModel):
    open_sea: MarketplaceFloor | None = Field(default=None, alias="openSea")
    looks_rare: MarketplaceFloor | None = Field(default=None, alias="looksRare")

    def best_floor(self) -> float | None:
        """OpenSea first, LooksRare second; zero means no floor."""
        for marketplace in (self.open_sea, self.looks_rare):
            if marketplace and marketplace.floor_price:
                return marketplace.floor_price
        return None


class TokenPrice(_UpstreamModel):
    currency: str
    value: str


class SymbolPrice(_UpstreamModel):
    symbol: str | None = None
    prices: list[TokenPrice] = Field(default_factory=list)
    error: Any = None

    def usd_price(self) -> float | None:
        if self.error or not self.prices:
            return None
        entry = next((price for price in self.prices if price.currency.upper() == "USD"), self.prices[0])
        try:
            value = float(entry.value)
        except ValueError:
            return None
        return value if value > 0 else None


class SymbolPricesResponse(_UpstreamModel):
    data: list[SymbolPrice] = Field(default_factory=list)
