"""Canonical asset types and address helpers."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from eth_utils import is_address, to_checksum_address

from ..errors import InvalidAddressError

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
SENTINEL_ADDRESS = "0x000000000000000000000000000000000000dead"


class TokenStandard(str, Enum):
    """Token standards the pipeline knows how to enumerate."""

    SINGLE_OWNER = "SingleOwner"  # ERC-721
    MULTI_BALANCE = "MultiBalance"  # ERC-1155
    ASSET_REGISTRY = "AssetRegistry"  # ERC-721 with packed on-chain traits
    UNKNOWN = "Unknown"

    @property
    def is_single_owner(self) -> bool:
        return self in (TokenStandard.SINGLE_OWNER, TokenStandard.ASSET_REGISTRY)

    @classmethod
    def from_indexer_type(cls, token_type: str | None) -> "TokenStandard":
        """Map an indexer token type label (ERC721/ERC1155) to a standard."""
        if not token_type:
            return cls.UNKNOWN
        label = token_type.upper()
        if label == "ERC1155":
            return cls.MULTI_BALANCE
        if label == "ERC721":
            return cls.SINGLE_OWNER
        return cls.UNKNOWN


def is_valid_address(address: Any) -> bool:
    """Check if a value is a 20-byte hex address."""
    if not isinstance(address, str):
        return False
    return is_address(address.strip())


def normalize_address(address: str) -> str:
    """Return the lowercase comparable form used for keys and comparisons."""
    if not is_valid_address(address):
        raise InvalidAddressError(f"Invalid address: {address!r}")
    return address.strip().lower()


def checksum_address(address: str) -> str:
    """Return the EIP-55 checksummed form for upstream calls."""
    return to_checksum_address(normalize_address(address))


def addresses_equal(left: str | None, right: str | None) -> bool:
    if not left or not right:
        return False
    return left.strip().lower() == right.strip().lower()


@dataclass(frozen=True)
class OwnedToken:
    """A token id held by an owner, as produced by enumeration."""

    token_id: int
    amount: int = 1


@dataclass(frozen=True)
class CollectionInfo:
    """Contract-level metadata, resolved once per contract."""

    name: str | None = None
    symbol: str | None = None
    price_usd: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "symbol": self.symbol, "price_usd": self.price_usd}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CollectionInfo":
        return cls(name=data.get("name"), symbol=data.get("symbol"), price_usd=data.get("price_usd"))


@dataclass(frozen=True)
class AssetRecord:
    """Canonical asset output unit."""

    token_id: str
    owner_address: str
    contract_address: str
    standard: TokenStandard
    uri: str = ""
    amount: str = "1"
    chain_id: int | None = None
    name: str | None = None
    symbol: str | None = None
    price_usd: float | None = None

    @property
    def dedup_key(self) -> tuple[str, str]:
        return (self.contract_address, self.token_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": "asset",
            "token_id": self.token_id,
            "owner_address": self.owner_address,
            "contract_address": self.contract_address,
            "standard": self.standard.value,
            "uri": self.uri,
            "amount": self.amount,
            "chain_id": self.chain_id,
            "name": self.name,
            "symbol": self.symbol,
            "price_usd": self.price_usd,
        }


@dataclass(frozen=True)
class AssetRegistryRecord(AssetRecord):
    """Asset record for the registry standard with decoded trait fields."""

    asset_type: int = 0
    definition: str = ""
    configuration: str = ""
    validator_address: str = ZERO_ADDRESS
    payment_token: str = ZERO_ADDRESS
    salt: str = "0"
    is_validated: bool = False
    degraded_fields: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(
            {
                "kind": "asset_registry",
                "asset_type": self.asset_type,
                "definition": self.definition,
                "configuration": self.configuration,
                "validator_address": self.validator_address,
                "payment_token": self.payment_token,
                "salt": self.salt,
                "is_validated": self.is_validated,
                "degraded_fields": list(self.degraded_fields),
            }
        )
        return data


def asset_from_dict(data: dict[str, Any]) -> AssetRecord:
    """Deserialize a cached asset record of either kind."""
    common = {
        "token_id": str(data["token_id"]),
        "owner_address": data["owner_address"],
        "contract_address": data["contract_address"],
        "standard": TokenStandard(data["standard"]),
        "uri": data.get("uri") or "",
        "amount": str(data.get("amount", "1")),
        "chain_id": data.get("chain_id"),
        "name": data.get("name"),
        "symbol": data.get("symbol"),
        "price_usd": data.get("price_usd"),
    }
    if data.get("kind") == "asset_registry":
        return AssetRegistryRecord(
            **common,
            asset_type=int(data.get("asset_type", 0)),
            definition=data.get("definition", ""),
            configuration=data.get("configuration", ""),
            validator_address=data.get("validator_address", ZERO_ADDRESS),
            payment_token=data.get("payment_token", ZERO_ADDRESS),
            salt=str(data.get("salt", "0")),
            is_validated=bool(data.get("is_validated", False)),
            degraded_fields=tuple(data.get("degraded_fields", ())),
        )
    return AssetRecord(**common)


def dedupe_records(records: list[AssetRecord]) -> list[AssetRecord]:
    """Drop repeated (contract, token id) pairs, keeping the first occurrence."""
    seen: set[tuple[str, str]] = set()
    unique: list[AssetRecord] = []
    for record in records:
        if record.dedup_key in seen:
            continue
        seen.add(record.dedup_key)
        unique.append(record)
    return unique


@dataclass(frozen=True)
class TransactionRecord:
    """Normalized transaction history entry."""

    id: str
    type: str
    asset_symbol: str
    amount: float
    currency: str
    date: str
    status: str
    hash: str
    timestamp: int
    from_address: str | None = None
    to_address: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "asset_symbol": self.asset_symbol,
            "amount": self.amount,
            "currency": self.currency,
            "date": self.date,
            "status": self.status,
            "hash": self.hash,
            "timestamp": self.timestamp,
            "from_address": self.from_address,
            "to_address": self.to_address,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TransactionRecord":
        return cls(
            id=data["id"],
            type=data["type"],
            asset_symbol=data["asset_symbol"],
            amount=float(data["amount"]),
            currency=data["currency"],
            date=data["date"],
            status=data["status"],
            hash=data["hash"],
            timestamp=int(data["timestamp"]),
            from_address=data.get("from_address"),
            to_address=data.get("to_address"),
        )


def epoch_ms_to_iso(timestamp_ms: int) -> str:
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=UTC).isoformat().replace("+00:00", "Z")


def format_units(raw: int, decimals: int) -> str:
    """Exact decimal rendering of an integer token amount, trailing zeros trimmed."""
    if decimals <= 0:
        return str(raw)
    whole, fraction = divmod(raw, 10**decimals)
    fraction_text = f"{fraction:0{decimals}d}".rstrip("0")
    return f"{whole}.{fraction_text}" if fraction_text else str(whole)


@dataclass(frozen=True)
class NativeBalance:
    """Native coin balance of an address; ``balance`` is rounded to 4 decimals."""

    chain_id: int
    address: str
    symbol: str
    balance: str
    balance_wei: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "chain_id": self.chain_id,
            "address": self.address,
            "symbol": self.symbol,
            "balance": self.balance,
            "balance_wei": self.balance_wei,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "NativeBalance":
        return cls(
            chain_id=int(data["chain_id"]),
            address=data["address"],
            symbol=data["symbol"],
            balance=data["balance"],
            balance_wei=data["balance_wei"],
        )


@dataclass(frozen=True)
class TokenBalance:
    """ERC-20 balance of an owner, with the token's display metadata."""

    chain_id: int
    token_address: str
    owner_address: str
    symbol: str
    name: str
    decimals: int
    balance: str
    balance_raw: str

    @property
    def is_zero(self) -> bool:
        return self.balance_raw == "0"

    def to_dict(self) -> dict[str, Any]:
        return {
            "chain_id": self.chain_id,
            "token_address": self.token_address,
            "owner_address": self.owner_address,
            "symbol": self.symbol,
            "name": self.name,
            "decimals": self.decimals,
            "balance": self.balance,
            "balance_raw": self.balance_raw,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TokenBalance":
        return cls(
            chain_id=int(data["chain_id"]),
            token_address=data["token_address"],
            owner_address=data["owner_address"],
            symbol=data["symbol"],
            name=data["name"],
            decimals=int(data["decimals"]),
            balance=data["balance"],
            balance_raw=data["balance_raw"],
        )
