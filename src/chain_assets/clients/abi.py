"""Contract method descriptors and ABI encoding helpers."""

from dataclasses import dataclass, field
from typing import Any

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError, EncodingError
from eth_utils import function_signature_to_4byte_selector, keccak

from ..errors import AbiDecodeError


@dataclass(frozen=True)
class ContractMethod:
    """A read-only contract method: name, input types and output types."""

    name: str
    inputs: tuple[str, ...] = field(default_factory=tuple)
    outputs: tuple[str, ...] = field(default_factory=tuple)

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(self.inputs)})"

    @property
    def selector(self) -> bytes:
        return function_signature_to_4byte_selector(self.signature)

    def encode_call(self, args: tuple | list = ()) -> str:
        """Return the hex calldata for ``eth_call``."""
        if len(args) != len(self.inputs):
            raise ValueError(f"{self.signature} expects {len(self.inputs)} arguments, got {len(args)}")
        try:
            payload = encode(list(self.inputs), list(args)) if self.inputs else b""
        except EncodingError as e:
            raise ValueError(f"Cannot encode arguments for {self.signature}: {e}") from e
        return "0x" + (self.selector + payload).hex()

    def decode_result(self, raw: Any) -> Any:
        """Decode return data; a single output is unwrapped."""
        if not self.outputs:
            return None
        data = _hex_to_bytes(raw, self.signature)
        if not data:
            raise AbiDecodeError(f"Empty return data for {self.signature}")
        try:
            values = decode(list(self.outputs), data)
        except (DecodingError, OverflowError, ValueError) as e:
            raise AbiDecodeError(f"Failed to decode {self.signature} result: {e}") from e
        if len(self.outputs) == 1:
            return values[0]
        return tuple(values)


def _hex_to_bytes(raw: Any, context: str) -> bytes:
    if isinstance(raw, bytes | bytearray):
        return bytes(raw)
    if not isinstance(raw, str):
        raise AbiDecodeError(f"Unexpected return type for {context}: {type(raw).__name__}")
    text = raw[2:] if raw.startswith(("0x", "0X")) else raw
    if len(text) % 2:
        raise AbiDecodeError(f"Odd-length hex return data for {context}")
    try:
        return bytes.fromhex(text)
    except ValueError as e:
        raise AbiDecodeError(f"Invalid hex return data for {context}: {e}") from e


def decode_value(abi_type: str, data: bytes) -> Any:
    """Decode a single packed trait value of a known ABI type."""
    if not data:
        raise AbiDecodeError(f"Empty {abi_type} value")
    try:
        return decode([abi_type], data)[0]
    except (DecodingError, OverflowError, ValueError) as e:
        raise AbiDecodeError(f"Failed to decode {abi_type} value: {e}") from e


def trait_key(name: str) -> bytes:
    """Well-known trait key: keccak256 of the UTF-8 trait name."""
    return keccak(text=name)


# ERC-165 interface identifiers
INTERFACE_ERC165 = bytes.fromhex("01ffc9a7")
INTERFACE_ERC721 = bytes.fromhex("80ac58cd")
INTERFACE_ERC721_ENUMERABLE = bytes.fromhex("780e9d63")
INTERFACE_ERC1155 = bytes.fromhex("d9b67a26")

SUPPORTS_INTERFACE = ContractMethod("supportsInterface", ("bytes4",), ("bool",))

# ERC-721
BALANCE_OF = ContractMethod("balanceOf", ("address",), ("uint256",))
OWNER_OF = ContractMethod("ownerOf", ("uint256",), ("address",))
TOKEN_OF_OWNER_BY_INDEX = ContractMethod("tokenOfOwnerByIndex", ("address", "uint256"), ("uint256",))
TOTAL_SUPPLY = ContractMethod("totalSupply", (), ("uint256",))
TOKEN_BY_INDEX = ContractMethod("tokenByIndex", ("uint256",), ("uint256",))
TOKEN_URI = ContractMethod("tokenURI", ("uint256",), ("string",))
NAME = ContractMethod("name", (), ("string",))
SYMBOL = ContractMethod("symbol", (), ("string",))

# ERC-1155
BALANCE_OF_ID = ContractMethod("balanceOf", ("address", "uint256"), ("uint256",))
URI = ContractMethod("uri", ("uint256",), ("string",))

# ERC-20 (balanceOf, name and symbol share the ERC-721 selectors)
DECIMALS = ContractMethod("decimals", (), ("uint8",))

# Asset registry (ERC-721 with dynamic traits)
GET_TRAIT_METADATA_URI = ContractMethod("getTraitMetadataURI", (), ("string",))
GET_TRAIT_VALUE = ContractMethod("getTraitValue", ("uint256", "bytes32"), ("bytes",))
GET_VALIDATION_STATUS = ContractMethod("getValidationStatus", ("uint256",), ("bool", "address"))
PAYMENT_TOKEN = ContractMethod("token", ("uint256",), ("address",))
SALT = ContractMethod("salt", ("uint256",), ("uint256",))

TRAIT_ASSET_TYPE = trait_key("assetType")
TRAIT_DEFINITION = trait_key("definition")
TRAIT_CONFIGURATION = trait_key("configuration")
