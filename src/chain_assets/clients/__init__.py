"""Upstream clients: JSON-RPC nodes, bulk indexing API and pricing API."""

from ..errors import (
    AbiDecodeError,
    ContractRevertError,
    DeterministicRPCError,
    EndpointRejectedError,
    EndpointsExhaustedError,
    IndexerError,
    IndexerUnavailableError,
    InvalidAddressError,
    NoEndpointConfiguredError,
    PricingError,
    RPCError,
    RPCRateLimitError,
    RPCTimeoutError,
    ServiceUnavailableError,
    TransientRPCError,
    UnsupportedMethodError,
)
from .abi import ContractMethod
from .chain_types import (
    AssetRecord,
    AssetRegistryRecord,
    CollectionInfo,
    OwnedToken,
    TokenStandard,
    TransactionRecord,
    is_valid_address,
    normalize_address,
)
from .endpoints import EndpointPool
from .indexer_client import IndexerClient, NFTPage
from .pricing_client import PricingClient
from .rpc_client import RetryableCall, RetryingRPCClient

__all__ = [
    # Clients
    "EndpointPool",
    "IndexerClient",
    "PricingClient",
    "RetryingRPCClient",
    # Types
    "AssetRecord",
    "AssetRegistryRecord",
    "CollectionInfo",
    "ContractMethod",
    "NFTPage",
    "OwnedToken",
    "RetryableCall",
    "TokenStandard",
    "TransactionRecord",
    "is_valid_address",
    "normalize_address",
    # Errors
    "AbiDecodeError",
    "ContractRevertError",
    "DeterministicRPCError",
    "EndpointRejectedError",
    "EndpointsExhaustedError",
    "IndexerError",
    "IndexerUnavailableError",
    "InvalidAddressError",
    "NoEndpointConfiguredError",
    "PricingError",
    "RPCError",
    "RPCRateLimitError",
    "RPCTimeoutError",
    "ServiceUnavailableError",
    "TransientRPCError",
    "UnsupportedMethodError",
]
