"""Error taxonomy shared by the clients and the resolution pipeline."""

import asyncio
from enum import Enum

import aiohttp


class ErrorClass(str, Enum):
    """How a failure is handled once it reaches a pipeline boundary."""

    TRANSIENT = "transient"  # retried, then failed over
    DETERMINISTIC = "deterministic"  # aborted for that sub-operation only
    UPSTREAM_ABSENT = "upstream_absent"  # fall back, not an error
    PARTIAL_FIELD = "partial_field"  # field defaulted, record kept
    PARTIAL_TASK = "partial_task"  # slot annotated, siblings kept


class ChainAssetsError(Exception):
    """Base exception for chain_assets errors."""

    pass


class InvalidAddressError(ChainAssetsError):
    """Invalid account or contract address."""

    pass


class NoEndpointConfiguredError(ChainAssetsError):
    """No RPC endpoint is configured for the requested chain."""

    def __init__(self, chain_id: int):
        super().__init__(f"No RPC endpoint configured for chain {chain_id}")
        self.chain_id = chain_id


class RPCError(ChainAssetsError):
    """JSON-RPC call error."""

    def __init__(self, message: str, endpoint: str | None = None, code: int | None = None):
        super().__init__(message)
        self.endpoint = endpoint
        self.code = code


class TransientRPCError(RPCError):
    """Failure that may succeed when retried or sent to another endpoint."""

    pass


class RPCTimeoutError(TransientRPCError):
    """Request exceeded its wall-clock timeout."""

    pass


class RPCRateLimitError(TransientRPCError):
    """Endpoint rate limited the request."""

    pass


class ServiceUnavailableError(TransientRPCError):
    """Endpoint temporarily unavailable (5xx, connection reset)."""

    pass


class EndpointsExhaustedError(TransientRPCError):
    """Every endpoint in the pool failed within the call budget."""

    pass


class EndpointRejectedError(TransientRPCError):
    """Endpoint refused or mangled the request (auth, 4xx, non-JSON body).

    Retrying the same endpoint will not help; the next endpoint in the pool may.
    """

    pass


class MalformedResponseError(EndpointRejectedError):
    """Response body is not a valid JSON-RPC envelope."""

    pass


class DeterministicRPCError(RPCError):
    """Failure that will not succeed on retry."""

    pass


class ContractRevertError(DeterministicRPCError):
    """Contract call reverted."""

    pass


class UnsupportedMethodError(DeterministicRPCError):
    """Endpoint or contract does not implement the method."""

    pass


class AbiDecodeError(DeterministicRPCError):
    """Return data could not be decoded with the expected ABI types."""

    pass


class IndexerError(ChainAssetsError):
    """Bulk indexing API error."""

    pass


class IndexerUnavailableError(IndexerError):
    """Indexing API not configured for this chain (no credentials)."""

    pass


class PricingError(ChainAssetsError):
    """Pricing API error."""

    pass


class RateLimitExceededError(ChainAssetsError):
    """Client identity exceeded its ingress request budget."""

    def __init__(self, identity: str, limit: int, retry_after_seconds: float):
        super().__init__(f"Rate limit exceeded for {identity}: maximum {limit} requests per window")
        self.identity = identity
        self.limit = limit
        self.retry_after_seconds = retry_after_seconds


def classify_error(error: BaseException) -> ErrorClass:
    """Map an exception onto the error taxonomy."""
    if isinstance(error, IndexerUnavailableError | NoEndpointConfiguredError):
        return ErrorClass.UPSTREAM_ABSENT
    if isinstance(error, DeterministicRPCError):
        return ErrorClass.DETERMINISTIC
    if isinstance(error, TransientRPCError | asyncio.TimeoutError | aiohttp.ClientConnectionError):
        return ErrorClass.TRANSIENT
    return ErrorClass.PARTIAL_TASK


def describe_error(error: BaseException) -> str:
    """Short, non-empty description used in per-slot error annotations."""
    message = str(error).strip()
    return message or error.__class__.__name__
