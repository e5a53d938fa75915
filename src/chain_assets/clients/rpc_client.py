"""JSON-RPC client with exponential backoff and endpoint failover."""

import asyncio
import itertools
import logging
import random
import time
from dataclasses import dataclass
from typing import Any

import aiohttp

from ..config import RPCConfig
from ..errors import (
    ContractRevertError,
    DeterministicRPCError,
    EndpointRejectedError,
    EndpointsExhaustedError,
    MalformedResponseError,
    RPCRateLimitError,
    RPCTimeoutError,
    ServiceUnavailableError,
    TransientRPCError,
    UnsupportedMethodError,
)
from .abi import ContractMethod
from .chain_types import checksum_address
from .endpoints import EndpointPool

logger = logging.getLogger(__name__)

# JSON-RPC error codes providers use for throttling or temporary overload
_TRANSIENT_RPC_CODES = {-32005, -32016, -32603, 429}
_REVERT_MARKERS = ("execution reverted", "revert", "invalid opcode", "out of gas")
_TRANSIENT_MARKERS = ("rate limit", "too many requests", "timeout", "timed out", "header not found", "busy")


@dataclass
class RetryableCall:
    """One attempt of a logical RPC call; never persisted."""

    endpoint: str
    attempt: int
    last_error_class: str | None = None


class RetryingRPCClient:
    """Executes contract calls across a chain's endpoint pool.

    Transient failures (timeouts, rate limits, 5xx, connection resets) are
    retried on the same endpoint with exponential backoff, then failed over to
    the next endpoint with a fresh attempt counter. An endpoint that rejects
    the request (4xx, non-JSON body) is skipped without retrying it.
    Deterministic failures (reverts, unsupported methods, decode errors) abort
    immediately. Every call starts again from the front of the pool.
    """

    def __init__(
        self,
        config: RPCConfig,
        endpoint_pool: EndpointPool | None = None,
        session: aiohttp.ClientSession | None = None,
    ):
        self.config = config
        self.endpoint_pool = endpoint_pool or EndpointPool(config)
        self._session = session
        self._own_session = session is None
        self._request_ids = itertools.count(1)

        self._stats = {
            "calls": 0,
            "attempts": 0,
            "retries": 0,
            "failovers": 0,
            "transient_errors": 0,
            "deterministic_errors": 0,
            "exhausted_calls": 0,
        }

    async def __aenter__(self):
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            connector = aiohttp.TCPConnector(
                limit=100,
                limit_per_host=30,
                ttl_dns_cache=300,
                enable_cleanup_closed=True,
            )
            self._session = aiohttp.ClientSession(
                connector=connector,
                headers={"Content-Type": "application/json", "User-Agent": "chain-assets/1.0"},
                raise_for_status=False,
            )
        return self._session

    async def call(
        self,
        chain_id: int,
        contract_address: str,
        method: ContractMethod,
        args: tuple | list = (),
        block: str = "latest",
    ) -> Any:
        """Execute a read-only contract call and decode its result."""
        data = method.encode_call(args)
        params = [{"to": checksum_address(contract_address), "data": data}, block]
        raw = await self.request(chain_id, "eth_call", params)
        return method.decode_result(raw)

    async def request(
        self,
        chain_id: int,
        rpc_method: str,
        params: list[Any],
        timeout: float | None = None,
    ) -> Any:
        """Send a JSON-RPC request with retry and endpoint failover."""
        endpoints = self.endpoint_pool.endpoints_for(chain_id)
        max_attempts = self.config.max_attempts_per_endpoint
        deadline = time.monotonic() + self.config.call_budget_seconds
        request_timeout = timeout or self.config.request_timeout
        last_error: TransientRPCError | None = None

        self._stats["calls"] += 1

        for endpoint_index, endpoint in enumerate(endpoints):
            if endpoint_index > 0:
                self._stats["failovers"] += 1
                logger.info(f"🔀 Failing over {rpc_method} on chain {chain_id} to endpoint #{endpoint_index + 1}")

            for attempt in range(max_attempts):
                if time.monotonic() >= deadline:
                    return self._exhausted(chain_id, rpc_method, last_error, "call budget spent")

                call = RetryableCall(endpoint=endpoint, attempt=attempt)
                payload = {
                    "jsonrpc": "2.0",
                    "id": next(self._request_ids),
                    "method": rpc_method,
                    "params": params,
                }

                try:
                    self._stats["attempts"] += 1
                    return await self._send(endpoint, payload, request_timeout)

                except DeterministicRPCError:
                    self._stats["deterministic_errors"] += 1
                    raise

                except EndpointRejectedError as e:
                    last_error = e
                    self._stats["transient_errors"] += 1
                    logger.warning(
                        f"⚠️ {EndpointPool.redact(endpoint)} rejected {rpc_method} (chain {chain_id}): {e}"
                    )
                    break

                except TransientRPCError as e:
                    last_error = e
                    call.last_error_class = e.__class__.__name__
                    self._stats["transient_errors"] += 1

                    if attempt + 1 >= max_attempts:
                        logger.warning(
                            f"⚠️ {rpc_method} failed {max_attempts}x on {EndpointPool.redact(endpoint)} "
                            f"(chain {chain_id}): {e}"
                        )
                        break

                    delay = self._backoff_delay(attempt)
                    if time.monotonic() + delay >= deadline:
                        return self._exhausted(chain_id, rpc_method, last_error, "call budget spent")

                    self._stats["retries"] += 1
                    logger.debug(
                        f"🔁 {call.last_error_class} on {EndpointPool.redact(call.endpoint)} "
                        f"(attempt {call.attempt + 1}/{max_attempts}), retrying in {delay:.2f}s"
                    )
                    await asyncio.sleep(delay)

        return self._exhausted(chain_id, rpc_method, last_error, f"{len(endpoints)} endpoint(s) failed")

    def _exhausted(self, chain_id: int, rpc_method: str, last_error: TransientRPCError | None, reason: str):
        self._stats["exhausted_calls"] += 1
        message = f"{rpc_method} on chain {chain_id} failed: {reason}"
        if last_error:
            message = f"{message} (last error: {last_error})"
        logger.error(f"❌ {message}")
        raise EndpointsExhaustedError(message) from last_error

    def _backoff_delay(self, attempt: int) -> float:
        delay = min(self.config.base_delay * (2**attempt), self.config.max_delay)
        return delay + random.uniform(0, 0.3 * delay)

    async def _send(self, endpoint: str, payload: dict[str, Any], timeout: float) -> Any:
        """Send one request and translate failures into the error taxonomy."""
        try:
            status, body = await self._post_json(endpoint, payload, timeout)
        except TimeoutError as e:
            raise RPCTimeoutError(f"Request timed out after {timeout:.1f}s", endpoint=endpoint) from e
        except aiohttp.ClientConnectionError as e:
            raise ServiceUnavailableError(f"Connection failed: {e}", endpoint=endpoint) from e
        except aiohttp.ContentTypeError as e:
            raise MalformedResponseError(f"Non-JSON response: {e}", endpoint=endpoint) from e
        except aiohttp.ClientError as e:
            raise ServiceUnavailableError(f"Transport error: {e}", endpoint=endpoint) from e
        except ValueError as e:
            raise MalformedResponseError(f"Failed to parse JSON response: {e}", endpoint=endpoint) from e

        return self._handle_response(endpoint, status, body)

    async def _post_json(self, endpoint: str, payload: dict[str, Any], timeout: float) -> tuple[int, Any]:
        session = await self._ensure_session()
        client_timeout = aiohttp.ClientTimeout(total=timeout)
        async with session.post(endpoint, json=payload, timeout=client_timeout) as response:
            if response.status != 200:
                return response.status, await response.text()
            return response.status, await response.json(content_type=None)

    def _handle_response(self, endpoint: str, status: int, body: Any) -> Any:
        """Classify an HTTP status and JSON-RPC envelope."""
        if status == 429:
            raise RPCRateLimitError("Rate limited (429)", endpoint=endpoint, code=429)
        if status >= 500:
            raise ServiceUnavailableError(f"HTTP {status}", endpoint=endpoint, code=status)
        if status != 200:
            raise EndpointRejectedError(f"HTTP {status}: {str(body)[:200]}", endpoint=endpoint, code=status)

        if not isinstance(body, dict):
            raise MalformedResponseError("JSON-RPC response is not an object", endpoint=endpoint)

        error = body.get("error")
        if error:
            raise self._classify_rpc_error(endpoint, error)

        if "result" not in body:
            raise MalformedResponseError("JSON-RPC response has no result", endpoint=endpoint)
        return body["result"]

    @staticmethod
    def _classify_rpc_error(endpoint: str, error: Any) -> Exception:
        if not isinstance(error, dict):
            return MalformedResponseError(f"Unexpected error payload: {error!r}", endpoint=endpoint)

        code = error.get("code")
        message = str(error.get("message") or "Unknown RPC error")
        lowered = message.lower()

        if code == 3 or any(marker in lowered for marker in _REVERT_MARKERS):
            return ContractRevertError(message, endpoint=endpoint, code=code)
        if code in (-32601, -32602):
            return UnsupportedMethodError(message, endpoint=endpoint, code=code)
        if any(marker in lowered for marker in _TRANSIENT_MARKERS):
            return RPCRateLimitError(message, endpoint=endpoint, code=code)
        if code in _TRANSIENT_RPC_CODES or code == -32000:
            return ServiceUnavailableError(message, endpoint=endpoint, code=code)
        return DeterministicRPCError(f"RPC error (code {code}): {message}", endpoint=endpoint, code=code)

    async def block_number(self, chain_id: int) -> int:
        result = await self.request(chain_id, "eth_blockNumber", [])
        return int(result, 16)

    async def health_check(self, chain_id: int) -> bool:
        """Check the first endpoint with the short health timeout."""
        try:
            endpoint = self.endpoint_pool.endpoints_for(chain_id)[0]
            payload = {"jsonrpc": "2.0", "id": next(self._request_ids), "method": "eth_blockNumber", "params": []}
            await self._send(endpoint, payload, self.config.health_timeout)
            return True
        except Exception as e:
            logger.warning(f"⚠️ RPC health check failed for chain {chain_id}: {e}")
            return False

    def get_stats(self) -> dict[str, Any]:
        return dict(self._stats)

    async def close(self) -> None:
        if self._session and self._own_session:
            await self._session.close()
            self._session = None
            logger.info("🔌 RPC client session closed")
