"""Bulk indexing API client (Alchemy NFT API v3 and Transfers API)."""

import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from typing import Any

import aiohttp
from asyncio_throttle import Throttler
from pydantic import ValidationError

from ..chains import SUPPORTED_CHAINS
from ..config import IndexerConfig
from ..errors import IndexerError, IndexerUnavailableError
from .chain_types import AssetRecord, OwnedToken, TokenStandard, checksum_address, normalize_address
from .schemas import AssetTransfer, AssetTransfersResult, JsonRpcResponse, OwnedNFTsPage

logger = logging.getLogger(__name__)

NFT_API_CHAINS = {1, 10, 137, 8453, 42161, 11155111, 84532}
TRANSFERS_API_CHAINS = {1, 10, 100, 137, 8453, 42161, 11155111, 84532}
DEFAULT_TRANSFER_CATEGORIES = ("external", "erc20", "erc721", "erc1155")

_RETRYABLE_STATUSES = {429, 500, 502, 503, 504}


@dataclass
class NFTPage:
    """One page of owned tokens from the indexer."""

    records: list[AssetRecord] = field(default_factory=list)
    total_count: int | None = None
    page_key: str | None = None


class _RetryableIndexerError(IndexerError):
    pass


class IndexerClient:
    """Owned-token and transfer-history lookups against a bulk indexing API.

    Raises ``IndexerUnavailableError`` when no API key is configured or the
    chain is not covered, so callers can fall back to on-chain enumeration
    without logging it as a failure.
    """

    def __init__(self, config: IndexerConfig, session: aiohttp.ClientSession | None = None):
        self.config = config
        self._session = session
        self._own_session = session is None
        self._request_ids = itertools.count(1)

        self.throttler = Throttler(rate_limit=config.rate_limit, period=60)

        self._stats = {
            "nft_requests": 0,
            "transfer_requests": 0,
            "api_errors": 0,
            "rate_limit_errors": 0,
            "service_unavailable_errors": 0,
        }

    async def __aenter__(self):
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            connector = aiohttp.TCPConnector(limit=50, limit_per_host=20, ttl_dns_cache=300)
            self._session = aiohttp.ClientSession(
                connector=connector,
                headers={"Accept": "application/json", "User-Agent": "chain-assets/1.0"},
                raise_for_status=False,
            )
        return self._session

    def is_available(self, chain_id: int, nft: bool = True) -> bool:
        if not self.config.enabled or not self.config.api_key:
            return False
        return chain_id in (NFT_API_CHAINS if nft else TRANSFERS_API_CHAINS)

    def _require(self, chain_id: int, nft: bool = True) -> str:
        if not self.config.enabled or not self.config.api_key:
            raise IndexerUnavailableError("Indexing API key not configured")
        if not self.is_available(chain_id, nft=nft):
            raise IndexerUnavailableError(f"Indexing API does not cover chain {chain_id}")
        return SUPPORTED_CHAINS[chain_id].network_slug

    def _nft_url(self, chain_id: int, path: str) -> str:
        slug = self._require(chain_id, nft=True)
        return f"https://{slug}.g.alchemy.com/nft/v3/{self.config.api_key}/{path}"

    def _rest_url(self, chain_id: int) -> str:
        slug = self._require(chain_id, nft=False)
        return f"https://{slug}.g.alchemy.com/v2/{self.config.api_key}"

    async def get_nfts_for_owner(
        self,
        chain_id: int,
        owner: str,
        contract_addresses: list[str] | None = None,
        page_key: str | None = None,
        page_size: int | None = None,
    ) -> NFTPage:
        """Fetch one page of tokens held by ``owner``."""
        url = self._nft_url(chain_id, "getNFTsForOwner")
        owner = normalize_address(owner)
        size = min(page_size or self.config.page_size, self.config.page_size)

        params: list[tuple[str, str]] = [
            ("owner", checksum_address(owner)),
            ("withMetadata", "true"),
            ("pageSize", str(size)),
        ]
        for contract in contract_addresses or []:
            params.append(("contractAddresses[]", checksum_address(contract)))
        if page_key:
            params.append(("pageKey", page_key))

        self._stats["nft_requests"] += 1
        data = await self._request_json("GET", url, params=params)

        try:
            page = OwnedNFTsPage.model_validate(data)
        except ValidationError as e:
            raise IndexerError(f"Unexpected getNFTsForOwner response: {e}") from e

        records = [nft.to_record(owner, chain_id) for nft in page.owned_nfts if nft.is_supported]
        skipped = len(page.owned_nfts) - len(records)
        if skipped:
            logger.debug(f"🔍 Skipped {skipped} unsupported tokens for {owner} on chain {chain_id}")

        return NFTPage(records=records, total_count=page.total_count, page_key=page.page_key)

    async def get_owned_tokens(
        self,
        chain_id: int,
        owner: str,
        contract: str,
        limit: int | None = None,
    ) -> list[OwnedToken]:
        """All token ids ``owner`` holds in one contract, following page keys."""
        tokens: list[OwnedToken] = []
        page_key: str | None = None

        for _ in range(self.config.max_pages):
            page = await self.get_nfts_for_owner(chain_id, owner, [contract], page_key=page_key)
            for record in page.records:
                amount = int(record.amount) if record.standard is TokenStandard.MULTI_BALANCE else 1
                tokens.append(OwnedToken(token_id=int(record.token_id), amount=amount))
            page_key = page.page_key
            if not page_key or (limit is not None and len(tokens) >= limit):
                break
        else:
            if page_key:
                logger.warning(f"⚠️ Stopped paging {contract} for {owner} after {self.config.max_pages} pages")

        return tokens[:limit] if limit is not None else tokens

    async def get_asset_transfers(
        self,
        chain_id: int,
        address: str,
        direction: str = "from",
        max_count: int = 100,
        categories: list[str] | None = None,
    ) -> list[AssetTransfer]:
        """Historical transfers where ``address`` is the sender or the recipient."""
        if direction not in ("from", "to"):
            raise ValueError("direction must be 'from' or 'to'")
        url = self._rest_url(chain_id)

        if categories is None:
            categories = list(DEFAULT_TRANSFER_CATEGORIES)
            if SUPPORTED_CHAINS[chain_id].supports_internal_transfers:
                categories.append("internal")

        query = {
            "fromBlock": "0x0",
            "toBlock": "latest",
            f"{direction}Address": checksum_address(address),
            "maxCount": hex(max(1, min(max_count, 1000))),
            "excludeZeroValue": False,
            "category": categories,
            "order": "desc",
            "withMetadata": True,
        }
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._request_ids),
            "method": "alchemy_getAssetTransfers",
            "params": [query],
        }

        self._stats["transfer_requests"] += 1
        data = await self._request_json("POST", url, payload=payload)

        try:
            envelope = JsonRpcResponse.model_validate(data)
            if envelope.error:
                raise IndexerError(f"Transfers API error (code {envelope.error.code}): {envelope.error.message}")
            result = AssetTransfersResult.model_validate(envelope.result or {})
        except ValidationError as e:
            raise IndexerError(f"Unexpected alchemy_getAssetTransfers response: {e}") from e

        return result.transfers

    async def _request_json(
        self,
        method: str,
        url: str,
        params: list[tuple[str, str]] | None = None,
        payload: dict[str, Any] | None = None,
    ) -> Any:
        """Send a request with throttling and bounded retry on transient statuses."""
        last_exception: IndexerError | None = None

        for attempt in range(self.config.max_retries + 1):
            try:
                async with self.throttler:
                    status, body = await self._send_once(method, url, params, payload)
                return self._handle_response(status, body)

            except _RetryableIndexerError as e:
                last_exception = e
                if attempt < self.config.max_retries:
                    delay = self.config.retry_delay * (2**attempt)
                    logger.warning(
                        f"⚠️ Indexer unavailable (attempt {attempt + 1}/{self.config.max_retries + 1}), "
                        f"retrying in {delay:.1f}s: {e}"
                    )
                    await asyncio.sleep(delay)

        logger.error(f"❌ Indexer request failed after {self.config.max_retries + 1} attempts")
        raise IndexerError(str(last_exception)) from last_exception

    async def _send_once(
        self,
        method: str,
        url: str,
        params: list[tuple[str, str]] | None,
        payload: dict[str, Any] | None,
    ) -> tuple[int, Any]:
        session = await self._ensure_session()
        timeout = aiohttp.ClientTimeout(total=self.config.request_timeout)
        try:
            async with session.request(method, url, params=params, json=payload, timeout=timeout) as response:
                if response.status != 200:
                    return response.status, await response.text()
                return response.status, await response.json(content_type=None)
        except TimeoutError as e:
            raise _RetryableIndexerError(f"Request timed out after {self.config.request_timeout:.0f}s") from e
        except aiohttp.ClientConnectionError as e:
            raise _RetryableIndexerError(f"Connection failed: {e}") from e
        except ValueError as e:
            self._stats["api_errors"] += 1
            raise IndexerError(f"Failed to parse JSON response: {e}") from e

    def _handle_response(self, status: int, body: Any) -> Any:
        if status == 200:
            return body

        if status == 429:
            self._stats["rate_limit_errors"] += 1
            raise _RetryableIndexerError("Rate limited by indexing API")
        if status in _RETRYABLE_STATUSES:
            self._stats["service_unavailable_errors"] += 1
            raise _RetryableIndexerError(f"Indexing API temporarily unavailable (HTTP {status})")

        self._stats["api_errors"] += 1
        if status == 401:
            raise IndexerError("Unauthorized (401): Check your API key")
        if status == 403:
            raise IndexerError("Forbidden (403): API key may lack required permissions")
        raise IndexerError(f"HTTP {status}: {str(body)[:200]}")

    def get_stats(self) -> dict[str, Any]:
        return {**self._stats, "rate_limit": self.config.rate_limit, "enabled": bool(self.config.api_key)}

    async def close(self) -> None:
        if self._session and self._own_session:
            await self._session.close()
            self._session = None
            logger.info("🔌 Indexer client session closed")
