"""Collection floor price lookups, converted to USD."""

import logging
from typing import Any

import aiohttp
from pydantic import ValidationError

from ..chains import SUPPORTED_CHAINS
from ..config import PricingConfig
from ..errors import PricingError
from ..utils.cache import CacheKeys, CacheManager
from .chain_types import checksum_address
from .schemas import FloorPriceResponse, SymbolPricesResponse

logger = logging.getLogger(__name__)

# getFloorPrice is only served for Ethereum mainnet collections
FLOOR_PRICE_CHAINS = {1}


class PricingClient:
    """Best-effort USD pricing for NFT collections.

    The floor price is quoted in the chain's native token and multiplied by the
    native token's USD price. Every failure yields None.
    """

    def __init__(
        self,
        config: PricingConfig,
        cache_manager: CacheManager | None = None,
        session: aiohttp.ClientSession | None = None,
    ):
        self.config = config
        self.cache_manager = cache_manager
        self._session = session
        self._own_session = session is None
        self._stats = {"floor_requests": 0, "price_requests": 0, "errors": 0}

    async def __aenter__(self):
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                headers={"Accept": "application/json", "User-Agent": "chain-assets/1.0"},
                raise_for_status=False,
            )
        return self._session

    @property
    def enabled(self) -> bool:
        return self.config.enabled and bool(self.config.api_key)

    async def get_collection_price_usd(self, chain_id: int, contract_address: str) -> float | None:
        if not self.enabled or chain_id not in FLOOR_PRICE_CHAINS:
            return None

        try:
            floor = await self.get_floor_price(chain_id, contract_address)
            if not floor:
                return None
            native_price = await self.get_token_price_usd(SUPPORTED_CHAINS[chain_id].native_symbol)
            if not native_price:
                return None
        except Exception as e:
            self._stats["errors"] += 1
            logger.warning(f"⚠️ Price lookup failed for {contract_address} on chain {chain_id}: {e}")
            return None

        price = floor * native_price
        return price if price > 0 else None

    async def get_floor_price(self, chain_id: int, contract_address: str) -> float | None:
        """Floor price in the native token (OpenSea, then LooksRare)."""
        slug = SUPPORTED_CHAINS[chain_id].network_slug
        url = f"https://{slug}.g.alchemy.com/nft/v3/{self.config.api_key}/getFloorPrice"
        self._stats["floor_requests"] += 1
        data = await self._get_json(url, params={"contractAddress": checksum_address(contract_address)})
        try:
            return FloorPriceResponse.model_validate(data).best_floor()
        except ValidationError as e:
            raise PricingError(f"Unexpected getFloorPrice response: {e}") from e

    async def get_token_price_usd(self, symbol: str) -> float | None:
        if self.cache_manager is None:
            return await self._fetch_token_price(symbol)
        return await self.cache_manager.get_or_fetch(
            CacheKeys.token_price(symbol),
            self.cache_manager.config.ttl_prices,
            lambda: self._fetch_token_price(symbol),
        )

    async def _fetch_token_price(self, symbol: str) -> float | None:
        symbol = symbol.upper()
        self._stats["price_requests"] += 1
        data = await self._get_json(
            f"{self.config.prices_api_url}/tokens/by-symbol",
            params={"symbols": symbol},
            headers={"Authorization": f"Bearer {self.config.api_key}"},
        )
        try:
            response = SymbolPricesResponse.model_validate(data)
        except ValidationError as e:
            raise PricingError(f"Unexpected prices response: {e}") from e

        entry = next((item for item in response.data if (item.symbol or "").upper() == symbol), None)
        return entry.usd_price() if entry else None

    async def _get_json(
        self,
        url: str,
        params: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        session = await self._ensure_session()
        timeout = aiohttp.ClientTimeout(total=self.config.request_timeout)
        try:
            async with session.get(url, params=params, headers=headers, timeout=timeout) as response:
                if response.status != 200:
                    raise PricingError(f"HTTP {response.status} from pricing API")
                return await response.json(content_type=None)
        except TimeoutError as e:
            raise PricingError("Pricing request timed out") from e
        except aiohttp.ClientError as e:
            raise PricingError(f"Pricing request failed: {e}") from e

    def get_stats(self) -> dict[str, Any]:
        return {**self._stats, "enabled": self.enabled}

    async def close(self) -> None:
        if self._session and self._own_session:
            await self._session.close()
            self._session = None
            logger.info("🔌 Pricing client session closed")
