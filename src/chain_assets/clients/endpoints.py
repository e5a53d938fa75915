"""Per-chain JSON-RPC endpoint pool."""

from ..chains import SUPPORTED_CHAINS
from ..config import RPCConfig
from ..errors import NoEndpointConfiguredError

_ALCHEMY_RPC_TEMPLATE = "https://{slug}.g.alchemy.com/v2/{api_key}"
_ALCHEMY_RPC_CHAINS = {1, 10, 100, 137, 8453, 42161, 11155111, 84532, 80001}


class EndpointPool:
    """Ordered endpoint URLs per chain: custom > provider-keyed > public."""

    def __init__(self, config: RPCConfig, extra_endpoints: dict[int, list[str]] | None = None):
        self.config = config
        self._extra = extra_endpoints or {}

    def endpoints_for(self, chain_id: int) -> list[str]:
        """Return the ordered, de-duplicated endpoint list for a chain."""
        candidates: list[str] = []

        custom = self.config.custom_urls.get(chain_id)
        if custom:
            candidates.append(custom)

        candidates.extend(self._extra.get(chain_id, []))

        provider_url = self._provider_url(chain_id)
        if provider_url:
            candidates.append(provider_url)

        chain = SUPPORTED_CHAINS.get(chain_id)
        if chain and self.config.include_public_fallbacks:
            candidates.extend(chain.public_rpc_urls)

        endpoints: list[str] = []
        for url in candidates:
            url = url.strip()
            if url and url not in endpoints:
                endpoints.append(url)

        if not endpoints:
            raise NoEndpointConfiguredError(chain_id)
        return endpoints

    def has_endpoints(self, chain_id: int) -> bool:
        try:
            return bool(self.endpoints_for(chain_id))
        except NoEndpointConfiguredError:
            return False

    def supported_chains(self) -> list[int]:
        chain_ids = set(SUPPORTED_CHAINS) | set(self.config.custom_urls) | set(self._extra)
        return sorted(chain_id for chain_id in chain_ids if self.has_endpoints(chain_id))

    def _provider_url(self, chain_id: int) -> str | None:
        api_key = self.config.alchemy_api_key
        chain = SUPPORTED_CHAINS.get(chain_id)
        if not api_key or chain is None or chain_id not in _ALCHEMY_RPC_CHAINS:
            return None
        return _ALCHEMY_RPC_TEMPLATE.format(slug=chain.network_slug, api_key=api_key)

    @staticmethod
    def redact(url: str) -> str:
        """Hide provider keys when logging an endpoint."""
        if "/v2/" in url:
            return url.split("/v2/")[0] + "/v2/***"
        return url
