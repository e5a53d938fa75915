"""Supported chain registry."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ChainInfo:
    """Static description of an EVM network."""

    chain_id: int
    name: str
    network_slug: str  # indexer network identifier, e.g. "eth-mainnet"
    rpc_env_var: str
    public_rpc_urls: tuple[str, ...] = field(default_factory=tuple)
    native_symbol: str = "ETH"
    supports_internal_transfers: bool = False
    is_testnet: bool = False


SUPPORTED_CHAINS: dict[int, ChainInfo] = {
    1: ChainInfo(
        chain_id=1,
        name="Ethereum",
        network_slug="eth-mainnet",
        rpc_env_var="ETHEREUM_RPC_URL",
        public_rpc_urls=("https://eth.llamarpc.com", "https://ethereum-rpc.publicnode.com"),
        supports_internal_transfers=True,
    ),
    10: ChainInfo(
        chain_id=10,
        name="Optimism",
        network_slug="opt-mainnet",
        rpc_env_var="OPTIMISM_RPC_URL",
        public_rpc_urls=("https://mainnet.optimism.io",),
    ),
    100: ChainInfo(
        chain_id=100,
        name="Gnosis",
        network_slug="gnosis-mainnet",
        rpc_env_var="GNOSIS_RPC_URL",
        public_rpc_urls=("https://rpc.gnosischain.com",),
        native_symbol="xDAI",
    ),
    137: ChainInfo(
        chain_id=137,
        name="Polygon",
        network_slug="polygon-mainnet",
        rpc_env_var="POLYGON_RPC_URL",
        public_rpc_urls=("https://polygon-rpc.com",),
        native_symbol="POL",
        supports_internal_transfers=True,
    ),
    8453: ChainInfo(
        chain_id=8453,
        name="Base",
        network_slug="base-mainnet",
        rpc_env_var="BASE_RPC_URL",
        public_rpc_urls=("https://mainnet.base.org",),
    ),
    42161: ChainInfo(
        chain_id=42161,
        name="Arbitrum One",
        network_slug="arb-mainnet",
        rpc_env_var="ARBITRUM_RPC_URL",
        public_rpc_urls=("https://arb1.arbitrum.io/rpc",),
    ),
    11155111: ChainInfo(
        chain_id=11155111,
        name="Sepolia",
        network_slug="eth-sepolia",
        rpc_env_var="SEPOLIA_RPC_URL",
        public_rpc_urls=("https://rpc.sepolia.org",),
        is_testnet=True,
    ),
    84532: ChainInfo(
        chain_id=84532,
        name="Base Sepolia",
        network_slug="base-sepolia",
        rpc_env_var="BASE_SEPOLIA_RPC_URL",
        public_rpc_urls=("https://sepolia.base.org",),
        is_testnet=True,
    ),
    80001: ChainInfo(
        chain_id=80001,
        name="Polygon Mumbai",
        network_slug="polygon-mumbai",
        rpc_env_var="MUMBAI_RPC_URL",
        public_rpc_urls=("https://rpc-mumbai.maticvigil.com",),
        native_symbol="MATIC",
        is_testnet=True,
    ),
}


def get_chain(chain_id: int) -> ChainInfo | None:
    return SUPPORTED_CHAINS.get(chain_id)
