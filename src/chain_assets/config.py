"""Configuration for chain_assets using Pydantic settings.

Every section reads its own environment variables (``CHAIN_ASSETS_<SECTION>_*``)
plus the conventional provider names (``ALCHEMY_API_KEY``, ``REDIS_URL``,
``<CHAIN>_RPC_URL``) so an existing ``.env`` keeps working unchanged.
"""

import os
from enum import Enum
from functools import lru_cache

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .chains import SUPPORTED_CHAINS

ENV_FILE = ".env"


def _section_config(prefix: str) -> SettingsConfigDict:
    return SettingsConfigDict(
        env_prefix=prefix,
        env_file=ENV_FILE,
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


def _custom_rpc_urls_from_env() -> dict[int, str]:
    """Collect per-chain RPC overrides such as ``BASE_RPC_URL``."""
    urls: dict[int, str] = {}
    for chain_id, chain in SUPPORTED_CHAINS.items():
        value = os.getenv(chain.rpc_env_var, "").strip()
        if value:
            urls[chain_id] = value
    return urls


class CacheBackend(str, Enum):
    """Supported cache backends."""

    MEMORY = "memory"
    REDIS = "redis"


class RPCConfig(BaseSettings):
    """Node endpoint pool and retry policy."""

    model_config = _section_config("CHAIN_ASSETS_RPC_")

    alchemy_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("ALCHEMY_API_KEY", "CHAIN_ASSETS_ALCHEMY_API_KEY"),
    )
    custom_urls: dict[int, str] = Field(default_factory=_custom_rpc_urls_from_env)
    include_public_fallbacks: bool = True

    request_timeout: float = Field(default=15.0, gt=0)
    health_timeout: float = Field(default=3.0, gt=0)
    max_attempts_per_endpoint: int = Field(default=3, ge=1, le=10)
    base_delay: float = Field(default=1.0, ge=0)
    max_delay: float = Field(default=10.0, ge=0)
    call_budget_seconds: float = Field(default=45.0, gt=0)


class IndexerConfig(BaseSettings):
    """Bulk indexing API (NFT ownership and asset transfers)."""

    model_config = _section_config("CHAIN_ASSETS_INDEXER_")

    api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("ALCHEMY_API_KEY", "CHAIN_ASSETS_INDEXER_API_KEY"),
    )
    enabled: bool = True
    request_timeout: float = Field(default=15.0, gt=0)
    max_retries: int = Field(default=2, ge=0)
    retry_delay: float = Field(default=1.0, ge=0)
    page_size: int = Field(default=50, ge=1, le=100)
    max_pages: int = Field(default=20, ge=1)
    rate_limit: int = Field(default=300, ge=1)  # requests per minute
    transfers_min_interval: float = Field(default=0.2, ge=0)  # seconds between history calls

    @field_validator("api_key")
    @classmethod
    def _blank_key_is_absent(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            return None
        return value


class PricingConfig(BaseSettings):
    """Optional collection floor price lookups."""

    model_config = _section_config("CHAIN_ASSETS_PRICING_")

    api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("ALCHEMY_API_KEY", "CHAIN_ASSETS_PRICING_API_KEY"),
    )
    enabled: bool = True
    request_timeout: float = Field(default=10.0, gt=0)
    prices_api_url: str = "https://api.g.alchemy.com/prices/v1"


class CacheConfig(BaseSettings):
    """Shared cache configuration."""

    model_config = _section_config("CHAIN_ASSETS_CACHE_")

    backend: CacheBackend = CacheBackend.MEMORY
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        validation_alias=AliasChoices("REDIS_URL", "CHAIN_ASSETS_CACHE_REDIS_URL"),
    )
    key_prefix: str = "chain_assets:"
    max_memory_entries: int = Field(default=10_000, ge=1)

    ttl_nfts: int = Field(default=600, ge=1)
    ttl_transactions: int = Field(default=300, ge=1)
    ttl_classification: int = Field(default=86_400, ge=1)
    ttl_collection: int = Field(default=3_600, ge=1)
    ttl_prices: int = Field(default=300, ge=1)
    ttl_balance: int = Field(default=600, ge=1)
    ttl_token_balance: int = Field(default=10, ge=1)


class PipelineConfig(BaseSettings):
    """Enumeration bounds and fan-out limits."""

    model_config = _section_config("CHAIN_ASSETS_PIPELINE_")

    max_workers: int = Field(default=4, ge=1)
    enumeration_bound: int = Field(default=100, ge=1)
    multi_balance_id_range: int = Field(default=100, ge=1)
    window_size: int = Field(default=10, ge=1)
    supply_scan_limit: int = Field(default=1_000, ge=0)
    max_addresses_per_request: int = Field(default=2, ge=1)
    max_chains_per_address: int = Field(default=15, ge=1)
    registry_contracts: dict[int, list[str]] = Field(default_factory=dict)


class RateLimitConfig(BaseSettings):
    """Ingress rate limiting per client identity."""

    model_config = _section_config("CHAIN_ASSETS_RATE_LIMIT_")

    enabled: bool = True
    window_seconds: int = Field(default=60, ge=1)
    max_requests: int = Field(default=100, ge=1)
    scope: str = Field(
        default="path",
        validation_alias=AliasChoices("RATE_LIMIT_SCOPE", "CHAIN_ASSETS_RATE_LIMIT_SCOPE"),
    )

    @field_validator("scope")
    @classmethod
    def _normalize_scope(cls, value: str) -> str:
        scope = value.strip().lower()
        if scope not in {"path", "ip"}:
            raise ValueError("scope must be 'path' or 'ip'")
        return scope


class AppConfig(BaseSettings):
    """Top-level configuration with one nested section per subsystem."""

    model_config = SettingsConfigDict(
        env_prefix="CHAIN_ASSETS_",
        env_nested_delimiter="__",
        env_file=ENV_FILE,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    log_level: str = Field(
        default="INFO",
        validation_alias=AliasChoices("LOG_LEVEL", "CHAIN_ASSETS_LOG_LEVEL"),
    )
    rpc: RPCConfig = Field(default_factory=RPCConfig)
    indexer: IndexerConfig = Field(default_factory=IndexerConfig)
    pricing: PricingConfig = Field(default_factory=PricingConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)


@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    """Return the cached application configuration."""
    return AppConfig()


def reload_config() -> AppConfig:
    """Clear the cached configuration and read it again."""
    get_config.cache_clear()
    return get_config()
