"""Tests for configuration loading."""

import pytest

from chain_assets.config import (
    AppConfig,
    CacheBackend,
    CacheConfig,
    IndexerConfig,
    PipelineConfig,
    RPCConfig,
    get_config,
    reload_config,
)


class TestConfig:
    def test_defaults(self) -> None:
        pipeline = PipelineConfig()

        assert pipeline.max_workers == 4
        assert pipeline.enumeration_bound == 100
        assert pipeline.multi_balance_id_range == 100
        assert pipeline.supply_scan_limit == 1000

    def test_section_env_prefix(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CHAIN_ASSETS_PIPELINE_MAX_WORKERS", "8")
        monkeypatch.setenv("CHAIN_ASSETS_CACHE_BACKEND", "redis")

        assert PipelineConfig().max_workers == 8
        assert CacheConfig().backend is CacheBackend.REDIS

    def test_provider_env_names(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ALCHEMY_API_KEY", "shared-key")
        monkeypatch.setenv("BASE_RPC_URL", "https://base.example")
        monkeypatch.setenv("REDIS_URL", "redis://cache:6379/2")

        assert RPCConfig().alchemy_api_key == "shared-key"
        assert RPCConfig().custom_urls[8453] == "https://base.example"
        assert IndexerConfig().api_key == "shared-key"
        assert CacheConfig().redis_url == "redis://cache:6379/2"

    def test_blank_indexer_key_is_absent(self) -> None:
        assert IndexerConfig(api_key="   ").api_key is None

    def test_validation(self) -> None:
        with pytest.raises(ValueError):
            PipelineConfig(max_workers=0)
        with pytest.raises(ValueError):
            RPCConfig(max_attempts_per_endpoint=0)

    def test_app_config_sections(self) -> None:
        config = AppConfig()

        assert isinstance(config.rpc, RPCConfig)
        assert isinstance(config.pipeline, PipelineConfig)
        assert config.rate_limit.scope in {"path", "ip"}

    def test_get_config_is_cached(self, monkeypatch: pytest.MonkeyPatch) -> None:
        reload_config()
        first = get_config()
        assert get_config() is first

        monkeypatch.setenv("LOG_LEVEL", "DEBUG")
        reloaded = reload_config()
        assert reloaded is not first
        assert reloaded.log_level == "DEBUG"
