"""Tests for configuration loading and validation."""

import logging

import pytest

from coinalerts.services.config import ConfigService, ConfigValidationException
from coinalerts.services.logging_service import configure_logging
from coinalerts.services.market_data import MarketSettings
from coinalerts.services.symbols import COINMARKETCAP, POLYGON


VALID_CONFIG = """
market:
  default_symbols: [BTC, ETH, TAO]
  primary_provider: coinmarketcap
  request_timeout_seconds: 8
  quotes_cache_ttl_seconds: 30
  fallback_batch_size: 10
providers:
  coinmarketcap:
    api_key: file-key
  polygon:
    enabled: false
alerts:
  critical_threshold_pct: -15
  warning_threshold_pct: -7.5
  deadline_hours: 6
logging:
  level: DEBUG
"""


def write_config(tmp_path, text):
    path = tmp_path / "config.yaml"
    path.write_text(text)
    return ConfigService(config_path=str(path))


class TestLoadAndValidate:

    def test_valid_file(self, tmp_path):
        service = write_config(tmp_path, VALID_CONFIG)
        config = service.load_and_validate()

        assert config["market"]["primary_provider"] == "coinmarketcap"
        assert service.get("market.fallback_batch_size") == 10
        assert service.get("market.missing", "fallback") == "fallback"

    def test_missing_file_uses_defaults(self, tmp_path):
        service = ConfigService(config_path=str(tmp_path / "absent.yaml"))
        assert service.load_and_validate() == {}
        assert service.get("market.currency", "USD") == "USD"

    def test_empty_file(self, tmp_path):
        assert write_config(tmp_path, "").load_and_validate() == {}

    def test_invalid_yaml(self, tmp_path):
        service = write_config(tmp_path, "market: [unclosed")
        with pytest.raises(ConfigValidationException, match="Invalid YAML"):
            service.load_and_validate()

    def test_top_level_must_be_dict(self, tmp_path):
        service = write_config(tmp_path, "- just\n- a list\n")
        with pytest.raises(ConfigValidationException):
            service.load_and_validate()

    @pytest.mark.parametrize("config,path", [
        ({"bogus": {}}, "bogus"),
        ({"market": {"primary_provider": "binance"}}, "market.primary_provider"),
        ({"market": {"request_timeout_seconds": 0}}, "market.request_timeout_seconds"),
        ({"market": {"fallback_batch_size": "ten"}}, "market.fallback_batch_size"),
        ({"market": {"fallback_batch_size": True}}, "market.fallback_batch_size"),
        ({"market": {"default_symbols": ["BTC", "btc-usd"]}}, "market.default_symbols[1]"),
        ({"providers": {"binance": {}}}, "providers.binance"),
        ({"providers": {"polygon": {"enabled": "yes"}}}, "providers.polygon.enabled"),
        ({"alerts": {"warning_threshold_pct": 5}}, "alerts.warning_threshold_pct"),
        ({"logging": {"level": "LOUD"}}, "logging.level"),
    ])
    def test_schema_errors(self, config, path):
        with pytest.raises(ConfigValidationException) as exc_info:
            ConfigService(config_path="unused").load_dict(config)

        assert path in [e.path for e in exc_info.value.errors]

    def test_errors_are_collected(self):
        config = {"market": {"primary_provider": "binance", "fallback_batch_size": 0}, "extra": 1}
        with pytest.raises(ConfigValidationException) as exc_info:
            ConfigService(config_path="unused").load_dict(config)
        assert len(exc_info.value.errors) == 3


class TestApiKeys:

    def test_file_key(self, tmp_path, monkeypatch):
        monkeypatch.delenv("CMC_API_KEY", raising=False)
        service = write_config(tmp_path, VALID_CONFIG)
        service.load_and_validate()
        assert service.get_api_key(COINMARKETCAP) == "file-key"

    def test_environment_wins(self, tmp_path, monkeypatch):
        monkeypatch.setenv("CMC_API_KEY", "env-key")
        service = write_config(tmp_path, VALID_CONFIG)
        service.load_and_validate()
        assert service.get_api_key(COINMARKETCAP) == "env-key"

    def test_no_key(self, monkeypatch):
        monkeypatch.delenv("POLYGON_API_KEY", raising=False)
        service = ConfigService(config_path="unused")
        service.load_dict({})
        assert service.get_api_key(POLYGON) is None


class TestMarketSettings:

    def test_from_config(self, tmp_path, monkeypatch):
        monkeypatch.delenv("CMC_API_KEY", raising=False)
        service = write_config(tmp_path, VALID_CONFIG)
        service.load_and_validate()

        settings = MarketSettings.from_config(service)

        assert settings.primary_provider == COINMARKETCAP
        assert settings.default_symbols == ["BTC", "ETH", "TAO"]
        assert settings.request_timeout_seconds == 8.0
        assert settings.quotes_cache_ttl_seconds == 30
        assert settings.fallback_batch_size == 10
        assert settings.providers[COINMARKETCAP].api_key == "file-key"
        assert settings.providers[COINMARKETCAP].timeout_seconds == 8.0
        assert settings.providers[POLYGON].enabled is False
        assert settings.thresholds.critical_pct == -15.0
        assert settings.thresholds.warning_pct == -7.5
        assert settings.thresholds.deadline_hours == 6.0

    def test_defaults(self):
        service = ConfigService(config_path="unused")
        service.load_dict({})
        settings = MarketSettings.from_config(service)

        assert settings.primary_provider == POLYGON
        assert settings.snapshot_timeout_seconds == 20.0
        assert settings.grouped_cache_ttl_seconds == 300
        assert settings.thresholds.critical_pct == -10.0


class TestLogging:

    def test_configured_level(self):
        service = ConfigService(config_path="unused")
        service.load_dict({"logging": {"level": "WARNING"}})
        assert configure_logging(service) == logging.WARNING
        assert logging.getLogger().level == logging.WARNING

    def test_default_level(self):
        assert configure_logging() == logging.INFO
