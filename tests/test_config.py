"""Tests for settings and startup validation."""

import pytest

from levelwatch.config import Settings, validate_monitor_config
from levelwatch.errors import ConfigurationError


def test_defaults():
    cfg = Settings()
    assert cfg.symbol == "TSLA"
    assert cfg.max_publish_warnings == 3
    assert cfg.db_url.startswith("sqlite:///")


def test_env_override(monkeypatch):
    monkeypatch.setenv("LEVELWATCH_SYMBOL", "NVDA")
    monkeypatch.setenv("LEVELWATCH_PRICE_PROVIDERS", '["finnhub"]')
    cfg = Settings()
    assert cfg.symbol == "NVDA"
    assert cfg.price_providers == ["finnhub"]


def test_no_providers_is_fatal():
    with pytest.raises(ConfigurationError):
        validate_monitor_config(Settings(price_providers=[]))


def test_valid_config_passes():
    validate_monitor_config(Settings())


def test_only_unknown_providers_is_fatal():
    with pytest.raises(ConfigurationError, match="No known price providers"):
        validate_monitor_config(Settings(price_providers=["bogus", "nope"]))


def test_unknown_provider_alongside_known_passes():
    validate_monitor_config(Settings(price_providers=["bogus", "Finnhub"]))
