"""Tests for configuration settings."""

from decimal import Decimal

import pytest


def test_settings_loads_from_env():
    """Test that settings loads from environment variables."""
    # Import after env vars are set in conftest
    from ranch_ledger.config.settings import get_settings

    # Clear the cache to force reload
    get_settings.cache_clear()

    settings = get_settings()

    assert settings.admin_token.get_secret_value() == "test-admin-token"
    assert settings.liability_alert_threshold == Decimal("200")
    assert settings.feed_api_url == "http://feed.test"
    assert settings.ws_enabled is False


def test_settings_has_defaults():
    """Test that settings has sensible defaults."""
    from ranch_ledger.config.settings import get_settings

    get_settings.cache_clear()
    settings = get_settings()

    assert settings.feed_timeout == 15.0
    assert settings.feed_max_retries == 3
    assert settings.automated_deposit_amounts == [Decimal("160")]
    assert settings.fallback_unit_price == Decimal("0.50")
    assert settings.ws_port == 8765
    assert settings.api_port == 8000
    assert settings.ledger_path.name == "ledger.json"


def test_settings_are_cached():
    """Test that get_settings returns cached instance."""
    from ranch_ledger.config.settings import get_settings

    get_settings.cache_clear()

    settings1 = get_settings()
    settings2 = get_settings()

    assert settings1 is settings2


def test_automated_amounts_parsed_from_json(monkeypatch):
    """Test that list settings accept a JSON array."""
    from ranch_ledger.config.settings import FlatSettings

    monkeypatch.setenv("AUTOMATED_DEPOSIT_AMOUNTS", '["160", "320.5"]')

    settings = FlatSettings()

    assert settings.automated_deposit_amounts == [Decimal("160"), Decimal("320.5")]


def test_invalid_log_level_rejected(monkeypatch):
    """Test that unknown log levels fail fast."""
    from pydantic import ValidationError

    from ranch_ledger.config.settings import FlatSettings

    monkeypatch.setenv("LOG_LEVEL", "VERBOSE")

    with pytest.raises(ValidationError):
        FlatSettings()


def test_data_paths_follow_data_dir(monkeypatch, tmp_path):
    """Test that storage paths are resolved under the data directory."""
    from ranch_ledger.config.settings import FlatSettings

    monkeypatch.setenv("RANCH_DATA_DIR", str(tmp_path))

    settings = FlatSettings()

    assert settings.ledger_path == tmp_path / "ledger.json"
    assert settings.managers_path == tmp_path / "managers.json"
    assert settings.stock_path == tmp_path / "stock_config.json"
