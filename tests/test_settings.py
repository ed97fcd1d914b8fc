"""Tests for configuration settings."""

import pytest
from pydantic import ValidationError

from simple_bookkeeping.config.settings import FlatSettings, get_settings


@pytest.fixture(autouse=True)
def fresh_settings():
    """Drop the cached settings around each test."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_settings_loads_from_env():
    """Test that settings loads from environment variables."""
    settings = get_settings()

    assert settings.supabase_service_role_key.get_secret_value() == "test-service-role-key"
    assert settings.app_env == "test"
    assert settings.is_production is False
    assert settings.openai_api_key is None


def test_settings_has_defaults():
    """Test that settings has sensible defaults."""
    settings = get_settings()

    assert settings.supabase_url == "http://localhost:54321"
    assert settings.database_timeout == 30.0
    assert settings.database_max_retries == 3
    assert settings.error_language == "ja"
    assert settings.cash_account_codes == ["1110"]
    assert settings.bank_account_codes == ["1130"]
    assert "1140" in settings.receivable_account_codes
    assert "2110" in settings.payable_account_codes
    assert (settings.fiscal_year_start_month, settings.fiscal_year_start_day) == (4, 1)
    assert settings.import_max_rows == 1000
    assert settings.ai_classification_enabled is False
    assert settings.ws_port == 8765
    assert settings.debug_errors is False
    assert settings.expose_error_details is False


def test_settings_env_overrides(monkeypatch):
    """Test list and integer overrides."""
    monkeypatch.setenv("BANK_ACCOUNT_CODES", '["1130", "1131"]')
    monkeypatch.setenv("FISCAL_YEAR_START_MONTH", "1")
    monkeypatch.setenv("APP_ENV", "production")

    settings = get_settings()

    assert settings.bank_account_codes == ["1130", "1131"]
    assert settings.fiscal_year_start_month == 1
    assert settings.is_production is True


def test_settings_reject_invalid_month(monkeypatch):
    """Test that the fiscal year start month is bounded."""
    monkeypatch.setenv("FISCAL_YEAR_START_MONTH", "13")

    with pytest.raises(ValidationError):
        FlatSettings()


def test_settings_require_service_key(monkeypatch):
    """Test that the database key is mandatory."""
    monkeypatch.delenv("SUPABASE_SERVICE_ROLE_KEY")

    with pytest.raises(ValidationError):
        FlatSettings()


def test_settings_are_cached():
    """Test that get_settings returns cached instance."""
    settings1 = get_settings()
    settings2 = get_settings()

    assert settings1 is settings2


def test_debug_errors_flag(monkeypatch):
    """Test that DEBUG_ERRORS exposes details outside production only."""
    monkeypatch.setenv("DEBUG_ERRORS", "true")
    monkeypatch.setenv("APP_ENV", "development")

    assert FlatSettings().expose_error_details is True

    monkeypatch.setenv("APP_ENV", "production")

    assert FlatSettings().expose_error_details is False
