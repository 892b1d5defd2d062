"""Tests for environment-driven settings."""

from pathlib import Path

import pytest

from helpscout_mcp.foundation.config import (
    CacheSettings,
    DocsPoolSettings,
    HelpScoutSettings,
    LoggingSettings,
    SecuritySettings,
    Settings,
    clear_settings_cache,
    get_settings,
    validate_credentials,
)
from helpscout_mcp.foundation.errors import ConfigurationError, ErrorCode


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Isolate from the developer's environment and any .env file."""
    monkeypatch.chdir(tmp_path)
    for var in (
        "HELPSCOUT_API_KEY", "HELPSCOUT_CLIENT_ID", "HELPSCOUT_CLIENT_SECRET", "HELPSCOUT_APP_SECRET",
        "HELPSCOUT_BASE_URL", "MAX_CACHE_SIZE", "CACHE_MAX_SIZE", "ALLOW_PII", "LOG_LEVEL",
    ):
        monkeypatch.delenv(var, raising=False)
    clear_settings_cache()


def test_defaults() -> None:
    settings = Settings()
    assert settings.helpscout.base_url == "https://api.helpscout.net/v2/"
    assert settings.cache.ttl_seconds == 300
    assert settings.cache.max_size == 10000
    assert settings.pool.max_sockets == 50
    assert settings.docs_pool.max_sockets == 20
    assert settings.retry.retries == 3
    assert not settings.security.allow_pii


def test_env_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("HELPSCOUT_CLIENT_ID", "app")
    monkeypatch.setenv("HELPSCOUT_APP_SECRET", "secret")
    monkeypatch.setenv("HELPSCOUT_BASE_URL", "https://example.test/v2")
    monkeypatch.setenv("MAX_CACHE_SIZE", "50")
    monkeypatch.setenv("ALLOW_PII", "true")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    hs = HelpScoutSettings()
    assert hs.has_oauth2
    assert hs.base_url == "https://example.test/v2/"
    assert CacheSettings().max_size == 50
    assert SecuritySettings().allow_pii
    assert LoggingSettings().level == "DEBUG"


def test_docs_pool_has_own_prefix(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DOCS_HTTP_MAX_SOCKETS", "7")
    assert DocsPoolSettings().max_sockets == 7


def test_blank_default_ids_are_none() -> None:
    assert HelpScoutSettings(default_docs_site_id="").default_docs_site_id is None


def test_validate_credentials() -> None:
    with pytest.raises(ConfigurationError) as exc_info:
        validate_credentials(Settings())
    assert exc_info.value.code is ErrorCode.UNAUTHORIZED

    validate_credentials(Settings(helpscout=HelpScoutSettings(api_key="pat")))


def test_get_settings_is_cached() -> None:
    assert get_settings() is get_settings()
    clear_settings_cache()
