"""Configuration management using pydantic-settings.

Provides environment-based configuration with type safety and validation.
"""

from .settings import (
    CacheSettings,
    DocsPoolSettings,
    HelpScoutSettings,
    LoggingSettings,
    PoolSettings,
    RetrySettings,
    SecuritySettings,
    Settings,
    clear_settings_cache,
    get_settings,
    validate_credentials,
)

__all__ = [
    "CacheSettings",
    "DocsPoolSettings",
    "HelpScoutSettings",
    "LoggingSettings",
    "PoolSettings",
    "RetrySettings",
    "SecuritySettings",
    "Settings",
    "clear_settings_cache",
    "get_settings",
    "validate_credentials",
]
