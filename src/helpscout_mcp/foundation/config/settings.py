"""Process settings read from environment variables and an optional .env file.

Each concern is a pydantic-settings section with its own variable prefix.

Example:
    >>> from helpscout_mcp.foundation.config import get_settings
    >>> settings = get_settings()
    >>> settings.cache.ttl_seconds
    300
    >>> settings.helpscout.base_url
    'https://api.helpscout.net/v2/'

    # Typical overrides:
    # HELPSCOUT_CLIENT_ID=...
    # HELPSCOUT_CLIENT_SECRET=...
    # CACHE_TTL_SECONDS=600
    # LOG_LEVEL=DEBUG
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated, Literal

from pydantic import (
    AliasChoices,
    Field,
    NonNegativeFloat,
    NonNegativeInt,
    PositiveFloat,
    PositiveInt,
    SecretStr,
    computed_field,
    field_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..errors import ConfigurationError, ErrorCode


class HelpScoutSettings(BaseSettings):
    """Upstream endpoints and credentials."""

    model_config = SettingsConfigDict(
        env_prefix="HELPSCOUT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    api_key: SecretStr | None = Field(default=None, description="Personal access token (optional 'Bearer ' prefix)")
    client_id: str | None = None
    client_secret: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("HELPSCOUT_CLIENT_SECRET", "HELPSCOUT_APP_SECRET", "client_secret"),
    )
    base_url: str = "https://api.helpscout.net/v2/"
    token_url: str = "https://api.helpscout.net/v2/oauth2/token"

    docs_api_key: SecretStr | None = None
    docs_base_url: str = "https://docsapi.helpscout.net/v1/"
    allow_delete: bool = Field(default=False, description="Gate for destructive primary API operations")
    allow_docs_delete: bool = Field(default=False, description="Gate for destructive Docs operations")
    default_docs_collection_id: str | None = None
    default_docs_site_id: str | None = None

    @field_validator("base_url", "docs_base_url", mode="after")
    @classmethod
    def _trailing_slash(cls, v: str) -> str:
        """Relative endpoints are joined onto the base, so it must end in '/'."""
        return v if v.endswith("/") else f"{v}/"

    @field_validator("client_id", "default_docs_collection_id", "default_docs_site_id", mode="before")
    @classmethod
    def _blank_is_none(cls, v: str | None) -> str | None:
        return v or None

    @computed_field
    @property
    def has_oauth2(self) -> bool:
        return bool(self.client_id and self.client_secret and self.client_secret.get_secret_value())

    @computed_field
    @property
    def has_personal_token(self) -> bool:
        return bool(self.api_key and self.api_key.get_secret_value().strip())


class CacheSettings(BaseSettings):
    """Response cache configuration."""

    model_config = SettingsConfigDict(env_prefix="CACHE_", extra="ignore")

    ttl_seconds: NonNegativeInt = Field(default=300, description="Default cache TTL in seconds")
    max_size: PositiveInt = Field(
        default=10000,
        description="Max cache entries",
        validation_alias=AliasChoices("MAX_CACHE_SIZE", "CACHE_MAX_SIZE", "max_size"),
    )


class PoolSettings(BaseSettings):
    """Connection pool for the primary API."""

    model_config = SettingsConfigDict(env_prefix="HTTP_", extra="ignore")

    max_sockets: PositiveInt = 50
    max_free_sockets: NonNegativeInt = 10
    socket_timeout: PositiveInt = Field(default=30000, description="Per-request timeout in milliseconds")
    keep_alive: bool = True
    keep_alive_msecs: PositiveInt = Field(default=1000, description="TCP keep-alive interval in milliseconds (reported only)")
    idle_timeout: PositiveFloat = Field(default=30.0, description="Seconds an idle pooled connection stays open")

    @property
    def timeout_seconds(self) -> float:
        return self.socket_timeout / 1000


class DocsPoolSettings(PoolSettings):
    """Connection pool for the Docs API (lower ceilings, separate rate limits)."""

    model_config = SettingsConfigDict(env_prefix="DOCS_HTTP_", extra="ignore")

    max_sockets: PositiveInt = 20
    max_free_sockets: NonNegativeInt = 5


class RetrySettings(BaseSettings):
    """Backoff parameters shared by both API clients."""

    model_config = SettingsConfigDict(env_prefix="RETRY_", extra="ignore")

    retries: Annotated[int, Field(ge=0, le=10)] = 3
    base_delay: PositiveFloat = Field(default=1.0, description="Base delay in seconds")
    max_delay: PositiveFloat = Field(default=10.0, description="Maximum delay in seconds")
    jitter_ratio: Annotated[float, Field(ge=0.0, le=1.0)] = 0.1
    default_retry_after: NonNegativeFloat = Field(default=60.0, description="Used when a 429 has no Retry-After")


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(env_prefix="LOG_", extra="ignore")

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["console", "json", "none"] = "console"

    @field_validator("level", mode="before")
    @classmethod
    def _normalize_level(cls, v: str) -> str:
        return v.strip().upper() if isinstance(v, str) else v

    @field_validator("format", mode="before")
    @classmethod
    def _normalize_format(cls, v: str) -> str:
        return v.strip().lower() if isinstance(v, str) else v


class SecuritySettings(BaseSettings):
    """Content redaction."""

    model_config = SettingsConfigDict(extra="ignore")

    allow_pii: bool = Field(default=False, validation_alias=AliasChoices("ALLOW_PII", "allow_pii"))


class Settings(BaseSettings):
    """Root settings for the Help Scout tool server.

    Each section loads from its own prefix (HELPSCOUT_, CACHE_, HTTP_,
    DOCS_HTTP_, RETRY_, LOG_) so the variable names match what operators
    already export for the upstream service.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        validate_default=True,
    )

    helpscout: HelpScoutSettings = Field(default_factory=HelpScoutSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    pool: PoolSettings = Field(default_factory=PoolSettings)
    docs_pool: DocsPoolSettings = Field(default_factory=DocsPoolSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)


def validate_credentials(settings: Settings) -> None:
    """Startup check: at least one primary API credential must be configured."""
    if settings.helpscout.has_oauth2 or settings.helpscout.has_personal_token:
        return
    raise ConfigurationError.create(
        "Authentication failed: no Help Scout credentials configured",
        code=ErrorCode.UNAUTHORIZED,
        suggestion="Set HELPSCOUT_CLIENT_ID and HELPSCOUT_CLIENT_SECRET, or HELPSCOUT_API_KEY",
    )


# Loaded once by the entrypoint; everything else receives values by injection
@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the process settings instance (cached)."""
    return Settings()


def clear_settings_cache() -> None:
    """Forget the cached settings so the next get_settings() re-reads the environment."""
    get_settings.cache_clear()
