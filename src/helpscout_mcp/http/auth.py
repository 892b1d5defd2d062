"""Authentication strategies for the upstream APIs.

- OAuth2ClientCredentials: client-id/secret exchanged for a bearer token,
  refreshed shortly before it expires
- StaticBearerAuth: personal access token, sent as-is (no refresh)
- DocsApiKeyAuth: Docs API key as HTTP Basic username, "X" as password
- MissingCredentials: fails every call before it reaches the network

Strategies produce request headers; they never retry on their own. A
token request that fails is surfaced as an UNAUTHORIZED/UPSTREAM ApiError
and the outer retry loop decides what happens next.
"""

from __future__ import annotations

import base64
import time
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Callable, Literal, Protocol, runtime_checkable

import httpx
from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_serializer, field_validator

from helpscout_mcp.foundation.errors import (
    ApiException,
    ConfigurationError,
    ErrorCode,
    error_from_status,
    error_from_transport,
)
from helpscout_mcp.runtime.observability import current_context, get_logger

if TYPE_CHECKING:
    from helpscout_mcp.foundation.config import HelpScoutSettings

_log = get_logger("http.auth")

# Refresh this many seconds before the upstream-declared expiry
REFRESH_SKEW_SECONDS = 60.0


class CredentialSource(StrEnum):
    OAUTH2 = "oauth2"
    PERSONAL_TOKEN = "personal_token"
    DOCS_API_KEY = "docs_api_key"
    NONE = "none"


@runtime_checkable
class AuthStrategy(Protocol):
    """Produces the Authorization header for one outbound request."""

    source: CredentialSource

    async def headers(self, http: httpx.AsyncClient) -> dict[str, str]: ...

    def invalidate(self) -> None:
        """Forget any cached credential (called after an upstream 401)."""
        ...


# ─────────────────────────────────────────────────────────────────────────────
# Static strategies
# ─────────────────────────────────────────────────────────────────────────────


class StaticBearerAuth(BaseModel):
    """Personal access token. An optional leading 'Bearer ' is accepted and stripped."""

    model_config = ConfigDict(frozen=True, extra="forbid", revalidate_instances="never")
    auth_type: Literal["bearer"] = "bearer"
    token: SecretStr = Field(..., description="Personal access token")

    @field_validator("token", mode="before")
    @classmethod
    def _strip_scheme(cls, v: str | SecretStr) -> str:
        raw = v.get_secret_value() if isinstance(v, SecretStr) else str(v)
        raw = raw.strip()
        return raw[len("Bearer "):].strip() if raw.lower().startswith("bearer ") else raw

    @field_serializer("token", when_used="json")
    def _mask_token(self, v: SecretStr) -> str:
        secret = v.get_secret_value()
        return f"{secret[:4]}...{secret[-4:]}" if len(secret) > 8 else "***"

    @property
    def source(self) -> CredentialSource:
        return CredentialSource.PERSONAL_TOKEN

    async def headers(self, http: httpx.AsyncClient) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token.get_secret_value()}"}

    def invalidate(self) -> None:
        pass


class DocsApiKeyAuth(BaseModel):
    """HTTP Basic with the Docs API key as username and a dummy password."""

    model_config = ConfigDict(frozen=True, extra="forbid", revalidate_instances="never")
    auth_type: Literal["basic"] = "basic"
    api_key: SecretStr

    @field_serializer("api_key", when_used="json")
    def _mask_key(self, v: SecretStr) -> str:
        return "***"

    @property
    def source(self) -> CredentialSource:
        return CredentialSource.DOCS_API_KEY

    async def headers(self, http: httpx.AsyncClient) -> dict[str, str]:
        credentials = base64.b64encode(f"{self.api_key.get_secret_value()}:X".encode()).decode()
        return {"Authorization": f"Basic {credentials}"}

    def invalidate(self) -> None:
        pass


@dataclass(frozen=True, slots=True)
class MissingCredentials:
    """Stand-in when nothing is configured: every request fails fast, offline."""

    message: str
    suggestion: str
    source: CredentialSource = CredentialSource.NONE

    async def headers(self, http: httpx.AsyncClient) -> dict[str, str]:
        raise ConfigurationError.create(
            self.message,
            code=ErrorCode.UNAUTHORIZED,
            request_id=current_context().get("request_id", "unknown"),
            suggestion=self.suggestion,
        )

    def invalidate(self) -> None:
        pass


# ─────────────────────────────────────────────────────────────────────────────
# OAuth2 client credentials
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class AuthToken:
    """A bearer token and when it stops being usable (monotonic seconds)."""
    access_token: str
    expires_at: float
    source: CredentialSource = CredentialSource.OAUTH2

    def is_fresh(self, now: float, skew: float = REFRESH_SKEW_SECONDS) -> bool:
        return now < self.expires_at - skew


class OAuth2ClientCredentials:
    """Client-credentials flow with refresh-before-expiry.

    No lock is held across the token request: two concurrent callers that
    both see an expiring token may both refresh, and the last one wins.

    Args:
        client_id: OAuth2 application id
        client_secret: OAuth2 application secret
        token_url: Absolute token endpoint URL
        clock: Monotonic time source (injected by tests)
        skew: Seconds before expiry at which the token is refreshed
    """

    __slots__ = ("_client_id", "_client_secret", "_token_url", "_clock", "_skew", "_token")

    source = CredentialSource.OAUTH2

    def __init__(
        self,
        client_id: str,
        client_secret: SecretStr,
        token_url: str,
        *,
        clock: Callable[[], float] = time.monotonic,
        skew: float = REFRESH_SKEW_SECONDS,
    ) -> None:
        self._client_id = client_id
        self._client_secret = client_secret
        self._token_url = token_url
        self._clock = clock
        self._skew = skew
        self._token: AuthToken | None = None

    @property
    def token(self) -> AuthToken | None:
        return self._token

    async def headers(self, http: httpx.AsyncClient) -> dict[str, str]:
        token = self._token
        if token is None or not token.is_fresh(self._clock(), self._skew):
            token = await self.refresh(http)
        return {"Authorization": f"Bearer {token.access_token}"}

    def invalidate(self) -> None:
        self._token = None

    async def refresh(self, http: httpx.AsyncClient) -> AuthToken:
        """Exchange the client credentials for a new access token."""
        request_id = current_context().get("request_id", "unknown")
        try:
            response = await http.post(
                self._token_url,
                data={
                    "grant_type": "client_credentials",
                    "client_id": self._client_id,
                    "client_secret": self._client_secret.get_secret_value(),
                },
                headers={"Accept": "application/json"},
            )
        except httpx.TransportError as e:
            _log.error("token request failed", error=str(e))
            raise ApiException(error_from_transport(
                e, service="Help Scout OAuth2", request_id=request_id, endpoint=self._token_url, method="POST",
            )) from e

        body = _json_or_none(response)
        if response.status_code >= 400:
            status = 401 if response.status_code in (400, 401) else response.status_code
            _log.error("token request rejected", status=response.status_code)
            raise ApiException(error_from_status(
                status,
                service="Help Scout OAuth2",
                request_id=request_id,
                endpoint=self._token_url,
                method="POST",
                headers=response.headers,
                body=body,
            ))

        if not isinstance(body, dict) or not body.get("access_token"):
            raise ApiException.create(
                "Help Scout OAuth2 token response did not contain an access_token",
                code=ErrorCode.UNAUTHORIZED,
                request_id=request_id,
                endpoint=self._token_url,
                method="POST",
                status_code=response.status_code,
            )

        expires_in = float(body.get("expires_in") or 7200)
        self._token = AuthToken(access_token=str(body["access_token"]), expires_at=self._clock() + expires_in)
        _log.info("access token refreshed", expires_in=expires_in)
        return self._token


def _json_or_none(response: httpx.Response) -> object:
    try:
        return response.json()
    except ValueError:
        return None


# ─────────────────────────────────────────────────────────────────────────────
# Resolution from settings
# ─────────────────────────────────────────────────────────────────────────────


def resolve_api_auth(settings: HelpScoutSettings, *, clock: Callable[[], float] = time.monotonic) -> AuthStrategy:
    """OAuth2 pair if configured, else personal token, else a fail-fast stand-in."""
    if settings.has_oauth2:
        assert settings.client_id and settings.client_secret
        _log.info("using OAuth2 client credentials")
        return OAuth2ClientCredentials(settings.client_id, settings.client_secret, settings.token_url, clock=clock)
    if settings.has_personal_token:
        assert settings.api_key
        _log.info("using personal access token")
        return StaticBearerAuth(token=settings.api_key)
    return MissingCredentials(
        message="Authentication failed: no Help Scout credentials configured",
        suggestion="Set HELPSCOUT_CLIENT_ID and HELPSCOUT_CLIENT_SECRET, or HELPSCOUT_API_KEY",
    )


def resolve_docs_auth(settings: HelpScoutSettings) -> AuthStrategy:
    key = settings.docs_api_key
    if key is not None and key.get_secret_value().strip():
        return DocsApiKeyAuth(api_key=key)
    return MissingCredentials(
        message="Help Scout Docs API key not configured",
        suggestion="Set HELPSCOUT_DOCS_API_KEY",
    )
