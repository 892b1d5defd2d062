"""HTTP access to the Help Scout APIs.

- HelpScoutClient / DocsClient: cached, retried, pooled API clients
- ReportsClient: report endpoints with response unwrapping
- auth: OAuth2 client credentials, personal token, Docs API key
"""

from .auth import (
    AuthStrategy,
    AuthToken,
    CredentialSource,
    DocsApiKeyAuth,
    MissingCredentials,
    OAuth2ClientCredentials,
    StaticBearerAuth,
    resolve_api_auth,
    resolve_docs_auth,
)
from .client import ApiClient, DocsClient, HelpScoutClient
from .normalize import DOCS_UNWRAP_RULES, UnwrapRule, normalize_response
from .pool import PooledTransport, PoolStats
from .reports import ReportsClient, unwrap_report

__all__ = [
    # Clients
    "ApiClient", "HelpScoutClient", "DocsClient", "ReportsClient",
    # Auth
    "AuthStrategy", "AuthToken", "CredentialSource", "DocsApiKeyAuth", "MissingCredentials",
    "OAuth2ClientCredentials", "StaticBearerAuth", "resolve_api_auth", "resolve_docs_auth",
    # Shapes
    "DOCS_UNWRAP_RULES", "UnwrapRule", "normalize_response", "unwrap_report",
    # Pool
    "PooledTransport", "PoolStats",
]
