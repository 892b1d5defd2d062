"""Async HTTP clients for the Help Scout primary and Docs APIs.

Every call goes through the same pipeline:

    cache (reads) -> retry loop -> auth headers -> pooled transport
                  -> status mapping -> shape normalization -> cache

Each call gets a short correlation id, bound into the log context for the
duration of the call and carried by any ApiError it raises.

Example:
    >>> async with HelpScoutClient(base_url=..., auth=..., cache=..., retry=..., pool=...) as hs:
    ...     mailboxes = await hs.get("/mailboxes", {"page": 1})
"""

from __future__ import annotations

import asyncio
import secrets
import time
from typing import TYPE_CHECKING, Any, Callable, ClassVar

import httpx

from helpscout_mcp import __version__
from helpscout_mcp.foundation.errors import (
    ApiException,
    DeletionDisabledError,
    ErrorCode,
    error_from_status,
    error_from_transport,
)
from helpscout_mcp.runtime.observability import BoundLogger, current_context, get_logger, log_context
from helpscout_mcp.runtime.retry import execute_with_retry

from .normalize import DOCS_UNWRAP_RULES, UnwrapRule, endpoint_path, normalize_response
from .pool import PooledTransport, PoolStats

if TYPE_CHECKING:
    from collections.abc import Awaitable, Mapping

    from helpscout_mcp.foundation.config import PoolSettings
    from helpscout_mcp.io.cache import ResponseCache
    from helpscout_mcp.runtime.retry import RetryPolicy

    from .auth import AuthStrategy

Params = dict[str, Any]


def new_request_id() -> str:
    return secrets.token_hex(4)


def parent_endpoint(endpoint: str) -> str | None:
    """'/articles/123' -> '/articles'; top-level endpoints have no parent."""
    path = endpoint_path(endpoint)
    parent = path.rsplit("/", 1)[0]
    return parent or None


def _clean_params(params: Mapping[str, Any] | None) -> Params | None:
    if not params:
        return None
    return {k: v for k, v in params.items() if v is not None}


def _decode(response: httpx.Response) -> object:
    """JSON when the body parses as JSON, text otherwise, None when empty."""
    if response.status_code == 204 or not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


class ApiClient:
    """Shared request pipeline; subclasses pin the upstream-specific bits.

    Class attributes:
        service_name: Upstream name used in error messages
        namespace_prefix: Prepended to cache namespaces ("DOCS:" for Docs)
        ttl_rules: (substring, seconds) pairs; first match sets the default TTL
        fallback_ttl: Default TTL when no rule matches (None = cache default)
        unwrap_rules: Response-shape normalization table

    Args:
        base_url: Upstream base URL (trailing slash required)
        auth: Credential strategy
        cache: Shared response cache
        retry: Retry policy
        pool: Connection pool settings for this client
        allow_delete: Operator-level gate for ``delete``
        transport: Inner transport override (tests pass httpx.MockTransport)
        sleep: Retry delay function (tests pass a recorder)
    """

    service_name: ClassVar[str] = "Help Scout API"
    pool_name: ClassVar[str] = "helpscout"
    namespace_prefix: ClassVar[str] = ""
    ttl_rules: ClassVar[tuple[tuple[str, float], ...]] = ()
    fallback_ttl: ClassVar[float | None] = None
    unwrap_rules: ClassVar[tuple[UnwrapRule, ...]] = ()
    delete_env_var: ClassVar[str] = "HELPSCOUT_ALLOW_DELETE"

    def __init__(
        self,
        *,
        base_url: str,
        auth: AuthStrategy,
        cache: ResponseCache,
        retry: RetryPolicy,
        pool: PoolSettings,
        allow_delete: bool = False,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._auth = auth
        self._cache = cache
        self._retry = retry
        self._allow_delete = allow_delete
        self._sleep = sleep
        self._log: BoundLogger = get_logger("http.client", api=self.pool_name)
        self._transport = PooledTransport(pool, name=self.pool_name, inner=transport)
        self._http = httpx.AsyncClient(
            base_url=base_url,
            transport=self._transport,
            timeout=httpx.Timeout(pool.timeout_seconds),
            follow_redirects=True,
            max_redirects=5,
            headers={"Accept": "application/json", "User-Agent": f"helpscout-mcp/{__version__}"},
        )

    # ─────────────────────────────────────────────────────────────────
    # Public operations
    # ─────────────────────────────────────────────────────────────────

    def namespace(self, endpoint: str, method: str = "GET") -> str:
        """Invalidation scope: method and path, query string dropped."""
        return f"{self.namespace_prefix}{method}:{endpoint_path(endpoint)}"

    def read_namespace(self, endpoint: str) -> str:
        """Cache namespace of one GET; a query string inlined in ``endpoint`` stays part of it."""
        query = endpoint.partition("?")[2]
        base = self.namespace(endpoint)
        return f"{base}?{query}" if query else base

    def default_ttl(self, endpoint: str) -> float | None:
        path = endpoint_path(endpoint)
        for pattern, ttl in self.ttl_rules:
            if pattern in path:
                return ttl
        return self.fallback_ttl

    async def get(self, endpoint: str, params: Mapping[str, Any] | None = None, *, ttl: float | None = None) -> Any:
        """Cached, retried, normalized GET.

        Args:
            endpoint: Path relative to the base URL
            params: Query parameters (None values dropped)
            ttl: Cache TTL override in seconds; 0 disables caching for this call
        """
        query = _clean_params(params)
        ns = self.read_namespace(endpoint)
        cached = self._cache.get(ns, query)
        if cached is not None:
            return cached

        data = await self._request("GET", endpoint, params=query)
        data = normalize_response(endpoint, data, self.unwrap_rules)
        if data is not None:
            self._cache.set(ns, query, data, ttl if ttl is not None else self.default_ttl(endpoint))
        return data

    async def create(self, endpoint: str, body: Mapping[str, Any]) -> Any:
        """POST, then invalidate the endpoint and its parent collection."""
        data = await self._request("POST", endpoint, json=dict(body))
        self._invalidate(endpoint, include_parent=True)
        return data

    async def update(self, endpoint: str, body: Mapping[str, Any]) -> Any:
        """PUT, then invalidate the endpoint."""
        data = await self._request("PUT", endpoint, json=dict(body))
        self._invalidate(endpoint)
        return data

    async def delete(self, endpoint: str, *, require_confirmation: bool = True) -> None:
        """DELETE, refused locally (no network) unless deletions are enabled.

        Raises:
            DeletionDisabledError: Deletions are not enabled for this client
        """
        if require_confirmation and not self._allow_delete:
            self._log.warning("delete refused, deletions disabled", endpoint=endpoint)
            raise DeletionDisabledError.create(
                "Deletion operations are disabled by default for safety. "
                f"Set {self.delete_env_var}=true to enable deletion operations.",
                code=ErrorCode.UNAUTHORIZED,
                request_id=str(current_context().get("request_id", "unknown")),
                endpoint=endpoint,
                method="DELETE",
                suggestion=f"Set {self.delete_env_var}=true",
            )
        await self._request("DELETE", endpoint)
        self._invalidate(endpoint, include_parent=True)

    # ─────────────────────────────────────────────────────────────────
    # Pool management
    # ─────────────────────────────────────────────────────────────────

    def pool_stats(self) -> PoolStats:
        return self._transport.stats()

    def log_pool_status(self) -> None:
        self._transport.log_status()

    async def clear_idle_connections(self) -> int:
        return await self._transport.clear_idle_connections()

    async def close(self) -> None:
        """Drain and close the connection pool."""
        await self._http.aclose()

    async def __aenter__(self) -> ApiClient:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.close()

    # ─────────────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────────────

    def _invalidate(self, endpoint: str, *, include_parent: bool = False) -> None:
        self._cache.clear(self.namespace(endpoint))
        if include_parent and (parent := parent_endpoint(endpoint)):
            self._cache.clear(self.namespace(parent))

    async def _request(
        self,
        method: str,
        endpoint: str,
        *,
        params: Params | None = None,
        json: Params | None = None,
    ) -> Any:
        # Reuse an id bound by the caller (tool invocation) so one call logs under one id
        request_id = str(current_context().get("request_id") or new_request_id())

        async def attempt() -> Any:
            return await self._send_once(request_id, method, endpoint, params=params, json=json)

        with log_context(request_id=request_id):
            return await execute_with_retry(
                attempt, self._retry, label=f"{method} {endpoint}", sleep=self._sleep, log=self._log,
            )

    async def _send_once(
        self,
        request_id: str,
        method: str,
        endpoint: str,
        *,
        params: Params | None,
        json: Params | None,
    ) -> Any:
        headers = await self._auth.headers(self._http)
        self._log.debug("api request", method=method, url=endpoint)
        start = time.perf_counter()
        try:
            response = await self._http.request(method, endpoint, params=params, json=json, headers=headers)
        except httpx.TransportError as e:
            duration_ms = round((time.perf_counter() - start) * 1000)
            self._log.error("api error", method=method, url=endpoint, error=str(e) or type(e).__name__, duration_ms=duration_ms)
            raise ApiException(error_from_transport(
                e, service=self.service_name, request_id=request_id, endpoint=endpoint, method=method,
            )) from e

        duration_ms = round((time.perf_counter() - start) * 1000)
        if response.status_code >= 400:
            if response.status_code == 401:
                self._auth.invalidate()
            self._log.error("api error", method=method, url=endpoint, status=response.status_code, duration_ms=duration_ms)
            raise ApiException(error_from_status(
                response.status_code,
                service=self.service_name,
                request_id=request_id,
                endpoint=endpoint,
                method=method,
                headers=response.headers,
                body=_decode(response),
                default_retry_after=int(self._retry.default_retry_after),
            ))

        self._log.debug("api response", method=method, url=endpoint, status=response.status_code, duration_ms=duration_ms)
        return _decode(response)


class HelpScoutClient(ApiClient):
    """Primary (Mailbox) API v2: conversations, mailboxes, customers, reports."""

    service_name = "Help Scout API"
    pool_name = "helpscout"
    namespace_prefix = ""
    ttl_rules = (
        ("/conversations", 300.0),
        ("/mailboxes", 1440.0),
        ("/reports", 600.0),
    )
    fallback_ttl = None


class DocsClient(ApiClient):
    """Docs API v1: sites, collections, categories, articles."""

    service_name = "Help Scout Docs API"
    pool_name = "docs"
    namespace_prefix = "DOCS:"
    ttl_rules = (
        ("/articles", 600.0),
        ("/collections", 1440.0),
        ("/categories", 1440.0),
        ("/sites", 1440.0),
    )
    fallback_ttl = 600.0
    unwrap_rules = DOCS_UNWRAP_RULES
    delete_env_var = "HELPSCOUT_ALLOW_DOCS_DELETE"

    async def test_connection(self) -> bool:
        """Check the API with the cheapest read; failures are logged, not raised."""
        try:
            sites = await self.get("/sites", {"page": 1})
        except ApiException as e:
            self._log.error("docs connection test failed", code=e.code.value, error=e.error.message)
            return False
        items = sites.get("items") if isinstance(sites, dict) else None
        self._log.info("docs connection test", success=True, site_count=len(items or []))
        return True
