"""Composition root: builds every long-lived collaborator from settings.

Nothing below this module reads the environment or holds process-global
state; clients, caches and resolvers are constructed here once and passed
down explicitly.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

from helpscout_mcp.http import (
    DocsClient,
    HelpScoutClient,
    ReportsClient,
    resolve_api_auth,
    resolve_docs_auth,
)
from helpscout_mcp.io.cache import ResponseCache
from helpscout_mcp.resolvers import CollectionResolver, DocsDirectory, SiteResolver
from helpscout_mcp.runtime.observability import get_logger
from helpscout_mcp.runtime.retry import RetryPolicy

if TYPE_CHECKING:
    from collections.abc import Awaitable

    import httpx

    from helpscout_mcp.foundation.config import Settings

_log = get_logger("container")


@dataclass(slots=True)
class Services:
    """Everything a tool may touch."""
    settings: Settings
    cache: ResponseCache
    helpscout: HelpScoutClient
    docs: DocsClient
    reports: ReportsClient
    site_resolver: SiteResolver
    collection_resolver: CollectionResolver

    @property
    def allow_pii(self) -> bool:
        return self.settings.security.allow_pii

    async def close(self) -> None:
        """Close both connection pools."""
        await self.helpscout.close()
        await self.docs.close()
        _log.info("connection pools closed")


def build_services(
    settings: Settings,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    docs_transport: httpx.AsyncBaseTransport | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> Services:
    """Wire clients, cache and resolvers from ``settings``.

    Args:
        settings: Loaded settings
        transport: Inner transport for the primary client (tests)
        docs_transport: Inner transport for the Docs client (tests)
        sleep: Retry delay function (tests)
    """
    hs = settings.helpscout
    cache = ResponseCache(default_ttl=settings.cache.ttl_seconds, max_size=settings.cache.max_size)
    retry = RetryPolicy.from_settings(settings.retry)

    helpscout = HelpScoutClient(
        base_url=hs.base_url,
        auth=resolve_api_auth(hs),
        cache=cache,
        retry=retry,
        pool=settings.pool,
        allow_delete=hs.allow_delete,
        transport=transport,
        sleep=sleep,
    )
    docs = DocsClient(
        base_url=hs.docs_base_url,
        auth=resolve_docs_auth(hs),
        cache=cache,
        retry=retry,
        pool=settings.docs_pool,
        allow_delete=hs.allow_docs_delete,
        transport=docs_transport,
        sleep=sleep,
    )

    _log.info(
        "services built",
        cache_ttl=settings.cache.ttl_seconds,
        cache_max=settings.cache.max_size,
        retries=retry.retries,
        docs_configured=hs.docs_api_key is not None,
    )
    return Services(
        settings=settings,
        cache=cache,
        helpscout=helpscout,
        docs=docs,
        reports=ReportsClient(helpscout),
        site_resolver=SiteResolver(DocsDirectory(docs), hs.default_docs_site_id),
        collection_resolver=CollectionResolver(
            DocsDirectory(docs, include_collections=True), hs.default_docs_collection_id,
        ),
    )
