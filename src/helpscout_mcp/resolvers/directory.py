"""Lazily loaded, periodically refreshed snapshot of Docs sites and collections.

A snapshot is immutable and replaced in one assignment, so readers see
either the previous snapshot or the new one, never a half-built one. Two
callers racing on a stale snapshot may both reload; the last one wins.
Load failures are logged and leave the previous snapshot in place.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Callable, Protocol

from pydantic import ValidationError

from helpscout_mcp.foundation.errors import ApiException
from helpscout_mcp.runtime.observability import get_logger

from .models import DocsCollection, DocsSite

if TYPE_CHECKING:
    from collections.abc import Mapping

_log = get_logger("resolvers.directory")

FRESHNESS_SECONDS = 3600.0
COLLECTIONS_PAGE_SIZE = 100


class DocsReader(Protocol):
    """The one capability the directory needs from the Docs client."""

    async def get(self, endpoint: str, params: Mapping[str, Any] | None = None, *, ttl: float | None = None) -> Any: ...


@dataclass(frozen=True, slots=True)
class DirectorySnapshot:
    sites: tuple[DocsSite, ...] = ()
    collections: Mapping[str, tuple[DocsCollection, ...]] = field(default_factory=lambda: MappingProxyType({}))
    loaded_at: float = 0.0

    @property
    def empty(self) -> bool:
        return not self.sites

    def collections_for(self, site_id: str) -> tuple[DocsCollection, ...]:
        return self.collections.get(site_id, ())


EMPTY_SNAPSHOT = DirectorySnapshot()


def _items(response: Any) -> list[Any]:
    items = response.get("items") if isinstance(response, dict) else None
    return items if isinstance(items, list) else []


class DocsDirectory:
    """Site (and optionally collection) directory backed by the Docs API.

    Args:
        client: Anything with an async ``get`` (the Docs client)
        include_collections: Also load each site's collections
        freshness: Seconds a snapshot stays valid
        clock: Monotonic time source (injected by tests)
    """

    __slots__ = ("_client", "_include_collections", "_freshness", "_clock", "_snapshot", "_name")

    def __init__(
        self,
        client: DocsReader,
        *,
        include_collections: bool = False,
        freshness: float = FRESHNESS_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self._include_collections = include_collections
        self._freshness = freshness
        self._clock = clock
        self._snapshot = EMPTY_SNAPSHOT
        self._name = "collections" if include_collections else "sites"

    @property
    def current(self) -> DirectorySnapshot:
        return self._snapshot

    def is_fresh(self) -> bool:
        snap = self._snapshot
        return not snap.empty and (self._clock() - snap.loaded_at) < self._freshness

    def clear(self) -> None:
        """Drop the snapshot so the next read reloads."""
        self._snapshot = EMPTY_SNAPSHOT
        _log.info("resolver directory cleared", directory=self._name)

    async def snapshot(self) -> DirectorySnapshot:
        """Fresh snapshot, reloading when stale or empty."""
        if not self.is_fresh():
            await self._reload()
        return self._snapshot

    async def _reload(self) -> None:
        _log.info("loading resolver directory", directory=self._name)
        try:
            response = await self._client.get("/sites", {"page": 1})
            sites = tuple(DocsSite.model_validate(s) for s in _items(response))
        except (ApiException, ValidationError) as e:
            _log.error("failed to load resolver directory", directory=self._name, error=str(e))
            return

        if not sites:
            _log.warning("no sites found for resolver", directory=self._name)
            return

        collections: dict[str, tuple[DocsCollection, ...]] = {}
        if self._include_collections:
            for site in sites:
                loaded = await self._load_collections(site)
                if loaded:
                    collections[site.id] = loaded

        self._snapshot = DirectorySnapshot(
            sites=sites,
            collections=MappingProxyType(collections),
            loaded_at=self._clock(),
        )
        _log.info(
            "resolver directory loaded",
            directory=self._name,
            site_count=len(sites),
            collection_count=sum(len(c) for c in collections.values()),
        )

    async def _load_collections(self, site: DocsSite) -> tuple[DocsCollection, ...]:
        try:
            response = await self._client.get(
                "/collections", {"siteId": site.id, "page": 1, "pageSize": COLLECTIONS_PAGE_SIZE},
            )
            return tuple(DocsCollection.model_validate(c) for c in _items(response))
        except (ApiException, ValidationError) as e:
            _log.error("failed to load collections for site", site_id=site.id, error=str(e))
            return ()
