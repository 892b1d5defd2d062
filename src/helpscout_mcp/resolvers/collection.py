"""Natural-language -> Docs collection resolution.

A collection can be named directly, or reached through its owning site
("the Acme docs"). Site-level matches score below a direct collection
name so an explicit collection always wins.
"""

from __future__ import annotations

from helpscout_mcp.runtime.observability import get_logger

from .directory import DocsDirectory
from .matching import (
    DEFAULT_FALLBACK_SCORE,
    NAME_SCORE,
    MatchResult,
    Rule,
    apply_default,
    best_of,
    first_rule_match,
    partial_match,
    split_words,
)
from .models import DocsCollection, DocsSite

_log = get_logger("resolvers.collection")


def score_collection(collection: DocsCollection, site: DocsSite, text: str) -> tuple[float, str]:
    """Score one collection (within ``site``) against lowercased input."""
    hit = first_rule_match(text, [
        Rule("Direct", collection.name, NAME_SCORE),
        Rule("Site", site.name, 80.0),
        Rule("Subdomain", site.subdomain, 70.0),
        Rule("Slug", collection.slug, 60.0),
    ])
    if hit is None:
        hit = partial_match(text, split_words(collection.name))
    return hit or (0.0, "")


class CollectionResolver:
    """Pick the Docs collection a free-text reference most likely means.

    Args:
        directory: Directory loaded with collections
        default_collection_id: Configured default, used as bonus and fallback
    """

    __slots__ = ("_directory", "_default_collection_id")

    def __init__(self, directory: DocsDirectory, default_collection_id: str | None = None) -> None:
        self._directory = directory
        self._default_collection_id = default_collection_id

    async def resolve_collection(
        self, text: str, default_collection_id: str | None = None,
    ) -> MatchResult[DocsCollection] | None:
        """Best-matching collection (with its site), the default, or None."""
        default_id = default_collection_id or self._default_collection_id
        snapshot = await self._directory.snapshot()
        normalized = text.lower()

        candidates = []
        for site in snapshot.sites:
            for collection in snapshot.collections_for(site.id):
                score, reason = score_collection(collection, site, normalized)
                score, reason = apply_default(score, reason, collection.id == default_id, "collection")
                candidates.append(MatchResult(entity=collection, score=score, reason=reason, site=site))

        best = best_of(candidates)
        if best is not None:
            _log.info(
                "collection resolved",
                input=text[:100],
                best_match=best.entity.label,
                site=best.site.label if best.site else None,
                score=best.score,
                reason=best.reason,
                total_matches=sum(1 for c in candidates if c.score > 0),
            )
            return best

        if default_id:
            for site in snapshot.sites:
                for collection in snapshot.collections_for(site.id):
                    if collection.id == default_id:
                        _log.info("using default collection", collection_id=default_id, collection_name=collection.label)
                        return MatchResult(
                            entity=collection, score=DEFAULT_FALLBACK_SCORE, reason="Default collection", site=site,
                        )

        _log.warning("no collection match found", input=text[:100])
        return None

    async def all_collections(self) -> dict[str, tuple[DocsSite, tuple[DocsCollection, ...]]]:
        """Site id -> (site, its collections), for sites that have any."""
        snapshot = await self._directory.snapshot()
        return {
            site.id: (site, snapshot.collections_for(site.id))
            for site in snapshot.sites
            if snapshot.collections_for(site.id)
        }

    def clear(self) -> None:
        self._directory.clear()
