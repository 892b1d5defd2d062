"""Natural-language -> Docs site resolution."""

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
from .models import DocsSite

_log = get_logger("resolvers.site")


def score_site(site: DocsSite, text: str) -> tuple[float, str]:
    """Score one site against lowercased input; (0, "") when nothing matches."""
    hit = first_rule_match(text, [
        Rule("Site name", site.name, NAME_SCORE),
        Rule("Subdomain", site.subdomain, 80.0),
        Rule("CNAME", site.cname, 70.0),
    ])
    if hit is None:
        words = split_words(site.name) + split_words(site.subdomain, r"[-_]")
        hit = partial_match(text, words)
    return hit or (0.0, "")


class SiteResolver:
    """Pick the Docs site a free-text reference most likely means.

    Args:
        directory: Site directory (collections not needed)
        default_site_id: Configured default, used as bonus and fallback
    """

    __slots__ = ("_directory", "_default_site_id")

    def __init__(self, directory: DocsDirectory, default_site_id: str | None = None) -> None:
        self._directory = directory
        self._default_site_id = default_site_id

    async def resolve_site(self, text: str, default_site_id: str | None = None) -> MatchResult[DocsSite] | None:
        """Best-matching site, the default site, or None.

        Args:
            text: Free-text input ("acme support docs")
            default_site_id: Overrides the configured default for this call
        """
        default_id = default_site_id or self._default_site_id
        snapshot = await self._directory.snapshot()
        normalized = text.lower()

        candidates = []
        for site in snapshot.sites:
            score, reason = score_site(site, normalized)
            score, reason = apply_default(score, reason, site.id == default_id, "site")
            candidates.append(MatchResult(entity=site, score=score, reason=reason))

        best = best_of(candidates)
        if best is not None:
            _log.info(
                "site resolved",
                input=text[:100],
                best_match=best.entity.label,
                score=best.score,
                reason=best.reason,
                total_matches=sum(1 for c in candidates if c.score > 0),
            )
            return best

        if default_id:
            for site in snapshot.sites:
                if site.id == default_id:
                    _log.info("using default site", site_id=default_id, site_name=site.label)
                    return MatchResult(entity=site, score=DEFAULT_FALLBACK_SCORE, reason="Default site")

        _log.warning("no site match found", input=text[:100])
        return None

    async def all_sites(self) -> list[DocsSite]:
        return list((await self._directory.snapshot()).sites)

    def clear(self) -> None:
        self._directory.clear()
