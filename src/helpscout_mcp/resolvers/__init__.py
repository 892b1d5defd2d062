"""Fuzzy resolution of free-text Docs site/collection references.

Example:
    >>> directory = DocsDirectory(docs_client)
    >>> match = await SiteResolver(directory).resolve_site("acme support docs")
    >>> match.entity.id, match.score, match.reason
    ('5', 100.0, 'Site name match: "Acme Support"')
"""

from .collection import CollectionResolver, score_collection
from .directory import DirectorySnapshot, DocsDirectory, DocsReader
from .matching import MatchResult
from .models import DocsCollection, DocsSite
from .site import SiteResolver, score_site

__all__ = [
    "CollectionResolver",
    "DirectorySnapshot",
    "DocsCollection",
    "DocsDirectory",
    "DocsReader",
    "DocsSite",
    "MatchResult",
    "SiteResolver",
    "score_collection",
    "score_site",
]
