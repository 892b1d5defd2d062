"""Response caching with TTL support.

Prevents repeated upstream calls for identical read queries. Keys are
generated from a namespace (``GET:/mailboxes``) plus hashed parameters.
"""

from .cache import DEFAULT_MAX_SIZE, DEFAULT_TTL, CacheEntry, ResponseCache

__all__ = [
    "ResponseCache",
    "CacheEntry",
    "DEFAULT_TTL",
    "DEFAULT_MAX_SIZE",
]
