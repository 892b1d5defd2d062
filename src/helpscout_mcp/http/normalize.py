"""Response-shape normalization for list endpoints.

The Docs API wraps list payloads inconsistently: sometimes the standard
``{items, page, pages, count}`` directly, sometimes nested under a named
field (``sites``, ``collections``, ``categories``, ``articles``). Each
endpoint family gets one row in an unwrap table; adding a new upstream
shape means adding a row.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from helpscout_mcp.runtime.observability import get_logger

_log = get_logger("http.normalize")

PAGE_KEYS: frozenset[str] = frozenset({"items", "page", "pages", "count"})


@dataclass(frozen=True, slots=True)
class UnwrapRule:
    """Endpoint pattern -> name of the field wrapping the payload.

    ``exact`` matches the endpoint path itself; ``contains`` matches any
    path containing the pattern (``/collections/1/articles``).
    """
    pattern: str
    key: str
    match: Literal["exact", "contains"] = "contains"

    def applies(self, path: str) -> bool:
        return path == self.pattern if self.match == "exact" else self.pattern in path


DOCS_UNWRAP_RULES: tuple[UnwrapRule, ...] = (
    UnwrapRule("/sites", "sites", "exact"),
    UnwrapRule("/collections", "collections", "exact"),
    UnwrapRule("/categories", "categories"),
    UnwrapRule("/articles", "articles"),
)


def endpoint_path(endpoint: str) -> str:
    """'/collections?siteId=1' and 'collections' both become '/collections'."""
    path = endpoint.split("?", 1)[0].rstrip("/")
    return path if path.startswith("/") else f"/{path}"


def is_paginated(data: dict[str, object]) -> bool:
    return PAGE_KEYS <= data.keys()


def unwrap(data: dict[str, object], key: str) -> object:
    """Lift ``data[key]`` into the standard page shape."""
    inner = data[key]
    if isinstance(inner, list):
        return {
            "items": inner,
            "page": data.get("page") or 1,
            "pages": data.get("pages") or 1,
            "count": data.get("count") or len(inner),
        }
    if isinstance(inner, dict):
        return inner
    return data


def normalize_response(endpoint: str, data: object, rules: tuple[UnwrapRule, ...] = DOCS_UNWRAP_RULES) -> object:
    """Rewrite ``data`` into ``{items, page, pages, count}`` when a rule applies.

    Payloads that already have the standard shape, or that match no rule,
    are returned unchanged.
    """
    if not rules or not isinstance(data, dict) or is_paginated(data):
        return data
    path = endpoint_path(endpoint)
    for rule in rules:
        if rule.applies(path) and rule.key in data:
            _log.debug("unwrapping response", endpoint=path, key=rule.key)
            return unwrap(data, rule.key)
    return data
