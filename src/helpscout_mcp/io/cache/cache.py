"""Response caching with TTL and LRU eviction.

Memoizes read results so identical upstream queries within the TTL are
served locally. Keys are content-addressed: a SHA-256 digest over the
canonical JSON of ``{"prefix": namespace, "data": params}`` with sorted
keys, so value-equal params hash identically regardless of insertion order.

Cache failures never propagate: a key that cannot be computed is logged
and treated as a miss (or a skipped store).
"""

from __future__ import annotations

import hashlib
import json
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

from helpscout_mcp.runtime.observability import get_logger

if TYPE_CHECKING:
    from pydantic import BaseModel

DEFAULT_TTL: float = 300.0  # 5 minutes
DEFAULT_MAX_SIZE: int = 10000

_log = get_logger("cache")


@dataclass(slots=True)
class CacheEntry:
    """A cached value with its namespace and expiry (monotonic seconds)."""
    namespace: str
    value: object
    stored_at: float
    expires_at: float


def _in_namespace(entry_ns: str, target: str) -> bool:
    """``GET:/articles`` covers itself and ``GET:/articles/123``, not ``GET:/articlesx``."""
    if entry_ns == target:
        return True
    base = target.rstrip("/")
    return entry_ns.startswith(f"{base}/") or entry_ns.startswith(f"{base}?")


class ResponseCache:
    """Thread-safe in-memory LRU cache with per-entry TTL.

    Uses an OrderedDict under an RLock: reads move the entry to the
    most-recently-used end, inserts beyond ``max_size`` evict from the
    least-recently-used end. Expired entries are never returned, even if
    still physically present.

    Args:
        default_ttl: TTL in seconds used when ``set`` gets ``ttl=None``
        max_size: Maximum number of entries before LRU eviction
        clock: Monotonic time source (injected by tests)

    Example:
        >>> cache = ResponseCache(default_ttl=60)
        >>> cache.set("GET:/mailboxes", {"page": 1}, {"items": []})
        >>> cache.get("GET:/mailboxes", {"page": 1})
        {'items': []}
    """

    __slots__ = ("_entries", "_default_ttl", "_max_size", "_lock", "_clock")

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL,
        max_size: int = DEFAULT_MAX_SIZE,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._default_ttl = default_ttl
        self._max_size = max_size
        self._lock = threading.RLock()
        self._clock = clock

    @staticmethod
    def make_key(namespace: str, params: BaseModel | dict[str, object] | None = None) -> str:
        """Deterministic digest over (namespace, params)."""
        if params is not None and hasattr(params, "model_dump"):
            data = params.model_dump(mode="json", exclude_none=True)  # type: ignore[union-attr]
        else:
            data = params or {}
        canonical = json.dumps({"prefix": namespace, "data": data}, sort_keys=True, separators=(",", ":"), default=str)
        return hashlib.sha256(canonical.encode()).hexdigest()

    def _safe_key(self, op: str, namespace: str, params: BaseModel | dict[str, object] | None) -> str | None:
        try:
            return self.make_key(namespace, params)
        except (TypeError, ValueError) as e:
            _log.warning("cache key failed", op=op, namespace=namespace, error=str(e))
            return None

    def get(self, namespace: str, params: BaseModel | dict[str, object] | None = None) -> object | None:
        """Stored value if present and unexpired, else None."""
        key = self._safe_key("get", namespace, params)
        if key is None:
            return None
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                _log.debug("cache miss", namespace=namespace)
                return None
            if self._clock() >= entry.expires_at:
                del self._entries[key]
                _log.debug("cache expired", namespace=namespace)
                return None
            self._entries.move_to_end(key)
            _log.debug("cache hit", namespace=namespace)
            return entry.value

    def set(
        self,
        namespace: str,
        params: BaseModel | dict[str, object] | None,
        value: object,
        ttl: float | None = None,
    ) -> None:
        """Store ``value``. ``ttl=None`` uses the default; ``ttl<=0`` stores nothing.

        A non-positive TTL also drops any earlier entry for the same key, and
        never takes a slot (so it cannot evict live entries).
        """
        key = self._safe_key("set", namespace, params)
        if key is None:
            return
        effective_ttl = self._default_ttl if ttl is None else float(ttl)
        if effective_ttl <= 0:
            with self._lock:
                self._entries.pop(key, None)
            _log.debug("cache skip", namespace=namespace, ttl=effective_ttl)
            return
        now = self._clock()
        with self._lock:
            self._entries.pop(key, None)
            self._entries[key] = CacheEntry(namespace=namespace, value=value, stored_at=now, expires_at=now + effective_ttl)
            while len(self._entries) > self._max_size:
                self._entries.popitem(last=False)
        _log.debug("cache set", namespace=namespace, ttl=effective_ttl)

    def invalidate(self, namespace: str, params: BaseModel | dict[str, object] | None = None) -> bool:
        """Remove a single entry. Returns whether one was present."""
        key = self._safe_key("invalidate", namespace, params)
        if key is None:
            return False
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self, namespace: str | None = None) -> int:
        """Evict everything, or only entries in ``namespace`` (and its sub-paths).

        Returns:
            Number of entries removed
        """
        with self._lock:
            if namespace is None:
                removed = len(self._entries)
                self._entries.clear()
            else:
                keys = [k for k, e in self._entries.items() if _in_namespace(e.namespace, namespace)]
                for k in keys:
                    del self._entries[k]
                removed = len(keys)
        _log.debug("cache cleared", namespace=namespace or "*", removed=removed)
        return removed

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def default_ttl(self) -> float:
        return self._default_ttl

    def stats(self) -> dict[str, object]:
        """Cache statistics for monitoring."""
        with self._lock:
            return {"size": len(self._entries), "max": self._max_size, "default_ttl": self._default_ttl}
