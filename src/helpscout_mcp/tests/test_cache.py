"""Tests for the TTL + LRU response cache."""

import pytest
from pydantic import BaseModel

from helpscout_mcp.io.cache import ResponseCache
from helpscout_mcp.tests.conftest import FakeClock


class QueryParams(BaseModel):
    page: int
    query: str | None = None


def test_key_is_deterministic_and_order_independent() -> None:
    """Value-equal params hash identically regardless of insertion order."""
    a = ResponseCache.make_key("GET:/conversations", {"page": 1, "status": "active"})
    b = ResponseCache.make_key("GET:/conversations", {"status": "active", "page": 1})
    assert a == b
    assert a != ResponseCache.make_key("GET:/conversations", {"page": 2, "status": "active"})
    assert a != ResponseCache.make_key("GET:/mailboxes", {"page": 1, "status": "active"})


def test_model_params_hash_like_their_dump() -> None:
    assert ResponseCache.make_key("ns", QueryParams(page=1)) == ResponseCache.make_key("ns", {"page": 1})


def test_basic_get_set(cache: ResponseCache) -> None:
    cache.set("GET:/mailboxes", {"page": 1}, {"items": [1]})
    assert cache.get("GET:/mailboxes", {"page": 1}) == {"items": [1]}
    assert cache.get("GET:/mailboxes", {"page": 2}) is None


def test_ttl_expiry(cache: ResponseCache, clock: FakeClock) -> None:
    """Entries expire at exactly stored_at + ttl."""
    cache.set("GET:/mailboxes", None, "value", ttl=10)
    clock.advance(9)
    assert cache.get("GET:/mailboxes") == "value"
    clock.advance(1)
    assert cache.get("GET:/mailboxes") is None
    assert cache.size == 0


def test_default_ttl_applies_when_none(clock: FakeClock) -> None:
    cache = ResponseCache(default_ttl=60, clock=clock)
    cache.set("ns", {"q": 1}, "value")
    clock.advance(59)
    assert cache.get("ns", {"q": 1}) == "value"
    clock.advance(1)
    assert cache.get("ns", {"q": 1}) is None


def test_zero_ttl_is_not_cached(cache: ResponseCache) -> None:
    cache.set("ns", {"q": 1}, "value", ttl=0)
    assert cache.get("ns", {"q": 1}) is None


def test_zero_ttl_never_evicts_live_entries(clock: FakeClock) -> None:
    cache = ResponseCache(default_ttl=300, max_size=1, clock=clock)
    cache.set("ns", {"k": "live"}, "LIVE")
    cache.set("ns", {"k": "other"}, "OTHER", ttl=0)

    assert cache.get("ns", {"k": "live"}) == "LIVE"
    assert cache.size == 1


def test_zero_ttl_drops_previous_value(cache: ResponseCache) -> None:
    cache.set("ns", {"q": 1}, "old")
    cache.set("ns", {"q": 1}, "new", ttl=0)
    assert cache.get("ns", {"q": 1}) is None
    assert cache.size == 0


def test_lru_eviction(clock: FakeClock) -> None:
    """Reads refresh recency; the least recently used entry goes first."""
    cache = ResponseCache(default_ttl=300, max_size=2, clock=clock)
    cache.set("ns", {"k": "a"}, "A")
    cache.set("ns", {"k": "b"}, "B")
    assert cache.get("ns", {"k": "a"}) == "A"

    cache.set("ns", {"k": "c"}, "C")

    assert cache.size == 2
    assert cache.get("ns", {"k": "b"}) is None
    assert cache.get("ns", {"k": "a"}) == "A"
    assert cache.get("ns", {"k": "c"}) == "C"


def test_selective_clear_keeps_other_namespaces(cache: ResponseCache) -> None:
    cache.set("DOCS:GET:/articles", {"page": 1}, "list")
    cache.set("DOCS:GET:/articles/42", None, "one")
    cache.set("DOCS:GET:/articlesx", None, "other")
    cache.set("GET:/mailboxes", None, "mailboxes")

    assert cache.clear("DOCS:GET:/articles") == 2
    assert cache.get("DOCS:GET:/articles", {"page": 1}) is None
    assert cache.get("DOCS:GET:/articles/42") is None
    assert cache.get("DOCS:GET:/articlesx") == "other"
    assert cache.get("GET:/mailboxes") == "mailboxes"


def test_clear_all(cache: ResponseCache) -> None:
    cache.set("a", None, 1)
    cache.set("b", None, 2)
    assert cache.clear() == 2
    assert cache.size == 0


def test_invalidate_single_entry(cache: ResponseCache) -> None:
    cache.set("ns", {"q": "a"}, "A")
    cache.set("ns", {"q": "b"}, "B")
    assert cache.invalidate("ns", {"q": "a"})
    assert not cache.invalidate("ns", {"q": "a"})
    assert cache.get("ns", {"q": "b"}) == "B"


def test_unserializable_params_are_a_miss(cache: ResponseCache) -> None:
    """A key that cannot be computed never raises out of the cache."""
    params: dict[str, object] = {}
    params["self"] = params
    cache.set("ns", params, "value")
    assert cache.get("ns", params) is None
    assert cache.size == 0


def test_stats(cache: ResponseCache) -> None:
    cache.set("ns", None, 1)
    assert cache.stats() == {"size": 1, "max": 100, "default_ttl": 300}


def test_rejects_non_positive_max_size() -> None:
    with pytest.raises(ValueError):
        ResponseCache(max_size=0)
