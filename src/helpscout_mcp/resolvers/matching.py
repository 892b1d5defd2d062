"""Layered text scoring shared by the site and collection resolvers.

Structural matches (name, subdomain, domain, slug) score on a fixed scale
and always outrank token overlap, which is capped at 50. A configured
default adds a flat bonus so it wins ties and surfaces on weak matches.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Generic, TypeVar

from .models import DocsSite

E = TypeVar("E")

NAME_SCORE = 100.0
PARTIAL_MAX_SCORE = 50.0
DEFAULT_BONUS = 10.0
DEFAULT_FALLBACK_SCORE = 10.0
MIN_WORD_LENGTH = 3


@dataclass(frozen=True, slots=True)
class MatchResult(Generic[E]):
    """Best candidate for one resolution call.

    Attributes:
        entity: The matched site or collection
        score: Match score (higher is better)
        reason: Human-readable justification
        site: Owning site (collection matches only)
    """
    entity: E
    score: float
    reason: str
    site: DocsSite | None = None


@dataclass(frozen=True, slots=True)
class Rule:
    """``value`` found inside the input scores ``score``, explained by ``label``."""
    label: str
    value: str | None
    score: float


def first_rule_match(text: str, rules: list[Rule]) -> tuple[float, str] | None:
    """First rule (in priority order) whose value is a substring of ``text``."""
    for rule in rules:
        if rule.value and rule.value.lower() in text:
            return rule.score, f'{rule.label} match: "{rule.value}"'
    return None


def split_words(text: str | None, pattern: str = r"\s+") -> list[str]:
    """Lowercased words longer than two characters."""
    if not text:
        return []
    return [w for w in re.split(pattern, text.lower()) if len(w) >= MIN_WORD_LENGTH]


def partial_match(text: str, entity_words: list[str]) -> tuple[float, str] | None:
    """Token overlap: share of entity words contained in (or containing) an input word."""
    if not entity_words:
        return None
    input_words = text.split()
    matching = [w for w in entity_words if any(iw in w or w in iw for iw in input_words)]
    if not matching:
        return None
    return len(matching) / len(entity_words) * PARTIAL_MAX_SCORE, f"Partial match: {', '.join(matching)}"


def apply_default(score: float, reason: str, is_default: bool, kind: str) -> tuple[float, str]:
    """Add the default bonus; a default with no textual match reads as the plain fallback."""
    if not is_default:
        return score, reason
    if score <= 0:
        return DEFAULT_FALLBACK_SCORE, f"Default {kind}"
    return score + DEFAULT_BONUS, f"{reason} (default)"


def best_of(candidates: list[MatchResult[E]]) -> MatchResult[E] | None:
    """Highest positive score; ties keep directory order."""
    scored = [c for c in candidates if c.score > 0]
    if not scored:
        return None
    return sorted(scored, key=lambda c: -c.score)[0]
