"""Backoff strategies for retry policies.

Provides pluggable delay calculation for retry attempts:
- ExponentialBackoff: Exponential growth with additive proportional jitter
- ConstantBackoff: Fixed delay
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Callable, Protocol, runtime_checkable


@runtime_checkable
class Backoff(Protocol):
    """Protocol for backoff delay calculation.

    Attempt numbers are 0-indexed (delay after the first failure = attempt 0).
    """

    def delay(self, attempt: int) -> float:
        """Delay in seconds before the next attempt."""
        ...


@dataclass(frozen=True, slots=True)
class ExponentialBackoff:
    """Exponential backoff with proportional jitter.

    Delay = min(base * multiplier^attempt + U(0, jitter_ratio * exp), max_delay)

    Attributes:
        base: Initial delay in seconds (default: 1.0)
        max_delay: Maximum delay cap in seconds (default: 10.0)
        multiplier: Exponential growth factor (default: 2.0)
        jitter_ratio: Upper bound of jitter as a fraction of the exponential delay
        rng: Source of uniform [0, 1) samples
    """

    base: float = 1.0
    max_delay: float = 10.0
    multiplier: float = 2.0
    jitter_ratio: float = 0.1
    rng: Callable[[], float] = field(default=random.random, repr=False, compare=False)

    def delay(self, attempt: int) -> float:
        exp = self.base * (self.multiplier ** attempt)
        return min(exp + self.rng() * self.jitter_ratio * exp, self.max_delay)


@dataclass(frozen=True, slots=True)
class ConstantBackoff:
    """Fixed delay between retries."""

    delay_seconds: float = 1.0

    def delay(self, attempt: int) -> float:
        return self.delay_seconds
