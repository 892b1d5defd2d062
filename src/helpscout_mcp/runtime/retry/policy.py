"""Retry policy and the retry loop wrapping every outbound call.

Only transient failures are retried: network errors, timeouts, 5xx and
429. Rate-limited attempts wait for the server-provided Retry-After
(capped at max_delay); everything else backs off exponentially with
jitter. After the final attempt the last error is raised, enriched with
the number of attempts made.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Annotated, Callable, TypeVar

from pydantic import BaseModel, ConfigDict, Field, computed_field

from helpscout_mcp.foundation.errors import ApiError, ApiException, ErrorCode
from helpscout_mcp.runtime.observability import BoundLogger, get_logger

from .backoff import Backoff, ExponentialBackoff

if TYPE_CHECKING:
    from collections.abc import Awaitable

    from helpscout_mcp.foundation.config import RetrySettings

T = TypeVar("T")

_log = get_logger("retry")


class RetryPolicy(BaseModel):
    """Configurable retry policy for outbound calls.

    Attributes:
        retries: Retries after the first attempt (total attempts = retries + 1)
        backoff: Delay strategy for transient non-rate-limit failures
        max_delay: Upper bound on any single wait, rate-limit waits included
        default_retry_after: Rate-limit wait when the server gave no hint

    Example:
        >>> policy = RetryPolicy(retries=3, backoff=ExponentialBackoff(base=1.0, max_delay=10.0))
        >>> policy.attempts
        4
    """

    model_config = ConfigDict(
        frozen=True,
        arbitrary_types_allowed=True,  # For Backoff protocol
        validate_default=True,
        extra="forbid",
    )

    retries: Annotated[int, Field(ge=0, le=10)] = 3
    backoff: Backoff = Field(default_factory=ExponentialBackoff, repr=False)
    max_delay: Annotated[float, Field(gt=0)] = 10.0
    default_retry_after: Annotated[float, Field(ge=0)] = 60.0

    @classmethod
    def from_settings(cls, settings: RetrySettings) -> RetryPolicy:
        return cls(
            retries=settings.retries,
            backoff=ExponentialBackoff(
                base=settings.base_delay,
                max_delay=settings.max_delay,
                jitter_ratio=settings.jitter_ratio,
            ),
            max_delay=settings.max_delay,
            default_retry_after=settings.default_retry_after,
        )

    @computed_field
    @property
    def attempts(self) -> int:
        return self.retries + 1

    def should_retry(self, error: ApiError, attempt: int) -> bool:
        """Whether a failure on 0-indexed ``attempt`` gets another try."""
        return attempt < self.retries and error.is_retryable

    def delay_for(self, error: ApiError, attempt: int) -> float:
        """Seconds to wait after a failure on 0-indexed ``attempt``."""
        if error.code is ErrorCode.RATE_LIMIT:
            retry_after = error.retry_after if error.retry_after is not None else self.default_retry_after
            return min(float(retry_after), self.max_delay)
        return min(self.backoff.delay(attempt), self.max_delay)


NO_RETRY = RetryPolicy(retries=0)


async def execute_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    label: str,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    log: BoundLogger | None = None,
) -> T:
    """Run ``operation`` under ``policy``.

    ``operation`` signals failure by raising ApiException; any other
    exception is a programming error and propagates without retry.

    Args:
        operation: Zero-arg async callable performing one attempt
        policy: Retry policy
        label: Operation label for log entries (e.g. "GET /conversations")
        sleep: Awaitable delay (injected by tests)
        log: Logger to use

    Raises:
        ApiException: The last failure, with ``attempts`` set
    """
    log = log or _log
    for attempt in range(policy.retries + 1):
        try:
            return await operation()
        except ApiException as exc:
            if not policy.should_retry(exc.error, attempt):
                if attempt:
                    log.error("retries exhausted", operation=label, attempts=attempt + 1, code=exc.code.value)
                raise exc.with_attempts(attempt + 1) from exc

            delay = policy.delay_for(exc.error, attempt)
            if exc.code is ErrorCode.RATE_LIMIT:
                log.warning(
                    "rate limit hit, waiting before retry",
                    operation=label,
                    retry_after=exc.error.retry_after,
                    delay_ms=round(delay * 1000),
                    attempt=attempt + 1,
                )
            else:
                log.warning(
                    "retrying request",
                    operation=label,
                    attempt=attempt + 1,
                    max_retries=policy.retries,
                    delay_ms=round(delay * 1000),
                    code=exc.code.value,
                    status_code=exc.error.status_code,
                )
            await sleep(delay)

    raise AssertionError("unreachable: retry loop always returns or raises")
