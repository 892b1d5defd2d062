"""Retry policies for outbound API calls.

Example:
    >>> from helpscout_mcp.runtime.retry import RetryPolicy, ExponentialBackoff, execute_with_retry
    >>> policy = RetryPolicy(retries=3, backoff=ExponentialBackoff(base=1.0, max_delay=10.0))
    >>> data = await execute_with_retry(lambda: client.fetch(), policy, label="GET /mailboxes")
"""

from .backoff import Backoff, ConstantBackoff, ExponentialBackoff
from .policy import NO_RETRY, RetryPolicy, execute_with_retry

__all__ = [
    # Backoff
    "Backoff",
    "ConstantBackoff",
    "ExponentialBackoff",
    # Policy
    "NO_RETRY",
    "RetryPolicy",
    "execute_with_retry",
]
