"""Tests for retry policies, backoff and the retry loop."""

import pytest

from helpscout_mcp.foundation.config import RetrySettings
from helpscout_mcp.foundation.errors import ApiError, ApiException, ErrorCode, parse_retry_after
from helpscout_mcp.foundation.testing import RecordingTransport
from helpscout_mcp.http import HelpScoutClient
from helpscout_mcp.runtime.retry import (
    NO_RETRY,
    ConstantBackoff,
    ExponentialBackoff,
    RetryPolicy,
    execute_with_retry,
)
from helpscout_mcp.tests.conftest import SleepRecorder, retry_policy


def _failing(errors: list[ApiError], result: object = "ok"):
    """Operation raising each error in turn, then returning ``result``."""
    calls = {"n": 0}

    async def op() -> object:
        calls["n"] += 1
        if errors:
            raise ApiException(errors.pop(0))
        return result

    return op, calls


def _upstream() -> ApiError:
    return ApiError(code=ErrorCode.UPSTREAM_ERROR, message="server error", transient=True, status_code=503)


class TestBackoff:
    def test_exponential_without_jitter(self) -> None:
        backoff = ExponentialBackoff(base=1.0, max_delay=10.0, jitter_ratio=0.0)
        assert [backoff.delay(a) for a in range(5)] == [1.0, 2.0, 4.0, 8.0, 10.0]

    def test_jitter_bounded_by_ratio(self) -> None:
        backoff = ExponentialBackoff(base=1.0, max_delay=10.0, jitter_ratio=0.1, rng=lambda: 0.999)
        assert 2.0 <= backoff.delay(1) <= 2.2

    def test_constant(self) -> None:
        assert ConstantBackoff(0.5).delay(7) == 0.5


class TestRetryAfterHeader:
    @pytest.mark.parametrize(
        ("header", "expected"),
        [("5", 5), ("2.7", 2), ("-3", 0), (None, 60), ("soon", 60), ("nan", 60), ("inf", 60), ("-inf", 60)],
    )
    def test_parse(self, header: str | None, expected: int) -> None:
        assert parse_retry_after(header) == expected

    def test_explicit_default(self) -> None:
        assert parse_retry_after("1e999", default=7) == 7


class TestPolicy:
    def test_from_settings(self) -> None:
        policy = RetryPolicy.from_settings(RetrySettings(retries=2, base_delay=0.5, max_delay=4.0))
        assert policy.retries == 2
        assert policy.attempts == 3
        assert policy.max_delay == 4.0

    def test_rate_limit_delay_uses_retry_after_capped(self) -> None:
        policy = retry_policy()
        limited = ApiError(code=ErrorCode.RATE_LIMIT, message="slow down", retry_after=5)
        assert policy.delay_for(limited, 0) == 5.0
        long_wait = limited.model_copy(update={"retry_after": 120})
        assert policy.delay_for(long_wait, 0) == 10.0

    def test_rate_limit_without_hint_uses_default(self) -> None:
        policy = RetryPolicy(retries=1, max_delay=100.0, default_retry_after=60.0)
        assert policy.delay_for(ApiError(code=ErrorCode.RATE_LIMIT, message="slow down"), 0) == 60.0

    def test_non_transient_errors_are_not_retried(self) -> None:
        policy = retry_policy()
        for code in (ErrorCode.INVALID_INPUT, ErrorCode.NOT_FOUND, ErrorCode.UNAUTHORIZED):
            assert not policy.should_retry(ApiError(code=code, message="nope"), 0)
        assert not policy.should_retry(ApiError(code=ErrorCode.UPSTREAM_ERROR, message="odd status"), 0)
        assert policy.should_retry(_upstream(), 0)
        assert not policy.should_retry(_upstream(), 3)


class TestExecuteWithRetry:
    @pytest.mark.asyncio
    async def test_transient_failure_exhausts_all_attempts(self, sleeps: SleepRecorder) -> None:
        """retries=3 means exactly four attempts, then the last error with its attempt count."""
        op, calls = _failing([_upstream() for _ in range(10)])
        with pytest.raises(ApiException) as exc_info:
            await execute_with_retry(op, retry_policy(3), label="GET /x", sleep=sleeps)
        assert calls["n"] == 4
        assert sleeps.delays == [1.0, 2.0, 4.0]
        assert exc_info.value.error.attempts == 4
        assert exc_info.value.code is ErrorCode.UPSTREAM_ERROR

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failure(self, sleeps: SleepRecorder) -> None:
        op, calls = _failing([_upstream()], result={"ok": True})
        assert await execute_with_retry(op, retry_policy(3), label="GET /x", sleep=sleeps) == {"ok": True}
        assert calls["n"] == 2

    @pytest.mark.asyncio
    async def test_client_error_fails_after_one_attempt(self, sleeps: SleepRecorder) -> None:
        op, calls = _failing([ApiError(code=ErrorCode.INVALID_INPUT, message="bad", status_code=400)])
        with pytest.raises(ApiException) as exc_info:
            await execute_with_retry(op, retry_policy(3), label="GET /x", sleep=sleeps)
        assert calls["n"] == 1
        assert sleeps.delays == []
        assert exc_info.value.error.attempts == 1

    @pytest.mark.asyncio
    async def test_no_retry_policy(self, sleeps: SleepRecorder) -> None:
        op, calls = _failing([_upstream()])
        with pytest.raises(ApiException):
            await execute_with_retry(op, NO_RETRY, label="GET /x", sleep=sleeps)
        assert calls["n"] == 1

    @pytest.mark.asyncio
    async def test_other_exceptions_propagate_unretried(self, sleeps: SleepRecorder) -> None:
        calls = {"n": 0}

        async def broken() -> None:
            calls["n"] += 1
            raise KeyError("bug")

        with pytest.raises(KeyError):
            await execute_with_retry(broken, retry_policy(3), label="GET /x", sleep=sleeps)
        assert calls["n"] == 1


class TestClientRetry:
    @pytest.mark.asyncio
    async def test_rate_limit_waits_retry_after_then_succeeds(
        self, api: HelpScoutClient, transport: RecordingTransport, sleeps: SleepRecorder,
    ) -> None:
        transport.queue(429, {"message": "Too many requests"}, headers={"Retry-After": "5"})
        transport.queue(200, {"_embedded": {"mailboxes": []}})

        result = await api.get("/mailboxes", {"page": 1})

        assert result == {"_embedded": {"mailboxes": []}}
        assert transport.call_count == 2
        assert sleeps.delays == [5.0]

    @pytest.mark.asyncio
    async def test_infinite_retry_after_falls_back_to_default(
        self, api: HelpScoutClient, transport: RecordingTransport, sleeps: SleepRecorder,
    ) -> None:
        transport.queue(429, {"message": "Too many requests"}, headers={"Retry-After": "inf"})
        transport.queue(200, {"ok": True})

        assert await api.get("/mailboxes") == {"ok": True}
        assert transport.call_count == 2
        assert len(sleeps.delays) == 1

    @pytest.mark.asyncio
    async def test_bad_request_is_not_retried(
        self, api: HelpScoutClient, transport: RecordingTransport, sleeps: SleepRecorder,
    ) -> None:
        transport.queue(400, {"message": "Invalid sort field"})

        with pytest.raises(ApiException) as exc_info:
            await api.get("/conversations", {"sortField": "nope"})

        assert transport.call_count == 1
        assert sleeps.delays == []
        assert exc_info.value.code is ErrorCode.INVALID_INPUT
        assert "Invalid sort field" in exc_info.value.error.message

    @pytest.mark.asyncio
    async def test_server_errors_exhaust_retries(
        self, api: HelpScoutClient, transport: RecordingTransport, sleeps: SleepRecorder,
    ) -> None:
        for _ in range(4):
            transport.queue(503, {"message": "unavailable"})

        with pytest.raises(ApiException) as exc_info:
            await api.get("/conversations")

        assert transport.call_count == 4
        assert len(sleeps.delays) == 3
        payload = exc_info.value.error.to_payload()
        assert payload["code"] == "UPSTREAM_ERROR"
        assert payload["details"]["attempts"] == 4
        assert payload["details"]["statusCode"] == 503
