"""Tests for the API clients: caching, normalization, invalidation, errors."""

import httpx
import pytest

from helpscout_mcp.foundation.config import PoolSettings
from helpscout_mcp.foundation.errors import ApiException, DeletionDisabledError, ErrorCode
from helpscout_mcp.foundation.testing import RecordingTransport
from helpscout_mcp.http import DocsApiKeyAuth, DocsClient, HelpScoutClient, normalize_response
from helpscout_mcp.http.client import parent_endpoint
from helpscout_mcp.io.cache import ResponseCache
from helpscout_mcp.runtime.observability import log_context
from helpscout_mcp.tests.conftest import DOCS_BASE, CapturingRenderer, FakeClock, SleepRecorder, retry_policy


class TestNormalization:
    def test_wrapped_list_becomes_page_shape(self) -> None:
        raw = {"collections": [{"id": "1"}, {"id": "2"}], "page": 1}
        assert normalize_response("/collections", raw) == {
            "items": [{"id": "1"}, {"id": "2"}], "page": 1, "pages": 1, "count": 2,
        }

    def test_wrapped_page_object_is_lifted(self) -> None:
        raw = {"sites": {"page": 1, "pages": 1, "count": 1, "items": [{"id": "s1"}]}}
        assert normalize_response("/sites", raw) == raw["sites"]

    def test_standard_shape_passes_through(self) -> None:
        raw = {"items": [], "page": 1, "pages": 1, "count": 0}
        assert normalize_response("/sites", raw) is raw

    def test_exact_rules_do_not_match_sub_paths(self) -> None:
        raw = {"sites": ["x"]}
        assert normalize_response("/sites/1/other", raw) is raw

    def test_contains_rules_match_nested_paths(self) -> None:
        raw = {"articles": {"items": [{"id": "a"}], "page": 2, "pages": 3, "count": 7}}
        assert normalize_response("/collections/9/articles", raw)["page"] == 2

    def test_parent_endpoint(self) -> None:
        assert parent_endpoint("/articles/123") == "/articles"
        assert parent_endpoint("/articles") is None


class TestReads:
    @pytest.mark.asyncio
    async def test_get_is_cached(self, api: HelpScoutClient, transport: RecordingTransport) -> None:
        transport.queue(200, {"_embedded": {"mailboxes": [{"id": 1}]}})

        first = await api.get("/mailboxes", {"page": 1})
        second = await api.get("/mailboxes", {"page": 1})

        assert first == second
        assert transport.call_count == 1
        assert transport.last_request.path == "/v2/mailboxes"
        assert transport.last_request.params == {"page": "1"}
        assert transport.last_request.headers["Authorization"] == "Bearer pat-123"

    @pytest.mark.asyncio
    async def test_inline_query_is_part_of_cache_key(
        self, api: HelpScoutClient, transport: RecordingTransport,
    ) -> None:
        transport.queue(200, {"status": "active"})
        transport.queue(200, {"status": "closed"})

        active = await api.get("/conversations?status=active")
        closed = await api.get("/conversations?status=closed")

        assert active == {"status": "active"}
        assert closed == {"status": "closed"}
        assert transport.call_count == 2
        assert await api.get("/conversations?status=active") == {"status": "active"}
        assert transport.call_count == 2

    @pytest.mark.asyncio
    async def test_write_clears_inline_query_reads(
        self, api: HelpScoutClient, transport: RecordingTransport, cache: ResponseCache,
    ) -> None:
        transport.queue(200, {"n": 1})
        transport.queue(201, None)
        await api.get("/conversations?status=active")

        await api.create("/conversations", {"subject": "x"})

        assert cache.size == 0

    @pytest.mark.asyncio
    async def test_none_params_are_dropped(self, api: HelpScoutClient, transport: RecordingTransport) -> None:
        transport.queue(200, {"_embedded": {"conversations": []}})
        await api.get("/conversations", {"page": 1, "tag": None})
        assert transport.last_request.params == {"page": "1"}

    @pytest.mark.asyncio
    async def test_ttl_per_endpoint_family(
        self, api: HelpScoutClient, transport: RecordingTransport, clock: FakeClock,
    ) -> None:
        """Conversations are cached for 300 s."""
        transport.queue(200, {"n": 1})
        transport.queue(200, {"n": 2})

        await api.get("/conversations/5")
        clock.advance(299)
        assert await api.get("/conversations/5") == {"n": 1}
        clock.advance(1)
        assert await api.get("/conversations/5") == {"n": 2}
        assert transport.call_count == 2

    @pytest.mark.asyncio
    async def test_zero_ttl_bypasses_cache(self, api: HelpScoutClient, transport: RecordingTransport) -> None:
        transport.queue(200, {"n": 1})
        transport.queue(200, {"n": 2})
        assert await api.get("/mailboxes", ttl=0) == {"n": 1}
        assert await api.get("/mailboxes", ttl=0) == {"n": 2}

    @pytest.mark.asyncio
    async def test_docs_list_normalized(self, docs: DocsClient, docs_transport: RecordingTransport) -> None:
        docs_transport.queue(200, {"collections": {"page": 1, "pages": 1, "count": 1, "items": [{"id": "c1"}]}})
        result = await docs.get("/collections", {"siteId": "s1"})
        assert result["items"] == [{"id": "c1"}]
        assert docs_transport.last_request.path == "/v1/collections"
        assert docs_transport.last_request.headers["Authorization"].startswith("Basic ")

    @pytest.mark.asyncio
    async def test_non_json_body_returned_as_text(self, api: HelpScoutClient, transport: RecordingTransport) -> None:
        transport.queue(200, text="Unknown URL")
        assert await api.get("/reports/chat") == "Unknown URL"

    @pytest.mark.asyncio
    async def test_empty_body_is_not_cached(self, api: HelpScoutClient, transport: RecordingTransport) -> None:
        transport.queue(204)
        transport.queue(200, {"ok": True})
        assert await api.get("/mailboxes") is None
        assert await api.get("/mailboxes") == {"ok": True}


class TestWrites:
    @pytest.mark.asyncio
    async def test_update_invalidates_cached_reads(
        self, docs: DocsClient, docs_transport: RecordingTransport, cache: ResponseCache,
    ) -> None:
        docs_transport.queue(200, {"article": {"id": "a1", "name": "Old"}})
        docs_transport.queue(200, None)
        docs_transport.queue(200, {"article": {"id": "a1", "name": "New"}})

        await docs.get("/articles/a1")
        await docs.update("/articles/a1", {"name": "New"})
        refreshed = await docs.get("/articles/a1")

        assert refreshed == {"article": {"id": "a1", "name": "New"}}
        assert [r.method for r in docs_transport.requests] == ["GET", "PUT", "GET"]
        assert docs_transport.requests[1].json() == {"name": "New"}

    @pytest.mark.asyncio
    async def test_create_invalidates_parent_listing(
        self, docs: DocsClient, docs_transport: RecordingTransport, cache: ResponseCache,
    ) -> None:
        cache.set("DOCS:GET:/articles", {"page": 1}, {"items": []})
        docs_transport.queue(201, {"article": {"id": "a2"}})

        await docs.create("/articles", {"name": "Fresh"})

        assert cache.get("DOCS:GET:/articles", {"page": 1}) is None

    @pytest.mark.asyncio
    async def test_update_leaves_unrelated_entries(
        self, docs: DocsClient, docs_transport: RecordingTransport, cache: ResponseCache,
    ) -> None:
        cache.set("GET:/mailboxes", None, {"keep": True})
        docs_transport.queue(200, None)
        await docs.update("/articles/a1", {"name": "x"})
        assert cache.get("GET:/mailboxes") == {"keep": True}

    @pytest.mark.asyncio
    async def test_delete_disabled_makes_no_request(
        self, docs: DocsClient, docs_transport: RecordingTransport,
    ) -> None:
        with log_context(request_id="req-1"):
            with pytest.raises(DeletionDisabledError) as exc_info:
                await docs.delete("/articles/a1")

        error = exc_info.value.error
        assert docs_transport.call_count == 0
        assert error.code is ErrorCode.UNAUTHORIZED
        assert error.request_id == "req-1"
        assert "HELPSCOUT_ALLOW_DOCS_DELETE=true" in error.message

    @pytest.mark.asyncio
    async def test_delete_when_enabled(
        self, docs_transport: RecordingTransport, cache: ResponseCache, sleeps: SleepRecorder,
    ) -> None:
        client = DocsClient(
            base_url=DOCS_BASE, auth=DocsApiKeyAuth(api_key="k"), cache=cache, retry=retry_policy(),
            pool=PoolSettings(), allow_delete=True, transport=docs_transport, sleep=sleeps,
        )
        cache.set("DOCS:GET:/articles/a1", None, {"article": {}})
        docs_transport.queue(204)

        await client.delete("/articles/a1")

        assert docs_transport.last_request.method == "DELETE"
        assert cache.get("DOCS:GET:/articles/a1") is None
        await client.close()


class TestErrors:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("status", "code"),
        [
            (401, ErrorCode.UNAUTHORIZED),
            (403, ErrorCode.UNAUTHORIZED),
            (404, ErrorCode.NOT_FOUND),
            (409, ErrorCode.INVALID_INPUT),
        ],
    )
    async def test_status_mapping(
        self, api: HelpScoutClient, transport: RecordingTransport, status: int, code: ErrorCode,
    ) -> None:
        transport.queue(status, {"message": "nope"})
        with pytest.raises(ApiException) as exc_info:
            await api.get("/conversations/9")
        error = exc_info.value.error
        assert error.code is code
        assert error.status_code == status
        assert error.endpoint == "/conversations/9"
        assert error.method == "GET"
        assert transport.call_count == 1

    @pytest.mark.asyncio
    async def test_validation_errors_carried(self, api: HelpScoutClient, transport: RecordingTransport) -> None:
        transport.queue(422, {"message": "Bad data", "errors": [{"path": "subject", "message": "required"}]})
        with pytest.raises(ApiException) as exc_info:
            await api.create("/conversations", {"subject": ""})
        error = exc_info.value.error
        assert error.code is ErrorCode.INVALID_INPUT
        assert error.details["validationErrors"] == [{"path": "subject", "message": "required"}]

    @pytest.mark.asyncio
    async def test_timeout_is_retried(
        self, api: HelpScoutClient, transport: RecordingTransport, sleeps: SleepRecorder,
    ) -> None:
        transport.queue_error(httpx.ReadTimeout("timed out"))
        transport.queue(200, {"ok": True})

        assert await api.get("/mailboxes") == {"ok": True}
        assert transport.call_count == 2
        assert sleeps.delays == [1.0]

    @pytest.mark.asyncio
    async def test_network_failure_exhausts_retries(
        self, api: HelpScoutClient, transport: RecordingTransport,
    ) -> None:
        """With no stub the transport refuses the connection every time."""
        with pytest.raises(ApiException) as exc_info:
            await api.get("/mailboxes")
        assert exc_info.value.code is ErrorCode.UPSTREAM_ERROR
        assert exc_info.value.error.attempts == 4
        assert transport.call_count == 4

    @pytest.mark.asyncio
    async def test_one_request_id_per_call(
        self, api: HelpScoutClient, transport: RecordingTransport, captured_logs: CapturingRenderer,
    ) -> None:
        """Every log line and the raised error of one call share a correlation id."""
        transport.queue(500, {})
        transport.queue(404, {})
        with pytest.raises(ApiException) as exc_info:
            await api.get("/conversations/1")

        ids = {e.context.get("request_id") for e in captured_logs.entries if e.event.startswith("api ")}
        assert ids == {exc_info.value.error.request_id}


class TestPool:
    @pytest.mark.asyncio
    async def test_stats_and_close(
        self, api: HelpScoutClient, transport: RecordingTransport, captured_logs: CapturingRenderer,
    ) -> None:
        transport.queue(200, {})
        await api.get("/mailboxes")
        stats = api.pool_stats()
        assert stats.pending == 0
        assert await api.clear_idle_connections() == 0
        api.log_pool_status()
        assert "connection pool status" in captured_logs.events()
        await api.close()

    @pytest.mark.asyncio
    async def test_context_manager(self, docs: DocsClient, docs_transport: RecordingTransport) -> None:
        docs_transport.queue(200, {"sites": {"items": [{"id": "s"}], "page": 1, "pages": 1, "count": 1}})
        async with docs as client:
            assert await client.test_connection()

    @pytest.mark.asyncio
    async def test_connection_check_reports_failure(
        self, docs: DocsClient, docs_transport: RecordingTransport,
    ) -> None:
        docs_transport.queue(401, {})
        assert not await docs.test_connection()
