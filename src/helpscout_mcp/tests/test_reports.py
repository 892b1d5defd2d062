"""Tests for report response unwrapping."""

import pytest

from helpscout_mcp.foundation.errors import ApiException, ErrorCode
from helpscout_mcp.foundation.testing import RecordingTransport
from helpscout_mcp.http import HelpScoutClient, ReportsClient, unwrap_report


def test_wrapped_report_is_unwrapped() -> None:
    assert unwrap_report("/reports/email", {"report": {"totalConversations": 5}}) == {"totalConversations": 5}


def test_bare_report_passes_through() -> None:
    body = {"current": {"volume": 3}, "previous": None}
    assert unwrap_report("/reports/chat", body) is body


def test_listing_passes_through() -> None:
    body = {"_embedded": {"ratings": []}, "page": {"number": 1}}
    assert unwrap_report("/reports/happiness/ratings", body) is body


def test_unknown_url_is_not_found() -> None:
    with pytest.raises(ApiException) as exc_info:
        unwrap_report("/reports/docs", "Unknown URL")
    assert exc_info.value.code is ErrorCode.NOT_FOUND
    assert "/reports/docs" in exc_info.value.error.message


def test_other_strings_are_upstream_errors() -> None:
    with pytest.raises(ApiException) as exc_info:
        unwrap_report("/reports/chat", "<html>maintenance</html>")
    assert exc_info.value.code is ErrorCode.UPSTREAM_ERROR


class TestReportsClient:
    @pytest.mark.asyncio
    async def test_get_report(self, api: HelpScoutClient, transport: RecordingTransport) -> None:
        transport.queue(200, {"report": {"totalConversations": 5}})

        report = await ReportsClient(api).get_report("/reports/email", {"start": "2024-01-01T00:00:00Z"})

        assert report == {"totalConversations": 5}
        assert transport.last_request.path == "/v2/reports/email"

    @pytest.mark.asyncio
    async def test_unknown_endpoint_names_endpoint(self, api: HelpScoutClient, transport: RecordingTransport) -> None:
        transport.queue(200, text="Unknown URL")

        with pytest.raises(ApiException) as exc_info:
            await ReportsClient(api).get_report("/reports/phone")

        error = exc_info.value.error
        assert error.code is ErrorCode.NOT_FOUND
        assert error.message == "Reports API endpoint not found: /reports/phone"
        assert error.request_id != "unknown"
