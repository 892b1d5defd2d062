"""Reports API access with response unwrapping.

Report endpoints answer in several shapes: wrapped under ``report``, as
the bare report object, as a paginated listing, or (for endpoints the
account has no access to) as a bare diagnostic string such as
``"Unknown URL"``. ``get_report`` hands callers one consistent shape and
tells a missing endpoint apart from a transient failure.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from helpscout_mcp.foundation.errors import ApiException, ErrorCode
from helpscout_mcp.runtime.observability import current_context, get_logger, log_context

from .client import new_request_id

if TYPE_CHECKING:
    from collections.abc import Mapping

    from .client import ApiClient

_log = get_logger("http.reports")

UNKNOWN_ENDPOINT_MARKER = "Unknown"

# Fields that identify an already-unwrapped report body
REPORT_FIELDS: frozenset[str] = frozenset({"current", "happinessScore", "totalRatings", "greatCount"})
LISTING_FIELDS: frozenset[str] = frozenset({"_embedded", "items", "results"})


def unwrap_report(endpoint: str, response: Any) -> Any:
    """Normalize one raw report response.

    Raises:
        ApiException: NOT_FOUND for an unknown endpoint, UPSTREAM_ERROR for
            any other bare string
    """
    if isinstance(response, str):
        request_id = current_context().get("request_id", "unknown")
        if UNKNOWN_ENDPOINT_MARKER in response:
            raise ApiException.create(
                f"Reports API endpoint not found: {endpoint}",
                code=ErrorCode.NOT_FOUND,
                request_id=request_id,
                endpoint=endpoint,
                method="GET",
                suggestion="This report may not be available for your Help Scout plan",
            )
        raise ApiException.create(
            f"Unexpected string response from Reports API: {response[:200]}",
            code=ErrorCode.UPSTREAM_ERROR,
            request_id=request_id,
            endpoint=endpoint,
            method="GET",
        )

    if isinstance(response, dict):
        if "report" in response:
            _log.debug("unwrapping report response", endpoint=endpoint)
            return response["report"]
        if REPORT_FIELDS & response.keys():
            _log.debug("response is unwrapped report data", endpoint=endpoint)
            return response
        if LISTING_FIELDS & response.keys():
            _log.debug("response is paginated data", endpoint=endpoint)
            return response

    return response


class ReportsClient:
    """Thin wrapper over the primary client for ``/reports/...`` endpoints."""

    __slots__ = ("_client",)

    def __init__(self, client: ApiClient) -> None:
        self._client = client

    async def get_report(self, endpoint: str, params: Mapping[str, Any] | None = None) -> Any:
        with log_context(request_id=current_context().get("request_id") or new_request_id()):
            try:
                response = await self._client.get(endpoint, params)
                return unwrap_report(endpoint, response)
            except ApiException as e:
                _log.error("reports api error", endpoint=endpoint, code=e.code.value, error=e.error.message)
                raise
