"""HTTP status / transport failure -> ApiError mapping.

    401        -> UNAUTHORIZED
    403        -> UNAUTHORIZED (insufficient scope)
    404        -> NOT_FOUND
    422        -> INVALID_INPUT (with field-level validation detail)
    other 4xx  -> INVALID_INPUT
    429        -> RATE_LIMIT (with retry-after seconds)
    5xx        -> UPSTREAM_ERROR (transient)
    timeout    -> UPSTREAM_ERROR (transient)
    network    -> UPSTREAM_ERROR (transient)
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import httpx

from .errors import ApiError, ErrorCode

DEFAULT_RETRY_AFTER = 60

_AUTOMATIC_RETRY_HINT = "Request will be automatically retried with exponential backoff"


def parse_retry_after(value: str | None, default: int = DEFAULT_RETRY_AFTER) -> int:
    """Parse a Retry-After header in seconds; anything unparseable yields the default."""
    if value is None:
        return default
    try:
        seconds = int(float(value.strip()))
    except (ValueError, OverflowError):
        return default
    return max(seconds, 0)


def _body_message(body: Any, fallback: str) -> str:
    if isinstance(body, Mapping):
        msg = body.get("message") or body.get("error_description") or body.get("error")
        if isinstance(msg, str) and msg:
            return msg
    return fallback


def error_from_status(
    status: int,
    *,
    service: str,
    request_id: str,
    endpoint: str | None = None,
    method: str | None = None,
    headers: Mapping[str, str] | None = None,
    body: Any = None,
    default_retry_after: int = DEFAULT_RETRY_AFTER,
) -> ApiError:
    """Map an error HTTP response to an ApiError."""
    common: dict[str, Any] = {
        "request_id": request_id,
        "endpoint": endpoint,
        "method": method,
        "status_code": status,
    }

    if status == 401:
        return ApiError(
            code=ErrorCode.UNAUTHORIZED,
            message=f"{service} authentication failed. Please check your credentials.",
            suggestion="Verify the configured API credentials are valid and not revoked",
            **common,
        )
    if status == 403:
        return ApiError(
            code=ErrorCode.UNAUTHORIZED,
            message=f"Access forbidden. Insufficient permissions for this {service} resource.",
            suggestion="Check that the credentials have access to this resource",
            **common,
        )
    if status == 404:
        return ApiError(
            code=ErrorCode.NOT_FOUND,
            message=f"{service} resource not found.",
            suggestion="Verify the ID is correct and the resource exists",
            **common,
        )
    if status == 429:
        retry_after = parse_retry_after((headers or {}).get("retry-after"), default_retry_after)
        return ApiError(
            code=ErrorCode.RATE_LIMIT,
            message=f"{service} rate limit exceeded. Please wait {retry_after} seconds before retrying.",
            retry_after=retry_after,
            transient=True,
            suggestion="Reduce request frequency or batch requests",
            **common,
        )
    if status == 422:
        validation = body.get("errors", body) if isinstance(body, Mapping) else body
        return ApiError(
            code=ErrorCode.INVALID_INPUT,
            message=f"{service} validation error: {_body_message(body, 'Invalid request data')}",
            suggestion="Check the request parameters match the API requirements",
            details={"validationErrors": validation},
            **common,
        )
    if 400 <= status < 500:
        return ApiError(
            code=ErrorCode.INVALID_INPUT,
            message=f"{service} client error: {_body_message(body, 'Invalid request')}",
            details={"apiResponse": body} if body is not None else {},
            **common,
        )
    if status >= 500:
        return ApiError(
            code=ErrorCode.UPSTREAM_ERROR,
            message=f"{service} server error ({status}). The service is temporarily unavailable.",
            transient=True,
            suggestion=_AUTOMATIC_RETRY_HINT,
            **common,
        )
    return ApiError(
        code=ErrorCode.UPSTREAM_ERROR,
        message=f"{service} returned unexpected status {status}",
        **common,
    )


def error_from_timeout(
    exc: BaseException, *, service: str, request_id: str, endpoint: str | None = None, method: str | None = None,
) -> ApiError:
    return ApiError(
        code=ErrorCode.UPSTREAM_ERROR,
        message=f"{service} request timed out. The service may be experiencing high load.",
        request_id=request_id,
        endpoint=endpoint,
        method=method,
        transient=True,
        suggestion=_AUTOMATIC_RETRY_HINT,
        details={"errorType": type(exc).__name__},
    )


def error_from_network(
    exc: BaseException, *, service: str, request_id: str, endpoint: str | None = None, method: str | None = None,
) -> ApiError:
    return ApiError(
        code=ErrorCode.UPSTREAM_ERROR,
        message=f"{service} error: {exc or 'network failure'}",
        request_id=request_id,
        endpoint=endpoint,
        method=method,
        transient=True,
        suggestion="Check your network connection and the upstream service status",
        details={"errorType": type(exc).__name__},
    )


def error_from_transport(
    exc: BaseException, *, service: str, request_id: str, endpoint: str | None = None, method: str | None = None,
) -> ApiError:
    """Map a transport-level failure (no HTTP response) to an ApiError."""
    if isinstance(exc, httpx.TimeoutException):
        return error_from_timeout(exc, service=service, request_id=request_id, endpoint=endpoint, method=method)
    return error_from_network(exc, service=service, request_id=request_id, endpoint=endpoint, method=method)
