"""Semantic error taxonomy for upstream API failures.

Transport failures (HTTP status codes, timeouts, dropped connections) are
mapped onto a small set of semantic kinds so tool handlers never branch on
raw status codes. Every error carries the correlation id of the request
that produced it, plus the endpoint and method attempted.
"""

from __future__ import annotations

import json
from enum import StrEnum
from typing import Annotated, Any, Self

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from .types import JsonDict


class ErrorCode(StrEnum):
    """Semantic error kinds surfaced to tool callers."""
    INVALID_INPUT = "INVALID_INPUT"
    NOT_FOUND = "NOT_FOUND"
    UNAUTHORIZED = "UNAUTHORIZED"
    RATE_LIMIT = "RATE_LIMIT"
    UPSTREAM_ERROR = "UPSTREAM_ERROR"


# Kinds the retry engine may retry (timeouts/5xx are UPSTREAM_ERROR with transient=True)
_RETRYABLE_CODES: frozenset[ErrorCode] = frozenset({ErrorCode.RATE_LIMIT, ErrorCode.UPSTREAM_ERROR})


class ApiError(BaseModel):
    """Structured error for a failed upstream call.

    Attributes:
        code: Semantic error kind
        message: Human-readable message
        request_id: Correlation id shared with server-side logs
        endpoint: Endpoint attempted (relative to the client base URL)
        method: HTTP method attempted
        status_code: Upstream HTTP status, when a response was received
        retry_after: Seconds the upstream asked us to wait (rate limits)
        suggestion: Actionable hint for the caller
        transient: Whether the failure is expected to clear on its own
        attempts: Number of attempts made before giving up
        details: Extra context (validation errors, raw upstream payload)
    """

    model_config = ConfigDict(
        frozen=True,
        str_strip_whitespace=True,
        validate_default=True,
        json_schema_extra={
            "title": "API Error",
            "examples": [{
                "code": "RATE_LIMIT",
                "message": "Help Scout API rate limit exceeded. Please wait 5 seconds before retrying.",
                "request_id": "a1b2c3d4",
                "endpoint": "/conversations",
                "method": "GET",
                "retry_after": 5,
            }],
        },
    )

    code: ErrorCode = ErrorCode.UPSTREAM_ERROR
    message: Annotated[str, Field(min_length=1)]
    request_id: str = "unknown"
    endpoint: str | None = None
    method: str | None = None
    status_code: int | None = None
    retry_after: int | None = None
    suggestion: str | None = None
    transient: bool = False
    attempts: int = 1
    details: JsonDict = Field(default_factory=dict, repr=False)

    @field_validator("message", mode="before")
    @classmethod
    def _ensure_message(cls, v: str | Exception) -> str:
        """Accept Exception objects and extract message."""
        return str(v) if isinstance(v, Exception) else v

    @computed_field
    @property
    def is_retryable(self) -> bool:
        """Whether the retry engine should try again."""
        if self.code is ErrorCode.RATE_LIMIT:
            return True
        return self.code in _RETRYABLE_CODES and self.transient

    def to_payload(self) -> JsonDict:
        """Caller-facing payload (what a tool returns on failure)."""
        details: dict[str, Any] = {"requestId": self.request_id}
        if self.endpoint is not None:
            details["url"] = self.endpoint
        if self.method is not None:
            details["method"] = self.method
        if self.status_code is not None:
            details["statusCode"] = self.status_code
        if self.attempts > 1:
            details["attempts"] = self.attempts
        if self.suggestion:
            details["suggestion"] = self.suggestion
        details.update(self.details)
        payload: JsonDict = {"code": self.code.value, "message": self.message, "details": details}
        if self.retry_after is not None:
            payload["retryAfter"] = self.retry_after
        return payload

    def render(self) -> str:
        """Format error as JSON text for the tool protocol."""
        return json.dumps({"error": self.to_payload()}, indent=2, default=str)

    __str__ = render


class ApiException(Exception):
    """Exception wrapping an ApiError for raising."""

    __slots__ = ("error",)

    def __init__(self, error: ApiError) -> None:
        self.error = error
        super().__init__(error.message)

    @property
    def code(self) -> ErrorCode:
        return self.error.code

    @classmethod
    def create(cls, message: str, code: ErrorCode = ErrorCode.UPSTREAM_ERROR, **fields: Any) -> Self:
        """Create exception from error fields."""
        return cls(ApiError(message=message, code=code, **fields))

    def with_attempts(self, attempts: int) -> ApiException:
        """Same error, enriched with retry-attempt metadata."""
        enriched = type(self)(self.error.model_copy(update={"attempts": attempts}))
        enriched.__cause__ = self.__cause__
        return enriched


class ConfigurationError(ApiException):
    """Credentials are missing or unusable; raised before any network call."""


class DeletionDisabledError(ApiException):
    """Destructive call attempted without the operator-level enable flag."""
