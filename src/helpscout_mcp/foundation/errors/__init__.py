"""Unified error handling for helpscout_mcp.

- ErrorCode: Semantic error kinds (INVALID_INPUT, NOT_FOUND, ...)
- ApiError/ApiException: Structured errors and the exception carrying them
- error_from_status & friends: transport -> semantic mapping
"""

from .errors import ApiError, ApiException, ConfigurationError, DeletionDisabledError, ErrorCode
from .mapping import (
    DEFAULT_RETRY_AFTER,
    error_from_network,
    error_from_status,
    error_from_transport,
    error_from_timeout,
    parse_retry_after,
)
from .types import JsonDict, JsonPrimitive, JsonValue

__all__ = [
    # Core errors
    "ErrorCode", "ApiError", "ApiException", "ConfigurationError", "DeletionDisabledError",
    # Mapping
    "error_from_status", "error_from_transport", "error_from_timeout", "error_from_network", "parse_retry_after",
    "DEFAULT_RETRY_AFTER",
    # Types
    "JsonDict", "JsonPrimitive", "JsonValue",
]
