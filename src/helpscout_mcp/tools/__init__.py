"""Tool catalog.

Example:
    >>> registry = build_registry(services)
    >>> list(registry)[:2]
    ['search_inboxes', 'list_all_inboxes']
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .base import BaseTool, EmptyParams, ToolMetadata, ToolRegistry
from .conversations import CONVERSATION_TOOLS, redact_thread, server_time
from .docs import DOCS_TOOLS
from .reports import REPORT_TOOLS, GetReportParams, ReportKind

if TYPE_CHECKING:
    from helpscout_mcp.container import Services

ALL_TOOLS = CONVERSATION_TOOLS + DOCS_TOOLS + REPORT_TOOLS


def build_registry(services: Services) -> ToolRegistry:
    """Instantiate every enabled tool against ``services``."""
    return ToolRegistry(cls(services) for cls in ALL_TOOLS if cls.metadata.enabled)


__all__ = [
    "ALL_TOOLS",
    "BaseTool",
    "EmptyParams",
    "GetReportParams",
    "ReportKind",
    "ToolMetadata",
    "ToolRegistry",
    "build_registry",
    "redact_thread",
    "server_time",
]
