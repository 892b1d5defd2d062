"""MCP serving via FastMCP.

Example:
    >>> from helpscout_mcp.ext.mcp import MCPServer
    >>> MCPServer("helpscout", registry, services).run()
"""

from .server import MCPServer, ToolServer, Transport, tool_signature

__all__ = ["MCPServer", "ToolServer", "Transport", "tool_signature"]
