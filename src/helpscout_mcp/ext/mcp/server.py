"""FastMCP server exposing the tool registry over the MCP protocol.

Tool handlers are generated from each tool's params model: FastMCP derives
the input schema from the handler signature, so every handler carries a
synthesized keyword-only signature mirroring the model fields. Invocation
always goes through ``ToolServer.invoke``, which validates parameters and
renders failures as ApiError JSON instead of raising into the protocol layer.

Example:
    >>> server = MCPServer("helpscout", build_registry(services), services)
    >>> server.run()  # stdio
"""

from __future__ import annotations

import asyncio
import inspect
import json
from typing import TYPE_CHECKING, Any, Literal

from pydantic import ValidationError

from helpscout_mcp.foundation.errors import ApiError, ApiException, ErrorCode
from helpscout_mcp.http.client import new_request_id
from helpscout_mcp.runtime.observability import get_logger, log_context
from helpscout_mcp.tools import redact_thread, server_time

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from helpscout_mcp.container import Services
    from helpscout_mcp.tools import BaseTool, ToolRegistry

Transport = Literal["stdio", "sse", "streamable-http"]

_log = get_logger("ext.mcp")

RESOURCE_PAGE_SIZE = 50


def _dumps(value: object) -> str:
    return json.dumps(value, indent=2, default=str)


def _listed(body: dict[str, Any], key: str) -> list[Any]:
    return (body.get("_embedded") or {}).get(key, [])


def _error(message: str, code: ErrorCode, request_id: str, **fields: Any) -> str:
    return ApiError(message=message, code=code, request_id=request_id, **fields).render()


def tool_signature(tool: BaseTool[Any]) -> inspect.Signature:
    """Keyword-only signature mirroring the tool's params model fields."""
    parameters = []
    for name, field in tool.params_schema.model_fields.items():
        default = inspect.Parameter.empty if field.is_required() else field.get_default(call_default_factory=True)
        parameters.append(inspect.Parameter(
            name, inspect.Parameter.KEYWORD_ONLY, default=default, annotation=field.annotation,
        ))
    return inspect.Signature(parameters, return_annotation=str)


class ToolServer:
    """Registry-backed invocation shared by protocol adapters."""

    __slots__ = ("_name", "_registry", "_services")

    def __init__(self, name: str, registry: ToolRegistry, services: Services | None = None) -> None:
        self._name = name
        self._registry = registry
        self._services = services

    @property
    def name(self) -> str:
        return self._name

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    def list_tools(self) -> list[dict[str, object]]:
        """Enabled tools with their JSON schemas."""
        return [
            {
                "name": tool.metadata.name,
                "description": tool.metadata.description,
                "category": tool.metadata.category,
                "parameters": tool.params_schema.model_json_schema(),
            }
            for tool in self._registry.enabled()
        ]

    async def invoke(self, tool_name: str, params: dict[str, object]) -> str:
        """Invoke a tool by name with raw parameters.

        Returns the tool result as JSON, or a rendered ApiError on failure.
        """
        request_id = new_request_id()
        tool = self._registry.get(tool_name)
        if tool is None:
            return _error(f"Tool '{tool_name}' not found", ErrorCode.NOT_FOUND, request_id)

        with log_context(request_id=request_id, tool=tool_name):
            try:
                validated = tool.params_schema.model_validate(params)
            except ValidationError as e:
                _log.warning("invalid tool parameters", errors=e.error_count())
                return _error(
                    f"Invalid parameters: {e}",
                    ErrorCode.INVALID_INPUT,
                    request_id,
                    details={"validationErrors": json.loads(e.json(include_url=False))},
                )

            _log.info("tool invoked")
            try:
                result = await tool.arun(validated)
            except ApiException as e:
                _log.warning("tool failed", code=e.code.value, error=e.error.message)
                return e.error.render()
            except Exception as e:
                _log.exception("tool crashed", error=str(e))
                return _error(f"Execution failed: {type(e).__name__}: {e}", ErrorCode.UPSTREAM_ERROR, request_id)
            return _dumps(result)

    # ─────────────────────────────────────────────────────────────────
    # Resources
    # ─────────────────────────────────────────────────────────────────

    async def read_clock(self) -> str:
        return _dumps(server_time())

    async def read_inboxes(self) -> str:
        body = await self._read_listing("inboxes", "/mailboxes")
        if isinstance(body, str):
            return body
        return _dumps({"inboxes": _listed(body, "mailboxes"), "pagination": body.get("page"), "links": body.get("_links")})

    async def read_conversations(self) -> str:
        body = await self._read_listing("conversations", "/conversations")
        if isinstance(body, str):
            return body
        return _dumps({
            "conversations": _listed(body, "conversations"),
            "pagination": body.get("page"),
            "links": body.get("_links"),
        })

    async def read_threads(self, conversation_id: str) -> str:
        body = await self._read_listing("threads", f"/conversations/{conversation_id}/threads")
        if isinstance(body, str):
            return body
        allow_pii = self._services.allow_pii if self._services is not None else False
        return _dumps({
            "conversationId": conversation_id,
            "threads": [redact_thread(t, allow_pii) for t in _listed(body, "threads")],
            "pagination": body.get("page"),
            "links": body.get("_links"),
        })

    async def _read_listing(self, resource: str, endpoint: str) -> dict[str, Any] | str:
        """First page of ``endpoint`` as a dict, or a rendered error."""
        if self._services is None:
            return _error(f"The {resource} resource needs an API client", ErrorCode.UPSTREAM_ERROR, "unknown")
        request_id = new_request_id()
        with log_context(request_id=request_id, resource=resource):
            try:
                response = await self._services.helpscout.get(endpoint, {"page": 1, "size": RESOURCE_PAGE_SIZE})
            except ApiException as e:
                _log.warning("resource read failed", code=e.code.value, error=e.error.message)
                return e.error.render()
        return response if isinstance(response, dict) else {}


class MCPServer(ToolServer):
    """FastMCP-backed server for MCP clients (Claude Desktop, Cursor, ...)."""

    __slots__ = ("_mcp",)

    def __init__(self, name: str, registry: ToolRegistry, services: Services | None = None) -> None:
        super().__init__(name, registry, services)
        self._mcp = self._create_server()

    def _create_server(self) -> Any:
        try:
            from fastmcp import FastMCP
        except ImportError as e:
            raise ImportError("MCP serving requires fastmcp. Install with: pip install fastmcp") from e

        mcp = FastMCP(self._name)
        self._register_tools(mcp)
        self._register_resources(mcp)
        return mcp

    def _handler_for(self, tool: BaseTool[Any]) -> Callable[..., Awaitable[str]]:
        name = tool.metadata.name

        async def handler(**kwargs: Any) -> str:
            return await self.invoke(name, kwargs)

        signature = tool_signature(tool)
        handler.__name__ = name
        handler.__doc__ = tool.metadata.description
        handler.__signature__ = signature  # type: ignore[attr-defined]
        handler.__annotations__ = {
            **{p.name: p.annotation for p in signature.parameters.values()},
            "return": str,
        }
        return handler

    def _register_tools(self, mcp: Any) -> None:
        for tool in self._registry.enabled():
            mcp.tool(name=tool.metadata.name, description=tool.metadata.description)(self._handler_for(tool))

    def _register_resources(self, mcp: Any) -> None:
        mcp.resource("helpscout://clock", name="clock", mime_type="application/json")(self.read_clock)
        if self._services is None:
            return
        mcp.resource("helpscout://inboxes", name="inboxes", mime_type="application/json")(self.read_inboxes)
        mcp.resource(
            "helpscout://conversations", name="conversations", mime_type="application/json",
        )(self.read_conversations)
        mcp.resource(
            "helpscout://threads/{conversation_id}", name="threads", mime_type="application/json",
        )(self.read_threads)

    async def serve(self, transport: Transport = "stdio", *, host: str = "127.0.0.1", port: int = 8080) -> None:
        """Serve until the transport ends, then close the connection pools.

        Args:
            transport: "stdio" (default), "sse" or "streamable-http"
            host: Host for HTTP transports
            port: Port for HTTP transports
        """
        _log.info("starting mcp server", server=self._name, transport=transport, tools=len(self._registry))
        try:
            if transport == "stdio":
                await self._mcp.run_async(transport="stdio")
            else:
                await self._mcp.run_async(transport=transport, host=host, port=port)
        finally:
            if self._services is not None:
                await self._services.close()
            _log.info("mcp server stopped", server=self._name)

    def run(self, transport: Transport = "stdio", *, host: str = "127.0.0.1", port: int = 8080) -> None:
        """Blocking wrapper around ``serve``."""
        asyncio.run(self.serve(transport, host=host, port=port))

    @property
    def fastmcp(self) -> Any:
        """Underlying FastMCP instance."""
        return self._mcp
