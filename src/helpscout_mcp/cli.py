"""Process entrypoint: ``helpscout-mcp``.

Loads settings, checks credentials, then serves the tool catalog over MCP
(stdio by default). Logs go to stderr; stdout belongs to the protocol.
"""

from __future__ import annotations

import argparse
import sys

from helpscout_mcp.container import build_services
from helpscout_mcp.ext.mcp import MCPServer
from helpscout_mcp.foundation.config import get_settings, validate_credentials
from helpscout_mcp.foundation.errors import ConfigurationError
from helpscout_mcp.runtime.observability import configure_logging, get_logger
from helpscout_mcp.tools import build_registry

SERVER_NAME = "helpscout"


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="helpscout-mcp", description="Help Scout tools over MCP")
    parser.add_argument("--transport", choices=["stdio", "sse", "streamable-http"], default="stdio")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8080)
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    settings = get_settings()
    configure_logging(settings.logging.format, settings.logging.level)
    log = get_logger("cli")

    try:
        validate_credentials(settings)
    except ConfigurationError as e:
        log.error("startup failed", error=e.error.message, suggestion=e.error.suggestion)
        return 1

    services = build_services(settings)
    server = MCPServer(SERVER_NAME, build_registry(services), services)
    try:
        server.run(args.transport, host=args.host, port=args.port)
    except KeyboardInterrupt:
        log.info("interrupted")
    return 0


if __name__ == "__main__":
    sys.exit(main())
