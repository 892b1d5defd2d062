"""Help Scout tools for AI agents, served over MCP.

Async clients for the Help Scout Mailbox, Docs and Reports APIs with
OAuth2 token management, retries with backoff, a TTL+LRU response cache
and fuzzy Docs site/collection resolution.

Quick Start:
    >>> from helpscout_mcp.foundation.config import get_settings
    >>> from helpscout_mcp.container import build_services
    >>> from helpscout_mcp.tools import build_registry
    >>> services = build_services(get_settings())
    >>> registry = build_registry(services)
    >>> await registry["search_inboxes"].arun(...)
"""

__version__ = "0.1.0"
