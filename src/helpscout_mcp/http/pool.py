"""Bounded connection pool per upstream API, with introspection.

Wraps ``httpx.AsyncHTTPTransport`` (one per client instance, so the
primary and Docs APIs get independent ceilings) and counts requests
currently in flight. Open/idle counts come from the underlying
connection pool when the transport exposes one.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass

import httpx

from helpscout_mcp.foundation.config import PoolSettings
from helpscout_mcp.runtime.observability import get_logger

_log = get_logger("http.pool")


@dataclass(frozen=True, slots=True)
class PoolStats:
    open: int
    idle: int
    pending: int

    def to_dict(self) -> dict[str, int]:
        return {"open": self.open, "idle": self.idle, "pending": self.pending}


def build_limits(settings: PoolSettings) -> httpx.Limits:
    return httpx.Limits(
        max_connections=settings.max_sockets,
        max_keepalive_connections=settings.max_free_sockets if settings.keep_alive else 0,
        keepalive_expiry=settings.idle_timeout if settings.keep_alive else 0.0,
    )


class PooledTransport(httpx.AsyncBaseTransport):
    """Transport owning one bounded pool.

    Args:
        settings: Pool ceilings and timeouts
        name: Label for log entries ("helpscout", "docs")
        inner: Transport to delegate to; defaults to a fresh AsyncHTTPTransport
            built from ``settings`` (tests pass an httpx.MockTransport)
    """

    def __init__(self, settings: PoolSettings, *, name: str, inner: httpx.AsyncBaseTransport | None = None) -> None:
        self._settings = settings
        self._name = name
        self._owns_inner = inner is None
        self._inner = inner if inner is not None else self._build()
        self._retired: list[httpx.AsyncBaseTransport] = []
        self._pending = 0
        self._closed = False
        _log.info(
            "connection pool initialized",
            pool=name,
            max_sockets=settings.max_sockets,
            max_free_sockets=settings.max_free_sockets,
            keep_alive=settings.keep_alive,
            keep_alive_msecs=settings.keep_alive_msecs,
            idle_timeout=settings.idle_timeout,
            timeout_ms=settings.socket_timeout,
        )

    def _build(self) -> httpx.AsyncBaseTransport:
        return httpx.AsyncHTTPTransport(limits=build_limits(self._settings))

    @property
    def closed(self) -> bool:
        return self._closed

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        # In flight until the body stream is closed, not just until headers arrive
        self._pending += 1
        try:
            response = await self._inner.handle_async_request(request)
        except BaseException:
            await self._release()
            raise
        return httpx.Response(
            status_code=response.status_code,
            headers=response.headers,
            stream=_ReleasingStream(response.stream, self._release),
            extensions=response.extensions,
            request=request,
        )

    async def _release(self) -> None:
        self._pending -= 1
        if not self._pending and self._retired:
            await self._close_retired()

    def stats(self) -> PoolStats:
        """Open/idle connection counts plus requests currently in flight."""
        connections = getattr(getattr(self._inner, "_pool", None), "connections", ())
        idle = sum(1 for c in connections if _is_idle(c))
        return PoolStats(open=len(connections), idle=idle, pending=self._pending)

    def log_status(self) -> None:
        _log.debug("connection pool status", pool=self._name, **self.stats().to_dict())

    async def clear_idle_connections(self) -> int:
        """Drop idle keep-alive connections by swapping in a fresh pool.

        The old pool is closed right away when nothing is in flight,
        otherwise once the last in-flight request finishes.

        Returns:
            Number of idle connections released
        """
        if not self._owns_inner or self._closed:
            return 0
        stats = self.stats()
        old, self._inner = self._inner, self._build()
        if self._pending:
            self._retired.append(old)
        else:
            await old.aclose()
        _log.debug("cleared idle connections", pool=self._name, cleared=stats.idle)
        return stats.idle

    async def aclose(self) -> None:
        """Drain and close every connection."""
        if self._closed:
            return
        self._closed = True
        _log.info("closing connection pool", pool=self._name)
        await self._close_retired()
        await self._inner.aclose()
        _log.info("connection pool closed", pool=self._name)

    async def _close_retired(self) -> None:
        retired, self._retired = self._retired, []
        for old in retired:
            await old.aclose()
        _log.debug("retired pools closed", pool=self._name, count=len(retired))


class _ReleasingStream(httpx.AsyncByteStream):
    """Response body that calls ``on_close`` exactly once when closed."""

    def __init__(self, stream: httpx.AsyncByteStream, on_close: Callable[[], Awaitable[None]]) -> None:
        self._stream = stream
        self._on_close: Callable[[], Awaitable[None]] | None = on_close

    async def __aiter__(self) -> AsyncIterator[bytes]:
        async for chunk in self._stream:
            yield chunk

    async def aclose(self) -> None:
        try:
            await self._stream.aclose()
        finally:
            on_close, self._on_close = self._on_close, None
            if on_close is not None:
                await on_close()


def _is_idle(connection: object) -> bool:
    check = getattr(connection, "is_idle", None)
    return bool(check()) if callable(check) else False
