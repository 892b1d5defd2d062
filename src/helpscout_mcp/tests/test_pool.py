"""Tests for the pooled transport: limits and pool swapping."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from helpscout_mcp.foundation.config import DocsPoolSettings, PoolSettings
from helpscout_mcp.http.pool import PooledTransport, build_limits


class GatedTransport(httpx.AsyncBaseTransport):
    """Holds every request until ``gate`` is set; records whether it was closed."""

    def __init__(self) -> None:
        self.gate = asyncio.Event()
        self.closed = False

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        await self.gate.wait()
        return httpx.Response(200, json={"ok": True})

    async def aclose(self) -> None:
        self.closed = True


class GatedPool(PooledTransport):
    def __init__(self, settings: PoolSettings) -> None:
        self.built: list[GatedTransport] = []
        super().__init__(settings, name="test")

    def _build(self) -> GatedTransport:
        inner = GatedTransport()
        self.built.append(inner)
        return inner


def _request() -> httpx.Request:
    return httpx.Request("GET", "https://api.helpscout.net/v2/mailboxes")


class TestLimits:
    def test_idle_timeout_sets_keepalive_expiry(self) -> None:
        limits = build_limits(PoolSettings())
        assert limits.keepalive_expiry == 30.0
        assert limits.max_connections == 50
        assert limits.max_keepalive_connections == 10

    def test_idle_timeout_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DOCS_HTTP_IDLE_TIMEOUT", "5")
        limits = build_limits(DocsPoolSettings())
        assert limits.keepalive_expiry == 5.0
        assert limits.max_connections == 20

    def test_keep_alive_off_disables_reuse(self) -> None:
        limits = build_limits(PoolSettings(keep_alive=False))
        assert limits.keepalive_expiry == 0.0
        assert limits.max_keepalive_connections == 0


class TestPoolSwap:
    @pytest.mark.asyncio
    async def test_idle_swap_closes_old_pool_at_once(self) -> None:
        pool = GatedPool(PoolSettings())
        await pool.clear_idle_connections()
        assert len(pool.built) == 2
        assert pool.built[0].closed
        await pool.aclose()

    @pytest.mark.asyncio
    async def test_retired_pool_closes_when_last_request_finishes(self) -> None:
        pool = GatedPool(PoolSettings())
        first = pool.built[0]
        task = asyncio.create_task(pool.handle_async_request(_request()))
        await asyncio.sleep(0)
        assert pool.stats().pending == 1

        await pool.clear_idle_connections()
        assert not first.closed

        first.gate.set()
        response = await task
        assert not first.closed
        await response.aread()

        assert first.closed
        assert pool.stats().pending == 0
        assert not pool.built[1].closed
        await pool.aclose()

    @pytest.mark.asyncio
    async def test_failed_request_releases_slot(self) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        pool = PooledTransport(PoolSettings(), name="test", inner=httpx.MockTransport(refuse))
        with pytest.raises(httpx.ConnectError):
            await pool.handle_async_request(_request())
        assert pool.stats().pending == 0
        await pool.aclose()
