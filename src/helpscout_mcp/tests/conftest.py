"""Shared fixtures: fake clock, recorded sleeps, stubbed transports, wired clients."""

from __future__ import annotations

from dataclasses import dataclass, field

import pytest
from pydantic import SecretStr

from helpscout_mcp.container import Services, build_services
from helpscout_mcp.foundation.config import (
    HelpScoutSettings,
    PoolSettings,
    RetrySettings,
    SecuritySettings,
    Settings,
)
from helpscout_mcp.foundation.testing import RecordingTransport
from helpscout_mcp.http import DocsApiKeyAuth, DocsClient, HelpScoutClient, StaticBearerAuth
from helpscout_mcp.io.cache import ResponseCache
from helpscout_mcp.runtime.observability import LogEntry, install_renderer
from helpscout_mcp.runtime.retry import ExponentialBackoff, RetryPolicy

API_BASE = "https://api.helpscout.net/v2/"
DOCS_BASE = "https://docsapi.helpscout.net/v1/"


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@dataclass
class SleepRecorder:
    """Stand-in for asyncio.sleep that records requested delays."""
    delays: list[float] = field(default_factory=list)

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@dataclass
class CapturingRenderer:
    entries: list[LogEntry] = field(default_factory=list)

    def render(self, entry: LogEntry) -> None:
        self.entries.append(entry)

    def events(self) -> list[str]:
        return [e.event for e in self.entries]


@pytest.fixture(autouse=True)
def captured_logs() -> CapturingRenderer:
    """Route log output into memory for every test."""
    renderer = CapturingRenderer()
    install_renderer(renderer, "DEBUG")
    return renderer


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def docs_transport() -> RecordingTransport:
    return RecordingTransport()


def retry_policy(retries: int = 3) -> RetryPolicy:
    """Deterministic policy: 1s, 2s, 4s... with no jitter."""
    return RetryPolicy(retries=retries, backoff=ExponentialBackoff(base=1.0, max_delay=10.0, jitter_ratio=0.0))


@pytest.fixture
def cache(clock: FakeClock) -> ResponseCache:
    return ResponseCache(default_ttl=300, max_size=100, clock=clock)


@pytest.fixture
def api(transport: RecordingTransport, cache: ResponseCache, sleeps: SleepRecorder) -> HelpScoutClient:
    return HelpScoutClient(
        base_url=API_BASE,
        auth=StaticBearerAuth(token="pat-123"),
        cache=cache,
        retry=retry_policy(),
        pool=PoolSettings(),
        transport=transport,
        sleep=sleeps,
    )


@pytest.fixture
def docs(docs_transport: RecordingTransport, cache: ResponseCache, sleeps: SleepRecorder) -> DocsClient:
    return DocsClient(
        base_url=DOCS_BASE,
        auth=DocsApiKeyAuth(api_key=SecretStr("docs-key")),
        cache=cache,
        retry=retry_policy(),
        pool=PoolSettings(),
        transport=docs_transport,
        sleep=sleeps,
    )


def make_settings(**helpscout: object) -> Settings:
    """Settings built only from explicit values (no environment, no .env)."""
    allow_pii = bool(helpscout.pop("allow_pii", False))
    values: dict[str, object] = {"api_key": "pat-123", "docs_api_key": "docs-key", **helpscout}
    return Settings(
        helpscout=HelpScoutSettings(_env_file=None, **values),
        retry=RetrySettings(_env_file=None, retries=3, jitter_ratio=0.0),
        security=SecuritySettings(_env_file=None, allow_pii=allow_pii),
    )


@pytest.fixture
def services(
    transport: RecordingTransport, docs_transport: RecordingTransport, sleeps: SleepRecorder,
) -> Services:
    return build_services(make_settings(), transport=transport, docs_transport=docs_transport, sleep=sleeps)
