"""Structured logging with request-scoped context propagation.

Every outbound call runs inside a ``log_context(request_id=...)`` scope so
each entry it produces (request, retry, response, error) carries the same
correlation id the caller later sees in an error payload.

All renderers write to stderr: stdout carries the stdio tool protocol and
must never see log output.

Quick Start:
    >>> from helpscout_mcp.runtime.observability import get_logger, configure_logging
    >>> configure_logging("console", "DEBUG")
    >>> log = get_logger("http.client", api="helpscout")
    >>> with log_context(request_id="a1b2c3d4"):
    ...     log.info("api request", method="GET", url="/conversations")
"""

from __future__ import annotations

import json
import logging
import sys
import time
import traceback
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import UTC, datetime
from functools import partialmethod
from typing import Protocol, TextIO, runtime_checkable

from helpscout_mcp.foundation.errors import JsonDict, JsonValue

# Scoped fields; copied into each asyncio task, so concurrent calls never mix ids
_scope: ContextVar[JsonDict] = ContextVar("helpscout_log_scope", default={})


@dataclass(frozen=True, slots=True)
class LogEntry:
    """One emitted event: level name, event text and the merged fields."""

    timestamp: float
    level: str
    event: str
    context: JsonDict

    @property
    def moment(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp, tz=UTC)

    def as_record(self) -> JsonDict:
        return {"timestamp": self.moment.isoformat(), "level": self.level, "event": self.event, **self.context}


@dataclass(frozen=True, slots=True)
class BoundLogger:
    """Logger carrying fixed fields; ``bind`` derives a child with more.

    Threshold and renderer are read on every call, so module-level loggers
    pick up whatever ``configure_logging`` installs at startup.
    """

    context: JsonDict = field(default_factory=dict)

    def bind(self, **fields: JsonValue) -> BoundLogger:
        return BoundLogger(context={**self.context, **fields})

    def log(self, level: int, event: str, **fields: JsonValue) -> None:
        if level < _active.threshold:
            return
        # scope < bound < call site
        merged = {**_scope.get(), **self.context, **fields}
        _active.renderer.render(
            LogEntry(timestamp=time.time(), level=logging.getLevelName(level).lower(), event=event, context=merged),
        )

    debug = partialmethod(log, logging.DEBUG)
    info = partialmethod(log, logging.INFO)
    warning = partialmethod(log, logging.WARNING)
    error = partialmethod(log, logging.ERROR)

    def exception(self, event: str, **fields: JsonValue) -> None:
        """Error entry that also carries the traceback being handled."""
        self.log(logging.ERROR, event, exc_info=traceback.format_exc(), **fields)


@contextmanager
def log_context(**fields: JsonValue) -> Iterator[JsonDict]:
    """Attach ``fields`` to every entry logged inside the block.

    >>> with log_context(request_id="abc123"):
    ...     log.info("processing")  # carries request_id
    """
    token = _scope.set({**_scope.get(), **fields})
    try:
        yield _scope.get()
    finally:
        _scope.reset(token)


def current_context() -> JsonDict:
    """Copy of the fields in scope (e.g. the active request id)."""
    return dict(_scope.get())


# ─────────────────────────────────────────────────────────────────────────────
# Renderers
# ─────────────────────────────────────────────────────────────────────────────


@runtime_checkable
class LogRenderer(Protocol):
    def render(self, entry: LogEntry) -> None: ...


_ANSI = {
    "reset": "\033[0m",
    "bold": "\033[1m",
    "dim": "\033[2m",
    "red": "\033[31m",
    "green": "\033[32m",
    "yellow": "\033[33m",
    "cyan": "\033[36m",
}

_LEVEL_STYLE = {"debug": "dim", "info": "green", "warning": "yellow", "error": "red", "critical": "red"}


@dataclass(slots=True)
class ConsoleRenderer:
    """``HH:MM:SS.mmm [level] event key=value ...`` lines for people.

    ``colors=None`` turns ANSI styling on only when the stream is a TTY.
    """

    output: TextIO = field(default_factory=lambda: sys.stderr)
    colors: bool | None = None

    def __post_init__(self) -> None:
        if self.colors is None:
            isatty = getattr(self.output, "isatty", None)
            self.colors = bool(isatty and isatty())

    def _paint(self, text: str, style: str) -> str:
        return f"{_ANSI[style]}{text}{_ANSI['reset']}" if self.colors else text

    def render(self, entry: LogEntry) -> None:
        fields = {k: v for k, v in entry.context.items() if k != "exc_info"}
        line = " ".join([
            self._paint(entry.moment.strftime("%H:%M:%S.%f")[:-3], "dim"),
            self._paint(f"[{entry.level}]", _LEVEL_STYLE.get(entry.level, "dim")),
            self._paint(entry.event, "bold"),
            *(f"{self._paint(k, 'cyan')}={_display(fields[k])}" for k in sorted(fields)),
        ])
        self.output.write(line + "\n")
        if trace := entry.context.get("exc_info"):
            self.output.write(self._paint(str(trace), "red") + "\n")


@dataclass(slots=True)
class JsonRenderer:
    """One JSON object per line for log shippers."""

    output: TextIO = field(default_factory=lambda: sys.stderr)

    def render(self, entry: LogEntry) -> None:
        self.output.write(json.dumps(entry.as_record(), default=str) + "\n")


class NoOpRenderer:
    def render(self, entry: LogEntry) -> None:
        return None


def _display(value: object) -> str:
    """Compact value for console lines; containers collapse to a size."""
    if isinstance(value, dict):
        return f"{{{len(value)} keys}}"
    if isinstance(value, (list, tuple)):
        return f"[{len(value)} items]"
    if value is None or isinstance(value, (str, bool, int, float)):
        return json.dumps(value)
    return repr(value)


# ─────────────────────────────────────────────────────────────────────────────
# Process configuration
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(slots=True)
class _Active:
    renderer: LogRenderer = field(default_factory=ConsoleRenderer)
    threshold: int = logging.INFO


_active = _Active()

_RENDERERS = {
    "console": lambda output, colors: ConsoleRenderer(output=output, colors=colors),
    "json": lambda output, colors: JsonRenderer(output=output),
    "none": lambda output, colors: NoOpRenderer(),
}


def configure_logging(
    format: str = "console",  # noqa: A002
    level: str = "INFO",
    *,
    output: TextIO | None = None,
    colors: bool | None = None,
) -> LogRenderer:
    """Install the process-wide renderer named by ``format`` at ``level``.

    Args:
        format: "console", "json" or "none" (LOG_FORMAT)
        level: Threshold name such as DEBUG or WARNING (LOG_LEVEL)
        output: Target stream, stderr when omitted
        colors: Force ANSI styling on or off for the console renderer
    """
    try:
        factory = _RENDERERS[format]
    except KeyError:
        raise ValueError(f"Unknown log format {format!r}; expected one of {sorted(_RENDERERS)}") from None
    return install_renderer(factory(output or sys.stderr, colors), level)


def install_renderer(renderer: LogRenderer, level: str = "INFO") -> LogRenderer:
    """Route entries at or above ``level`` to ``renderer``."""
    _active.renderer = renderer
    _active.threshold = logging.getLevelNamesMapping().get(level.upper(), logging.INFO)
    return renderer


def get_logger(name: str | None = None, **fields: JsonValue) -> BoundLogger:
    """Logger with ``logger=name`` plus any extra fixed fields."""
    return BoundLogger(context={**fields, "logger": name} if name else dict(fields))
