"""UTC helpers shared by the tools.

Naive datetimes are taken to be UTC; everything sent upstream is ISO 8601
with a ``Z`` suffix.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any


def as_utc(value: datetime) -> datetime:
    """Aware copy of ``value`` in UTC (naive input is assumed UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def iso_utc(value: datetime) -> str:
    """'2024-01-01T00:00:00Z' form of ``value``."""
    return as_utc(value).isoformat().replace("+00:00", "Z")


def parse_time(value: Any) -> datetime | None:
    """Aware UTC datetime from an upstream timestamp string, None when unparseable."""
    if not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return as_utc(parsed)


def utc_now() -> datetime:
    return datetime.now(UTC)
