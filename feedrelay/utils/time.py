"""Time helpers with timezone-aware UTC defaults."""

from __future__ import annotations

from datetime import UTC, datetime


def utc_now() -> datetime:
    """Return timezone-aware current UTC datetime."""
    return datetime.now(UTC)


def to_iso(value: datetime) -> str:
    """Render a datetime as ISO-8601 UTC with millisecond precision and a ``Z`` suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def utc_now_iso() -> str:
    return to_iso(utc_now())


def from_unix(seconds: float) -> str:
    """Convert a unix timestamp (seconds) to an ISO-8601 UTC string."""
    return to_iso(datetime.fromtimestamp(seconds, tz=UTC))
