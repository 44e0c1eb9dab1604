"""
UTC timestamp utilities (stdlib-only).

Every job timestamp, log entry and heartbeat goes through these helpers so
that the whole service agrees on timezone-aware UTC and one ISO format.

Tags:
    timestamps, utc, datetime, astraops, stdlib-only
"""

from datetime import UTC, datetime


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(UTC)


def to_iso8601(dt: datetime) -> str:
    """Render *dt* as ISO-8601 with millisecond precision and a ``Z`` suffix."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def format_duration(seconds: float) -> str:
    """Human-readable elapsed time: ``"3m 12s"`` or ``"42s"``."""
    total = max(0, int(seconds))
    minutes, secs = divmod(total, 60)
    if minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"
