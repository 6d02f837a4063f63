"""ISO-8601 helpers shared by the serializer and the identity map."""

from __future__ import annotations

from datetime import UTC, date, datetime


def utc_now() -> datetime:
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime; naive values are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def to_iso(value: datetime | None) -> str | None:
    """Format as ISO-8601 in UTC with a 'Z' suffix, or None."""
    if value is None:
        return None
    return ensure_utc(value).isoformat().replace("+00:00", "Z")


def parse_iso(value: object) -> datetime | None:
    """Parse an ISO-8601 string (or a YAML-decoded datetime) into aware UTC.

    Raises:
        ValueError: value is neither null, a datetime nor an ISO-8601 string
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=UTC)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        # Epoch milliseconds
        return datetime.fromtimestamp(value / 1000, UTC)
    if isinstance(value, str):
        return ensure_utc(datetime.fromisoformat(value.strip()))
    msg = f"Unsupported timestamp value: {value!r}"
    raise ValueError(msg)
