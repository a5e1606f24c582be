"""Datetime helpers. All stored datetimes are UTC."""

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """SQLite hands datetimes back naive; treat those as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_iso(value: datetime | None) -> str | None:
    return as_utc(value).isoformat() if value else None


def from_iso(value: str | None) -> datetime | None:
    return as_utc(datetime.fromisoformat(value)) if value else None
