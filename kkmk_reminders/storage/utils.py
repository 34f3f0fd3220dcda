"""Shared helper utilities for storage layer modules."""
from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Any


def utcnow() -> str:
    """Return a timezone-aware ISO timestamp in UTC."""

    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def parse_date(value: Any) -> date:
    """Parse a stored date (``YYYY-MM-DD`` or a full ISO timestamp)."""

    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def normalize_start_time(value: Any) -> str | None:
    """Return ``HH:MM`` (or ``HH:MM:SS``) text for a start time, or ``None``."""

    if value is None:
        return None
    if isinstance(value, time):
        return value.isoformat(timespec="minutes")
    text = str(value).strip()
    if not text:
        return None
    time.fromisoformat(text)
    return text


__all__ = ["normalize_start_time", "parse_date", "utcnow"]
