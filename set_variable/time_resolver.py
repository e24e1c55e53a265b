"""
Clock readings for the Now / Today / Tomorrow / Yesterday sources.

    resolve_instant(now)                      -> "2024-03-01T09:30:00Z"
    resolve_instant(now, "Asia/Kolkata")      -> "2024-03-01T15:00:00+05:30"
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from utils.timezones import InvalidTimeZone, load_zone

__all__ = ["InvalidTimeZone", "resolve_instant", "validate_time_zone"]


def resolve_instant(base_instant: datetime, time_zone: Optional[str] = None) -> str:
    """
    ISO-8601 text for `base_instant`, in UTC (`Z` suffix) when no zone is
    given, otherwise as wall-clock time in that zone with its numeric offset.
    Naive datetimes are taken as UTC.
    """
    if base_instant.tzinfo is None:
        base_instant = base_instant.replace(tzinfo=timezone.utc)
    if not time_zone or not time_zone.strip():
        return base_instant.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    zoned = base_instant.astimezone(load_zone(time_zone))
    return zoned.replace(microsecond=0).isoformat(timespec="seconds")


def validate_time_zone(name: str) -> None:
    """Raise InvalidTimeZone unless `name` is a known IANA zone."""
    load_zone(name)
