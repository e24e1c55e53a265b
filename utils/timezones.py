"""IANA time-zone lookup shared by the time resolver and the sandbox clock."""
from __future__ import annotations

from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


class InvalidTimeZone(ValueError):
    """A time-zone name that is not a known IANA zone."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Invalid time zone: {name!r}")


@lru_cache(maxsize=64)
def load_zone(name: str) -> ZoneInfo:
    if not name or not name.strip():
        raise InvalidTimeZone(name)
    try:
        return ZoneInfo(name.strip())
    except (ZoneInfoNotFoundError, ValueError, OSError):
        raise InvalidTimeZone(name)
