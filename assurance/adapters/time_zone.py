"""
IANA Time Adapter (P3 Implementation).

Implements the TimePort interface. Every schedule carries its own IANA
timezone, so conversions take the zone name per call; zones are resolved
through the system tz database (tzdata as a fallback).

Key behaviors:
- now_utc: Returns current UTC time
- to_local: Converts UTC to wall-clock time in a zone (report dates)
- FrozenTimeAdapter pins "now" for deterministic ticks in tests
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from functools import lru_cache
from zoneinfo import ZoneInfo

from assurance.components.recurrence import load_timezone


@lru_cache(maxsize=64)
def _zone(tz_name: str) -> ZoneInfo:
    return load_timezone(tz_name)


class ZoneTimeAdapter:
    """Time adapter backed by the system clock."""

    def now_utc(self) -> datetime:
        """Get current UTC time."""
        return datetime.now(UTC)

    def to_local(self, utc_dt: datetime, tz_name: str) -> datetime:
        """Convert UTC to wall-clock time in tz_name. Naive input is UTC."""
        if utc_dt.tzinfo is None:
            utc_dt = utc_dt.replace(tzinfo=UTC)
        return utc_dt.astimezone(_zone(tz_name))


class FrozenTimeAdapter(ZoneTimeAdapter):
    """
    Time adapter that returns a fixed time.

    Useful for deterministic testing.
    """

    def __init__(self, frozen_utc: datetime) -> None:
        if frozen_utc.tzinfo is None:
            frozen_utc = frozen_utc.replace(tzinfo=UTC)
        self._frozen_utc = frozen_utc.astimezone(UTC)

    def now_utc(self) -> datetime:
        """Get frozen UTC time."""
        return self._frozen_utc

    def advance(self, delta: timedelta) -> None:
        """Advance frozen time by delta (for testing)."""
        self._frozen_utc = self._frozen_utc + delta

    def set(self, utc_dt: datetime) -> None:
        """Jump to an absolute time (for testing)."""
        if utc_dt.tzinfo is None:
            utc_dt = utc_dt.replace(tzinfo=UTC)
        self._frozen_utc = utc_dt.astimezone(UTC)


def create_time_adapter() -> ZoneTimeAdapter:
    """Factory function to create a time adapter."""
    return ZoneTimeAdapter()
