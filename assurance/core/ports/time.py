"""
Time/Timezone Adapter Interface (P3).

Protocol-based interface for time operations.

Key requirements:
- Storage uses UTC for all timestamps
- Schedules carry their own IANA timezone; conversions take it explicitly
- The control loop reads "now" only through this port
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol


class TimePort(Protocol):
    """
    Time/Timezone adapter interface.

    All internal timestamps are UTC and timezone-aware.
    """

    def now_utc(self) -> datetime:
        """Get current UTC time."""
        ...

    def to_local(self, utc_dt: datetime, tz_name: str) -> datetime:
        """
        Convert UTC to wall-clock time in tz_name.

        Args:
            utc_dt: Datetime in UTC (naive treated as UTC)
            tz_name: IANA timezone name

        Raises:
            ValueError: if tz_name is unknown
        """
        ...
