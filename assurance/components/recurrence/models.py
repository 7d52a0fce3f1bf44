"""
Recurrence component models.

A recurrence rule is a tagged variant (Daily | Weekly | Monthly) so that
fields meaningful for one frequency cannot leak into another.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

# Weekday numbering follows 0 = Sunday ... 6 = Saturday.
SUNDAY = 0
MONDAY = 1
SATURDAY = 6


@dataclass(frozen=True)
class TimeOfDay:
    """Wall-clock time of day, minute precision."""

    hour: int
    minute: int

    def __str__(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"


@dataclass(frozen=True)
class Daily:
    """Every day at the schedule's time of day."""


@dataclass(frozen=True)
class Weekly:
    """Selected weekdays (0 = Sunday). An empty set means Monday."""

    days: frozenset[int] = frozenset()

    def normalized_days(self) -> frozenset[int]:
        return self.days or frozenset({MONDAY})


@dataclass(frozen=True)
class Monthly:
    """
    One day per month.

    Days past the end of a month are clamped to its last day, so 31 runs on
    Feb 28/29, Apr 30, and so on. None means the 1st.
    """

    day: int | None = None


RecurrenceRule = Daily | Weekly | Monthly


@dataclass(frozen=True)
class RecurrenceSpec:
    """Everything compute_next_run needs to know about a schedule."""

    rule: RecurrenceRule
    time_of_day: TimeOfDay
    timezone: str
    starts_at: datetime
    ends_at: datetime | None = None
