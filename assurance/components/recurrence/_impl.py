"""
Recurrence calculator and occurrence keys.

Pure functions: no clock, no storage. All instants returned are
timezone-aware UTC datetimes.

Key behaviors:
- Next run is the earliest occurrence strictly after the reference instant
- Wall-clock -> UTC uses the IANA offset of the target date, so DST
  transitions between the reference date and the target date are honoured
- Non-existent local times (spring forward) resolve with the offset in
  force before the transition, which lands later in absolute time
- Ambiguous local times (fall back) resolve to the first occurrence
- Results before starts_at are recomputed from starts_at
- Results after ends_at collapse to ends_at ("exhausted" sentinel)
"""

from __future__ import annotations

import calendar
import re
from collections.abc import Iterator
from datetime import UTC, date, datetime, timedelta, tzinfo
from zoneinfo import ZoneInfo

from .models import (
    Daily,
    Monthly,
    RecurrenceRule,
    RecurrenceSpec,
    TimeOfDay,
    Weekly,
)

# Offset applied to starts_at when recomputing the first occurrence.
START_EPSILON = timedelta(milliseconds=1)

WINDOW_KEY_FORMAT = "%Y-%m-%dT%H:%M"

_TIME_OF_DAY_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


# --- Parsing ---


def parse_time_of_day(value: str) -> TimeOfDay:
    """
    Parse a strict 24-hour "HH:MM" string.

    Raises:
        ValueError: if the value is not two-digit hours 00-23 and two-digit
            minutes 00-59 separated by a colon.
    """
    match = _TIME_OF_DAY_RE.fullmatch(value)
    if match is None:
        raise ValueError(f"time_of_day must be HH:MM (24h), got {value!r}")
    return TimeOfDay(hour=int(match.group(1)), minute=int(match.group(2)))


def load_timezone(name: str) -> ZoneInfo:
    """
    Load an IANA timezone.

    Raises:
        ValueError: if the name is unknown to the timezone database.
    """
    try:
        return ZoneInfo(name)
    except (KeyError, TypeError, ValueError) as e:
        raise ValueError(f"Unknown timezone: {name!r}") from e


def ensure_utc(dt: datetime) -> datetime:
    """Normalize to aware UTC. Naive datetimes are taken to be UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


# --- Wall-clock helpers ---


def weekday_of(day: date) -> int:
    """Weekday with 0 = Sunday ... 6 = Saturday."""
    return (day.weekday() + 1) % 7


def clamp_day_of_month(day: int | None, year: int, month: int) -> int:
    """Clamp a requested day into [1, days in that month]."""
    last_day = calendar.monthrange(year, month)[1]
    return min(max(day or 1, 1), last_day)


def wall_clock_to_utc(day: date, time_of_day: TimeOfDay, tz: tzinfo) -> datetime:
    """Convert a local date + time of day to UTC using that date's offset."""
    local = datetime(day.year, day.month, day.day, time_of_day.hour, time_of_day.minute, tzinfo=tz)
    return local.astimezone(UTC)


def _days_from(start: date) -> Iterator[date]:
    day = start
    while True:
        yield day
        day += timedelta(days=1)


def _candidate_days(rule: RecurrenceRule, start: date) -> Iterator[date]:
    """Local dates on which the rule fires, from start onwards."""
    if isinstance(rule, Daily):
        yield from _days_from(start)
    elif isinstance(rule, Weekly):
        days = rule.normalized_days()
        yield from (d for d in _days_from(start) if weekday_of(d) in days)
    elif isinstance(rule, Monthly):
        year, month = start.year, start.month
        while True:
            yield date(year, month, clamp_day_of_month(rule.day, year, month))
            month += 1
            if month > 12:
                month = 1
                year += 1
    else:
        raise TypeError(f"Unknown recurrence rule: {rule!r}")


def _next_occurrence(spec: RecurrenceSpec, tz: tzinfo, reference: datetime) -> datetime:
    """First occurrence strictly after reference, ignoring the validity window."""
    local_start = reference.astimezone(tz).date()
    for day in _candidate_days(spec.rule, local_start):
        candidate = wall_clock_to_utc(day, spec.time_of_day, tz)
        if candidate > reference:
            return candidate
    raise AssertionError("unreachable: candidate days are unbounded")


# --- Public API ---


def compute_next_run(spec: RecurrenceSpec, reference: datetime) -> datetime:
    """
    Compute the next absolute run instant for a recurrence spec.

    Args:
        spec: Recurrence rule, time of day, timezone and validity window.
        reference: Instant to compute from (normally "now").

    Returns:
        The earliest UTC instant strictly after reference at which the
        rule fires, never before spec.starts_at. If that instant is past
        spec.ends_at, spec.ends_at itself is returned; see is_exhausted.
    """
    tz = load_timezone(spec.timezone)
    ref = ensure_utc(reference)
    starts_at = ensure_utc(spec.starts_at)

    next_run = _next_occurrence(spec, tz, ref)

    if next_run < starts_at:
        next_run = _next_occurrence(spec, tz, starts_at - START_EPSILON)
        if next_run < starts_at:
            next_run = _next_occurrence(spec, tz, starts_at)

    if spec.ends_at is not None:
        ends_at = ensure_utc(spec.ends_at)
        if next_run > ends_at:
            return ends_at

    return next_run


def is_exhausted(next_run: datetime, spec: RecurrenceSpec) -> bool:
    """True when next_run is the ends_at sentinel (no further occurrences)."""
    if spec.ends_at is None:
        return False
    return ensure_utc(next_run) >= ensure_utc(spec.ends_at)


def window_key(run_at: datetime, timezone: str) -> str:
    """
    Idempotency key for one occurrence.

    The wall-clock minute of run_at in the schedule's timezone, formatted
    YYYY-MM-DDTHH:MM. Instants in the same local minute share a key.
    """
    local = ensure_utc(run_at).astimezone(load_timezone(timezone))
    return local.strftime(WINDOW_KEY_FORMAT)
