"""
Recurrence component - next-run calculation and occurrence keys.
"""

from ._impl import (
    START_EPSILON,
    WINDOW_KEY_FORMAT,
    clamp_day_of_month,
    compute_next_run,
    ensure_utc,
    is_exhausted,
    load_timezone,
    parse_time_of_day,
    wall_clock_to_utc,
    weekday_of,
    window_key,
)
from .models import (
    MONDAY,
    SATURDAY,
    SUNDAY,
    Daily,
    Monthly,
    RecurrenceRule,
    RecurrenceSpec,
    TimeOfDay,
    Weekly,
)

__all__ = [
    # Entry points
    "compute_next_run",
    "is_exhausted",
    "window_key",
    # Models
    "Daily",
    "Monthly",
    "RecurrenceRule",
    "RecurrenceSpec",
    "TimeOfDay",
    "Weekly",
    "MONDAY",
    "SATURDAY",
    "SUNDAY",
    # Helpers
    "START_EPSILON",
    "WINDOW_KEY_FORMAT",
    "clamp_day_of_month",
    "ensure_utc",
    "load_timezone",
    "parse_time_of_day",
    "wall_clock_to_utc",
    "weekday_of",
]
