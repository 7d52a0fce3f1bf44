"""
Scheduler component port definitions.
"""

from __future__ import annotations

from typing import Protocol

from assurance.core.ports.db import ScheduleStorePort
from assurance.core.ports.jobs import DeliveryPipelinePort, ScanPipelinePort
from assurance.core.ports.time import TimePort

__all__ = [
    "DeliveryPipelinePort",
    "RulesPort",
    "ScanPipelinePort",
    "ScheduleStorePort",
    "TimePort",
]


class RulesPort(Protocol):
    """Port for scheduler rules configuration."""

    def get_max_per_tick(self) -> int:
        """Get the maximum schedules processed per tick."""
        ...

    def get_max_consecutive_failures(self) -> int:
        """Get the failure count that auto-disables a schedule."""
        ...

    def get_max_schedules_per_owner(self) -> int:
        """Get the per-owner schedule quota."""
        ...

    def get_max_recipients(self) -> int:
        """Get the maximum report recipients per schedule."""
        ...

    def get_default_timezone(self) -> str:
        """Get the timezone used when none is given."""
        ...

    def get_default_time_of_day(self) -> str:
        """Get the time of day used when none is given."""
        ...

    def get_allowed_formats(self) -> tuple[str, ...]:
        """Get the accepted delivery formats."""
        ...

    def get_run_history_limit(self) -> int:
        """Get the default number of runs returned in history views."""
        ...
