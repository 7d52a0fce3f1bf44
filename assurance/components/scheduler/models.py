"""
Scheduler component input/output models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID

from assurance.core.entities import RunRecord, Schedule
from assurance.core.ports.jobs import TickResult

# --- Validation Error ---


@dataclass(frozen=True)
class SchedulerValidationError:
    """Scheduler validation error."""

    code: str
    message: str
    field: str | None = None


# --- Input Models ---


@dataclass(frozen=True)
class CreateScheduleInput:
    """Input for creating a monitoring schedule."""

    owner_ref: str
    resource_ref: str
    frequency: str = "WEEKLY"
    days_of_week: tuple[int, ...] = (1,)
    day_of_month: int | None = None
    time_of_day: str | None = None
    timezone: str | None = None
    starts_at: datetime | None = None
    ends_at: datetime | None = None
    is_enabled: bool = True
    recipients: tuple[str, ...] = ()
    deliver_format: str = "PDF"
    executive_summary_only: bool = False


@dataclass(frozen=True)
class UpdateScheduleInput:
    """Input for editing a schedule. Only keys present in updates change."""

    schedule_id: UUID
    updates: dict[str, Any]
    owner_ref: str | None = None


@dataclass(frozen=True)
class SetEnabledInput:
    """Input for enabling or disabling a schedule."""

    schedule_id: UUID
    enabled: bool
    owner_ref: str | None = None


@dataclass(frozen=True)
class ResetFailuresInput:
    """Operator input: clear the failure counter and re-enable."""

    schedule_id: UUID


@dataclass(frozen=True)
class DeleteScheduleInput:
    """Input for deleting a schedule."""

    schedule_id: UUID
    owner_ref: str | None = None


@dataclass(frozen=True)
class GetScheduleInput:
    """Input for getting a schedule by ID."""

    schedule_id: UUID
    owner_ref: str | None = None


@dataclass(frozen=True)
class ListSchedulesInput:
    """Input for listing schedules. No owner_ref means all owners."""

    owner_ref: str | None = None
    enabled: bool | None = None
    limit: int = 100


@dataclass(frozen=True)
class RunHistoryInput:
    """Input for listing a schedule's runs."""

    schedule_id: UUID
    owner_ref: str | None = None
    limit: int | None = None


@dataclass(frozen=True)
class RunTickInput:
    """Input for one control-loop invocation."""

    max_schedules: int | None = None


# --- Output Models ---


@dataclass(frozen=True)
class ScheduleOutput:
    """Output for single-schedule operations."""

    schedule: Schedule | None
    errors: list[SchedulerValidationError] = field(default_factory=list)
    success: bool = True


@dataclass(frozen=True)
class ScheduleListOutput:
    """Output for list operations."""

    schedules: tuple[Schedule, ...]
    errors: list[SchedulerValidationError] = field(default_factory=list)
    success: bool = True


@dataclass(frozen=True)
class DeleteOutput:
    """Output for delete operation."""

    deleted: bool
    errors: list[SchedulerValidationError] = field(default_factory=list)
    success: bool = True


@dataclass(frozen=True)
class RunHistoryOutput:
    """Output for run history."""

    runs: tuple[RunRecord, ...]
    errors: list[SchedulerValidationError] = field(default_factory=list)
    success: bool = True


@dataclass(frozen=True)
class TickOutput:
    """Output for a tick."""

    result: TickResult
    errors: list[SchedulerValidationError] = field(default_factory=list)
    success: bool = True
