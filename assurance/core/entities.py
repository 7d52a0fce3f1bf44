"""
Core entities for the assurance scheduler.

Entities:
- Schedule: recurring scan-and-report subscription for one monitored site
- RunRecord: one attempted occurrence (audit log + idempotency fence)
- DeliveryConfig: report delivery settings passed through to delivery

Invariants:
- next_run_at is derived only from the recurrence fields and a reference
  instant (see components.recurrence)
- (schedule_id, window_key) is unique across RunRecords
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Literal
from uuid import UUID, uuid4

from assurance.components.recurrence import (
    Daily,
    Monthly,
    RecurrenceRule,
    RecurrenceSpec,
    Weekly,
    parse_time_of_day,
)

__all__ = [
    "DeliveryConfig",
    "DeliveryFormat",
    "Frequency",
    "RunRecord",
    "RunStatus",
    "Schedule",
]


class Frequency(str, Enum):
    """Recurrence frequency."""

    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"


class DeliveryFormat(str, Enum):
    """Report attachment formats offered to owners."""

    PDF = "PDF"
    PDF_AND_DOCX = "PDF_AND_DOCX"
    PDF_AND_HTML = "PDF_AND_HTML"


RunStatus = Literal["running", "success", "failed"]


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class DeliveryConfig:
    """Opaque to the scheduler; handed to the delivery pipeline as-is."""

    recipients: tuple[str, ...] = ()
    format: DeliveryFormat = DeliveryFormat.PDF
    executive_summary_only: bool = False


@dataclass
class Schedule:
    """
    Recurring monitoring schedule.

    State machine:
    - enabled -> enabled (success, skip, failure below threshold)
    - enabled -> disabled (failure at threshold, end date reached)
    - disabled -> enabled (owner toggle or operator reset only)
    """

    owner_ref: str
    resource_ref: str
    frequency: Frequency
    time_of_day: str
    timezone: str
    starts_at: datetime
    next_run_at: datetime
    id: UUID = field(default_factory=uuid4)
    is_enabled: bool = True
    days_of_week: frozenset[int] = frozenset()
    day_of_month: int | None = None
    ends_at: datetime | None = None
    last_run_at: datetime | None = None
    consecutive_failures: int = 0
    delivery: DeliveryConfig = field(default_factory=DeliveryConfig)
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def rule(self) -> RecurrenceRule:
        """Build the tagged recurrence variant from the stored columns."""
        if self.frequency == Frequency.DAILY:
            return Daily()
        if self.frequency == Frequency.WEEKLY:
            return Weekly(days=frozenset(self.days_of_week))
        return Monthly(day=self.day_of_month)

    def recurrence(self) -> RecurrenceSpec:
        """Recurrence spec consumed by compute_next_run."""
        return RecurrenceSpec(
            rule=self.rule(),
            time_of_day=parse_time_of_day(self.time_of_day),
            timezone=self.timezone,
            starts_at=self.starts_at,
            ends_at=self.ends_at,
        )


@dataclass
class RunRecord:
    """
    One attempted occurrence of a schedule.

    Created at claim time with status "running"; only the completion fields
    change afterwards.
    """

    schedule_id: UUID
    window_key: str
    id: UUID = field(default_factory=uuid4)
    status: RunStatus = "running"
    started_at: datetime = field(default_factory=_utcnow)
    completed_at: datetime | None = None
    result_summary: float | None = None
    error: str | None = None
    email_sent_at: datetime | None = None
    delivery_ref: str | None = None
