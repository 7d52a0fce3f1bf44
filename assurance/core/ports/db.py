"""
Schedule Store Interface (P1).

Protocol-based interface for schedule and run-record persistence.
Implementations: SQLite (SQLiteScheduleStore), in-memory (InMemoryScheduleStore).

Key requirements:
- Due selection is bounded by a caller-supplied limit
- claim() is an atomic insert-if-absent keyed by (schedule_id, window_key)
  that also applies the schedule advancement in the same transaction
- complete() finalises the run record and the failure counters together
- update_settings() writes owner-editable columns only; control-loop state
  (STATE_FIELDS) is written only when the caller names it
- Storage failures surface as StoreUnavailableError, never as a
  driver-specific exception
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Protocol
from uuid import UUID

from assurance.core.entities import RunRecord, RunStatus, Schedule


# Columns owned by the control loop. Owner edits leave them alone unless named.
STATE_FIELDS = frozenset({"is_enabled", "next_run_at", "consecutive_failures"})


class StoreUnavailableError(Exception):
    """The schedule store could not complete an operation."""


class ClaimOutcome(Enum):
    """Result of an insert-if-absent claim."""

    CLAIMED = "claimed"
    ALREADY_CLAIMED = "already_claimed"


@dataclass(frozen=True)
class ScheduleAdvance:
    """Control-loop advancement written together with a claim."""

    schedule_id: UUID
    last_run_at: datetime
    next_run_at: datetime
    disable: bool = False


@dataclass(frozen=True)
class RunCompletion:
    """Completion fields for a run plus the failure tracker's verdict."""

    run_id: UUID
    schedule_id: UUID
    status: RunStatus
    completed_at: datetime
    consecutive_failures: int
    disable: bool = False
    result_summary: float | None = None
    error: str | None = None
    email_sent_at: datetime | None = None
    delivery_ref: str | None = None


class ScheduleStorePort(Protocol):
    """
    Repository for schedules and their run history.

    Invariants:
    - I1: at most one RunRecord per (schedule_id, window_key)
    - I2: a claimed RunRecord and its schedule advancement commit together
    """

    # --- Owner-facing CRUD ---

    def get(self, schedule_id: UUID) -> Schedule | None:
        """Get schedule by ID."""
        ...

    def save(self, schedule: Schedule) -> Schedule:
        """Insert a new schedule, or replace every column of an existing one."""
        ...

    def update_settings(
        self,
        schedule: Schedule,
        state: frozenset[str] = frozenset(),
    ) -> Schedule | None:
        """
        Write the owner-editable columns of an existing schedule.

        Columns in STATE_FIELDS keep their stored value unless named in
        `state`, so a tick that completes between the owner's read and
        this write is not undone.

        Returns:
            The stored schedule after the write, or None if it is gone

        Raises:
            ValueError: state names a column outside STATE_FIELDS
        """
        ...

    def delete(self, schedule_id: UUID) -> None:
        """Delete a schedule and its run history."""
        ...

    def list_for_owner(self, owner_ref: str) -> list[Schedule]:
        """List an owner's schedules, newest first."""
        ...

    def count_for_owner(self, owner_ref: str) -> int:
        """Count an owner's schedules."""
        ...

    def list_all(self, enabled: bool | None = None, limit: int = 100) -> list[Schedule]:
        """List schedules across owners (operator view)."""
        ...

    def list_runs(self, schedule_id: UUID, limit: int = 10) -> list[RunRecord]:
        """List run records, most recent first."""
        ...

    # --- Control loop ---

    def list_due(self, now_utc: datetime, limit: int) -> list[Schedule]:
        """
        List enabled schedules with next_run_at <= now and an open window.

        Ordered by next_run_at, then id. At most `limit` rows.
        """
        ...

    def disable_expired(self, now_utc: datetime) -> list[UUID]:
        """Disable enabled schedules whose ends_at <= now. Returns their IDs."""
        ...

    def claim(self, run: RunRecord, advance: ScheduleAdvance) -> ClaimOutcome:
        """
        Insert run if (schedule_id, window_key) is absent, and advance the
        schedule in the same transaction whether or not the insert happened.
        """
        ...

    def complete(self, completion: RunCompletion) -> None:
        """Finalise a run record and write failure tracking fields."""
        ...

    def previous_success_score(self, schedule_id: UUID, exclude_run_id: UUID) -> float | None:
        """Score of the latest successful run other than exclude_run_id."""
        ...

    # --- Health ---

    def ping(self) -> bool:
        """Round-trip to the backing store. Raises StoreUnavailableError."""
        ...
