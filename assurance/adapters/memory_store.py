"""
In-memory schedule store.

Implements ScheduleStorePort with the same claim semantics as the SQLite
store, guarded by a lock. Used for tests and dev runs without a database.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from datetime import datetime
from uuid import UUID

from assurance.core.entities import RunRecord, Schedule
from assurance.core.ports.db import (
    STATE_FIELDS,
    ClaimOutcome,
    RunCompletion,
    ScheduleAdvance,
)


class InMemoryScheduleStore:
    """Dict-backed store. Returned entities are copies."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.schedules: dict[UUID, Schedule] = {}
        self.runs: dict[UUID, RunRecord] = {}
        self._windows: dict[tuple[UUID, str], UUID] = {}

    def get(self, schedule_id: UUID) -> Schedule | None:
        with self._lock:
            schedule = self.schedules.get(schedule_id)
            return replace(schedule) if schedule else None

    def save(self, schedule: Schedule) -> Schedule:
        with self._lock:
            existing = self.schedules.get(schedule.id)
            stored = replace(schedule)
            if existing is not None:
                # last_run_at is owned by the control loop
                stored.last_run_at = existing.last_run_at
            self.schedules[schedule.id] = stored
            return schedule

    def update_settings(
        self,
        schedule: Schedule,
        state: frozenset[str] = frozenset(),
    ) -> Schedule | None:
        unknown = state - STATE_FIELDS
        if unknown:
            raise ValueError(f"Not control-loop state: {', '.join(sorted(unknown))}")
        with self._lock:
            existing = self.schedules.get(schedule.id)
            if existing is None:
                return None
            stored = replace(
                schedule,
                owner_ref=existing.owner_ref,
                resource_ref=existing.resource_ref,
                last_run_at=existing.last_run_at,
                created_at=existing.created_at,
            )
            for name in STATE_FIELDS - state:
                setattr(stored, name, getattr(existing, name))
            self.schedules[schedule.id] = stored
            return replace(stored)

    def delete(self, schedule_id: UUID) -> None:
        with self._lock:
            self.schedules.pop(schedule_id, None)
            for run_id in [r.id for r in self.runs.values() if r.schedule_id == schedule_id]:
                run = self.runs.pop(run_id)
                self._windows.pop((run.schedule_id, run.window_key), None)

    def list_for_owner(self, owner_ref: str) -> list[Schedule]:
        with self._lock:
            owned = [replace(s) for s in self.schedules.values() if s.owner_ref == owner_ref]
        return sorted(owned, key=lambda s: s.created_at, reverse=True)

    def count_for_owner(self, owner_ref: str) -> int:
        with self._lock:
            return sum(1 for s in self.schedules.values() if s.owner_ref == owner_ref)

    def list_all(self, enabled: bool | None = None, limit: int = 100) -> list[Schedule]:
        with self._lock:
            items = [
                replace(s)
                for s in self.schedules.values()
                if enabled is None or s.is_enabled == enabled
            ]
        items.sort(key=lambda s: s.created_at, reverse=True)
        return items[:limit]

    def list_runs(self, schedule_id: UUID, limit: int = 10) -> list[RunRecord]:
        with self._lock:
            runs = [replace(r) for r in self.runs.values() if r.schedule_id == schedule_id]
        runs.sort(key=lambda r: r.started_at, reverse=True)
        return runs[:limit]

    def list_due(self, now_utc: datetime, limit: int) -> list[Schedule]:
        with self._lock:
            due = [
                replace(s)
                for s in self.schedules.values()
                if s.is_enabled
                and s.next_run_at <= now_utc
                and (s.ends_at is None or s.ends_at > now_utc)
            ]
        due.sort(key=lambda s: (s.next_run_at, str(s.id)))
        return due[:limit]

    def disable_expired(self, now_utc: datetime) -> list[UUID]:
        expired: list[UUID] = []
        with self._lock:
            for schedule in self.schedules.values():
                if schedule.is_enabled and schedule.ends_at is not None and schedule.ends_at <= now_utc:
                    schedule.is_enabled = False
                    schedule.updated_at = now_utc
                    expired.append(schedule.id)
        return expired

    def claim(self, run: RunRecord, advance: ScheduleAdvance) -> ClaimOutcome:
        with self._lock:
            key = (run.schedule_id, run.window_key)
            if key in self._windows:
                outcome = ClaimOutcome.ALREADY_CLAIMED
            else:
                self._windows[key] = run.id
                self.runs[run.id] = replace(run)
                outcome = ClaimOutcome.CLAIMED

            schedule = self.schedules.get(advance.schedule_id)
            if schedule is not None and schedule.next_run_at <= advance.last_run_at:
                schedule.last_run_at = advance.last_run_at
                schedule.next_run_at = advance.next_run_at
                schedule.updated_at = advance.last_run_at
                if advance.disable:
                    schedule.is_enabled = False
            return outcome

    def complete(self, completion: RunCompletion) -> None:
        with self._lock:
            run = self.runs.get(completion.run_id)
            if run is not None:
                run.status = completion.status
                run.completed_at = completion.completed_at
                run.result_summary = completion.result_summary
                run.error = completion.error
                run.email_sent_at = completion.email_sent_at
                run.delivery_ref = completion.delivery_ref

            schedule = self.schedules.get(completion.schedule_id)
            if schedule is not None:
                schedule.consecutive_failures = completion.consecutive_failures
                schedule.updated_at = completion.completed_at
                if completion.disable:
                    schedule.is_enabled = False

    def previous_success_score(self, schedule_id: UUID, exclude_run_id: UUID) -> float | None:
        with self._lock:
            candidates = [
                r
                for r in self.runs.values()
                if r.schedule_id == schedule_id
                and r.id != exclude_run_id
                and r.status == "success"
                and r.result_summary is not None
            ]
        if not candidates:
            return None
        return max(candidates, key=lambda r: r.started_at).result_summary

    def get_run(self, schedule_id: UUID, window_key: str) -> RunRecord | None:
        with self._lock:
            run_id = self._windows.get((schedule_id, window_key))
            return replace(self.runs[run_id]) if run_id else None

    def ping(self) -> bool:
        return True
