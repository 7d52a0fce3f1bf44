"""
Assurance scheduler - recurring scan-and-report schedules.

Handles owner edits of recurrence rules and the control loop ("tick")
that runs due occurrences exactly once.

Key behaviors:
- Occurrences are idempotent by (schedule_id, window_key)
- Claim and schedule advancement are written in one store transaction
- An already-claimed occurrence is skipped, not failed, and still advances
- Scan or delivery failure increments consecutive_failures; reaching the
  threshold disables the schedule
- Success resets consecutive_failures to 0
- No in-tick retry; a failed occurrence is retried at the next occurrence
- One schedule's failure never aborts the rest of the tick
- Store failures (StoreUnavailableError) abort the tick
- reschedule() (owner edits) and advance_schedule() (control loop) are
  the only writers of next_run_at
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from assurance.components.recurrence import (
    compute_next_run,
    ensure_utc,
    is_exhausted,
    load_timezone,
    parse_time_of_day,
    window_key,
)
from assurance.core.entities import (
    DeliveryConfig,
    DeliveryFormat,
    Frequency,
    RunRecord,
    Schedule,
)
from assurance.core.ports.db import (
    STATE_FIELDS,
    ClaimOutcome,
    RunCompletion,
    ScheduleAdvance,
    ScheduleStorePort,
    StoreUnavailableError,
)
from assurance.core.ports.jobs import (
    DeliveryPipelinePort,
    DeliveryResult,
    ScanPipelinePort,
    ScanResult,
    ScheduleResult,
    TickOutcome,
    TickResult,
)
from assurance.core.ports.time import TimePort

logger = logging.getLogger(__name__)

# --- Configuration ---


@dataclass(frozen=True)
class SchedulerConfig:
    """Scheduler configuration from rules."""

    # Control loop
    max_per_tick: int = 10
    max_consecutive_failures: int = 5
    max_error_length: int = 500

    # Owner limits
    max_schedules_per_owner: int = 20
    max_recipients: int = 20
    allowed_formats: tuple[str, ...] = tuple(f.value for f in DeliveryFormat)
    run_history_limit: int = 10

    # Defaults
    default_timezone: str = "Europe/Amsterdam"
    default_time_of_day: str = "09:00"


DEFAULT_CONFIG = SchedulerConfig()


# --- Errors ---


@dataclass
class SchedulerError:
    """Scheduler operation error."""

    code: str
    message: str
    field: str | None = None


RECURRENCE_FIELDS = frozenset(
    {"frequency", "days_of_week", "day_of_month", "time_of_day", "timezone", "starts_at", "ends_at"}
)
DELIVERY_FIELDS = frozenset({"recipients", "deliver_format", "executive_summary_only"})
UPDATABLE_FIELDS = RECURRENCE_FIELDS | DELIVERY_FIELDS | {"is_enabled"}

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


# --- Validation ---


def validate_frequency(value: str) -> list[SchedulerError]:
    if value not in {f.value for f in Frequency}:
        return [SchedulerError("invalid_frequency", f"Invalid frequency: {value}", "frequency")]
    return []


def validate_time_of_day(value: str) -> list[SchedulerError]:
    try:
        parse_time_of_day(value)
    except (TypeError, ValueError):
        return [SchedulerError("invalid_time_of_day", "timeOfDay must be HH:MM", "time_of_day")]
    return []


def validate_timezone(value: str) -> list[SchedulerError]:
    try:
        load_timezone(value)
    except ValueError:
        return [SchedulerError("invalid_timezone", f"Unknown timezone: {value}", "timezone")]
    return []


def validate_days_of_week(
    days: tuple[int, ...] | frozenset[int] | list[int],
    frequency: str,
    require_days: bool,
) -> list[SchedulerError]:
    errors: list[SchedulerError] = []
    if frequency == Frequency.WEEKLY.value and require_days and not days:
        errors.append(
            SchedulerError(
                "days_required",
                "At least one day required for weekly schedule",
                "days_of_week",
            )
        )
    for d in days:
        if not isinstance(d, int) or isinstance(d, bool) or d < 0 or d > 6:
            errors.append(
                SchedulerError("invalid_day_of_week", "daysOfWeek values must be 0-6", "days_of_week")
            )
            break
    return errors


def validate_day_of_month(day: int | None) -> list[SchedulerError]:
    if day is None:
        return []
    if not isinstance(day, int) or isinstance(day, bool) or day < 1 or day > 31:
        return [SchedulerError("invalid_day_of_month", "dayOfMonth must be 1-31", "day_of_month")]
    return []


def validate_window(
    starts_at: datetime,
    ends_at: datetime | None,
    now: datetime,
) -> list[SchedulerError]:
    if ends_at is None:
        return []
    if ensure_utc(ends_at) <= ensure_utc(starts_at):
        return [SchedulerError("invalid_window", "endsAt must be after startsAt", "ends_at")]
    if ensure_utc(ends_at) <= now:
        return [SchedulerError("ends_at_past", "endsAt must be in the future", "ends_at")]
    return []


def validate_recipients(
    recipients: tuple[str, ...] | list[str],
    config: SchedulerConfig,
) -> list[SchedulerError]:
    errors: list[SchedulerError] = []
    for email in recipients:
        if not isinstance(email, str) or not _EMAIL_RE.match(email):
            errors.append(SchedulerError("invalid_email", f"Invalid email: {email}", "recipients"))
    if len(recipients) > config.max_recipients:
        errors.append(
            SchedulerError(
                "too_many_recipients",
                f"Maximum {config.max_recipients} recipients allowed",
                "recipients",
            )
        )
    return errors


def validate_format(value: str, config: SchedulerConfig) -> list[SchedulerError]:
    if value not in config.allowed_formats:
        return [SchedulerError("invalid_format", "Invalid delivery format", "deliver_format")]
    return []


def _normalize_rule_fields(
    frequency: str,
    days_of_week: Any,
    day_of_month: int | None,
) -> tuple[frozenset[int], int | None]:
    """Drop fields that do not belong to the frequency."""
    if frequency == Frequency.WEEKLY.value:
        return frozenset(days_of_week or ()) or frozenset({1}), None
    if frequency == Frequency.MONTHLY.value:
        return frozenset(), day_of_month
    return frozenset(), None


def _schedule_ended() -> SchedulerError:
    return SchedulerError("schedule_ended", "Schedule end date has passed", "ends_at")


# --- Schedule transitions ---


def reschedule(schedule: Schedule, now: datetime) -> Schedule:
    """
    Recompute next_run_at from now after an owner or operator edit.

    A schedule whose window is already exhausted is disabled.
    """
    spec = schedule.recurrence()
    next_run = compute_next_run(spec, now)
    schedule.next_run_at = next_run
    schedule.updated_at = now
    if is_exhausted(next_run, spec):
        schedule.is_enabled = False
    return schedule


def advance_schedule(schedule: Schedule, now: datetime) -> ScheduleAdvance:
    """Control-loop advancement for a due schedule."""
    spec = schedule.recurrence()
    next_run = compute_next_run(spec, now)
    return ScheduleAdvance(
        schedule_id=schedule.id,
        last_run_at=now,
        next_run_at=next_run,
        disable=is_exhausted(next_run, spec),
    )


def track_failure(schedule: Schedule, config: SchedulerConfig = DEFAULT_CONFIG) -> tuple[int, bool]:
    """
    Failure tracker verdict for one failed occurrence.

    Returns:
        Tuple of (new consecutive_failures, should_disable)
    """
    failures = schedule.consecutive_failures + 1
    return failures, failures >= config.max_consecutive_failures


# --- Control loop ---


class TickRunner:
    """
    Due-job selector and executor.

    One run_tick() call is one tick. Safe to invoke concurrently or to
    retry: the store's (schedule_id, window_key) uniqueness decides which
    invocation runs an occurrence.
    """

    def __init__(
        self,
        store: ScheduleStorePort,
        scanner: ScanPipelinePort,
        delivery: DeliveryPipelinePort,
        time_port: TimePort | None = None,
        config: SchedulerConfig | None = None,
    ) -> None:
        self._store = store
        self._scanner = scanner
        self._delivery = delivery
        self._time = time_port
        self._config = config or DEFAULT_CONFIG

    def _now_utc(self) -> datetime:
        if self._time:
            return self._time.now_utc()
        return datetime.now(UTC)

    def run_tick(self, max_schedules: int | None = None) -> TickResult:
        """
        Process due schedules once.

        Args:
            max_schedules: Batch cap for this tick (defaults to config)

        Raises:
            StoreUnavailableError: the store failed; the tick stops
        """
        now = self._now_utc()
        limit = max_schedules or self._config.max_per_tick
        result = TickResult()

        result.expired = self._store.disable_expired(now)
        for schedule_id in result.expired:
            logger.info("Schedule %s disabled: end date reached", schedule_id)

        for schedule in self._store.list_due(now, limit):
            result.add(self.process(schedule, now))

        if result.processed or result.expired:
            logger.info(
                "Tick processed %d schedules: %d succeeded, %d failed, %d skipped, %d expired",
                result.processed,
                result.succeeded,
                result.failed,
                result.skipped,
                len(result.expired),
            )
        return result

    def process(self, schedule: Schedule, now: datetime) -> ScheduleResult:
        """Claim, run and record one due schedule."""
        key = window_key(schedule.next_run_at, schedule.timezone)
        advance = advance_schedule(schedule, now)
        run = RunRecord(schedule_id=schedule.id, window_key=key, started_at=now)

        if self._store.claim(run, advance) is ClaimOutcome.ALREADY_CLAIMED:
            logger.info("Skipping schedule %s: window %s already claimed", schedule.id, key)
            return ScheduleResult(
                schedule_id=schedule.id,
                resource_ref=schedule.resource_ref,
                window_key=key,
                outcome=TickOutcome.SKIP,
                exhausted=advance.disable,
            )

        logger.info("Running scan for %s (schedule %s, window %s)", schedule.resource_ref, schedule.id, key)
        scan, delivery, error = self._run_pipeline(schedule, run)
        completed_at = self._now_utc()

        if error is None and scan is not None and delivery is not None:
            self._store.complete(
                RunCompletion(
                    run_id=run.id,
                    schedule_id=schedule.id,
                    status="success",
                    completed_at=completed_at,
                    consecutive_failures=0,
                    result_summary=scan.score,
                    email_sent_at=completed_at if delivery.delivered_to else None,
                    delivery_ref=delivery.message_id,
                )
            )
            return ScheduleResult(
                schedule_id=schedule.id,
                resource_ref=schedule.resource_ref,
                window_key=key,
                outcome=TickOutcome.SUCCESS,
                score=scan.score,
                exhausted=advance.disable,
            )

        message = (error or "Unknown error")[: self._config.max_error_length]
        failures, disable = track_failure(schedule, self._config)
        self._store.complete(
            RunCompletion(
                run_id=run.id,
                schedule_id=schedule.id,
                status="failed",
                completed_at=completed_at,
                consecutive_failures=failures,
                disable=disable,
                result_summary=scan.score if scan is not None and scan.success else None,
                error=message,
            )
        )
        logger.error("Schedule %s failed (%d consecutive): %s", schedule.id, failures, message)
        if disable:
            logger.warning(
                "Schedule %s auto-disabled after %d consecutive failures",
                schedule.id,
                failures,
            )
        return ScheduleResult(
            schedule_id=schedule.id,
            resource_ref=schedule.resource_ref,
            window_key=key,
            outcome=TickOutcome.FAILURE,
            error=message,
            auto_disabled=disable,
            exhausted=advance.disable,
        )

    def _run_pipeline(
        self,
        schedule: Schedule,
        run: RunRecord,
    ) -> tuple[ScanResult | None, DeliveryResult | None, str | None]:
        """Scan then deliver. Returns (scan, delivery, error_message)."""
        try:
            scan = self._scanner.scan(schedule.resource_ref)
        except Exception as e:
            logger.exception("Scan raised for schedule %s", schedule.id)
            return None, None, f"Scan failed: {e}"
        if not scan.success:
            return scan, None, scan.error or "Scan failed"

        try:
            previous = self._store.previous_success_score(schedule.id, run.id)
        except StoreUnavailableError as e:
            # The report goes out without a delta line
            logger.warning("Previous score lookup failed for schedule %s: %s", schedule.id, e)
            previous = None

        try:
            delivery = self._delivery.deliver(schedule, scan, previous)
        except Exception as e:
            logger.exception("Delivery raised for schedule %s", schedule.id)
            return scan, None, f"Delivery failed: {e}"
        if not delivery.success:
            return scan, delivery, delivery.error or "Delivery failed"

        return scan, delivery, None


# --- Owner / operator operations ---


class ScheduleService:
    """
    Owner and operator operations on schedules.

    Every edit that touches a recurrence field goes through reschedule().
    """

    def __init__(
        self,
        store: ScheduleStorePort,
        time_port: TimePort | None = None,
        config: SchedulerConfig | None = None,
    ) -> None:
        self._store = store
        self._time = time_port
        self._config = config or DEFAULT_CONFIG

    def _now_utc(self) -> datetime:
        if self._time:
            return self._time.now_utc()
        return datetime.now(UTC)

    def _get_owned(
        self,
        schedule_id: UUID,
        owner_ref: str | None,
    ) -> tuple[Schedule | None, list[SchedulerError]]:
        schedule = self._store.get(schedule_id)
        if schedule is None or (owner_ref is not None and schedule.owner_ref != owner_ref):
            return None, [SchedulerError("not_found", f"Schedule {schedule_id} not found")]
        return schedule, []

    def _persist(
        self,
        schedule: Schedule,
        state: frozenset[str],
    ) -> tuple[Schedule | None, list[SchedulerError]]:
        stored = self._store.update_settings(schedule, state)
        if stored is None:
            return None, [SchedulerError("not_found", f"Schedule {schedule.id} not found")]
        return stored, []

    def _validate_recurrence(
        self,
        values: dict[str, Any],
        now: datetime,
        require_days: bool,
    ) -> list[SchedulerError]:
        errors = validate_frequency(values["frequency"])
        errors.extend(validate_time_of_day(values["time_of_day"]))
        errors.extend(validate_timezone(values["timezone"]))
        errors.extend(validate_days_of_week(values["days_of_week"], values["frequency"], require_days))
        errors.extend(validate_day_of_month(values["day_of_month"]))
        if not errors:
            errors.extend(validate_window(values["starts_at"], values["ends_at"], now))
        return errors

    def create(
        self,
        owner_ref: str,
        resource_ref: str,
        frequency: str = "WEEKLY",
        days_of_week: tuple[int, ...] = (1,),
        day_of_month: int | None = None,
        time_of_day: str | None = None,
        timezone: str | None = None,
        starts_at: datetime | None = None,
        ends_at: datetime | None = None,
        is_enabled: bool = True,
        recipients: tuple[str, ...] = (),
        deliver_format: str = "PDF",
        executive_summary_only: bool = False,
    ) -> tuple[Schedule | None, list[SchedulerError]]:
        """
        Create a schedule with next_run_at computed from now.

        Returns:
            Tuple of (schedule, errors). Schedule is None if errors.
        """
        now = self._now_utc()
        errors: list[SchedulerError] = []

        if not owner_ref:
            errors.append(SchedulerError("owner_required", "ownerRef is required", "owner_ref"))
        if not resource_ref:
            errors.append(SchedulerError("resource_required", "resourceRef is required", "resource_ref"))
        if errors:
            return None, errors

        if self._store.count_for_owner(owner_ref) >= self._config.max_schedules_per_owner:
            return None, [
                SchedulerError(
                    "quota_exceeded",
                    f"Maximum {self._config.max_schedules_per_owner} schedules allowed",
                )
            ]

        values: dict[str, Any] = {
            "frequency": frequency,
            "days_of_week": tuple(days_of_week),
            "day_of_month": day_of_month,
            "time_of_day": time_of_day or self._config.default_time_of_day,
            "timezone": timezone or self._config.default_timezone,
            "starts_at": ensure_utc(starts_at) if starts_at else now,
            "ends_at": ensure_utc(ends_at) if ends_at else None,
        }
        errors.extend(self._validate_recurrence(values, now, require_days=True))
        errors.extend(validate_recipients(recipients, self._config))
        errors.extend(validate_format(deliver_format, self._config))
        if errors:
            return None, errors

        days, day = _normalize_rule_fields(frequency, values["days_of_week"], day_of_month)
        schedule = Schedule(
            owner_ref=owner_ref,
            resource_ref=resource_ref,
            frequency=Frequency(frequency),
            days_of_week=days,
            day_of_month=day,
            time_of_day=values["time_of_day"],
            timezone=values["timezone"],
            starts_at=values["starts_at"],
            ends_at=values["ends_at"],
            next_run_at=now,
            is_enabled=is_enabled,
            delivery=DeliveryConfig(
                recipients=tuple(recipients),
                format=DeliveryFormat(deliver_format),
                executive_summary_only=executive_summary_only,
            ),
            created_at=now,
            updated_at=now,
        )
        reschedule(schedule, now)
        return self._store.save(schedule), []

    def update(
        self,
        schedule_id: UUID,
        updates: dict[str, Any],
        owner_ref: str | None = None,
    ) -> tuple[Schedule | None, list[SchedulerError]]:
        """
        Apply an owner edit.

        Recurrence edits recompute next_run_at from now; delivery-only
        edits leave it alone.
        """
        schedule, errors = self._get_owned(schedule_id, owner_ref)
        if schedule is None:
            return None, errors

        unknown = set(updates) - UPDATABLE_FIELDS
        if unknown:
            return schedule, [
                SchedulerError("unknown_field", f"Field cannot be updated: {name}", name)
                for name in sorted(unknown)
            ]

        now = self._now_utc()
        recurrence_changed = bool(RECURRENCE_FIELDS & set(updates))

        values: dict[str, Any] = {
            "frequency": updates.get("frequency", schedule.frequency.value),
            "days_of_week": tuple(updates.get("days_of_week", sorted(schedule.days_of_week))),
            "day_of_month": updates.get("day_of_month", schedule.day_of_month),
            "time_of_day": updates.get("time_of_day", schedule.time_of_day),
            "timezone": updates.get("timezone", schedule.timezone),
            "starts_at": schedule.starts_at,
            "ends_at": schedule.ends_at,
        }
        if "starts_at" in updates:
            values["starts_at"] = ensure_utc(updates["starts_at"]) if updates["starts_at"] else now
        if "ends_at" in updates:
            values["ends_at"] = ensure_utc(updates["ends_at"]) if updates["ends_at"] else None

        if recurrence_changed:
            errors.extend(
                self._validate_recurrence(values, now, require_days="days_of_week" in updates)
            )
        if "recipients" in updates:
            errors.extend(validate_recipients(updates["recipients"], self._config))
        if "deliver_format" in updates:
            errors.extend(validate_format(updates["deliver_format"], self._config))
        if errors:
            return schedule, errors

        if recurrence_changed:
            days, day = _normalize_rule_fields(
                values["frequency"], values["days_of_week"], values["day_of_month"]
            )
            schedule.frequency = Frequency(values["frequency"])
            schedule.days_of_week = days
            schedule.day_of_month = day
            schedule.time_of_day = values["time_of_day"]
            schedule.timezone = values["timezone"]
            schedule.starts_at = values["starts_at"]
            schedule.ends_at = values["ends_at"]

        if DELIVERY_FIELDS & set(updates):
            schedule.delivery = replace(
                schedule.delivery,
                recipients=tuple(updates.get("recipients", schedule.delivery.recipients)),
                format=DeliveryFormat(updates.get("deliver_format", schedule.delivery.format)),
                executive_summary_only=bool(
                    updates.get("executive_summary_only", schedule.delivery.executive_summary_only)
                ),
            )

        state: set[str] = set()
        if "is_enabled" in updates:
            schedule.is_enabled = bool(updates["is_enabled"])
            state.add("is_enabled")

        if recurrence_changed or updates.get("is_enabled") is True:
            reschedule(schedule, now)
            state.add("next_run_at")
            if not schedule.is_enabled:
                if updates.get("is_enabled") is True:
                    return schedule, [_schedule_ended()]
                state.add("is_enabled")
        schedule.updated_at = now
        return self._persist(schedule, frozenset(state))

    def set_enabled(
        self,
        schedule_id: UUID,
        enabled: bool,
        owner_ref: str | None = None,
    ) -> tuple[Schedule | None, list[SchedulerError]]:
        """Toggle a schedule. Re-enabling recomputes next_run_at from now."""
        schedule, errors = self._get_owned(schedule_id, owner_ref)
        if schedule is None:
            return None, errors

        now = self._now_utc()
        schedule.is_enabled = enabled
        schedule.updated_at = now
        state = {"is_enabled"}
        if enabled:
            reschedule(schedule, now)
            if not schedule.is_enabled:
                return schedule, [_schedule_ended()]
            state.add("next_run_at")
        return self._persist(schedule, frozenset(state))

    def reset_failures(self, schedule_id: UUID) -> tuple[Schedule | None, list[SchedulerError]]:
        """Operator action: clear consecutive_failures and re-enable."""
        schedule, errors = self._get_owned(schedule_id, None)
        if schedule is None:
            return None, errors

        now = self._now_utc()
        schedule.consecutive_failures = 0
        schedule.is_enabled = True
        reschedule(schedule, now)
        if not schedule.is_enabled:
            return schedule, [_schedule_ended()]
        logger.info("Schedule %s failures reset and re-enabled", schedule_id)
        return self._persist(schedule, STATE_FIELDS)

    def delete(
        self,
        schedule_id: UUID,
        owner_ref: str | None = None,
    ) -> tuple[bool, list[SchedulerError]]:
        schedule, errors = self._get_owned(schedule_id, owner_ref)
        if schedule is None:
            return False, errors
        self._store.delete(schedule_id)
        return True, []

    def get(
        self,
        schedule_id: UUID,
        owner_ref: str | None = None,
    ) -> tuple[Schedule | None, list[SchedulerError]]:
        return self._get_owned(schedule_id, owner_ref)

    def list_for_owner(self, owner_ref: str) -> list[Schedule]:
        return self._store.list_for_owner(owner_ref)

    def list_all(self, enabled: bool | None = None, limit: int = 100) -> list[Schedule]:
        return self._store.list_all(enabled=enabled, limit=limit)

    def run_history(
        self,
        schedule_id: UUID,
        owner_ref: str | None = None,
        limit: int | None = None,
    ) -> tuple[list[RunRecord], list[SchedulerError]]:
        schedule, errors = self._get_owned(schedule_id, owner_ref)
        if schedule is None:
            return [], errors
        return self._store.list_runs(schedule_id, limit or self._config.run_history_limit), []
