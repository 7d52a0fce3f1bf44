"""
Scheduler component - Recurring accessibility monitoring schedules.

Handles owner edits, operator actions and the control loop that runs
due scans and delivers reports.

Invariants:
- Each (schedule_id, window_key) occurrence runs at most once
- next_run_at is strictly after the last run and never past ends_at
- Consecutive failures at the threshold disable the schedule
- A disabled schedule is never selected by a tick
"""

from __future__ import annotations

from ._impl import (
    ScheduleService,
    SchedulerConfig,
    SchedulerError,
    TickRunner,
)
from .models import (
    CreateScheduleInput,
    DeleteOutput,
    DeleteScheduleInput,
    GetScheduleInput,
    ListSchedulesInput,
    ResetFailuresInput,
    RunHistoryInput,
    RunHistoryOutput,
    RunTickInput,
    ScheduleListOutput,
    ScheduleOutput,
    SchedulerValidationError,
    SetEnabledInput,
    TickOutput,
    UpdateScheduleInput,
)
from .ports import (
    DeliveryPipelinePort,
    RulesPort,
    ScanPipelinePort,
    ScheduleStorePort,
    TimePort,
)


def _convert_errors(errors: list[SchedulerError]) -> list[SchedulerValidationError]:
    """Convert service errors to component errors."""
    return [SchedulerValidationError(code=e.code, message=e.message, field=e.field) for e in errors]


def build_config(rules: RulesPort | None) -> SchedulerConfig:
    """Build scheduler config from rules port."""
    if rules is None:
        return SchedulerConfig()

    return SchedulerConfig(
        max_per_tick=rules.get_max_per_tick(),
        max_consecutive_failures=rules.get_max_consecutive_failures(),
        max_schedules_per_owner=rules.get_max_schedules_per_owner(),
        max_recipients=rules.get_max_recipients(),
        allowed_formats=tuple(rules.get_allowed_formats()),
        run_history_limit=rules.get_run_history_limit(),
        default_timezone=rules.get_default_timezone(),
        default_time_of_day=rules.get_default_time_of_day(),
    )


def _create_service(
    store: ScheduleStorePort,
    time_port: TimePort | None,
    rules: RulesPort | None,
) -> ScheduleService:
    return ScheduleService(store=store, time_port=time_port, config=build_config(rules))


def _schedule_output(schedule, errors: list[SchedulerError]) -> ScheduleOutput:
    converted = _convert_errors(errors)
    return ScheduleOutput(
        schedule=None if converted else schedule,
        errors=converted,
        success=not converted,
    )


# --- Component Entry Points ---


def run_create(
    inp: CreateScheduleInput,
    *,
    store: ScheduleStorePort,
    time_port: TimePort | None = None,
    rules: RulesPort | None = None,
) -> ScheduleOutput:
    """
    Create a recurring monitoring schedule.

    Args:
        inp: Owner, resource, recurrence and delivery settings.
        store: Schedule store port.
        time_port: Optional time port for "now".
        rules: Optional rules port for limits and defaults.

    Returns:
        ScheduleOutput with the schedule or errors.
    """
    service = _create_service(store, time_port, rules)
    schedule, errors = service.create(
        owner_ref=inp.owner_ref,
        resource_ref=inp.resource_ref,
        frequency=inp.frequency,
        days_of_week=inp.days_of_week,
        day_of_month=inp.day_of_month,
        time_of_day=inp.time_of_day,
        timezone=inp.timezone,
        starts_at=inp.starts_at,
        ends_at=inp.ends_at,
        is_enabled=inp.is_enabled,
        recipients=inp.recipients,
        deliver_format=inp.deliver_format,
        executive_summary_only=inp.executive_summary_only,
    )
    return _schedule_output(schedule, errors)


def run_update(
    inp: UpdateScheduleInput,
    *,
    store: ScheduleStorePort,
    time_port: TimePort | None = None,
    rules: RulesPort | None = None,
) -> ScheduleOutput:
    """
    Apply a partial edit to a schedule.

    Recurrence edits recompute next_run_at from now.
    """
    service = _create_service(store, time_port, rules)
    schedule, errors = service.update(inp.schedule_id, inp.updates, owner_ref=inp.owner_ref)
    return _schedule_output(schedule, errors)


def run_set_enabled(
    inp: SetEnabledInput,
    *,
    store: ScheduleStorePort,
    time_port: TimePort | None = None,
    rules: RulesPort | None = None,
) -> ScheduleOutput:
    service = _create_service(store, time_port, rules)
    schedule, errors = service.set_enabled(inp.schedule_id, inp.enabled, owner_ref=inp.owner_ref)
    return _schedule_output(schedule, errors)


def run_reset_failures(
    inp: ResetFailuresInput,
    *,
    store: ScheduleStorePort,
    time_port: TimePort | None = None,
    rules: RulesPort | None = None,
) -> ScheduleOutput:
    """Operator action: clear consecutive failures and re-enable."""
    service = _create_service(store, time_port, rules)
    schedule, errors = service.reset_failures(inp.schedule_id)
    return _schedule_output(schedule, errors)


def run_delete(
    inp: DeleteScheduleInput,
    *,
    store: ScheduleStorePort,
    time_port: TimePort | None = None,
    rules: RulesPort | None = None,
) -> DeleteOutput:
    service = _create_service(store, time_port, rules)
    deleted, errors = service.delete(inp.schedule_id, owner_ref=inp.owner_ref)
    converted = _convert_errors(errors)
    return DeleteOutput(deleted=deleted, errors=converted, success=deleted)


def run_get(
    inp: GetScheduleInput,
    *,
    store: ScheduleStorePort,
    time_port: TimePort | None = None,
    rules: RulesPort | None = None,
) -> ScheduleOutput:
    service = _create_service(store, time_port, rules)
    schedule, errors = service.get(inp.schedule_id, owner_ref=inp.owner_ref)
    return _schedule_output(schedule, errors)


def run_list(
    inp: ListSchedulesInput,
    *,
    store: ScheduleStorePort,
    time_port: TimePort | None = None,
    rules: RulesPort | None = None,
) -> ScheduleListOutput:
    """List one owner's schedules, or all schedules when owner_ref is None."""
    service = _create_service(store, time_port, rules)
    if inp.owner_ref is not None:
        schedules = service.list_for_owner(inp.owner_ref)
        if inp.enabled is not None:
            schedules = [s for s in schedules if s.is_enabled == inp.enabled]
    else:
        schedules = service.list_all(enabled=inp.enabled, limit=inp.limit)
    return ScheduleListOutput(schedules=tuple(schedules))


def run_history(
    inp: RunHistoryInput,
    *,
    store: ScheduleStorePort,
    time_port: TimePort | None = None,
    rules: RulesPort | None = None,
) -> RunHistoryOutput:
    service = _create_service(store, time_port, rules)
    runs, errors = service.run_history(inp.schedule_id, owner_ref=inp.owner_ref, limit=inp.limit)
    converted = _convert_errors(errors)
    return RunHistoryOutput(runs=tuple(runs), errors=converted, success=not converted)


def run_tick(
    inp: RunTickInput,
    *,
    store: ScheduleStorePort,
    scanner: ScanPipelinePort,
    delivery: DeliveryPipelinePort,
    time_port: TimePort | None = None,
    rules: RulesPort | None = None,
) -> TickOutput:
    """
    Run one control-loop tick.

    Args:
        inp: Optional batch cap override.
        store: Schedule store port.
        scanner: Scan pipeline port.
        delivery: Report delivery port.
        time_port: Optional time port for "now".
        rules: Optional rules port for configuration.

    Returns:
        TickOutput with per-schedule results.

    Raises:
        StoreUnavailableError: the store failed mid-tick.
    """
    runner = TickRunner(
        store=store,
        scanner=scanner,
        delivery=delivery,
        time_port=time_port,
        config=build_config(rules),
    )
    return TickOutput(result=runner.run_tick(max_schedules=inp.max_schedules))


def run(
    inp: (
        CreateScheduleInput
        | UpdateScheduleInput
        | SetEnabledInput
        | ResetFailuresInput
        | DeleteScheduleInput
        | GetScheduleInput
        | ListSchedulesInput
        | RunHistoryInput
        | RunTickInput
    ),
    *,
    store: ScheduleStorePort,
    scanner: ScanPipelinePort | None = None,
    delivery: DeliveryPipelinePort | None = None,
    time_port: TimePort | None = None,
    rules: RulesPort | None = None,
) -> ScheduleOutput | ScheduleListOutput | DeleteOutput | RunHistoryOutput | TickOutput:
    """
    Main entry point for the scheduler component.

    Dispatches to appropriate handler based on input type.
    """
    if isinstance(inp, CreateScheduleInput):
        return run_create(inp, store=store, time_port=time_port, rules=rules)
    elif isinstance(inp, UpdateScheduleInput):
        return run_update(inp, store=store, time_port=time_port, rules=rules)
    elif isinstance(inp, SetEnabledInput):
        return run_set_enabled(inp, store=store, time_port=time_port, rules=rules)
    elif isinstance(inp, ResetFailuresInput):
        return run_reset_failures(inp, store=store, time_port=time_port, rules=rules)
    elif isinstance(inp, DeleteScheduleInput):
        return run_delete(inp, store=store, time_port=time_port, rules=rules)
    elif isinstance(inp, GetScheduleInput):
        return run_get(inp, store=store, time_port=time_port, rules=rules)
    elif isinstance(inp, ListSchedulesInput):
        return run_list(inp, store=store, time_port=time_port, rules=rules)
    elif isinstance(inp, RunHistoryInput):
        return run_history(inp, store=store, time_port=time_port, rules=rules)
    elif isinstance(inp, RunTickInput):
        if scanner is None or delivery is None:
            raise ValueError("Scan and delivery ports are required for tick operations")
        return run_tick(
            inp,
            store=store,
            scanner=scanner,
            delivery=delivery,
            time_port=time_port,
            rules=rules,
        )
    else:
        raise ValueError(f"Unknown input type: {type(inp)}")
