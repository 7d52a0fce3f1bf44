"""
Scheduler component - Recurring accessibility monitoring schedules.
"""

from ._impl import (
    DEFAULT_CONFIG,
    DELIVERY_FIELDS,
    RECURRENCE_FIELDS,
    ScheduleService,
    SchedulerConfig,
    SchedulerError,
    TickRunner,
    advance_schedule,
    reschedule,
    track_failure,
)
from .component import (
    build_config,
    run,
    run_create,
    run_delete,
    run_get,
    run_history,
    run_list,
    run_reset_failures,
    run_set_enabled,
    run_tick,
    run_update,
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

__all__ = [
    # Entry points
    "build_config",
    "run",
    "run_create",
    "run_delete",
    "run_get",
    "run_history",
    "run_list",
    "run_reset_failures",
    "run_set_enabled",
    "run_tick",
    "run_update",
    # Input models
    "CreateScheduleInput",
    "DeleteScheduleInput",
    "GetScheduleInput",
    "ListSchedulesInput",
    "ResetFailuresInput",
    "RunHistoryInput",
    "RunTickInput",
    "SetEnabledInput",
    "UpdateScheduleInput",
    # Output models
    "DeleteOutput",
    "RunHistoryOutput",
    "ScheduleListOutput",
    "ScheduleOutput",
    "SchedulerValidationError",
    "TickOutput",
    # Ports
    "DeliveryPipelinePort",
    "RulesPort",
    "ScanPipelinePort",
    "ScheduleStorePort",
    "TimePort",
    # Services
    "DEFAULT_CONFIG",
    "DELIVERY_FIELDS",
    "RECURRENCE_FIELDS",
    "ScheduleService",
    "SchedulerConfig",
    "SchedulerError",
    "TickRunner",
    "advance_schedule",
    "reschedule",
    "track_failure",
]
