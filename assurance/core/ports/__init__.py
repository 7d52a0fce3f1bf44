# assurance: Ports (Protocol Interfaces)
# Abstract interfaces for adapters; no implementations here

from assurance.core.ports.db import (
    STATE_FIELDS,
    ClaimOutcome,
    RunCompletion,
    ScheduleAdvance,
    ScheduleStorePort,
    StoreUnavailableError,
)
from assurance.core.ports.email import (
    EmailMessage,
    EmailPort,
    EmailResult,
    EmailStatus,
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

__all__ = [
    # Store (P1)
    "STATE_FIELDS",
    "ClaimOutcome",
    "RunCompletion",
    "ScheduleAdvance",
    "ScheduleStorePort",
    "StoreUnavailableError",
    # Time (P3)
    "TimePort",
    # Pipelines (P4)
    "DeliveryPipelinePort",
    "DeliveryResult",
    "ScanPipelinePort",
    "ScanResult",
    "ScheduleResult",
    "TickOutcome",
    "TickResult",
    # Email (P7)
    "EmailMessage",
    "EmailPort",
    "EmailResult",
    "EmailStatus",
]
