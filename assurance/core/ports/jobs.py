"""
Scan and Delivery Pipeline Interfaces (P4).

Protocol-based interfaces for the external collaborators a tick invokes,
and the result types a tick reports back to its trigger.

Key requirements:
- Pipelines are called synchronously, once per claimed occurrence
- A pipeline may report failure through its result or by raising;
  both count as a failed run
- The control loop never retries within a tick

Implementation strategies:
1. DevScanPipeline / EmailReportDelivery + DevEmailAdapter (dev/test)
2. Hosted scan engine + transactional email provider (production)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Protocol
from uuid import UUID

if TYPE_CHECKING:
    from assurance.core.entities import Schedule


@dataclass(frozen=True)
class ScanResult:
    """Outcome of an accessibility scan."""

    success: bool
    score: float = 0.0
    scan_id: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome of report rendering and transmission."""

    success: bool
    delivered_to: tuple[str, ...] = ()
    message_id: str | None = None
    error: str | None = None


class ScanPipelinePort(Protocol):
    """Runs an accessibility scan for a monitored resource."""

    def scan(self, resource_ref: str) -> ScanResult:
        """Scan the resource and return its score."""
        ...


class DeliveryPipelinePort(Protocol):
    """Renders and sends the report for a completed scan."""

    def deliver(
        self,
        schedule: Schedule,
        scan: ScanResult,
        previous_score: float | None = None,
    ) -> DeliveryResult:
        """
        Deliver the report to the schedule's recipients.

        Args:
            schedule: Schedule whose delivery config applies
            scan: Result of this occurrence's scan
            previous_score: Score of the last successful run, if any
        """
        ...


class TickOutcome(Enum):
    """Per-schedule outcome within a tick."""

    SUCCESS = "success"
    FAILURE = "failure"
    SKIP = "skipped_already_claimed"


@dataclass
class ScheduleResult:
    """What happened to one schedule during a tick."""

    schedule_id: UUID
    resource_ref: str
    window_key: str
    outcome: TickOutcome
    score: float | None = None
    error: str | None = None
    auto_disabled: bool = False
    exhausted: bool = False


@dataclass
class TickResult:
    """Summary of one control-loop invocation."""

    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    expired: list[UUID] = field(default_factory=list)
    results: list[ScheduleResult] = field(default_factory=list)

    def add(self, result: ScheduleResult) -> None:
        self.results.append(result)
        self.processed += 1
        if result.outcome == TickOutcome.SUCCESS:
            self.succeeded += 1
        elif result.outcome == TickOutcome.FAILURE:
            self.failed += 1
        else:
            self.skipped += 1
