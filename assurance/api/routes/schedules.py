"""
Owner Schedule API Routes.

Owners create and manage recurring accessibility monitoring schedules for
their sites. The owner is identified by the X-Owner-Ref header, set by the
fronting auth layer; another owner's schedule reads as not found.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, Field

from assurance.api.deps import get_owner_ref, get_schedule_service
from assurance.components.scheduler import ScheduleService, SchedulerError
from assurance.core.entities import RunRecord, Schedule

router = APIRouter()

# null clears these; null elsewhere means "unchanged"
NULLABLE_FIELDS = frozenset({"day_of_month", "starts_at", "ends_at"})


# --- Request/Response Models ---


class CreateScheduleRequest(BaseModel):
    """Request to create a schedule. Omitted fields take rule defaults."""

    resource_ref: str = Field(..., min_length=1, description="URL of the monitored site")
    frequency: str = "WEEKLY"
    days_of_week: list[int] = [1]
    day_of_month: int | None = None
    time_of_day: str | None = Field(None, description="HH:MM, 24h, in the schedule timezone")
    timezone: str | None = Field(None, description="IANA timezone name")
    starts_at: datetime | None = None
    ends_at: datetime | None = None
    is_enabled: bool = True
    recipients: list[str] = []
    deliver_format: str = "PDF"
    executive_summary_only: bool = False


class UpdateScheduleRequest(BaseModel):
    """Partial update. Only fields present in the body change."""

    frequency: str | None = None
    days_of_week: list[int] | None = None
    day_of_month: int | None = None
    time_of_day: str | None = None
    timezone: str | None = None
    starts_at: datetime | None = None
    ends_at: datetime | None = None
    is_enabled: bool | None = None
    recipients: list[str] | None = None
    deliver_format: str | None = None
    executive_summary_only: bool | None = None


class ScheduleResponse(BaseModel):
    id: UUID
    owner_ref: str
    resource_ref: str
    is_enabled: bool
    frequency: str
    days_of_week: list[int]
    day_of_month: int | None = None
    time_of_day: str
    timezone: str
    starts_at: datetime
    ends_at: datetime | None = None
    next_run_at: datetime
    last_run_at: datetime | None = None
    consecutive_failures: int
    recipients: list[str]
    deliver_format: str
    executive_summary_only: bool
    created_at: datetime
    updated_at: datetime


class RunResponse(BaseModel):
    id: UUID
    schedule_id: UUID
    window_key: str
    status: str
    started_at: datetime
    completed_at: datetime | None = None
    result_summary: float | None = None
    error: str | None = None
    email_sent_at: datetime | None = None


# --- Helpers ---


def schedule_to_response(schedule: Schedule) -> ScheduleResponse:
    return ScheduleResponse(
        id=schedule.id,
        owner_ref=schedule.owner_ref,
        resource_ref=schedule.resource_ref,
        is_enabled=schedule.is_enabled,
        frequency=schedule.frequency.value,
        days_of_week=sorted(schedule.days_of_week),
        day_of_month=schedule.day_of_month,
        time_of_day=schedule.time_of_day,
        timezone=schedule.timezone,
        starts_at=schedule.starts_at,
        ends_at=schedule.ends_at,
        next_run_at=schedule.next_run_at,
        last_run_at=schedule.last_run_at,
        consecutive_failures=schedule.consecutive_failures,
        recipients=list(schedule.delivery.recipients),
        deliver_format=schedule.delivery.format.value,
        executive_summary_only=schedule.delivery.executive_summary_only,
        created_at=schedule.created_at,
        updated_at=schedule.updated_at,
    )


def run_to_response(run: RunRecord) -> RunResponse:
    return RunResponse(
        id=run.id,
        schedule_id=run.schedule_id,
        window_key=run.window_key,
        status=run.status,
        started_at=run.started_at,
        completed_at=run.completed_at,
        result_summary=run.result_summary,
        error=run.error,
        email_sent_at=run.email_sent_at,
    )


def _serialize_errors(errors: list[SchedulerError]) -> list[dict[str, Any]]:
    """Serialize errors for JSON response."""
    return [{"code": e.code, "message": e.message, "field": e.field} for e in errors]


def raise_for_errors(errors: list[SchedulerError]) -> None:
    """Map service errors to an HTTP error (404, 429, otherwise 400)."""
    if not errors:
        return
    codes = {e.code for e in errors}
    if "not_found" in codes:
        status_code = status.HTTP_404_NOT_FOUND
    elif "quota_exceeded" in codes:
        status_code = status.HTTP_429_TOO_MANY_REQUESTS
    else:
        status_code = status.HTTP_400_BAD_REQUEST
    raise HTTPException(status_code=status_code, detail={"errors": _serialize_errors(errors)})


# --- Routes ---


@router.post("", response_model=ScheduleResponse, status_code=status.HTTP_201_CREATED)
def create_schedule(
    request: CreateScheduleRequest,
    owner_ref: str = Depends(get_owner_ref),
    service: ScheduleService = Depends(get_schedule_service),
) -> Any:
    """Create a schedule; next_run_at is computed from now."""
    schedule, errors = service.create(
        owner_ref=owner_ref,
        resource_ref=request.resource_ref,
        frequency=request.frequency,
        days_of_week=tuple(request.days_of_week),
        day_of_month=request.day_of_month,
        time_of_day=request.time_of_day,
        timezone=request.timezone,
        starts_at=request.starts_at,
        ends_at=request.ends_at,
        is_enabled=request.is_enabled,
        recipients=tuple(request.recipients),
        deliver_format=request.deliver_format,
        executive_summary_only=request.executive_summary_only,
    )
    raise_for_errors(errors)
    if schedule is None:
        raise HTTPException(status_code=500, detail="Failed to create schedule")
    return schedule_to_response(schedule)


@router.get("", response_model=list[ScheduleResponse])
def list_schedules(
    owner_ref: str = Depends(get_owner_ref),
    service: ScheduleService = Depends(get_schedule_service),
) -> Any:
    return [schedule_to_response(s) for s in service.list_for_owner(owner_ref)]


@router.get("/{schedule_id}", response_model=ScheduleResponse)
def get_schedule(
    schedule_id: UUID,
    owner_ref: str = Depends(get_owner_ref),
    service: ScheduleService = Depends(get_schedule_service),
) -> Any:
    schedule, errors = service.get(schedule_id, owner_ref=owner_ref)
    raise_for_errors(errors)
    return schedule_to_response(schedule)  # type: ignore[arg-type]


@router.patch("/{schedule_id}", response_model=ScheduleResponse)
def update_schedule(
    schedule_id: UUID,
    request: UpdateScheduleRequest,
    owner_ref: str = Depends(get_owner_ref),
    service: ScheduleService = Depends(get_schedule_service),
) -> Any:
    """
    Partially update a schedule.

    Changing frequency, days, day of month, time, timezone or the start/end
    window recomputes next_run_at from now.
    """
    updates = {
        name: value
        for name, value in request.model_dump(exclude_unset=True).items()
        if value is not None or name in NULLABLE_FIELDS
    }
    for name in ("days_of_week", "recipients"):
        if name in updates:
            updates[name] = tuple(updates[name])
    schedule, errors = service.update(schedule_id, updates, owner_ref=owner_ref)
    raise_for_errors(errors)
    return schedule_to_response(schedule)  # type: ignore[arg-type]


@router.delete("/{schedule_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_schedule(
    schedule_id: UUID,
    owner_ref: str = Depends(get_owner_ref),
    service: ScheduleService = Depends(get_schedule_service),
) -> Response:
    _, errors = service.delete(schedule_id, owner_ref=owner_ref)
    raise_for_errors(errors)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{schedule_id}/runs", response_model=list[RunResponse])
def list_runs(
    schedule_id: UUID,
    limit: int | None = None,
    owner_ref: str = Depends(get_owner_ref),
    service: ScheduleService = Depends(get_schedule_service),
) -> Any:
    """Recent runs, newest first."""
    runs, errors = service.run_history(schedule_id, owner_ref=owner_ref, limit=limit)
    raise_for_errors(errors)
    return [run_to_response(r) for r in runs]
