"""
Operator Schedule API Routes.

Cross-owner view of schedules plus the operator actions: toggling a
schedule and resetting the failure counter of an auto-disabled schedule.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from assurance.api.deps import get_schedule_service
from assurance.api.routes.schedules import (
    ScheduleResponse,
    raise_for_errors,
    schedule_to_response,
)
from assurance.components.scheduler import ScheduleService

router = APIRouter()


class ToggleRequest(BaseModel):
    is_enabled: bool


@router.get("", response_model=list[ScheduleResponse])
def list_all_schedules(
    enabled: bool | None = None,
    limit: int = Query(100, ge=1, le=500),
    service: ScheduleService = Depends(get_schedule_service),
) -> Any:
    return [schedule_to_response(s) for s in service.list_all(enabled=enabled, limit=limit)]


@router.post("/{schedule_id}/reset", response_model=ScheduleResponse)
def reset_failures(
    schedule_id: UUID,
    service: ScheduleService = Depends(get_schedule_service),
) -> Any:
    """Clear consecutive failures and re-enable; next_run_at is recomputed."""
    schedule, errors = service.reset_failures(schedule_id)
    raise_for_errors(errors)
    return schedule_to_response(schedule)  # type: ignore[arg-type]


@router.patch("/{schedule_id}", response_model=ScheduleResponse)
def toggle_schedule(
    schedule_id: UUID,
    request: ToggleRequest,
    service: ScheduleService = Depends(get_schedule_service),
) -> Any:
    schedule, errors = service.set_enabled(schedule_id, request.is_enabled)
    raise_for_errors(errors)
    return schedule_to_response(schedule)  # type: ignore[arg-type]
