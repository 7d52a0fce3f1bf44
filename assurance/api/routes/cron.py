"""
Cron Trigger Route.

An external scheduler calls POST /api/cron/tick periodically. Calls may
overlap or repeat; each occurrence still runs at most once.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status

from assurance.api.deps import get_tick_runner, verify_cron_token
from assurance.components.scheduler import TickRunner
from assurance.core.ports.db import StoreUnavailableError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/tick", dependencies=[Depends(verify_cron_token)])
def tick(runner: TickRunner = Depends(get_tick_runner)) -> dict[str, Any]:
    """Run one tick and report per-schedule outcomes."""
    try:
        result = runner.run_tick()
    except StoreUnavailableError as e:
        logger.error("Tick aborted, schedule store unavailable: %s", e)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Schedule store unavailable",
        ) from e

    return {
        "processed": result.processed,
        "succeeded": result.succeeded,
        "failed": result.failed,
        "skipped": result.skipped,
        "expired": [str(i) for i in result.expired],
        "results": [
            {
                "schedule_id": str(r.schedule_id),
                "resource_ref": r.resource_ref,
                "window_key": r.window_key,
                "status": r.outcome.value,
                "score": r.score,
                "error": r.error,
                "auto_disabled": r.auto_disabled,
            }
            for r in result.results
        ],
    }
