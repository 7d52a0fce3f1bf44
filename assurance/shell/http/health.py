"""
Health endpoints.

Key behaviors:
- /health: Overall status from all registered checks
- /health/ready: Readiness probe (no check unhealthy; a backlog only degrades)
- /health/live: Liveness probe (process alive)

The backlog check watches the schedule store for due schedules that no
tick has picked up within a grace period, which is how a stopped cron
trigger shows up.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Protocol

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from assurance.core.ports.db import ScheduleStorePort, StoreUnavailableError
from assurance.core.ports.time import TimePort

DEFAULT_BACKLOG_GRACE = timedelta(minutes=15)
BACKLOG_SAMPLE = 50


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass
class CheckResult:
    name: str
    status: HealthStatus
    message: str = ""
    latency_ms: float = 0.0
    details: dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "message": self.message,
            "latency_ms": round(self.latency_ms, 3),
            "details": self.details,
        }


class HealthCheck(Protocol):
    name: str

    def check(self) -> CheckResult: ...


class StartupTracker:
    """Process-wide record of when startup finished."""

    _started_at: float | None = None

    @classmethod
    def mark_started(cls) -> None:
        cls._started_at = time.monotonic()

    @classmethod
    def reset(cls) -> None:
        cls._started_at = None

    @classmethod
    def is_started(cls) -> bool:
        return cls._started_at is not None

    @classmethod
    def get_uptime_seconds(cls) -> float:
        if cls._started_at is None:
            return 0.0
        return time.monotonic() - cls._started_at


class HealthCheckRegistry:
    def __init__(self) -> None:
        self._checks: list[HealthCheck] = []

    def register(self, check: HealthCheck) -> None:
        self._checks.append(check)

    def clear(self) -> None:
        self._checks = []

    def run_all(self) -> list[CheckResult]:
        return [check.check() for check in self._checks]


_registry = HealthCheckRegistry()


def get_health_registry() -> HealthCheckRegistry:
    return _registry


# --- Checks ---


class StartupCheck:
    """Unhealthy until the lifespan hook has migrated and loaded rules."""

    name = "startup"

    def check(self) -> CheckResult:
        if not StartupTracker.is_started():
            return CheckResult(self.name, HealthStatus.UNHEALTHY, "Startup not complete")
        return CheckResult(
            self.name,
            HealthStatus.HEALTHY,
            "Startup complete",
            details={"uptime_seconds": StartupTracker.get_uptime_seconds()},
        )


class StoreCheck:
    """Schedule store round-trip."""

    name = "schedule_store"

    def __init__(self, store: ScheduleStorePort) -> None:
        self._store = store

    def check(self) -> CheckResult:
        started = time.perf_counter()
        try:
            self._store.ping()
        except StoreUnavailableError as e:
            return CheckResult(
                self.name,
                HealthStatus.UNHEALTHY,
                f"Store unavailable: {e}",
                latency_ms=(time.perf_counter() - started) * 1000,
            )
        return CheckResult(
            self.name,
            HealthStatus.HEALTHY,
            "Store reachable",
            latency_ms=(time.perf_counter() - started) * 1000,
        )


class BacklogCheck:
    """
    Degraded when enabled schedules are overdue by more than `grace`.

    Ticks advance every schedule they see, so anything left overdue means
    ticks are not running (or keep aborting). At most BACKLOG_SAMPLE
    schedules are counted.
    """

    name = "schedule_backlog"

    def __init__(
        self,
        store: ScheduleStorePort,
        time_port: TimePort,
        grace: timedelta = DEFAULT_BACKLOG_GRACE,
    ) -> None:
        self._store = store
        self._time = time_port
        self._grace = grace

    def check(self) -> CheckResult:
        cutoff = self._time.now_utc() - self._grace
        try:
            overdue = self._store.list_due(cutoff, BACKLOG_SAMPLE)
        except StoreUnavailableError as e:
            return CheckResult(self.name, HealthStatus.UNHEALTHY, f"Store unavailable: {e}")

        if not overdue:
            return CheckResult(self.name, HealthStatus.HEALTHY, "No overdue schedules")
        oldest: datetime = overdue[0].next_run_at
        return CheckResult(
            self.name,
            HealthStatus.DEGRADED,
            f"{len(overdue)} schedule(s) overdue by more than "
            f"{int(self._grace.total_seconds() // 60)} min",
            details={"overdue": len(overdue), "oldest_next_run_at": oldest.isoformat()},
        )


def overall_status(results: list[CheckResult]) -> HealthStatus:
    statuses = {r.status for r in results}
    if HealthStatus.UNHEALTHY in statuses:
        return HealthStatus.UNHEALTHY
    if HealthStatus.DEGRADED in statuses:
        return HealthStatus.DEGRADED
    return HealthStatus.HEALTHY


# --- FastAPI Router ---


def create_health_router(
    version: str = "0.0.0",
    registry: HealthCheckRegistry | None = None,
) -> APIRouter:
    """Health, readiness and liveness routes over a check registry."""
    router = APIRouter(tags=["health"])
    reg = registry or get_health_registry()

    @router.get("/health", response_model=None)
    def health_check() -> JSONResponse:
        results = reg.run_all()
        overall = overall_status(results)
        return JSONResponse(
            content={
                "status": overall.value,
                "version": version,
                "uptime_seconds": StartupTracker.get_uptime_seconds(),
                "checks": [r.as_dict() for r in results],
            },
            status_code=(
                status.HTTP_200_OK
                if overall == HealthStatus.HEALTHY
                else status.HTTP_503_SERVICE_UNAVAILABLE
            ),
        )

    @router.get("/health/ready", response_model=None)
    def readiness_check() -> JSONResponse:
        results = reg.run_all()
        ready = overall_status(results) != HealthStatus.UNHEALTHY
        return JSONResponse(
            content={"ready": ready, "checks": [r.as_dict() for r in results]},
            status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    @router.get("/health/live", response_model=None)
    def liveness_check() -> JSONResponse:
        return JSONResponse(
            content={"alive": True, "uptime_seconds": StartupTracker.get_uptime_seconds()}
        )

    return router


def setup_default_health_checks(
    registry: HealthCheckRegistry | None = None,
    store: ScheduleStorePort | None = None,
    time_port: TimePort | None = None,
    backlog_grace: timedelta = DEFAULT_BACKLOG_GRACE,
) -> None:
    """Register the startup check, plus store and backlog checks when a store is given."""
    reg = registry or get_health_registry()
    reg.clear()
    reg.register(StartupCheck())
    if store is not None:
        reg.register(StoreCheck(store))
        if time_port is not None:
            reg.register(BacklogCheck(store, time_port, backlog_grace))


def mark_startup_complete() -> None:
    StartupTracker.mark_started()
