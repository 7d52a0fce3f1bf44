"""
Tests for the in-process dev tick scheduler.
"""

from __future__ import annotations

import threading
from datetime import UTC, datetime, timedelta

from assurance.adapters.dev_jobs import DevTickScheduler, create_dev_scheduler
from assurance.adapters.memory_store import InMemoryScheduleStore
from assurance.components.scheduler import TickRunner
from assurance.core.entities import Frequency, Schedule
from assurance.core.ports.jobs import TickResult

NOW = datetime(2026, 3, 4, 12, 0, tzinfo=UTC)


class CountingRunner:
    """Stands in for TickRunner; optionally raises on every tick."""

    def __init__(self, ticks_wanted: int = 2, error: Exception | None = None) -> None:
        self.ticks = 0
        self.ticks_wanted = ticks_wanted
        self.error = error
        self.done = threading.Event()

    def run_tick(self, max_schedules: int | None = None) -> TickResult:
        self.ticks += 1
        if self.ticks >= self.ticks_wanted:
            self.done.set()
        if self.error is not None:
            raise self.error
        return TickResult()


class TestDevTickScheduler:
    def test_trigger_now_runs_one_tick(
        self, store: InMemoryScheduleStore, runner: TickRunner
    ) -> None:
        store.save(
            Schedule(
                owner_ref="owner-1",
                resource_ref="https://example.com",
                frequency=Frequency.DAILY,
                time_of_day="09:00",
                timezone="Europe/Amsterdam",
                starts_at=NOW - timedelta(days=1),
                next_run_at=NOW - timedelta(minutes=5),
            )
        )
        scheduler = create_dev_scheduler(runner, poll_interval_seconds=60)

        result = scheduler.trigger_now()

        assert result.succeeded == 1
        assert not scheduler.is_running

    def test_polls_until_stopped(self) -> None:
        runner = CountingRunner(ticks_wanted=2)
        scheduler = DevTickScheduler(runner, poll_interval_seconds=0.01)  # type: ignore[arg-type]

        scheduler.start()
        try:
            assert runner.done.wait(timeout=5)
            assert scheduler.is_running
        finally:
            scheduler.stop()

        assert not scheduler.is_running
        assert scheduler.wait(timeout=0)

    def test_failing_tick_does_not_stop_loop(self) -> None:
        runner = CountingRunner(ticks_wanted=3, error=RuntimeError("store down"))
        scheduler = DevTickScheduler(runner, poll_interval_seconds=0.01)  # type: ignore[arg-type]

        scheduler.start()
        try:
            assert runner.done.wait(timeout=5)
        finally:
            scheduler.stop()

        assert runner.ticks >= 3

    def test_start_twice_is_noop(self) -> None:
        runner = CountingRunner()
        scheduler = DevTickScheduler(runner, poll_interval_seconds=60)  # type: ignore[arg-type]

        scheduler.start()
        scheduler.start()
        scheduler.stop()

        assert runner.ticks == 0
