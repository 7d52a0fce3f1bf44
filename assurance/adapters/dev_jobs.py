"""
Dev Tick Scheduler (P4 Implementation).

In-process trigger for the control loop during development.
Production invokes POST /api/cron/tick from an external cron; this
provides equivalent behaviour for local runs.

Key behaviors:
- Calls TickRunner.run_tick() every poll interval
- A tick that raises (e.g. store unavailable) is logged and the next
  interval tries again
- Overlapping ticks from another trigger are safe (claims are idempotent)
"""

from __future__ import annotations

import logging
import threading

from assurance.components.scheduler import TickRunner
from assurance.core.ports.jobs import TickResult

logger = logging.getLogger(__name__)


class DevTickScheduler:
    """
    Background thread that ticks the scheduler at a fixed interval.
    """

    def __init__(
        self,
        runner: TickRunner,
        poll_interval_seconds: float = 60.0,
    ) -> None:
        self._runner = runner
        self._poll_interval = poll_interval_seconds
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._running = False

    def start(self) -> None:
        """Start the background scheduler."""
        if self._running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._poll_loop, daemon=True)
        self._thread.start()
        self._running = True
        logger.info("Dev tick scheduler started (poll interval: %.1fs)", self._poll_interval)

    def stop(self) -> None:
        """Stop the scheduler gracefully."""
        if not self._running:
            return

        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=5.0)
        self._running = False
        logger.info("Dev tick scheduler stopped")

    def trigger_now(self) -> TickResult:
        """Run one tick immediately on the calling thread."""
        return self._runner.run_tick()

    @property
    def is_running(self) -> bool:
        return self._running

    def wait(self, timeout: float | None = None) -> bool:
        """Block until stopped. Returns True if stop was requested."""
        return self._stop_event.wait(timeout=timeout)

    def _poll_loop(self) -> None:
        while not self._stop_event.wait(timeout=self._poll_interval):
            try:
                self._runner.run_tick()
            except Exception:
                logger.exception("Error in scheduler tick")


def create_dev_scheduler(
    runner: TickRunner,
    poll_interval_seconds: float = 60.0,
) -> DevTickScheduler:
    """Create a dev tick scheduler."""
    return DevTickScheduler(runner, poll_interval_seconds)
