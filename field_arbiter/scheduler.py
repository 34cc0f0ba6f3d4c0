"""
Background scheduler for periodic maintenance.

Runs one job on a fixed interval in a daemon thread:
- correction engine sweeps (pattern aging, effectiveness, eviction, persistence)
- resolver history/audit autosave

Stopping is cooperative: a cycle already in progress runs to completion, then
the thread exits without starting another.
"""

import logging
import threading
from datetime import datetime
from typing import Callable

from pydantic import BaseModel, Field

from field_arbiter.models.base import _utcnow

logger = logging.getLogger(__name__)


class MaintenanceRunResult(BaseModel):
    """Result of a maintenance run."""

    run_id: str
    started_at: datetime
    completed_at: datetime | None = None
    duration_seconds: float | None = None

    # Errors
    errors: list[str] = Field(default_factory=list)

    # Status
    success: bool = True


class MaintenanceScheduler:
    """
    Background scheduler for a single periodic job.

    The job runs on the scheduler's thread; it is responsible for its own
    locking. ``run_once`` may also be called directly (tests, forced updates).
    """

    def __init__(
        self,
        job: Callable[[], None],
        interval_seconds: float,
        name: str = "maintenance",
    ):
        self.job = job
        self.interval_seconds = interval_seconds
        self.name = name

        # State
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._run_lock = threading.Lock()
        self._run_count = 0
        self._last_run: MaintenanceRunResult | None = None

    def start(self) -> None:
        """Start the background thread. No-op if already running."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name=f"field-arbiter-{self.name}",
            daemon=True,
        )
        self._thread.start()
        logger.info(f"Started {self.name} scheduler (interval {self.interval_seconds}s)")

    def stop(self, timeout: float | None = None) -> None:
        """Signal the thread to stop and wait for the current cycle to finish."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning(f"{self.name} scheduler did not stop within {timeout}s")
            else:
                self._thread = None
        logger.info(f"Stopped {self.name} scheduler")

    def _run_loop(self) -> None:
        """Main scheduler loop."""
        while not self._stop_event.wait(self.interval_seconds):
            self.run_once()

    def run_once(self) -> MaintenanceRunResult:
        """
        Run a single maintenance cycle.

        Job errors are logged and recorded on the result; the loop keeps going.
        """
        with self._run_lock:
            self._run_count += 1
            started_at = _utcnow()
            result = MaintenanceRunResult(
                run_id=f"{self.name}_{self._run_count}_{started_at.timestamp()}",
                started_at=started_at,
            )

            try:
                self.job()
            except Exception as e:
                logger.exception(f"{self.name} run {self._run_count} failed")
                result.success = False
                result.errors.append(str(e))

            result.completed_at = _utcnow()
            result.duration_seconds = (result.completed_at - started_at).total_seconds()

            self._last_run = result
            return result

    @property
    def is_running(self) -> bool:
        """Check if the background thread is alive."""
        return self._thread is not None and self._thread.is_alive()

    @property
    def run_count(self) -> int:
        return self._run_count

    @property
    def last_run(self) -> MaintenanceRunResult | None:
        """Get result of last maintenance run."""
        return self._last_run
