"""Tick scheduler for the reminder engine.

One tick = reminder planning, then due scan and dispatch. Ticks never
overlap: a non-blocking guard lets a tick start only when the previous one
has finished. A tick that cannot take the guard is skipped; repeated skips
are logged as a health signal but never stop the process.

Entry points:
- EngineScheduler.run_once(): single tick (tests, ``--once``)
- EngineScheduler.start()/stop(): background thread (web app lifespan)
- EngineScheduler.run_loop(): foreground loop with signal handling (worker process)
"""

import logging
import signal
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from app.clock import Clock, SystemClock
from app.workers.base import WorkerBase, WorkerResult

logger = logging.getLogger(__name__)


@dataclass
class RunnerResult:
    """Result of one scheduler tick.

    Attributes:
        tick_at: The time the tick evaluated against
        started_at: When the run started
        completed_at: When the run completed
        skipped: True if the tick did not run because another was in flight
        workers_run: Number of workers executed
        total_processed: Total items processed across all workers
        total_failed: Total items failed across all workers
        worker_results: Individual results per worker
        errors: Top-level errors during run
    """

    tick_at: datetime
    started_at: datetime
    completed_at: datetime | None = None
    skipped: bool = False
    workers_run: int = 0
    total_processed: int = 0
    total_failed: int = 0
    worker_results: dict[str, WorkerResult] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "tick_at": self.tick_at.isoformat(),
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_ms": (
                (self.completed_at - self.started_at).total_seconds() * 1000
                if self.completed_at
                else None
            ),
            "skipped": self.skipped,
            "workers_run": self.workers_run,
            "total_processed": self.total_processed,
            "total_failed": self.total_failed,
            "worker_results": {
                name: result.to_dict()
                for name, result in self.worker_results.items()
            },
            "errors": self.errors,
        }


class EngineScheduler:
    """Runs the engine's workers once per tick, one tick at a time.

    Usage:
        scheduler = EngineScheduler([planning_worker, dispatcher])
        scheduler.start()
        ...
        scheduler.stop()
    """

    def __init__(
        self,
        workers: list[WorkerBase],
        clock: Clock | None = None,
        interval_seconds: float = 60.0,
        guard_alert_threshold: int = 3,
    ) -> None:
        """Initialize the scheduler.

        Args:
            workers: Workers to run in order on every tick
            clock: Time source (wall clock if None)
            interval_seconds: Seconds between tick starts
            guard_alert_threshold: Consecutive skipped ticks before an error log
        """
        self._workers = list(workers)
        self._clock = clock or SystemClock()
        self.interval_seconds = interval_seconds
        self.guard_alert_threshold = guard_alert_threshold

        self._tick_guard = threading.Lock()
        self._guard_failures = 0
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._logger = logging.getLogger(self.__class__.__name__)

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def consecutive_guard_failures(self) -> int:
        return self._guard_failures

    def run_once(self, now: datetime | None = None) -> RunnerResult:
        """Execute one tick.

        Args:
            now: Tick time (clock time if None)

        Returns:
            RunnerResult with aggregated statistics
        """
        tick_at = now or self._clock.now()
        result = RunnerResult(tick_at=tick_at, started_at=datetime.utcnow())

        if not self._tick_guard.acquire(blocking=False):
            self._on_guard_busy(result)
            return result

        try:
            self._guard_failures = 0
            for worker in self._workers:
                try:
                    worker_result = worker.run(tick_at)
                    result.worker_results[worker.worker_name] = worker_result
                    result.workers_run += 1
                    result.total_processed += worker_result.processed_count
                    result.total_failed += worker_result.failed_count

                except Exception as e:
                    error_msg = f"{worker.worker_name} failed: {str(e)}"
                    result.errors.append(error_msg)
                    self._logger.error(
                        error_msg,
                        extra={"worker": worker.worker_name},
                        exc_info=True,
                    )
        finally:
            self._tick_guard.release()

        result.completed_at = datetime.utcnow()

        self._logger.info(
            "Tick completed",
            extra=result.to_dict(),
        )

        return result

    def _on_guard_busy(self, result: RunnerResult) -> None:
        self._guard_failures += 1
        result.skipped = True
        result.completed_at = datetime.utcnow()

        if self._guard_failures >= self.guard_alert_threshold:
            self._logger.error(
                "Tick guard unavailable; previous tick still running",
                extra={
                    "consecutive_failures": self._guard_failures,
                    "tick_at": result.tick_at.isoformat(),
                },
            )
        else:
            self._logger.warning(
                "Skipping tick; previous tick still running",
                extra={"consecutive_failures": self._guard_failures},
            )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """Start ticking in a background thread."""
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._loop, name="reminder-scheduler", daemon=True
        )
        self._thread.start()
        self._logger.info(
            "Scheduler started",
            extra={"interval_seconds": self.interval_seconds},
        )

    def stop(self, timeout: float | None = None) -> None:
        """Stop ticking; waits for the in-flight tick to finish."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                self._logger.warning("Scheduler thread did not stop within timeout")
            else:
                self._thread = None
        self._logger.info("Scheduler stopped")

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            started = time.monotonic()
            try:
                self.run_once()
            except Exception:
                self._logger.error("Unexpected error in tick", exc_info=True)
            self._stop_event.wait(self._until_next_tick(started))

    def _until_next_tick(self, started: float) -> float:
        """Seconds to wait so ticks start ``interval_seconds`` apart."""
        return max(0.0, self.interval_seconds - (time.monotonic() - started))

    def run_loop(self, max_iterations: int | None = None) -> int:
        """Run ticks in the foreground until interrupted.

        Args:
            max_iterations: Max ticks to run (None for infinite)

        Returns:
            Number of ticks run
        """
        iterations = 0
        self._stop_event.clear()
        previous_handlers = self._setup_signal_handlers()

        self._logger.info(
            "Starting scheduler loop",
            extra={
                "interval_seconds": self.interval_seconds,
                "max_iterations": max_iterations,
            },
        )

        try:
            while not self._stop_event.is_set():
                if max_iterations is not None and iterations >= max_iterations:
                    self._logger.info(f"Reached max iterations ({max_iterations}), stopping")
                    break

                started = time.monotonic()
                result = self.run_once()
                iterations += 1

                self._logger.info(
                    f"Iteration {iterations} complete",
                    extra={
                        "processed": result.total_processed,
                        "failed": result.total_failed,
                    },
                )

                if max_iterations is not None and iterations >= max_iterations:
                    continue
                self._stop_event.wait(self._until_next_tick(started))

        except KeyboardInterrupt:
            self._logger.info("Keyboard interrupt received, shutting down")
        finally:
            for signum, handler in previous_handlers.items():
                if handler is not None:
                    signal.signal(signum, handler)

        self._logger.info(
            "Scheduler loop stopped",
            extra={"total_iterations": iterations},
        )
        return iterations

    def _setup_signal_handlers(self) -> dict[int, Any]:
        """Setup signal handlers for graceful shutdown; returns the previous ones."""
        def handle_signal(signum, frame):
            self._logger.info(f"Received signal {signum}, requesting shutdown")
            self._stop_event.set()

        previous = {}
        for signum in (signal.SIGINT, signal.SIGTERM):
            previous[signum] = signal.getsignal(signum)
            signal.signal(signum, handle_signal)
        return previous


# Configure logging for worker runs
def configure_worker_logging(level: int = logging.INFO) -> None:
    """Configure logging for worker processes.

    Args:
        level: Logging level (default: INFO)
    """
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Set specific loggers
    logging.getLogger("app").setLevel(level)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
