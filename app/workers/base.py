"""Base worker abstraction for the reminder engine.

Provides a clean interface for tick-driven workers that:
1. Poll for work items (tasks to plan, notifications to dispatch)
2. Claim each item before working on it (idempotency)
3. Process items in their own session, optionally fanned out on an executor
4. Report structured results instead of raising

Design Principles:
- One session per item, never shared across threads
- A failing item never stops the others
- All fan-out is awaited (bounded by a timeout) before ``run`` returns
"""

import logging
from abc import ABC, abstractmethod
from concurrent.futures import Executor, Future, wait
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Generic, TypeVar
from uuid import UUID

from sqlmodel import Session

from app.db.session import SessionFactory

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 500


class WorkerStatus(str, Enum):
    """Status of a worker run."""

    SUCCESS = "success"
    PARTIAL = "partial"  # Some items processed, some failed
    FAILED = "failed"
    NO_WORK = "no_work"


class ItemOutcome(str, Enum):
    """What happened to a single work item."""

    PROCESSED = "processed"
    SKIPPED = "skipped"  # Claim lost or item not eligible
    FAILED = "failed"


@dataclass
class WorkerResult:
    """Result of a worker processing cycle.

    Attributes:
        status: Overall status of the worker run
        processed_count: Number of items successfully processed
        skipped_count: Number of items another worker already handled
        failed_count: Number of items that failed
        abandoned_count: Number of items still running when the timeout hit
        duration_ms: Time taken for the processing cycle
        errors: List of error details for failed items
        metadata: Additional worker-specific metadata
    """

    status: WorkerStatus
    processed_count: int = 0
    skipped_count: int = 0
    failed_count: int = 0
    abandoned_count: int = 0
    duration_ms: float = 0.0
    errors: list[dict[str, Any]] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "status": self.status.value,
            "processed_count": self.processed_count,
            "skipped_count": self.skipped_count,
            "failed_count": self.failed_count,
            "abandoned_count": self.abandoned_count,
            "duration_ms": self.duration_ms,
            "errors": self.errors,
            "metadata": self.metadata,
        }


# Generic type for work items
T = TypeVar("T")


class WorkerBase(ABC, Generic[T]):
    """Abstract base class for tick-driven workers.

    Workers follow this lifecycle per item:
    1. fetch_pending() - Get items to process
    2. mark_processing() - Claim the item (idempotency)
    3. process_item() - Do the actual work
    4. mark_completed() or mark_failed() - Record the final state

    Subclasses must implement all abstract methods.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        batch_size: int = 50,
        executor: Executor | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        """Initialize the worker.

        Args:
            session_factory: Opens a new database session
            batch_size: Maximum items to process per cycle
            executor: Run items concurrently on this executor (sequential if None)
            timeout_seconds: Upper bound on waiting for fanned-out items
        """
        self.session_factory = session_factory
        self.batch_size = batch_size
        self.executor = executor
        self.timeout_seconds = timeout_seconds
        self._logger = logging.getLogger(self.__class__.__name__)

    @property
    @abstractmethod
    def worker_name(self) -> str:
        """Return the worker name for logging."""
        pass

    @abstractmethod
    def fetch_pending(self, session: Session, now: datetime) -> list[T]:
        """Fetch items to process as of ``now`` (up to batch_size)."""
        pass

    @abstractmethod
    def mark_processing(self, session: Session, item: T, now: datetime) -> bool:
        """Claim an item.

        Returns:
            True if this worker owns the item, False to skip it
        """
        pass

    @abstractmethod
    def process_item(self, session: Session, item: T, now: datetime) -> None:
        """Process a single claimed item.

        Raises:
            Exception: If processing fails
        """
        pass

    @abstractmethod
    def mark_completed(self, session: Session, item: T, now: datetime) -> None:
        """Record that an item finished successfully."""
        pass

    @abstractmethod
    def mark_failed(self, session: Session, item: T, error: str, now: datetime) -> None:
        """Record that an item failed after its session was rolled back."""
        pass

    @abstractmethod
    def get_item_id(self, item: T) -> UUID:
        """Get the unique identifier for an item."""
        pass

    def run(self, now: datetime) -> WorkerResult:
        """Execute one processing cycle.

        This is the main entry point for worker execution.

        Args:
            now: The tick time every item is evaluated against

        Returns:
            WorkerResult with processing statistics
        """
        start_time = datetime.utcnow()

        self._logger.debug(
            f"[{self.worker_name}] Starting processing cycle",
            extra={"batch_size": self.batch_size, "tick": now.isoformat()},
        )

        try:
            with self.session_factory() as session:
                items = self.fetch_pending(session, now)
        except Exception as e:
            self._logger.error(
                f"[{self.worker_name}] Worker cycle failed",
                extra={"error": str(e)},
                exc_info=True,
            )
            return WorkerResult(
                status=WorkerStatus.FAILED,
                duration_ms=self._elapsed_ms(start_time),
                errors=[{"error": str(e)[:MAX_ERROR_LENGTH]}],
            )

        if not items:
            self._logger.debug(f"[{self.worker_name}] No pending items")
            return WorkerResult(
                status=WorkerStatus.NO_WORK,
                duration_ms=self._elapsed_ms(start_time),
            )

        self._logger.info(f"[{self.worker_name}] Found {len(items)} items to process")

        result = WorkerResult(status=WorkerStatus.NO_WORK)

        if self.executor is None:
            for item in items:
                self._tally(result, item, *self._process_one(item, now))
        else:
            futures: dict[Future, T] = {
                self.executor.submit(self._process_one, item, now): item for item in items
            }
            done, not_done = wait(futures, timeout=self.timeout_seconds)
            for future in done:
                self._tally(result, futures[future], *future.result())
            for future in not_done:
                future.cancel()
                item_id = self.get_item_id(futures[future])
                result.abandoned_count += 1
                result.errors.append({"item_id": str(item_id), "error": "abandoned on timeout"})
                self._logger.error(
                    f"[{self.worker_name}] Item {item_id} abandoned after timeout",
                    extra={"item_id": str(item_id), "timeout_seconds": self.timeout_seconds},
                )

        # Determine overall status
        processed = result.processed_count
        failed = result.failed_count + result.abandoned_count
        if failed == 0 and processed > 0:
            result.status = WorkerStatus.SUCCESS
        elif processed > 0 and failed > 0:
            result.status = WorkerStatus.PARTIAL
        elif failed > 0:
            result.status = WorkerStatus.FAILED
        else:
            result.status = WorkerStatus.NO_WORK

        result.duration_ms = self._elapsed_ms(start_time)

        self._logger.info(
            f"[{self.worker_name}] Cycle complete",
            extra=result.to_dict(),
        )

        return result

    def _process_one(self, item: T, now: datetime) -> tuple[ItemOutcome, str | None]:
        """Claim, process and finalize one item in its own session."""
        item_id = self.get_item_id(item)

        with self.session_factory() as session:
            try:
                # Claim (idempotency check)
                if not self.mark_processing(session, item, now):
                    self._logger.debug(
                        f"[{self.worker_name}] Item {item_id} already handled"
                    )
                    return ItemOutcome.SKIPPED, None

                self.process_item(session, item, now)
                self.mark_completed(session, item, now)
                session.commit()

                self._logger.debug(
                    f"[{self.worker_name}] Processed item {item_id}",
                    extra={"item_id": str(item_id)},
                )
                return ItemOutcome.PROCESSED, None

            except Exception as e:
                session.rollback()
                error_msg = str(e)[:MAX_ERROR_LENGTH]  # Truncate long errors

                self._logger.error(
                    f"[{self.worker_name}] Failed to process item {item_id}",
                    extra={"item_id": str(item_id), "error": error_msg},
                    exc_info=True,
                )

                try:
                    self.mark_failed(session, item, error_msg, now)
                    session.commit()
                except Exception:
                    session.rollback()
                    self._logger.error(
                        f"[{self.worker_name}] Could not record failure for item {item_id}",
                        extra={"item_id": str(item_id)},
                        exc_info=True,
                    )

                return ItemOutcome.FAILED, error_msg

    def _tally(
        self,
        result: WorkerResult,
        item: T,
        outcome: ItemOutcome,
        error: str | None,
    ) -> None:
        if outcome is ItemOutcome.PROCESSED:
            result.processed_count += 1
        elif outcome is ItemOutcome.SKIPPED:
            result.skipped_count += 1
        else:
            result.failed_count += 1
            result.errors.append({"item_id": str(self.get_item_id(item)), "error": error})

    def _elapsed_ms(self, start: datetime) -> float:
        """Calculate elapsed time in milliseconds."""
        return (datetime.utcnow() - start).total_seconds() * 1000
