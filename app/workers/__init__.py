"""Background workers for the reminder engine.

This module provides the tick-driven workers:
- Reminder planning worker
- Notification dispatcher (push + email)
- EngineScheduler, which runs both once per tick without overlap
"""

from app.workers.base import (
    ItemOutcome,
    WorkerBase,
    WorkerResult,
    WorkerStatus,
)
from app.workers.notification_worker import DispatchOutcome, NotificationDispatcher
from app.workers.reminder_worker import ReminderPlanningWorker
from app.workers.runner import (
    EngineScheduler,
    RunnerResult,
    configure_worker_logging,
)

__all__ = [
    # Base classes
    "WorkerBase",
    "WorkerResult",
    "WorkerStatus",
    "ItemOutcome",
    # Workers
    "ReminderPlanningWorker",
    "NotificationDispatcher",
    "DispatchOutcome",
    # Runner
    "EngineScheduler",
    "RunnerResult",
    "configure_worker_logging",
]
