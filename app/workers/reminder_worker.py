"""Reminder planning worker.

Reconciles the task store against the notification store on every tick:
1. Lists active tasks whose deadline or explicit reminder time falls inside
   the lookahead window, paging through each listing until it is exhausted
2. Plans each task in its own transaction
3. Creates only the reminder tiers that have no unsent notification yet

A task-store outage skips planning for the tick; a failure on one task
rolls back that task only. Both are retried on the next tick.
"""

import logging
import threading
from collections.abc import Callable
from datetime import datetime, timedelta
from uuid import UUID

from sqlmodel import Session

from app.db.session import SessionFactory
from app.models.task import Task
from app.services.reminders import ReminderPlanner
from app.services.tasks import TaskStore
from app.workers.base import WorkerBase, WorkerResult

logger = logging.getLogger(__name__)


class ReminderPlanningWorker(WorkerBase[Task]):
    """Worker that creates missing future reminders for upcoming deadlines."""

    def __init__(
        self,
        session_factory: SessionFactory,
        task_store: TaskStore,
        planner: ReminderPlanner,
        lookahead: timedelta = timedelta(days=7),
        batch_size: int = 100,
    ) -> None:
        super().__init__(session_factory, batch_size=batch_size)
        self.task_store = task_store
        self.planner = planner
        self.lookahead = lookahead
        self._created = 0
        self._created_lock = threading.Lock()

    @property
    def worker_name(self) -> str:
        return "ReminderPlanningWorker"

    def run(self, now: datetime) -> WorkerResult:
        with self._created_lock:
            self._created = 0
        result = super().run(now)
        result.metadata["reminders_created"] = self._created
        return result

    def fetch_pending(self, session: Session, now: datetime) -> list[Task]:
        """Fetch every task with a deadline or reminder time in the lookahead window.

        ``batch_size`` is the page size; every page is read.

        Raises:
            TaskStoreError: If the store is unreachable (caught by ``run``)
        """
        horizon = now + self.lookahead
        tasks: dict[UUID, Task] = {}
        for listing in (
            self.task_store.list_active_tasks_with_deadline_between,
            self.task_store.list_active_tasks_with_reminder_between,
        ):
            for task in self._list_all(listing, now, horizon):
                tasks.setdefault(task.id, task)
        return list(tasks.values())

    def _list_all(
        self,
        listing: Callable[..., list[Task]],
        start: datetime,
        end: datetime,
    ) -> list[Task]:
        tasks: list[Task] = []
        while True:
            page = listing(start, end, limit=self.batch_size, offset=len(tasks))
            tasks.extend(page)
            if len(page) < self.batch_size:
                return tasks

    def mark_processing(self, session: Session, item: Task, now: datetime) -> bool:
        return self.planner.is_plannable(item)

    def process_item(self, session: Session, item: Task, now: datetime) -> None:
        created = self.planner.plan_and_persist(session, item, now)
        with self._created_lock:
            self._created += len(created)

    def mark_completed(self, session: Session, item: Task, now: datetime) -> None:
        # Commit happens in the base class; nothing else to record
        pass

    def mark_failed(self, session: Session, item: Task, error: str, now: datetime) -> None:
        """Nothing is persisted for a failed task; it is planned again next tick."""
        logger.warning(
            "Reminder planning failed for task, will retry next tick",
            extra={"task_id": str(item.id), "error": error},
        )

    def get_item_id(self, item: Task) -> UUID:
        return item.id
