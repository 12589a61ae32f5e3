"""Read-only access to the task store.

The engine never writes tasks. ``TaskStore`` is the contract it consumes;
``SQLTaskStore`` implements it over the shared database.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select

from app.db.session import SessionFactory
from app.models.task import Task, TaskStatus


class TaskStoreError(Exception):
    """The task store could not be reached; retry on the next tick."""


class TaskNotFoundError(LookupError):
    """The referenced task no longer exists."""

    def __init__(self, task_id: UUID) -> None:
        super().__init__(f"Task {task_id} not found")
        self.task_id = task_id


class TaskStore(ABC):
    """Contract for the external task store.

    Listings are ordered and can be paged with ``limit``/``offset``.
    """

    @abstractmethod
    def list_active_tasks_with_deadline_between(
        self,
        start: datetime,
        end: datetime,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Task]:
        """Return non-completed tasks whose deadline is in ``[start, end]``."""

    @abstractmethod
    def list_active_tasks_with_reminder_between(
        self,
        start: datetime,
        end: datetime,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Task]:
        """Return non-completed tasks with a deadline whose ``reminder_time`` is in ``[start, end]``."""

    @abstractmethod
    def get_task(self, task_id: UUID) -> Task:
        """Return the task or raise ``TaskNotFoundError``."""


class SQLTaskStore(TaskStore):
    """Task store backed by the ``tasks`` table."""

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def list_active_tasks_with_deadline_between(
        self,
        start: datetime,
        end: datetime,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Task]:
        query = (
            select(Task)
            .where(Task.status != TaskStatus.COMPLETED)
            .where(Task.deadline != None)  # noqa: E711
            .where(Task.deadline >= start)
            .where(Task.deadline <= end)
            .order_by(Task.deadline, Task.id)
        )
        return self._list(query, limit, offset)

    def list_active_tasks_with_reminder_between(
        self,
        start: datetime,
        end: datetime,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Task]:
        # Overdue tasks are included; only the deadline's presence matters
        query = (
            select(Task)
            .where(Task.status != TaskStatus.COMPLETED)
            .where(Task.deadline != None)  # noqa: E711
            .where(Task.reminder_time != None)  # noqa: E711
            .where(Task.reminder_time >= start)
            .where(Task.reminder_time <= end)
            .order_by(Task.reminder_time, Task.id)
        )
        return self._list(query, limit, offset)

    def get_task(self, task_id: UUID) -> Task:
        try:
            with self._session_factory() as session:
                task = session.get(Task, task_id)
        except SQLAlchemyError as e:
            raise TaskStoreError(f"Failed to load task {task_id}: {e}") from e

        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    def _list(self, query, limit: int | None, offset: int) -> list[Task]:
        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)
        try:
            with self._session_factory() as session:
                return list(session.exec(query).all())
        except SQLAlchemyError as e:
            raise TaskStoreError(f"Failed to list active tasks: {e}") from e
