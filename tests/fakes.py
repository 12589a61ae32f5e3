"""Test doubles for the engine's clock and delivery channels."""

import threading
from datetime import date, datetime, timedelta
from typing import Any
from uuid import UUID

from app.channels.base import EmailChannel, PushChannel
from app.models.task import Task
from app.services.reminders import ReminderPlanner

# Tuesday, so "tomorrow" stays inside the same week
NOW = datetime(2026, 3, 10, 10, 0, 0)


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime = NOW) -> None:
        self.current = now

    def now(self) -> datetime:
        return self.current

    def today(self) -> date:
        return self.current.date()

    def set(self, now: datetime) -> None:
        self.current = now

    def advance(self, **kwargs: float) -> None:
        self.current += timedelta(**kwargs)


class FakePushChannel(PushChannel):
    """Records broadcasts; optionally fails or blocks until released."""

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls: list[tuple[UUID, dict[str, Any]]] = []
        self.release = threading.Event()
        self.release.set()
        self._lock = threading.Lock()

    def broadcast(self, user_id: UUID, payload: dict[str, Any]) -> None:
        self.release.wait()
        with self._lock:
            self.calls.append((user_id, payload))
        if self.error is not None:
            raise self.error


class FakeEmailChannel(EmailChannel):
    """Records sent reminders; optionally fails or blocks until released."""

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.sent: list[tuple[str, UUID]] = []
        self.release = threading.Event()
        self.release.set()
        self.closed = False
        self._lock = threading.Lock()

    def send_reminder(self, address: str, task: Task) -> None:
        self.release.wait()
        if self.error is not None:
            raise self.error
        with self._lock:
            self.sent.append((address, task.id))

    def close(self) -> None:
        self.closed = True


def plan(session_factory, planner: ReminderPlanner, task: Task, now: datetime) -> list:
    """Plan ``task`` in its own committed transaction.

    Returns (id, tier, scheduled_for) tuples for the created reminders.
    """
    with session_factory() as session:
        created = planner.plan_and_persist(session, task, now)
        session.commit()
        return [(n.id, n.reminder_tier, n.scheduled_for) for n in created]
