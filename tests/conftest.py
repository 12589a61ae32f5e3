"""Shared fixtures: file-backed SQLite, a frozen clock and fake channels."""

from datetime import datetime, timedelta
from uuid import UUID

import pytest
from sqlmodel import Session, SQLModel

import app.models  # noqa: F401  (registers tables)
from app.db.session import build_engine, session_factory_for
from app.models.task import Priority, Task, TaskStatus
from app.models.user import User
from app.services.notifications import NotificationStore
from app.services.reminders import ReminderPlanner
from app.services.tasks import SQLTaskStore
from app.services.users import SQLUserDirectory
from app.workers.notification_worker import NotificationDispatcher
from tests.fakes import NOW, FakeEmailChannel, FakePushChannel, FrozenClock


# ============================================================================
# Database
# ============================================================================

@pytest.fixture
def db_engine(tmp_path):
    """A fresh SQLite file database; worker threads get their own connections."""
    engine = build_engine(f"sqlite:///{tmp_path / 'reminders.db'}")
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return session_factory_for(db_engine)


@pytest.fixture
def db_session(db_engine):
    """Create a test database session."""
    with Session(db_engine) as session:
        yield session


@pytest.fixture
def test_user(db_session: Session) -> User:
    """Create a test user."""
    user = User(email="test@example.com")
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def make_task(db_session: Session, test_user: User):
    """Factory for committed tasks owned by ``test_user``."""

    def _make(
        title: str = "Write report",
        deadline: datetime | None = NOW + timedelta(days=1, hours=5),
        priority: Priority | None = Priority.HIGH,
        status: TaskStatus = TaskStatus.PENDING,
        reminder_time: datetime | None = None,
        user_id: UUID | None = None,
    ) -> Task:
        task = Task(
            user_id=user_id or test_user.id,
            title=title,
            deadline=deadline,
            priority=priority,
            status=status,
            reminder_time=reminder_time,
        )
        db_session.add(task)
        db_session.commit()
        db_session.refresh(task)
        return task

    return _make


# ============================================================================
# Engine components
# ============================================================================

@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def store() -> NotificationStore:
    return NotificationStore()


@pytest.fixture
def planner(store: NotificationStore) -> ReminderPlanner:
    return ReminderPlanner(store=store)


@pytest.fixture
def push_channel() -> FakePushChannel:
    return FakePushChannel()


@pytest.fixture
def email_channel() -> FakeEmailChannel:
    return FakeEmailChannel()


@pytest.fixture
def task_store(session_factory) -> SQLTaskStore:
    return SQLTaskStore(session_factory)


@pytest.fixture
def dispatcher(session_factory, push_channel, email_channel, task_store, planner, store, clock):
    """Sequential dispatcher over the test database."""
    worker = NotificationDispatcher(
        session_factory,
        push_channel=push_channel,
        email_channel=email_channel,
        task_store=task_store,
        user_directory=SQLUserDirectory(session_factory),
        planner=planner,
        store=store,
        clock=clock,
        channel_timeout_seconds=2.0,
    )
    yield worker
    push_channel.release.set()
    email_channel.release.set()
    worker.close()

