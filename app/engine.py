"""Reminder engine facade.

Wires the planner, dispatcher, streak tracker and scheduler together and
exposes the operations the task tracker's CRUD layer calls:

    engine = build_reminder_engine()
    engine.start()
    engine.create_instant_notification(user_id, "New task created", NotificationKind.INFO)
    engine.record_activity(user_id)
    engine.stop()
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, timedelta
from uuid import UUID

from sqlalchemy.engine import Engine

from app.channels.base import EmailChannel, PushChannel
from app.channels.email import build_email_channel
from app.channels.push import WebSocketPushChannel
from app.clock import Clock, SystemClock
from app.config import Settings, get_settings
from app.db.session import SessionFactory, session_factory_for
from app.models.notification import Notification, NotificationKind
from app.models.streak import StreakStats, UserStreakState
from app.services.notifications import NotificationStore
from app.services.reminders import ReminderPlanner
from app.services.streaks import BackdatedActivityError, StreakTracker, StreakUpdate
from app.services.tasks import SQLTaskStore, TaskStore
from app.services.users import SQLUserDirectory, UserDirectory
from app.workers.notification_worker import NotificationDispatcher
from app.workers.reminder_worker import ReminderPlanningWorker
from app.workers.runner import EngineScheduler, RunnerResult

logger = logging.getLogger(__name__)


class ReminderEngine:
    """Owns the engine components and their lifecycle."""

    def __init__(
        self,
        session_factory: SessionFactory,
        task_store: TaskStore,
        user_directory: UserDirectory,
        push_channel: PushChannel,
        email_channel: EmailChannel,
        settings: Settings | None = None,
        clock: Clock | None = None,
        planner: ReminderPlanner | None = None,
    ) -> None:
        settings = settings or get_settings()
        self.settings = settings
        self.session_factory = session_factory
        self.clock = clock or SystemClock()
        self.push_channel = push_channel
        self.store = NotificationStore()
        self.planner = planner or ReminderPlanner(store=self.store)
        self.streaks = StreakTracker(
            session_factory,
            clock=self.clock,
            reset_on_read=settings.STREAK_RESET_ON_READ,
        )

        self._dispatch_executor = ThreadPoolExecutor(
            max_workers=settings.DISPATCH_MAX_WORKERS,
            thread_name_prefix="dispatch",
        )
        self.planning_worker = ReminderPlanningWorker(
            session_factory,
            task_store=task_store,
            planner=self.planner,
            lookahead=timedelta(hours=settings.PLANNER_LOOKAHEAD_HOURS),
            batch_size=settings.WORKER_BATCH_SIZE,
        )
        self.dispatcher = NotificationDispatcher(
            session_factory,
            push_channel=push_channel,
            email_channel=email_channel,
            task_store=task_store,
            user_directory=user_directory,
            planner=self.planner,
            store=self.store,
            clock=self.clock,
            batch_size=settings.WORKER_BATCH_SIZE,
            executor=self._dispatch_executor,
            timeout_seconds=settings.TICK_TIMEOUT_SECONDS,
            channel_timeout_seconds=settings.CHANNEL_TIMEOUT_SECONDS,
            explicit_window=timedelta(seconds=settings.EMAIL_WINDOW_EXPLICIT_SECONDS),
            derived_window=timedelta(seconds=settings.EMAIL_WINDOW_DERIVED_SECONDS),
            channel_workers=settings.DISPATCH_MAX_WORKERS * 2,
        )
        self.scheduler = EngineScheduler(
            [self.planning_worker, self.dispatcher],
            clock=self.clock,
            interval_seconds=settings.TICK_INTERVAL_SECONDS,
            guard_alert_threshold=settings.GUARD_FAILURE_ALERT_THRESHOLD,
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> None:
        self.scheduler.start()

    def stop(self) -> None:
        self.scheduler.stop()

    def close(self) -> None:
        """Stop the scheduler and release executors and channel clients."""
        self.scheduler.stop()
        self._dispatch_executor.shutdown(wait=True)
        self.dispatcher.close()

    def tick(self, now: datetime | None = None) -> RunnerResult:
        """Run one tick synchronously."""
        return self.scheduler.run_once(now)

    # -------------------------------------------------------------------------
    # Notifications
    # -------------------------------------------------------------------------

    def create_instant_notification(
        self,
        user_id: UUID,
        message: str,
        kind: NotificationKind = NotificationKind.INFO,
        task_id: UUID | None = None,
    ) -> Notification:
        """Create a notification and dispatch it immediately.

        Counts as activity for the user's streak.
        """
        now = self.clock.now()

        with self.session_factory() as session:
            notification = self.store.create(
                session,
                user_id=user_id,
                task_id=task_id,
                kind=kind,
                message=message,
                scheduled_for=now,
                created_at=now,
            )
            session.commit()
            session.refresh(notification)

        self.dispatcher.dispatch(notification, now)
        self._record_activity_quietly(user_id)

        with self.session_factory() as session:
            return self.store.get(session, notification.id) or notification

    def list_for_user(
        self,
        user_id: UUID,
        unread_only: bool = False,
        kind: NotificationKind | None = None,
        limit: int | None = 50,
    ) -> list[Notification]:
        with self.session_factory() as session:
            return self.store.list_for_user(
                session, user_id, unread_only=unread_only, kind=kind, limit=limit
            )

    def list_pending(self, now: datetime | None = None) -> list[Notification]:
        """Notifications that are due but not yet dispatched."""
        with self.session_factory() as session:
            return self.store.due(session, now or self.clock.now())

    def mark_read(self, notification_id: UUID) -> Notification | None:
        with self.session_factory() as session:
            return self.store.mark_read(session, notification_id)

    def mark_all_read(self, user_id: UUID) -> int:
        with self.session_factory() as session:
            return self.store.mark_all_read(session, user_id)

    def delete(self, notification_id: UUID) -> bool:
        with self.session_factory() as session:
            return self.store.delete(session, notification_id)

    def get_unread_count(self, user_id: UUID) -> int:
        with self.session_factory() as session:
            return self.store.unread_count(session, user_id)

    def cleanup_older_than(self, days: int | None = None) -> int:
        if days is None:
            days = self.settings.NOTIFICATION_RETENTION_DAYS
        with self.session_factory() as session:
            return self.store.cleanup_older_than(session, days, self.clock.now())

    # -------------------------------------------------------------------------
    # Streaks
    # -------------------------------------------------------------------------

    def record_activity(self, user_id: UUID, activity_date: date | None = None) -> StreakUpdate:
        """Record task creation/completion activity for the streak."""
        return self.streaks.record_activity(user_id, activity_date)

    def get_streak(self, user_id: UUID) -> UserStreakState:
        return self.streaks.get_streak(user_id)

    def check_and_reset_streak(self, user_id: UUID) -> bool:
        return self.streaks.check_and_reset(user_id)

    def get_streak_stats(self) -> StreakStats:
        return self.streaks.get_streak_stats()

    def _record_activity_quietly(self, user_id: UUID) -> None:
        try:
            self.streaks.record_activity(user_id)
        except BackdatedActivityError as e:
            logger.warning(
                "Streak update rejected",
                extra={"user_id": str(user_id), "error": str(e)},
            )


def build_reminder_engine(
    bind: Engine | None = None,
    settings: Settings | None = None,
    push_channel: PushChannel | None = None,
    email_channel: EmailChannel | None = None,
    clock: Clock | None = None,
) -> ReminderEngine:
    """Build an engine over the SQL-backed task store and user directory."""
    settings = settings or get_settings()
    if bind is None:
        from app.db.session import engine as default_engine

        bind = default_engine

    session_factory = session_factory_for(bind)
    return ReminderEngine(
        session_factory=session_factory,
        task_store=SQLTaskStore(session_factory),
        user_directory=SQLUserDirectory(session_factory),
        push_channel=push_channel
        or WebSocketPushChannel(send_timeout=settings.CHANNEL_TIMEOUT_SECONDS),
        email_channel=email_channel or build_email_channel(settings),
        settings=settings,
        clock=clock,
    )
