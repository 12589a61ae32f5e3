"""Notification dispatch worker.

Processes due notifications:
1. Claims each one by setting ``sent_at`` only if it is still unset
2. Pushes it to the user's live connections
3. Emails reminders when the task and user still resolve and the
   send-time window holds
4. Records both channel outcomes

The two legs run concurrently and independently, each bounded by a
timeout. A failed leg is recorded and never retried: once claimed, a
notification is never delivered again.
"""

import logging
import threading
import time
from collections import Counter
from concurrent.futures import Executor, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from sqlmodel import Session

from app.channels.base import ChannelError, ChannelTimeoutError, EmailChannel, PushChannel
from app.clock import Clock, SystemClock
from app.db.session import SessionFactory
from app.models.notification import ChannelStatus, Notification
from app.models.task import Task, TaskStatus
from app.services.notifications import NotificationStore
from app.services.reminders import EXPLICIT_TIER, ReminderPlanner
from app.services.tasks import TaskNotFoundError, TaskStore
from app.services.users import UserDirectory
from app.workers.base import WorkerBase, WorkerResult

logger = logging.getLogger(__name__)

EMAIL_WINDOW_EXPLICIT = timedelta(minutes=1)
EMAIL_WINDOW_DERIVED = timedelta(minutes=15)


@dataclass
class DispatchOutcome:
    """Result of dispatching one notification."""

    notification_id: UUID
    claimed: bool
    push_status: ChannelStatus = ChannelStatus.PENDING
    email_status: ChannelStatus = ChannelStatus.PENDING
    email_skip_reason: str | None = None
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "notification_id": str(self.notification_id),
            "claimed": self.claimed,
            "push_status": self.push_status.value,
            "email_status": self.email_status.value,
            "email_skip_reason": self.email_skip_reason,
            "errors": self.errors,
        }


@dataclass
class _EmailTarget:
    address: str
    task: Task


class _SkipEmail(Exception):
    """The email leg does not apply to this notification."""


class NotificationDispatcher(WorkerBase[Notification]):
    """Worker that delivers due notifications over push and email."""

    def __init__(
        self,
        session_factory: SessionFactory,
        push_channel: PushChannel,
        email_channel: EmailChannel,
        task_store: TaskStore,
        user_directory: UserDirectory,
        planner: ReminderPlanner | None = None,
        store: NotificationStore | None = None,
        clock: Clock | None = None,
        batch_size: int = 100,
        executor: Executor | None = None,
        timeout_seconds: float | None = None,
        channel_timeout_seconds: float = 10.0,
        explicit_window: timedelta = EMAIL_WINDOW_EXPLICIT,
        derived_window: timedelta = EMAIL_WINDOW_DERIVED,
        channel_workers: int = 8,
    ) -> None:
        super().__init__(
            session_factory,
            batch_size=batch_size,
            executor=executor,
            timeout_seconds=timeout_seconds,
        )
        self.push_channel = push_channel
        self.email_channel = email_channel
        self.task_store = task_store
        self.user_directory = user_directory
        self.planner = planner or ReminderPlanner()
        self.store = store or NotificationStore()
        self.clock = clock or SystemClock()
        self.channel_timeout_seconds = channel_timeout_seconds
        self.explicit_window = explicit_window
        self.derived_window = derived_window
        self._channel_executor = ThreadPoolExecutor(
            max_workers=channel_workers, thread_name_prefix="channel"
        )
        self._channel_tally: Counter[str] = Counter()
        self._tally_lock = threading.Lock()

    @property
    def worker_name(self) -> str:
        return "NotificationDispatcher"

    # -------------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------------

    def run(self, now: datetime) -> WorkerResult:
        with self._tally_lock:
            self._channel_tally = Counter()
        result = super().run(now)
        with self._tally_lock:
            result.metadata["channels"] = dict(self._channel_tally)
        return result

    def dispatch(self, notification: Notification, now: datetime | None = None) -> DispatchOutcome:
        """Claim and deliver a single notification outside the tick.

        Used for instant notifications. Returns an unclaimed outcome if the
        notification was already handled.
        """
        now = now or self.clock.now()
        with self.session_factory() as session:
            if not self.mark_processing(session, notification, now):
                return DispatchOutcome(notification_id=notification.id, claimed=False)
            try:
                return self._deliver(session, notification, now)
            except Exception as e:
                session.rollback()
                self.mark_failed(session, notification, str(e), now)
                raise

    def close(self) -> None:
        """Stop the channel executor and release channel resources."""
        self._channel_executor.shutdown(wait=True)
        self.email_channel.close()

    # -------------------------------------------------------------------------
    # WorkerBase lifecycle
    # -------------------------------------------------------------------------

    def fetch_pending(self, session: Session, now: datetime) -> list[Notification]:
        return self.store.due(session, now, limit=self.batch_size)

    def mark_processing(self, session: Session, item: Notification, now: datetime) -> bool:
        """Claim the notification by writing ``sent_at``.

        Uses a conditional update so concurrent claims have one winner.
        """
        return self.store.claim(session, item.id, now)

    def process_item(self, session: Session, item: Notification, now: datetime) -> None:
        self._deliver(session, item, now)

    def mark_completed(self, session: Session, item: Notification, now: datetime) -> None:
        # Outcomes are recorded by _deliver; sent_at was written by the claim
        pass

    def mark_failed(
        self, session: Session, item: Notification, error: str, now: datetime
    ) -> None:
        """Record an unexpected failure after the claim.

        The notification stays claimed; it will not be retried.
        """
        self.store.record_outcome(
            session,
            item.id,
            push_status=ChannelStatus.FAILED,
            email_status=ChannelStatus.FAILED,
            error=error,
        )

    def get_item_id(self, item: Notification) -> UUID:
        return item.id

    # -------------------------------------------------------------------------
    # Delivery
    # -------------------------------------------------------------------------

    def _deliver(self, session: Session, notification: Notification, now: datetime) -> DispatchOutcome:
        outcome = DispatchOutcome(notification_id=notification.id, claimed=True)

        # Both legs share one deadline measured from the first submit
        deadline = time.monotonic() + self.channel_timeout_seconds
        push_future = self._channel_executor.submit(
            self.push_channel.broadcast,
            notification.user_id,
            self._push_payload(notification, now),
        )

        email_future: Future | None = None
        if notification.kind.sends_email:
            try:
                target = self._resolve_email_target(notification, now)
            except _SkipEmail as skip:
                outcome.email_status = ChannelStatus.SKIPPED
                outcome.email_skip_reason = str(skip)
            except Exception as e:
                # Task store or user directory unavailable
                outcome.email_status = ChannelStatus.FAILED
                outcome.errors.append(f"[email] {e}")
                logger.warning(
                    "Could not resolve email target",
                    extra={"notification_id": str(notification.id), "error": str(e)},
                )
            else:
                email_future = self._channel_executor.submit(
                    self.email_channel.send_reminder, target.address, target.task
                )
        else:
            outcome.email_status = ChannelStatus.SKIPPED
            outcome.email_skip_reason = "kind_not_emailed"

        legs = [push_future] if email_future is None else [push_future, email_future]
        wait(legs, timeout=max(0.0, deadline - time.monotonic()))

        outcome.push_status = self._leg_status(self.push_channel.name, push_future, notification, outcome)
        if email_future is not None:
            outcome.email_status = self._leg_status(
                self.email_channel.name, email_future, notification, outcome
            )

        self.store.record_outcome(
            session,
            notification.id,
            push_status=outcome.push_status,
            email_status=outcome.email_status,
            error="; ".join(outcome.errors) or None,
        )

        with self._tally_lock:
            self._channel_tally[f"push_{outcome.push_status.value}"] += 1
            self._channel_tally[f"email_{outcome.email_status.value}"] += 1

        logger.info(
            "Notification dispatched",
            extra={"user_id": str(notification.user_id), **outcome.to_dict()},
        )
        return outcome

    def _leg_status(
        self,
        channel: str,
        future: Future,
        notification: Notification,
        outcome: DispatchOutcome,
    ) -> ChannelStatus:
        """Status of a leg once the shared deadline has passed or all legs finished."""
        error: ChannelError
        if not future.done():
            future.cancel()
            error = ChannelTimeoutError(
                channel, f"no response within {self.channel_timeout_seconds}s"
            )
        else:
            exc = future.exception()
            if exc is None:
                return ChannelStatus.SENT
            if isinstance(exc, ChannelError):
                error = exc
            else:
                error = ChannelError(channel, str(exc) or exc.__class__.__name__)

        outcome.errors.append(str(error))
        logger.warning(
            "Channel delivery failed",
            extra={
                "notification_id": str(notification.id),
                "channel": channel,
                "error": str(error),
            },
        )
        return ChannelStatus.FAILED

    def _resolve_email_target(self, notification: Notification, now: datetime) -> _EmailTarget:
        """Decide whether the email leg applies and to whom.

        Raises:
            _SkipEmail: With the reason the email leg is skipped
            TaskStoreError: If the task store is unreachable
        """
        if notification.task_id is None:
            raise _SkipEmail("no_task")

        try:
            task = self.task_store.get_task(notification.task_id)
        except TaskNotFoundError:
            logger.warning(
                "Notification references a missing task",
                extra={
                    "notification_id": str(notification.id),
                    "task_id": str(notification.task_id),
                },
            )
            raise _SkipEmail("task_not_found")

        if task.status == TaskStatus.COMPLETED:
            raise _SkipEmail("task_completed")

        if not self._within_send_window(notification, task, now):
            raise _SkipEmail("outside_send_window")

        address = self.user_directory.get_email(notification.user_id)
        if not address:
            raise _SkipEmail("no_email_address")

        return _EmailTarget(address=address, task=task)

    def _within_send_window(self, notification: Notification, task: Task, now: datetime) -> bool:
        """Re-check the reminder against the task as it is now."""
        tier = notification.reminder_tier
        if tier is None:
            intended: datetime | None = notification.scheduled_for
            tolerance = self.explicit_window
        else:
            intended = self.planner.intended_trigger(task, tier)
            tolerance = self.explicit_window if tier == EXPLICIT_TIER else self.derived_window

        if intended is None:
            return False
        return abs(now - intended) <= tolerance

    def _push_payload(self, notification: Notification, now: datetime) -> dict[str, Any]:
        return {
            "type": "notification",
            "data": {
                "id": str(notification.id),
                "message": notification.message,
                "type": notification.kind.value,
                "icon": notification.kind.icon,
                "task_id": str(notification.task_id) if notification.task_id else None,
                "timestamp": now.isoformat(),
            },
        }
