"""Notification store for the reminder engine.

Owns every planned and dispatched notification. Besides plain CRUD it
provides the two primitives the scheduler relies on:

1. ``due()`` - the due scan, oldest first
2. ``claim()`` - the conditional ``sent_at`` write that makes dispatch
   exactly-once even when ticks overlap or a scan is repeated after a crash

All methods take the caller's session; ``claim`` and ``record_outcome``
commit because the claim has to be durable before any channel is called.
"""

import logging
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import delete as sa_delete, update
from sqlmodel import Session, func, select

from app.models.notification import ChannelStatus, Notification, NotificationKind

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 500


class NotificationStore:
    """Persistence operations on the ``notifications`` table.

    Thread Safety: stateless; every call runs in the session it is given.
    """

    def create(
        self,
        session: Session,
        user_id: UUID,
        message: str,
        kind: NotificationKind,
        scheduled_for: datetime,
        task_id: UUID | None = None,
        reminder_tier: str | None = None,
        created_at: datetime | None = None,
    ) -> Notification:
        """Add a new unsent notification to the session (flushed, not committed)."""
        notification = Notification(
            user_id=user_id,
            task_id=task_id,
            kind=kind,
            message=message,
            scheduled_for=scheduled_for,
            reminder_tier=reminder_tier,
        )
        if created_at is not None:
            notification.created_at = created_at
        session.add(notification)
        session.flush()
        return notification

    def get(self, session: Session, notification_id: UUID) -> Notification | None:
        return session.get(Notification, notification_id)

    def unsent_reminder_tiers(self, session: Session, task_id: UUID) -> set[str]:
        """Tiers that already have an unsent reminder for ``task_id``."""
        tiers = session.exec(
            select(Notification.reminder_tier)
            .where(Notification.task_id == task_id)
            .where(Notification.kind == NotificationKind.REMINDER)
            .where(Notification.sent_at == None)  # noqa: E711
        ).all()
        return {tier for tier in tiers if tier is not None}

    def due(
        self,
        session: Session,
        now: datetime,
        limit: int | None = None,
    ) -> list[Notification]:
        """Notifications scheduled at or before ``now`` and not yet sent.

        Ordered oldest first so a backlog drains in trigger order.
        """
        query = (
            select(Notification)
            .where(Notification.scheduled_for <= now)
            .where(Notification.sent_at == None)  # noqa: E711
            .order_by(Notification.scheduled_for, Notification.created_at)
        )
        if limit is not None:
            query = query.limit(limit)
        return list(session.exec(query).all())

    def claim(self, session: Session, notification_id: UUID, now: datetime) -> bool:
        """Atomically set ``sent_at`` if it is still unset.

        Returns:
            True if this caller won the claim, False if someone else already
            handled the notification (or it no longer exists).
        """
        result = session.exec(  # type: ignore[call-overload]
            update(Notification)
            .where(Notification.id == notification_id)
            .where(Notification.sent_at == None)  # noqa: E711
            .values(sent_at=now)
        )
        session.commit()
        return result.rowcount == 1

    def record_outcome(
        self,
        session: Session,
        notification_id: UUID,
        push_status: ChannelStatus,
        email_status: ChannelStatus,
        error: str | None = None,
    ) -> None:
        """Persist per-channel outcomes. Never touches ``sent_at``."""
        session.exec(  # type: ignore[call-overload]
            update(Notification)
            .where(Notification.id == notification_id)
            .values(
                push_status=push_status,
                email_status=email_status,
                last_error=error[:MAX_ERROR_LENGTH] if error else None,
            )
        )
        session.commit()

    def list_for_user(
        self,
        session: Session,
        user_id: UUID,
        unread_only: bool = False,
        kind: NotificationKind | None = None,
        limit: int | None = 50,
    ) -> list[Notification]:
        query = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            query = query.where(Notification.is_read == False)  # noqa: E712
        if kind is not None:
            query = query.where(Notification.kind == kind)
        query = query.order_by(Notification.created_at.desc())
        if limit is not None:
            query = query.limit(limit)
        return list(session.exec(query).all())

    def mark_read(self, session: Session, notification_id: UUID) -> Notification | None:
        notification = session.get(Notification, notification_id)
        if notification is None:
            return None
        if not notification.is_read:
            notification.is_read = True
            session.add(notification)
            session.commit()
            session.refresh(notification)
        return notification

    def mark_all_read(self, session: Session, user_id: UUID) -> int:
        result = session.exec(  # type: ignore[call-overload]
            update(Notification)
            .where(Notification.user_id == user_id)
            .where(Notification.is_read == False)  # noqa: E712
            .values(is_read=True)
        )
        session.commit()
        return result.rowcount

    def delete(self, session: Session, notification_id: UUID) -> bool:
        notification = session.get(Notification, notification_id)
        if notification is None:
            return False
        session.delete(notification)
        session.commit()
        return True

    def unread_count(self, session: Session, user_id: UUID) -> int:
        return session.exec(
            select(func.count())
            .select_from(Notification)
            .where(Notification.user_id == user_id)
            .where(Notification.is_read == False)  # noqa: E712
        ).one()

    def cleanup_older_than(self, session: Session, days: int, now: datetime) -> int:
        """Delete read notifications created more than ``days`` ago."""
        if days < 0:
            raise ValueError("days must be non-negative")

        cutoff = now - timedelta(days=days)
        result = session.exec(  # type: ignore[call-overload]
            sa_delete(Notification)
            .where(Notification.created_at < cutoff)
            .where(Notification.is_read == True)  # noqa: E712
        )
        session.commit()

        if result.rowcount:
            logger.info(
                "Old notifications cleaned up",
                extra={"deleted": result.rowcount, "cutoff": cutoff.isoformat()},
            )
        return result.rowcount
