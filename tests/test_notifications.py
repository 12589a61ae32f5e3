"""Tests for the notification store.

Tests cover:
- Due scan ordering and filtering
- The exactly-once claim (including concurrent claimers)
- Outcome recording never rewriting sent_at
- Read state, deletion, counts and retention cleanup
"""

import threading
from datetime import timedelta
from uuid import uuid4

import pytest
from sqlmodel import Session

from app.models.notification import ChannelStatus, Notification, NotificationKind
from app.services.notifications import NotificationStore
from tests.fakes import NOW


def _create(
    session: Session,
    store: NotificationStore,
    user_id,
    scheduled_for=NOW,
    kind=NotificationKind.INFO,
    message="Hello",
    **kwargs,
) -> Notification:
    notification = store.create(
        session,
        user_id=user_id,
        message=message,
        kind=kind,
        scheduled_for=scheduled_for,
        **kwargs,
    )
    session.commit()
    session.refresh(notification)
    return notification


class TestDueScan:
    """Tests for NotificationStore.due."""

    def test_due_returns_unsent_past_notifications_oldest_first(self, db_session, store, test_user):
        later = _create(db_session, store, test_user.id, scheduled_for=NOW - timedelta(minutes=1))
        earlier = _create(db_session, store, test_user.id, scheduled_for=NOW - timedelta(hours=1))
        exact = _create(db_session, store, test_user.id, scheduled_for=NOW)
        _create(db_session, store, test_user.id, scheduled_for=NOW + timedelta(minutes=1))

        due = store.due(db_session, NOW)

        assert [n.id for n in due] == [earlier.id, later.id, exact.id]

    def test_due_excludes_sent(self, db_session, store, test_user):
        notification = _create(db_session, store, test_user.id)
        assert store.claim(db_session, notification.id, NOW)

        assert store.due(db_session, NOW) == []

    def test_due_respects_limit(self, db_session, store, test_user):
        for minutes in range(5):
            _create(db_session, store, test_user.id, scheduled_for=NOW - timedelta(minutes=minutes))

        assert len(store.due(db_session, NOW, limit=2)) == 2


class TestClaim:
    """Tests for the conditional sent_at write."""

    def test_first_claim_wins(self, db_session, store, test_user):
        notification = _create(db_session, store, test_user.id)

        assert store.claim(db_session, notification.id, NOW) is True
        assert store.claim(db_session, notification.id, NOW + timedelta(minutes=1)) is False

        db_session.refresh(notification)
        assert notification.sent_at == NOW

    def test_claim_of_missing_notification_fails(self, db_session, store):
        assert store.claim(db_session, uuid4(), NOW) is False

    def test_concurrent_claims_have_one_winner(self, session_factory, db_session, store, test_user):
        notification = _create(db_session, store, test_user.id)
        barrier = threading.Barrier(8)
        wins: list[bool] = []
        lock = threading.Lock()

        def claimer(offset: int) -> None:
            barrier.wait()
            with session_factory() as session:
                won = store.claim(session, notification.id, NOW + timedelta(seconds=offset))
            with lock:
                wins.append(won)

        threads = [threading.Thread(target=claimer, args=(i,)) for i in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert wins.count(True) == 1
        assert wins.count(False) == 7

    def test_record_outcome_keeps_sent_at(self, db_session, store, test_user):
        notification = _create(db_session, store, test_user.id)
        store.claim(db_session, notification.id, NOW)

        store.record_outcome(
            db_session,
            notification.id,
            push_status=ChannelStatus.SENT,
            email_status=ChannelStatus.FAILED,
            error="x" * 2000,
        )

        db_session.refresh(notification)
        assert notification.sent_at == NOW
        assert notification.push_status == ChannelStatus.SENT
        assert notification.email_status == ChannelStatus.FAILED
        assert len(notification.last_error) == 500


class TestReadState:
    """Tests for listing, read state, deletion and cleanup."""

    def test_list_for_user_filters(self, db_session, store, test_user):
        info = _create(db_session, store, test_user.id, message="info")
        reminder = _create(
            db_session, store, test_user.id, kind=NotificationKind.REMINDER, message="reminder"
        )
        _create(db_session, store, uuid4(), message="someone else")
        store.mark_read(db_session, info.id)

        assert {n.id for n in store.list_for_user(db_session, test_user.id)} == {info.id, reminder.id}
        assert [n.id for n in store.list_for_user(db_session, test_user.id, unread_only=True)] == [
            reminder.id
        ]
        assert [
            n.id for n in store.list_for_user(db_session, test_user.id, kind=NotificationKind.REMINDER)
        ] == [reminder.id]
        assert len(store.list_for_user(db_session, test_user.id, limit=1)) == 1

    def test_mark_read(self, db_session, store, test_user):
        notification = _create(db_session, store, test_user.id)

        updated = store.mark_read(db_session, notification.id)

        assert updated is not None
        assert updated.is_read is True
        assert store.mark_read(db_session, uuid4()) is None

    def test_mark_all_read_and_unread_count(self, db_session, store, test_user):
        for _ in range(3):
            _create(db_session, store, test_user.id)
        _create(db_session, store, uuid4())

        assert store.unread_count(db_session, test_user.id) == 3
        assert store.mark_all_read(db_session, test_user.id) == 3
        assert store.unread_count(db_session, test_user.id) == 0
        assert store.mark_all_read(db_session, test_user.id) == 0

    def test_delete(self, db_session, store, test_user):
        notification = _create(db_session, store, test_user.id)

        assert store.delete(db_session, notification.id) is True
        assert store.get(db_session, notification.id) is None
        assert store.delete(db_session, notification.id) is False

    def test_cleanup_deletes_only_old_read_notifications(self, db_session, store, test_user):
        old_read = _create(db_session, store, test_user.id)
        old_unread = _create(db_session, store, test_user.id)
        recent_read = _create(db_session, store, test_user.id)
        old_read.created_at = NOW - timedelta(days=40)
        old_unread.created_at = NOW - timedelta(days=40)
        recent_read.created_at = NOW - timedelta(days=2)
        db_session.add_all([old_read, old_unread, recent_read])
        db_session.commit()
        store.mark_read(db_session, old_read.id)
        store.mark_read(db_session, recent_read.id)

        deleted = store.cleanup_older_than(db_session, 30, NOW)

        assert deleted == 1
        assert store.get(db_session, old_read.id) is None
        assert store.get(db_session, old_unread.id) is not None
        assert store.get(db_session, recent_read.id) is not None

    def test_cleanup_rejects_negative_days(self, db_session, store):
        with pytest.raises(ValueError):
            store.cleanup_older_than(db_session, -1, NOW)

    def test_unsent_reminder_tiers(self, db_session, store, test_user):
        task_id = uuid4()
        sent = _create(
            db_session, store, test_user.id,
            kind=NotificationKind.REMINDER, task_id=task_id, reminder_tier="24h",
        )
        _create(
            db_session, store, test_user.id,
            kind=NotificationKind.REMINDER, task_id=task_id, reminder_tier="4h",
        )
        store.claim(db_session, sent.id, NOW)

        assert store.unsent_reminder_tiers(db_session, task_id) == {"4h"}
