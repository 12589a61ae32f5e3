"""Per-user activity streak tracking.

State machine over ``last_activity_date`` (L) and the activity day (T):

    L is None        -> current = 1, total = 1
    T == L           -> no-op (streak_updated = False)
    T - L == 1 day   -> current += 1, total += 1
    T - L  > 1 day   -> current = 1, total += 1
    T < L            -> BackdatedActivityError, state unchanged

``longest_streak`` follows ``current_streak`` upward and never drops.
Updates for one user are serialized by a per-user lock; different users
never contend.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import date
from uuid import UUID

from sqlmodel import func, select

from app.clock import Clock, SystemClock
from app.config import get_settings
from app.db.session import SessionFactory
from app.models.streak import StreakStats, UserStreakState

logger = logging.getLogger(__name__)


class BackdatedActivityError(ValueError):
    """Activity dated before the user's last recorded activity day."""

    def __init__(self, user_id: UUID, activity_date: date, last_activity_date: date) -> None:
        super().__init__(
            f"Activity on {activity_date.isoformat()} for user {user_id} is before "
            f"last activity on {last_activity_date.isoformat()}"
        )
        self.user_id = user_id
        self.activity_date = activity_date
        self.last_activity_date = last_activity_date


@dataclass
class StreakUpdate:
    """Result of ``record_activity``."""

    state: UserStreakState
    streak_updated: bool


class StreakTracker:
    """Maintains ``UserStreakState`` rows from activity events."""

    def __init__(
        self,
        session_factory: SessionFactory,
        clock: Clock | None = None,
        reset_on_read: bool | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._reset_on_read = (
            get_settings().STREAK_RESET_ON_READ if reset_on_read is None else reset_on_read
        )
        self._locks: dict[UUID, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, user_id: UUID) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[user_id] = lock
            return lock

    def record_activity(
        self,
        user_id: UUID,
        activity_date: date | None = None,
    ) -> StreakUpdate:
        """Record that ``user_id`` was active on ``activity_date`` (default: today).

        Raises:
            BackdatedActivityError: If the date is before the last activity day
        """
        today = activity_date or self._clock.today()

        with self._lock_for(user_id), self._session_factory() as session:
            state = session.get(UserStreakState, user_id, with_for_update=True)
            if state is None:
                state = UserStreakState(user_id=user_id)

            last = state.last_activity_date
            if last is None:
                state.current_streak = 1
                state.total_days_active = 1
            else:
                gap = (today - last).days
                if gap < 0:
                    logger.warning(
                        "Rejected backdated activity",
                        extra={
                            "user_id": str(user_id),
                            "activity_date": today.isoformat(),
                            "last_activity_date": last.isoformat(),
                        },
                    )
                    raise BackdatedActivityError(user_id, today, last)
                if gap == 0:
                    return StreakUpdate(state=state, streak_updated=False)
                if gap == 1:
                    state.current_streak += 1
                else:
                    state.current_streak = 1
                state.total_days_active += 1

            state.longest_streak = max(state.longest_streak, state.current_streak)
            state.last_activity_date = today
            state.updated_at = self._clock.now()
            session.add(state)
            session.commit()
            session.refresh(state)

            logger.debug(
                "Streak updated",
                extra={
                    "user_id": str(user_id),
                    "current_streak": state.current_streak,
                    "longest_streak": state.longest_streak,
                },
            )
            return StreakUpdate(state=state, streak_updated=True)

    def check_and_reset(self, user_id: UUID) -> bool:
        """Zero ``current_streak`` if the user has missed more than a day.

        Returns:
            True if the streak was reset
        """
        today = self._clock.today()

        with self._lock_for(user_id), self._session_factory() as session:
            state = session.get(UserStreakState, user_id, with_for_update=True)
            if state is None or state.last_activity_date is None:
                return False

            gap = (today - state.last_activity_date).days
            if gap > 1 and state.current_streak > 0:
                state.current_streak = 0
                state.updated_at = self._clock.now()
                session.add(state)
                session.commit()
                logger.info(
                    "Streak reset after inactivity",
                    extra={"user_id": str(user_id), "days_inactive": gap},
                )
                return True

            return False

    def get_streak(self, user_id: UUID) -> UserStreakState:
        """Current streak state; an unsaved zero state for unknown users."""
        if self._reset_on_read:
            self.check_and_reset(user_id)

        with self._session_factory() as session:
            state = session.get(UserStreakState, user_id)
            if state is None:
                return UserStreakState(user_id=user_id)
            return state

    def get_streak_stats(self) -> StreakStats:
        """Aggregate streak statistics across all tracked users."""
        with self._session_factory() as session:
            row = session.exec(
                select(
                    func.count(),
                    func.avg(UserStreakState.current_streak),
                    func.max(UserStreakState.current_streak),
                    func.avg(UserStreakState.longest_streak),
                    func.max(UserStreakState.longest_streak),
                    func.avg(UserStreakState.total_days_active),
                )
            ).one()

        total, avg_current, max_current, avg_longest, max_longest, avg_days = row
        return StreakStats(
            total_users=total or 0,
            avg_current_streak=float(avg_current or 0),
            max_current_streak=max_current or 0,
            avg_longest_streak=float(avg_longest or 0),
            max_longest_streak=max_longest or 0,
            avg_days_active=float(avg_days or 0),
        )
