"""Reminder planning for tasks with deadlines.

This module turns a task into the set of reminder notifications it needs:
1. Each priority maps to a fixed ladder of offsets before the deadline
2. Each offset is its own tier and is deduplicated independently
3. An explicit ``reminder_time`` on the task is one more tier ("explicit")

Planning is pure (``plan``); persistence (``plan_and_persist``) only adds
notifications for tiers that have no unsent reminder yet, so re-running it
on an already planned task is a no-op.
"""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from sqlmodel import Session

from app.models.notification import Notification, NotificationKind
from app.models.task import Priority, Task, TaskStatus
from app.services.notifications import NotificationStore

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Offset ladders
# -----------------------------------------------------------------------------

EXPLICIT_TIER = "explicit"

REMINDER_OFFSETS: dict[Priority, tuple[timedelta, ...]] = {
    Priority.HIGH: (timedelta(hours=24), timedelta(hours=4), timedelta(minutes=30)),
    Priority.MEDIUM: (timedelta(hours=24), timedelta(hours=2)),
    Priority.LOW: (timedelta(hours=4),),
}
DEFAULT_OFFSETS: tuple[timedelta, ...] = (timedelta(hours=2),)


def tier_for_offset(offset: timedelta) -> str:
    """Name a tier after its offset: 24h, 4h, 30m."""
    total_minutes = int(offset.total_seconds() // 60)
    if total_minutes % 60 == 0:
        return f"{total_minutes // 60}h"
    return f"{total_minutes}m"


def offset_for_tier(tier: str) -> timedelta | None:
    """Inverse of ``tier_for_offset``; None for the explicit tier or junk."""
    if len(tier) < 2 or not tier[:-1].isdigit():
        return None
    value = int(tier[:-1])
    if tier.endswith("h"):
        return timedelta(hours=value)
    if tier.endswith("m"):
        return timedelta(minutes=value)
    return None


def format_deadline(deadline: datetime, reference: datetime) -> str:
    """Describe ``deadline`` relative to ``reference`` ("tomorrow", "in 4 hours")."""
    diff = deadline - reference
    minutes = int(diff.total_seconds() // 60)
    hours = minutes // 60
    days = hours // 24

    if days > 1:
        return f"in {days} days"
    if days == 1:
        return "tomorrow"
    if hours > 1:
        return f"in {hours} hours"
    if hours == 1:
        return "in 1 hour"
    if minutes > 1:
        return f"in {minutes} minutes"
    return "very soon"


# -----------------------------------------------------------------------------
# Reminder Candidate Types
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class ReminderCandidate:
    """A reminder that should exist but hasn't been persisted yet."""

    task_id: UUID
    user_id: UUID
    tier: str
    remind_at: datetime
    message: str

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "task_id": str(self.task_id),
            "user_id": str(self.user_id),
            "tier": self.tier,
            "remind_at": self.remind_at.isoformat(),
            "message": self.message,
        }


# -----------------------------------------------------------------------------
# Reminder Planner
# -----------------------------------------------------------------------------


class ReminderPlanner:
    """Derives reminder trigger times from a task's deadline and priority.

    Thread Safety: holds only immutable configuration; safe to share.
    """

    def __init__(
        self,
        offsets: Mapping[Priority, Iterable[timedelta]] | None = None,
        default_offsets: Iterable[timedelta] | None = None,
        store: NotificationStore | None = None,
    ) -> None:
        source = REMINDER_OFFSETS if offsets is None else offsets
        self._offsets = {priority: tuple(ladder) for priority, ladder in source.items()}
        self._default_offsets = tuple(
            DEFAULT_OFFSETS if default_offsets is None else default_offsets
        )
        self._store = store or NotificationStore()

    def offsets_for(self, priority: Priority | None) -> tuple[timedelta, ...]:
        """Offset ladder for a priority; unknown or missing gets the default."""
        if priority is None:
            return self._default_offsets
        return self._offsets.get(priority, self._default_offsets)

    def tiers_for(self, priority: Priority | None) -> set[str]:
        return {tier_for_offset(offset) for offset in self.offsets_for(priority)}

    def is_plannable(self, task: Task) -> bool:
        return task.deadline is not None and task.status != TaskStatus.COMPLETED

    def plan(
        self,
        task: Task,
        now: datetime,
        existing_tiers: Iterable[str] = (),
    ) -> list[ReminderCandidate]:
        """Compute the reminders ``task`` still needs as of ``now``.

        Args:
            task: The task to plan for
            now: Plan time; only triggers strictly after it are emitted
            existing_tiers: Tiers that already have an unsent reminder

        Returns:
            Candidates ordered by trigger time
        """
        if not self.is_plannable(task):
            return []

        skip = set(existing_tiers)
        candidates: list[ReminderCandidate] = []

        for offset in self.offsets_for(task.priority):
            tier = tier_for_offset(offset)
            remind_at = task.deadline - offset
            if tier in skip or remind_at <= now:
                continue
            skip.add(tier)
            candidates.append(self._candidate(task, tier, remind_at))

        if (
            task.reminder_time is not None
            and EXPLICIT_TIER not in skip
            and task.reminder_time > now
        ):
            candidates.append(self._candidate(task, EXPLICIT_TIER, task.reminder_time))

        candidates.sort(key=lambda c: c.remind_at)
        return candidates

    def plan_and_persist(
        self,
        session: Session,
        task: Task,
        now: datetime,
    ) -> list[Notification]:
        """Plan ``task`` and add notifications for the missing tiers.

        The caller owns the transaction; nothing is committed here.
        """
        if not self.is_plannable(task):
            return []

        existing = self._store.unsent_reminder_tiers(session, task.id)
        created: list[Notification] = []

        for candidate in self.plan(task, now, existing_tiers=existing):
            notification = self._store.create(
                session,
                user_id=candidate.user_id,
                task_id=candidate.task_id,
                kind=NotificationKind.REMINDER,
                message=candidate.message,
                scheduled_for=candidate.remind_at,
                reminder_tier=candidate.tier,
                created_at=now,
            )
            created.append(notification)

        if created:
            logger.info(
                "Reminders planned",
                extra={
                    "task_id": str(task.id),
                    "tiers": [n.reminder_tier for n in created],
                },
            )
        return created

    def intended_trigger(self, task: Task, tier: str) -> datetime | None:
        """Where ``tier`` would fire for the task as it looks right now.

        Returns None when the tier no longer applies (deadline removed,
        explicit time cleared, or priority changed so the tier left the ladder).
        """
        if tier == EXPLICIT_TIER:
            return task.reminder_time

        offset = offset_for_tier(tier)
        if offset is None or task.deadline is None:
            return None
        if offset not in self.offsets_for(task.priority):
            return None
        return task.deadline - offset

    def _candidate(self, task: Task, tier: str, remind_at: datetime) -> ReminderCandidate:
        when = format_deadline(task.deadline, remind_at)
        message = f'Reminder: "{task.title}" is due {when}'

        return ReminderCandidate(
            task_id=task.id,
            user_id=task.user_id,
            tier=tier,
            remind_at=remind_at,
            message=message,
        )


# -----------------------------------------------------------------------------
# Singleton Planner Instance
# -----------------------------------------------------------------------------

_planner_instance: ReminderPlanner | None = None


def get_reminder_planner() -> ReminderPlanner:
    """Get or create the reminder planner singleton.

    Returns:
        ReminderPlanner: The singleton planner instance
    """
    global _planner_instance
    if _planner_instance is None:
        _planner_instance = ReminderPlanner()
    return _planner_instance
