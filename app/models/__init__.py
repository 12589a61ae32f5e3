"""SQLModel entities for the reminder engine."""

from app.models.notification import (
    ChannelStatus,
    Notification,
    NotificationCreate,
    NotificationKind,
    NotificationListResponse,
    NotificationResponse,
)
from app.models.streak import StreakResponse, StreakStats, UserStreakState
from app.models.task import Priority, Task, TaskStatus
from app.models.user import User

__all__ = [
    "User",
    "Task",
    "Priority",
    "TaskStatus",
    "Notification",
    "NotificationKind",
    "ChannelStatus",
    "NotificationCreate",
    "NotificationResponse",
    "NotificationListResponse",
    "UserStreakState",
    "StreakResponse",
    "StreakStats",
]
