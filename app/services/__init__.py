"""Services for the reminder engine.

Services:
- reminders.py: Reminder planning (offset ladders, dedup per tier)
- notifications.py: Notification store, due scan and dispatch claim
- streaks.py: Per-user activity streak tracking
- tasks.py: Read-only task store contract
- users.py: User directory for email resolution
"""

from app.services.notifications import NotificationStore
from app.services.reminders import ReminderCandidate, ReminderPlanner, get_reminder_planner
from app.services.streaks import BackdatedActivityError, StreakTracker, StreakUpdate
from app.services.tasks import SQLTaskStore, TaskNotFoundError, TaskStore, TaskStoreError
from app.services.users import SQLUserDirectory, UserDirectory

__all__ = [
    "NotificationStore",
    "ReminderCandidate",
    "ReminderPlanner",
    "get_reminder_planner",
    "StreakTracker",
    "StreakUpdate",
    "BackdatedActivityError",
    "TaskStore",
    "SQLTaskStore",
    "TaskStoreError",
    "TaskNotFoundError",
    "UserDirectory",
    "SQLUserDirectory",
]
