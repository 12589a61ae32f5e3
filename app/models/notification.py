"""Notification entity model.

A notification row is both the planned reminder and the record of its
delivery: ``sent_at`` is the sent/unsent discriminator and the per-channel
status columns record what happened on each leg.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Index, text
from sqlmodel import Field, SQLModel


class NotificationKind(str, Enum):
    """Notification kinds and their delivery behavior."""

    REMINDER = "reminder"
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"

    @property
    def sends_email(self) -> bool:
        """Only reminders go out over email; everything else is push-only."""
        return self is NotificationKind.REMINDER

    @property
    def email_subject_prefix(self) -> str:
        return {
            NotificationKind.REMINDER: "Task Reminder",
            NotificationKind.INFO: "Smart Todo Notification",
            NotificationKind.SUCCESS: "Task Update",
            NotificationKind.WARNING: "Task Alert",
            NotificationKind.ERROR: "Task Issue",
        }[self]

    @property
    def icon(self) -> str:
        return {
            NotificationKind.REMINDER: "🔔",
            NotificationKind.INFO: "💡",
            NotificationKind.SUCCESS: "✅",
            NotificationKind.WARNING: "⚠️",
            NotificationKind.ERROR: "❌",
        }[self]


class ChannelStatus(str, Enum):
    """Outcome of one delivery leg."""

    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"


class Notification(SQLModel, table=True):
    """Notification database model."""

    __tablename__ = "notifications"
    __table_args__ = (
        # At most one unsent reminder per (task, tier)
        Index(
            "uq_notifications_unsent_tier",
            "task_id",
            "reminder_tier",
            unique=True,
            sqlite_where=text("sent_at IS NULL AND reminder_tier IS NOT NULL"),
            postgresql_where=text("sent_at IS NULL AND reminder_tier IS NOT NULL"),
        ),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: UUID = Field(index=True)
    # Weak reference: tasks can disappear underneath us
    task_id: UUID | None = Field(default=None, index=True)
    kind: NotificationKind = Field(default=NotificationKind.INFO)
    message: str = Field(max_length=1000)
    reminder_tier: str | None = Field(default=None, max_length=20)
    scheduled_for: datetime = Field(index=True, sa_type=DateTime)
    sent_at: datetime | None = Field(default=None, index=True, sa_type=DateTime)
    is_read: bool = Field(default=False, index=True)
    push_status: ChannelStatus = Field(default=ChannelStatus.PENDING)
    email_status: ChannelStatus = Field(default=ChannelStatus.PENDING)
    last_error: str | None = Field(default=None, max_length=500)
    created_at: datetime = Field(default_factory=datetime.utcnow, sa_type=DateTime)


class NotificationCreate(SQLModel):
    """Schema for ad-hoc notification creation."""

    task_id: UUID | None = None
    message: str = Field(min_length=1, max_length=1000)
    kind: NotificationKind = NotificationKind.INFO


class NotificationResponse(SQLModel):
    """Schema for notification response."""

    id: UUID
    user_id: UUID
    task_id: UUID | None
    kind: NotificationKind
    message: str
    reminder_tier: str | None
    scheduled_for: datetime
    sent_at: datetime | None
    is_read: bool
    push_status: ChannelStatus
    email_status: ChannelStatus
    created_at: datetime

    model_config = {"from_attributes": True}


class NotificationListResponse(SQLModel):
    """Schema for notification list response."""

    notifications: list[NotificationResponse]
    total: int
