"""Reminder engine schema - notifications and user streaks.

Revision ID: 001
Revises: None
Create Date: 2026-10-19

This migration adds the tables owned by the reminder engine:
- notifications: planned reminders and instant notifications, with the
  claim column (sent_at) and per-channel outcomes
- user_streaks: per-user activity streak state

The tasks and users tables belong to the task tracker and are not touched.
"""
from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Enum labels match the Python member names SQLModel persists
    op.execute("CREATE TYPE notificationkind AS ENUM ('REMINDER', 'INFO', 'SUCCESS', 'WARNING', 'ERROR')")
    op.execute("CREATE TYPE channelstatus AS ENUM ('PENDING', 'SENT', 'FAILED', 'SKIPPED')")

    # Create notifications table (task_id is a weak reference, no foreign key)
    op.execute("""
        CREATE TABLE IF NOT EXISTS notifications (
            id UUID PRIMARY KEY,
            user_id UUID NOT NULL,
            task_id UUID,
            kind notificationkind NOT NULL DEFAULT 'INFO',
            message VARCHAR(1000) NOT NULL,
            reminder_tier VARCHAR(20),
            scheduled_for TIMESTAMP NOT NULL,
            sent_at TIMESTAMP,
            is_read BOOLEAN NOT NULL DEFAULT FALSE,
            push_status channelstatus NOT NULL DEFAULT 'PENDING',
            email_status channelstatus NOT NULL DEFAULT 'PENDING',
            last_error VARCHAR(500),
            created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
        );
        CREATE INDEX IF NOT EXISTS ix_notifications_user_id ON notifications(user_id);
        CREATE INDEX IF NOT EXISTS ix_notifications_task_id ON notifications(task_id);
        CREATE INDEX IF NOT EXISTS ix_notifications_scheduled_for ON notifications(scheduled_for);
        CREATE INDEX IF NOT EXISTS ix_notifications_sent_at ON notifications(sent_at);
        CREATE INDEX IF NOT EXISTS ix_notifications_is_read ON notifications(is_read);
        CREATE UNIQUE INDEX IF NOT EXISTS uq_notifications_unsent_tier
            ON notifications(task_id, reminder_tier)
            WHERE sent_at IS NULL AND reminder_tier IS NOT NULL;
    """)

    # Create user_streaks table
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_streaks (
            user_id UUID PRIMARY KEY,
            current_streak INTEGER NOT NULL DEFAULT 0 CHECK (current_streak >= 0),
            longest_streak INTEGER NOT NULL DEFAULT 0 CHECK (longest_streak >= 0),
            last_activity_date DATE,
            total_days_active INTEGER NOT NULL DEFAULT 0 CHECK (total_days_active >= 0),
            updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
        );
    """)


def downgrade() -> None:
    # Drop tables in reverse order
    op.execute("DROP TABLE IF EXISTS user_streaks CASCADE")
    op.execute("DROP TABLE IF EXISTS notifications CASCADE")

    op.execute("DROP TYPE IF EXISTS channelstatus")
    op.execute("DROP TYPE IF EXISTS notificationkind")
