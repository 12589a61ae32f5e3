"""UserStreakState entity model."""

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel


class UserStreakState(SQLModel, table=True):
    """Per-user activity streak, created lazily on first activity."""

    __tablename__ = "user_streaks"

    user_id: UUID = Field(primary_key=True)
    current_streak: int = Field(default=0, ge=0)
    longest_streak: int = Field(default=0, ge=0)
    last_activity_date: date | None = Field(default=None)
    total_days_active: int = Field(default=0, ge=0)
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_type=DateTime)


class StreakResponse(SQLModel):
    """Schema for streak response."""

    user_id: UUID
    current_streak: int
    longest_streak: int
    last_activity_date: date | None
    total_days_active: int

    model_config = {"from_attributes": True}


class StreakUpdateResponse(StreakResponse):
    """Schema for the result of recording an activity."""

    streak_updated: bool


class StreakStats(SQLModel):
    """Aggregate streak statistics across users."""

    total_users: int = 0
    avg_current_streak: float = 0.0
    max_current_streak: int = 0
    avg_longest_streak: float = 0.0
    max_longest_streak: int = 0
    avg_days_active: float = 0.0
