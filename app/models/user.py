"""User entity model.

The engine resolves email addresses from this table; account management
lives elsewhere.
"""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel


class User(SQLModel, table=True):
    """User database model."""

    __tablename__ = "users"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    email: str | None = Field(default=None, max_length=255, index=True)
    created_at: datetime = Field(default_factory=datetime.utcnow, sa_type=DateTime)
