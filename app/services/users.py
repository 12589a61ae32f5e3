"""User directory lookups used to resolve email targets."""

from abc import ABC, abstractmethod
from uuid import UUID

from app.db.session import SessionFactory
from app.models.user import User


class UserDirectory(ABC):
    """Contract for resolving a user's email address."""

    @abstractmethod
    def get_email(self, user_id: UUID) -> str | None:
        """Return the address, or None when the user has no usable email."""


class SQLUserDirectory(UserDirectory):
    """User directory backed by the ``users`` table."""

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def get_email(self, user_id: UUID) -> str | None:
        with self._session_factory() as session:
            user = session.get(User, user_id)
            if user is None or not user.email:
                return None
            return user.email.strip() or None
