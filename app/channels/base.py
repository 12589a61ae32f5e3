"""Delivery channel contracts.

Channels are best-effort: a failed delivery raises ``ChannelError`` and is
recorded by the dispatcher, never retried.
"""

from abc import ABC, abstractmethod
from typing import Any
from uuid import UUID

from app.models.task import Task


class ChannelError(Exception):
    """A channel failed to deliver."""

    def __init__(self, channel: str, message: str) -> None:
        super().__init__(f"[{channel}] {message}")
        self.channel = channel


class ChannelTimeoutError(ChannelError):
    """A channel call did not finish within its time budget."""


class PushChannel(ABC):
    """Live push to a user's connected clients."""

    name = "push"

    @abstractmethod
    def broadcast(self, user_id: UUID, payload: dict[str, Any]) -> None:
        """Send ``payload`` to every live connection of ``user_id``.

        No live connection is not an error; nothing is delivered.

        Raises:
            ChannelError: If delivery was attempted and failed
        """


class EmailChannel(ABC):
    """Reminder email delivery."""

    name = "email"

    @abstractmethod
    def send_reminder(self, address: str, task: Task) -> None:
        """Email a reminder about ``task`` to ``address``.

        Raises:
            ChannelError: If the provider rejected or could not be reached
        """

    def close(self) -> None:
        """Release any transport resources."""
