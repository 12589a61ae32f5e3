"""Email channel implementations.

``HTTPEmailChannel`` posts to an HTTP email API (Resend-compatible JSON).
``SimulatedEmailChannel`` only logs, for environments without a provider.
"""

import html
import logging

import httpx

from app.channels.base import ChannelError, ChannelTimeoutError, EmailChannel
from app.config import Settings
from app.models.notification import NotificationKind
from app.models.task import Priority, Task

logger = logging.getLogger(__name__)

PRIORITY_STYLES: dict[Priority | None, str] = {
    Priority.HIGH: "background-color: #fee2e2; color: #dc2626;",
    Priority.MEDIUM: "background-color: #fef3c7; color: #d97706;",
    Priority.LOW: "background-color: #dcfce7; color: #16a34a;",
}
DEFAULT_PRIORITY_STYLE = "background-color: #f3f4f6; color: #6b7280;"


def render_reminder_subject(
    task: Task, kind: NotificationKind = NotificationKind.REMINDER
) -> str:
    return f"{kind.email_subject_prefix}: {task.title}"


def render_reminder_html(task: Task, app_url: str) -> str:
    """Render the reminder email body."""
    deadline = task.deadline.strftime("%Y-%m-%d %H:%M UTC") if task.deadline else "No deadline set"
    priority = task.priority.value if task.priority else "None"
    status = task.status.value if task.status else ""
    description = (
        f'<p style="color: #64748b; line-height: 1.5;">{html.escape(task.description)}</p>'
        if task.description
        else ""
    )
    style = PRIORITY_STYLES.get(task.priority, DEFAULT_PRIORITY_STYLE)

    return f"""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
  <h1 style="color: #2563eb;">🔔 Task Reminder</h1>
  <div style="background-color: #f0f7ff; padding: 20px; border-left: 4px solid #2563eb;">
    <h2 style="color: #1e40af;">{html.escape(task.title)}</h2>
    {description}
    <p><strong>Priority:</strong> <span style="{style}">{html.escape(priority)}</span></p>
    <p><strong>Deadline:</strong> <span style="color: #dc2626;">{html.escape(deadline)}</span></p>
    <p><strong>Status:</strong> {html.escape(status)}</p>
  </div>
  <p style="text-align: center;">
    <a href="{html.escape(app_url, quote=True)}">Open Smart Todo App</a>
  </p>
</div>
""".strip()


class HTTPEmailChannel(EmailChannel):
    """Email delivery through an HTTP email API."""

    def __init__(
        self,
        api_url: str,
        api_key: str,
        sender: str,
        app_url: str,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the channel.

        Args:
            api_url: Endpoint accepting ``{"from", "to", "subject", "html"}``
            api_key: Bearer token for the provider
            sender: From address
            app_url: Link target in the email body
            timeout: Per-request timeout in seconds
            transport: Custom httpx transport (tests)
        """
        self.api_url = api_url
        self.api_key = api_key
        self.sender = sender
        self.app_url = app_url
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.Client | None = None

    @property
    def client(self) -> httpx.Client:
        """Lazy-initialize HTTP client."""
        if self._client is None:
            self._client = httpx.Client(
                timeout=self.timeout,
                headers={"Authorization": f"Bearer {self.api_key}"},
                transport=self._transport,
            )
        return self._client

    def send_reminder(self, address: str, task: Task) -> None:
        body = {
            "from": self.sender,
            "to": [address],
            "subject": render_reminder_subject(task),
            "html": render_reminder_html(task, self.app_url),
        }
        try:
            response = self.client.post(self.api_url, json=body)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise ChannelTimeoutError(self.name, f"email API timed out: {e}") from e
        except httpx.HTTPStatusError as e:
            raise ChannelError(
                self.name, f"email API returned {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise ChannelError(self.name, f"email API unreachable: {e}") from e

        logger.info(
            "Reminder email sent",
            extra={"task_id": str(task.id), "recipient": address},
        )

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None


class SimulatedEmailChannel(EmailChannel):
    """Logs reminder emails instead of sending them."""

    def send_reminder(self, address: str, task: Task) -> None:
        logger.info(
            "[SIMULATED] Delivering reminder email",
            extra={
                "task_id": str(task.id),
                "recipient": address,
                "subject": render_reminder_subject(task),
            },
        )


def build_email_channel(settings: Settings) -> EmailChannel:
    """Use the HTTP provider when a key is configured, otherwise simulate."""
    if settings.EMAIL_API_KEY:
        return HTTPEmailChannel(
            api_url=settings.EMAIL_API_URL,
            api_key=settings.EMAIL_API_KEY,
            sender=settings.EMAIL_FROM,
            app_url=settings.APP_URL,
            timeout=settings.CHANNEL_TIMEOUT_SECONDS,
        )
    logger.warning("EMAIL_API_KEY not set; reminder emails will be simulated")
    return SimulatedEmailChannel()
