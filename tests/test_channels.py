"""Tests for the push and email channels."""

import asyncio
import json
import logging
import threading
from datetime import datetime
from uuid import uuid4

import httpx
import pytest

from app.channels.base import ChannelError, ChannelTimeoutError
from app.channels.email import (
    HTTPEmailChannel,
    SimulatedEmailChannel,
    build_email_channel,
    render_reminder_html,
    render_reminder_subject,
)
from app.channels.push import WebSocketPushChannel
from app.config import Settings
from app.models.notification import NotificationKind
from app.models.task import Priority, Task, TaskStatus


def _task(**overrides) -> Task:
    fields = {
        "id": uuid4(),
        "user_id": uuid4(),
        "title": "Ship <release>",
        "description": "Tag & publish",
        "deadline": datetime(2026, 3, 11, 15, 0),
        "priority": Priority.HIGH,
        "status": TaskStatus.IN_PROGRESS,
    }
    fields.update(overrides)
    return Task(**fields)


# ============================================================================
# Email
# ============================================================================

class TestEmailRendering:
    """Tests for the reminder email body."""

    def test_subject_names_task(self):
        assert render_reminder_subject(_task(title="Pay rent")) == "Task Reminder: Pay rent"

    def test_subject_prefix_follows_kind(self):
        subject = render_reminder_subject(_task(title="Pay rent"), NotificationKind.WARNING)

        assert subject == "Task Alert: Pay rent"

    def test_body_includes_task_details_escaped(self):
        body = render_reminder_html(_task(), "https://todo.example.com")

        assert "Ship &lt;release&gt;" in body
        assert "Tag &amp; publish" in body
        assert "High" in body
        assert "2026-03-11 15:00 UTC" in body
        assert "InProgress" in body
        assert 'href="https://todo.example.com"' in body

    def test_body_without_deadline_or_priority(self):
        body = render_reminder_html(_task(deadline=None, priority=None, description=None), "")

        assert "No deadline set" in body
        assert "None" in body


class TestHTTPEmailChannel:
    """Tests for HTTPEmailChannel against a mock transport."""

    def _channel(self, handler) -> HTTPEmailChannel:
        return HTTPEmailChannel(
            api_url="https://email.example.com/emails",
            api_key="secret",
            sender="reminders@example.com",
            app_url="https://todo.example.com",
            transport=httpx.MockTransport(handler),
        )

    def test_posts_reminder(self):
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"id": "msg_1"})

        channel = self._channel(handler)
        task = _task()
        channel.send_reminder("user@example.com", task)
        channel.close()

        [request] = requests
        assert request.method == "POST"
        assert str(request.url) == "https://email.example.com/emails"
        assert request.headers["Authorization"] == "Bearer secret"
        body = json.loads(request.content)
        assert body["from"] == "reminders@example.com"
        assert body["to"] == ["user@example.com"]
        assert body["subject"] == "Task Reminder: Ship <release>"
        assert "Ship &lt;release&gt;" in body["html"]

    def test_error_status_raises_channel_error(self):
        channel = self._channel(lambda request: httpx.Response(422, json={"error": "bad"}))

        with pytest.raises(ChannelError, match="422"):
            channel.send_reminder("user@example.com", _task())

    def test_timeout_raises_channel_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        channel = self._channel(handler)

        with pytest.raises(ChannelTimeoutError):
            channel.send_reminder("user@example.com", _task())

    def test_connection_error_raises_channel_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        channel = self._channel(handler)

        with pytest.raises(ChannelError, match="unreachable"):
            channel.send_reminder("user@example.com", _task())

    def test_client_is_created_lazily_and_closed(self):
        channel = self._channel(lambda request: httpx.Response(200))
        assert channel._client is None

        channel.send_reminder("user@example.com", _task())
        assert channel._client is not None

        channel.close()
        assert channel._client is None


class TestBuildEmailChannel:
    """Tests for choosing the email channel from settings."""

    def test_simulated_without_api_key(self, monkeypatch):
        monkeypatch.setenv("EMAIL_API_KEY", "")
        assert isinstance(build_email_channel(Settings()), SimulatedEmailChannel)

    def test_http_with_api_key(self, monkeypatch):
        monkeypatch.setenv("EMAIL_API_KEY", "key")
        monkeypatch.setenv("EMAIL_API_URL", "https://email.example.com/send")
        channel = build_email_channel(Settings())

        assert isinstance(channel, HTTPEmailChannel)
        assert channel.api_url == "https://email.example.com/send"

    def test_simulated_channel_logs(self, caplog):
        with caplog.at_level(logging.INFO, logger="app.channels.email"):
            SimulatedEmailChannel().send_reminder("user@example.com", _task())

        assert any("[SIMULATED]" in r.getMessage() for r in caplog.records)


# ============================================================================
# Push
# ============================================================================

class FakeWebSocket:
    """Stands in for a Starlette WebSocket."""

    def __init__(self, error: Exception | None = None, delay: float = 0.0) -> None:
        self.error = error
        self.delay = delay
        self.accepted = False
        self.sent: list[dict] = []

    async def accept(self) -> None:
        self.accepted = True

    async def send_json(self, data: dict) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        self.sent.append(data)


@pytest.fixture
def event_loop_thread():
    """An event loop running in a background thread, like the app's server loop."""
    loop = asyncio.new_event_loop()
    thread = threading.Thread(target=loop.run_forever, daemon=True)
    thread.start()
    yield loop
    loop.call_soon_threadsafe(loop.stop)
    thread.join(5)
    loop.close()


class TestWebSocketPushChannel:
    """Tests for WebSocketPushChannel."""

    def test_no_connection_is_not_an_error(self):
        WebSocketPushChannel().broadcast(uuid4(), {"type": "notification"})

    def test_connect_accepts_and_registers(self, event_loop_thread):
        channel = WebSocketPushChannel()
        user_id = uuid4()
        websocket = FakeWebSocket()

        asyncio.run_coroutine_threadsafe(
            channel.connect(user_id, websocket), event_loop_thread
        ).result(5)

        assert websocket.accepted
        assert channel.connection_count(user_id) == 1

    def test_broadcast_reaches_every_connection(self, event_loop_thread):
        channel = WebSocketPushChannel()
        channel.bind_loop(event_loop_thread)
        user_id = uuid4()
        sockets = [FakeWebSocket(), FakeWebSocket()]
        other = FakeWebSocket()
        for websocket in sockets:
            channel.register(user_id, websocket)
        channel.register(uuid4(), other)

        channel.broadcast(user_id, {"type": "notification"})

        assert [ws.sent for ws in sockets] == [[{"type": "notification"}]] * 2
        assert other.sent == []

    def test_dead_socket_is_dropped_and_others_still_receive(self, event_loop_thread):
        channel = WebSocketPushChannel()
        channel.bind_loop(event_loop_thread)
        user_id = uuid4()
        healthy, dead = FakeWebSocket(), FakeWebSocket(error=RuntimeError("closed"))
        channel.register(user_id, healthy)
        channel.register(user_id, dead)

        channel.broadcast(user_id, {"n": 1})

        assert healthy.sent == [{"n": 1}]
        assert channel.connection_count(user_id) == 1

    def test_all_sockets_failing_raises(self, event_loop_thread):
        channel = WebSocketPushChannel()
        channel.bind_loop(event_loop_thread)
        user_id = uuid4()
        channel.register(user_id, FakeWebSocket(error=RuntimeError("closed")))

        with pytest.raises(ChannelError):
            channel.broadcast(user_id, {"n": 1})
        assert channel.connection_count(user_id) == 0

    def test_slow_socket_times_out(self, event_loop_thread):
        channel = WebSocketPushChannel(send_timeout=0.05)
        channel.bind_loop(event_loop_thread)
        user_id = uuid4()
        channel.register(user_id, FakeWebSocket(delay=1.0))

        with pytest.raises(ChannelTimeoutError):
            channel.broadcast(user_id, {"n": 1})

    def test_connection_without_loop_raises(self):
        channel = WebSocketPushChannel()
        user_id = uuid4()
        channel.register(user_id, FakeWebSocket())

        with pytest.raises(ChannelError, match="event loop"):
            channel.broadcast(user_id, {"n": 1})

    def test_disconnect(self):
        channel = WebSocketPushChannel()
        user_id = uuid4()
        websocket = FakeWebSocket()
        channel.register(user_id, websocket)

        channel.disconnect(user_id, websocket)
        channel.disconnect(user_id, websocket)

        assert channel.connection_count(user_id) == 0
