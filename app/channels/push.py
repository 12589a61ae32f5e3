"""WebSocket push channel.

Clients subscribe through the FastAPI WebSocket route; the dispatcher calls
``broadcast`` from worker threads, so sends are marshalled onto the event
loop that owns the sockets and waited on with a timeout.
"""

import asyncio
import logging
import threading
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any
from uuid import UUID

from fastapi import WebSocket

from app.channels.base import ChannelError, ChannelTimeoutError, PushChannel

logger = logging.getLogger(__name__)


class WebSocketPushChannel(PushChannel):
    """Fan-out of notification payloads to per-user WebSocket connections."""

    def __init__(self, send_timeout: float = 5.0) -> None:
        self._send_timeout = send_timeout
        self._connections: dict[UUID, set[WebSocket]] = {}
        self._lock = threading.Lock()
        self._loop: asyncio.AbstractEventLoop | None = None

    def bind_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        """Set the event loop that owns the registered sockets."""
        self._loop = loop

    async def connect(self, user_id: UUID, websocket: WebSocket) -> None:
        """Accept a WebSocket and subscribe it to ``user_id``'s notifications."""
        await websocket.accept()
        if self._loop is None:
            self.bind_loop(asyncio.get_running_loop())
        self.register(user_id, websocket)

    def register(self, user_id: UUID, websocket: WebSocket) -> None:
        with self._lock:
            self._connections.setdefault(user_id, set()).add(websocket)
        logger.info("Push client connected", extra={"user_id": str(user_id)})

    def disconnect(self, user_id: UUID, websocket: WebSocket) -> None:
        with self._lock:
            sockets = self._connections.get(user_id)
            if sockets is None:
                return
            sockets.discard(websocket)
            if not sockets:
                del self._connections[user_id]
        logger.info("Push client disconnected", extra={"user_id": str(user_id)})

    def connection_count(self, user_id: UUID) -> int:
        with self._lock:
            return len(self._connections.get(user_id, ()))

    def broadcast(self, user_id: UUID, payload: dict[str, Any]) -> None:
        with self._lock:
            sockets = list(self._connections.get(user_id, ()))

        if not sockets:
            logger.debug("No live push connection", extra={"user_id": str(user_id)})
            return

        loop = self._loop
        if loop is None or loop.is_closed():
            raise ChannelError(self.name, "event loop is not available")
        if _running_loop() is loop:
            raise ChannelError(self.name, "broadcast called from the event loop thread")

        failures: list[str] = []
        timed_out = False
        for websocket in sockets:
            future = asyncio.run_coroutine_threadsafe(websocket.send_json(payload), loop)
            try:
                future.result(timeout=self._send_timeout)
            except FutureTimeoutError:
                future.cancel()
                timed_out = True
                failures.append("send timed out")
            except Exception as e:
                failures.append(str(e) or e.__class__.__name__)
                # Dead socket; stop pushing to it
                self.disconnect(user_id, websocket)

        if failures and len(failures) == len(sockets):
            error_cls = ChannelTimeoutError if timed_out else ChannelError
            raise error_cls(self.name, "; ".join(failures))
        if failures:
            logger.warning(
                "Push delivered to some connections only",
                extra={"user_id": str(user_id), "failed": len(failures), "total": len(sockets)},
            )


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None
