"""WebSocket endpoint for live push notifications."""

import logging
from uuid import UUID

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from app.channels.push import WebSocketPushChannel

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Push"])


@router.websocket("/ws/notifications/{user_id}")
async def notifications_socket(websocket: WebSocket, user_id: UUID) -> None:
    """Subscribe to a user's notifications until the client disconnects."""
    engine = getattr(websocket.app.state, "engine", None)
    channel = engine.push_channel if engine is not None else None
    if not isinstance(channel, WebSocketPushChannel):
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
        return

    await channel.connect(user_id, websocket)
    try:
        while True:
            # Clients only listen; incoming frames keep the connection alive
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        channel.disconnect(user_id, websocket)
