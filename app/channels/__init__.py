"""Delivery channels used by the notification dispatcher."""

from app.channels.base import ChannelError, ChannelTimeoutError, EmailChannel, PushChannel
from app.channels.email import HTTPEmailChannel, SimulatedEmailChannel, build_email_channel
from app.channels.push import WebSocketPushChannel

__all__ = [
    "ChannelError",
    "ChannelTimeoutError",
    "PushChannel",
    "EmailChannel",
    "WebSocketPushChannel",
    "HTTPEmailChannel",
    "SimulatedEmailChannel",
    "build_email_channel",
]
