"""Delivery channel adapters (push, whatsapp, sms)."""

from courier.channels.base import ChannelAdapter, ChannelError, SendResult
from courier.channels.registry import build_adapters

__all__ = [
    "ChannelAdapter",
    "ChannelError",
    "SendResult",
    "build_adapters",
]
