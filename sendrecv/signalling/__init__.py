"""
Signalling transport and wire codec.
"""

from __future__ import annotations

from .channel import (
    ChannelClosed,
    ChannelEvent,
    ChannelFailed,
    ChannelMessage,
    ChannelOpened,
    SignallingChannel,
)
from .codec import MessageCodec, SignallingMessage

__all__ = [
    "ChannelClosed",
    "ChannelEvent",
    "ChannelFailed",
    "ChannelMessage",
    "ChannelOpened",
    "MessageCodec",
    "SignallingChannel",
    "SignallingMessage",
]
