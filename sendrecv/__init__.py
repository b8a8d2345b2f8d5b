"""
Send/receive WebRTC signalling client.

The package negotiates one audio/video session with a signalling server and
drives a GStreamer graph: test sources composited and sent over WebRTC, with
incoming streams decoded and routed back into the compositor and a relay sink.
"""

from __future__ import annotations

__version__ = "0.1.0"

__all__ = [
    "ClientConfig",
    "NegotiationState",
    "PeerSession",
    "SendRecvClient",
    "__version__",
]

from .config import ClientConfig
from .session import NegotiationState, PeerSession
from .client import SendRecvClient
