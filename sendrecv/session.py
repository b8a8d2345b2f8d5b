"""
Session state owned by the negotiation controller.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class NegotiationState(str, Enum):
    """Negotiation phases in the order a session moves through them."""

    IDLE = "idle"
    REGISTERING = "registering"
    SESSION_ESTABLISHED = "session_established"
    OFFER_SENT = "offer_sent"
    CONNECTED = "connected"
    FAILED = "failed"

    @property
    def rank(self) -> int:
        return _ORDER.index(self)

    @property
    def is_terminal(self) -> bool:
        return self is NegotiationState.FAILED


_ORDER = list(NegotiationState)


@dataclass
class PeerSession:
    peer_id: str
    server_url: str
    rtmp_target: Optional[str] = None
    client_token: str = "0"
    state: NegotiationState = NegotiationState.IDLE

    def describe(self) -> dict:
        return {
            "peer_id": self.peer_id,
            "server_url": self.server_url,
            "rtmp_target": self.rtmp_target,
            "state": self.state.value,
        }


__all__ = ["NegotiationState", "PeerSession"]
