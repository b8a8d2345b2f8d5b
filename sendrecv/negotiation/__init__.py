"""
Offer/answer negotiation with the signalling server.
"""

from __future__ import annotations

from .controller import NegotiationController
from .events import EngineFailure, LocalIceCandidate, NegotiationNeeded, OfferCreated, TimeoutExpired

__all__ = [
    "EngineFailure",
    "LocalIceCandidate",
    "NegotiationController",
    "NegotiationNeeded",
    "OfferCreated",
    "TimeoutExpired",
]
