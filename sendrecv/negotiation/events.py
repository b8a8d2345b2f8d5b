"""
Engine-side and internal triggers for the negotiation state machine.

Transport triggers are the channel events of
:mod:`sendrecv.signalling.channel`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Type

from ..errors import ClientError, NegotiationTimeout
from ..session import NegotiationState


@dataclass(frozen=True)
class NegotiationNeeded:
    pass


@dataclass(frozen=True)
class OfferCreated:
    sdp: str


@dataclass(frozen=True)
class LocalIceCandidate:
    mline_index: int
    candidate: str


@dataclass(frozen=True)
class EngineFailure:
    error: ClientError


@dataclass(frozen=True)
class TimeoutExpired:
    """A phase timer fired; it only counts if the session is still in ``state``."""

    state: NegotiationState
    error_type: Type[NegotiationTimeout]
    seconds: float


__all__ = ["EngineFailure", "LocalIceCandidate", "NegotiationNeeded", "OfferCreated", "TimeoutExpired"]
