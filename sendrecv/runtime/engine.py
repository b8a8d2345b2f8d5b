"""
Media engine interface.

The negotiation and graph controllers only ever talk to a :class:`MediaEngine`
and only ever hear back through an :class:`EngineListener`.  Engine callbacks
may arrive on engine-internal worker threads.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Protocol

if TYPE_CHECKING:  # pragma: no cover - typing aid
    from ..graph.model import MediaLink, MediaNode


@dataclass(frozen=True)
class SessionDescription:
    type: str
    sdp: str


@dataclass(frozen=True)
class IncomingStream:
    """
    A stream that appeared on the WebRTC endpoint.

    ``stream_id`` is the endpoint's output port for the stream; ``caps`` is
    the negotiated format as a caps string, or ``None`` when not yet known.
    """

    stream_id: str
    caps: Optional[str] = None


class EngineListener(Protocol):
    def on_negotiation_needed(self) -> None: ...

    def on_offer_created(self, sdp: str) -> None: ...

    def on_ice_candidate(self, mline_index: int, candidate: str) -> None: ...

    def on_incoming_stream(self, stream: IncomingStream) -> None: ...

    def on_end_of_stream(self) -> None: ...

    def on_engine_error(self, message: str) -> None: ...


class MediaEngine:
    """
    Base class for engine backends.

    Commands raise :class:`sendrecv.errors.EngineError` when the backend
    rejects them.
    """

    def __init__(self) -> None:
        self._listener: Optional[EngineListener] = None

    @property
    def listener(self) -> Optional[EngineListener]:
        return self._listener

    def bind(self, listener: EngineListener) -> None:
        self._listener = listener

    # ------------------------------------------------------------ lifecycle

    def start(self) -> None:
        raise NotImplementedError

    def stop(self) -> None:
        raise NotImplementedError

    # ---------------------------------------------------------- negotiation

    def create_offer(self) -> None:
        """Request an offer; the result arrives via ``on_offer_created``."""

        raise NotImplementedError

    def set_local_description(self, description: SessionDescription) -> None:
        raise NotImplementedError

    def set_remote_description(self, description: SessionDescription) -> None:
        raise NotImplementedError

    def add_ice_candidate(self, mline_index: int, candidate: str) -> None:
        raise NotImplementedError

    # ---------------------------------------------------------------- graph

    def add_node(self, node: "MediaNode") -> None:
        raise NotImplementedError

    def sync_state(self, node_name: str) -> None:
        """Bring a freshly added node to the running state of its parent."""

        raise NotImplementedError

    def link(self, link: "MediaLink") -> None:
        raise NotImplementedError


__all__ = ["EngineListener", "IncomingStream", "MediaEngine", "SessionDescription"]
