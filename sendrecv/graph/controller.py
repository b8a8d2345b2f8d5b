"""
Routing of incoming WebRTC streams into the media graph.

Each stream that appears on the WebRTC endpoint is classified by its
negotiated caps and wired exactly once:

* video: decoder -> convert/scale -> second compositor input, plus the relay
  sink fed from the relay tee;
* audio: decoder -> convert/resample -> discard sink, which drains the stream;
* anything else is ignored.

Every new node is synced to the pipeline state before anything links into it.
"""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple

from ..errors import ClientError, NegotiationPrecondition
from ..runtime.engine import IncomingStream, MediaEngine
from . import template
from .model import MediaGraph, MediaLink, MediaNode

LOG = logging.getLogger(__name__)

_MEDIA_FIELD = re.compile(r"\bmedia=(?:\(string\))?\"?([A-Za-z]+)")


class MediaKind(str, Enum):
    AUDIO = "audio"
    VIDEO = "video"
    UNKNOWN = "unknown"


def classify(caps: str) -> MediaKind:
    """
    Determine the media kind from a caps string.

    Raw caps are classified by their structure name; RTP caps by their
    ``media`` field.
    """

    name = caps.split(",", 1)[0].strip()
    if name.startswith("video/"):
        return MediaKind.VIDEO
    if name.startswith("audio/"):
        return MediaKind.AUDIO
    match = _MEDIA_FIELD.search(caps)
    if match:
        value = match.group(1).lower()
        if value == "video":
            return MediaKind.VIDEO
        if value == "audio":
            return MediaKind.AUDIO
    return MediaKind.UNKNOWN


@dataclass
class MediaStreamHandle:
    id: str
    media_kind: MediaKind
    attached: bool = False


class MediaGraphController:
    def __init__(
        self,
        engine: MediaEngine,
        graph: MediaGraph,
        *,
        relay_sink: MediaNode,
        video_size: Tuple[int, int] = (160, 120),
    ) -> None:
        self._engine = engine
        self._graph = graph
        self._relay_sink = relay_sink
        self._video_size = video_size
        self._lock = threading.RLock()
        self._streams: Dict[str, MediaStreamHandle] = {}

    @property
    def graph(self) -> MediaGraph:
        return self._graph

    @property
    def streams(self) -> Dict[str, MediaStreamHandle]:
        with self._lock:
            return dict(self._streams)

    def on_incoming_stream(self, stream: IncomingStream) -> Optional[MediaStreamHandle]:
        """
        Wire ``stream`` into the graph.

        Returns the new handle, or ``None`` when the stream was skipped or had
        already been seen.
        """

        try:
            caps = self._require_caps(stream)
        except NegotiationPrecondition as exc:
            LOG.warning("Skipping incoming stream %s: %s", stream.stream_id, exc)
            return None

        with self._lock:
            if stream.stream_id in self._streams:
                LOG.debug("Stream %s already handled; ignoring repeated arrival.", stream.stream_id)
                return None
            handle = MediaStreamHandle(id=stream.stream_id, media_kind=classify(caps))
            self._streams[handle.id] = handle
            LOG.info("Receiving %s stream %s (%s)", handle.media_kind.value, handle.id, caps)

            try:
                if handle.media_kind is MediaKind.VIDEO:
                    self._attach_video(handle)
                elif handle.media_kind is MediaKind.AUDIO:
                    self._attach_audio(handle)
                else:
                    LOG.info("Ignoring stream %s of unsupported kind.", handle.id)
                    return handle
            except NegotiationPrecondition as exc:
                LOG.warning("Not wiring stream %s: %s", handle.id, exc)
                return handle
            except ClientError:
                LOG.exception("Failed to wire stream %s", handle.id)
                return handle

            handle.attached = True
            return handle

    # ------------------------------------------------------------ subgraphs

    def _attach_video(self, handle: MediaStreamHandle) -> None:
        if self._graph.is_input_linked(template.COMPOSITOR, template.COMPOSITOR_REMOTE_INPUT):
            raise NegotiationPrecondition("the compositor's remote video input is already in use")

        width, height = self._video_size
        decoder = self._add(template.decoder(handle.id))
        transform = self._add(template.video_transform(handle.id, width, height))

        self._link(MediaLink(template.WEBRTC, handle.id, decoder.name, "sink"))
        self._link(MediaLink(decoder.name, "src", transform.name, "sink"))
        self._link(MediaLink(transform.name, "src", template.COMPOSITOR, template.COMPOSITOR_REMOTE_INPUT))

        if template.RELAY_SINK not in self._graph:
            relay = self._add(self._relay_sink)
            self._link(MediaLink(template.RELAY_TEE, template.RELAY_TEE_OUTPUT, relay.name, "sink"))

    def _attach_audio(self, handle: MediaStreamHandle) -> None:
        decoder = self._add(template.decoder(handle.id))
        drain = self._add(template.audio_drain(handle.id))

        self._link(MediaLink(template.WEBRTC, handle.id, decoder.name, "sink"))
        self._link(MediaLink(decoder.name, "src", drain.name, "sink"))

    # -------------------------------------------------------------- helpers

    @staticmethod
    def _require_caps(stream: IncomingStream) -> str:
        if not stream.caps:
            raise NegotiationPrecondition("stream has no negotiated caps")
        return stream.caps

    def _add(self, node: MediaNode) -> MediaNode:
        self._graph.add_node(node)
        self._engine.add_node(node)
        self._engine.sync_state(node.name)
        return node

    def _link(self, link: MediaLink) -> None:
        self._graph.add_link(link)
        self._engine.link(link)


__all__ = ["MediaGraphController", "MediaKind", "MediaStreamHandle", "classify"]
