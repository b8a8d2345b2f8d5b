"""
Statically declared media graph for the send/receive session.

The send side is a test video pattern composited with the (later) incoming
video, fanned out through a tee to the VP8 WebRTC branch and the relay, plus
a test audio tone encoded with Opus.  The receive side is built per stream by
:class:`sendrecv.graph.controller.MediaGraphController` from the node
factories below.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from .model import ElementSpec, MediaGraph, MediaLink, MediaNode, NodeKind, chain, element

WEBRTC = "sendrecv"
COMPOSITOR = "mixer"
RELAY_TEE = "rtmp_tee"
RELAY_SINK = "rtmp_sink"

COMPOSITOR_REMOTE_INPUT = "sink_1"
RELAY_TEE_OUTPUT = "src_1"

VIDEO_PAYLOAD = 97
AUDIO_PAYLOAD = 96


@dataclass
class GraphTemplate:
    nodes: List[MediaNode] = field(default_factory=list)
    links: List[MediaLink] = field(default_factory=list)

    def instantiate(self, engine) -> MediaGraph:
        """
        Register every node and link with a fresh :class:`MediaGraph` and
        issue the matching construction commands to ``engine``.
        """

        graph = MediaGraph()
        for node in self.nodes:
            graph.add_node(node)
            engine.add_node(node)
        for link in self.links:
            graph.add_link(link)
            engine.link(link)
        return graph


def send_graph(*, stun_server: Optional[str] = None) -> GraphTemplate:
    webrtc_props = {"bundle-policy": "max-bundle"}
    if stun_server:
        webrtc_props["stun-server"] = stun_server

    nodes = [
        chain(
            "video_source",
            NodeKind.SOURCE,
            element("videotestsrc", is_live=True),
            element("capsfilter", caps="video/x-raw,width=320,height=480"),
            element("clockoverlay"),
            inputs=(),
        ),
        chain(
            COMPOSITOR,
            NodeKind.MIXER,
            element(
                "compositor",
                sink_0__alpha=1.0,
                sink_1__alpha=1.0,
                sink_1__xpos=20,
                sink_1__ypos=20,
            ),
            inputs=("sink_0", COMPOSITOR_REMOTE_INPUT),
        ),
        chain("video_convert", NodeKind.TRANSFORM, element("videoconvert")),
        chain(RELAY_TEE, NodeKind.TEE, element("tee", allow_not_linked=True), outputs=("src_0", RELAY_TEE_OUTPUT)),
        chain(
            "video_encoder",
            NodeKind.TRANSFORM,
            element("queue"),
            element("vp8enc", deadline=1),
            element("rtpvp8pay"),
            element("queue"),
            element("capsfilter", caps=f"application/x-rtp,media=video,encoding-name=VP8,payload={VIDEO_PAYLOAD}"),
        ),
        chain(
            "audio_source",
            NodeKind.SOURCE,
            element("audiotestsrc", is_live=True),
            element("audioconvert"),
            element("audioresample"),
            element("queue"),
            element("opusenc"),
            element("rtpopuspay"),
            element("queue"),
            element("capsfilter", caps=f"application/x-rtp,media=audio,encoding-name=OPUS,payload={AUDIO_PAYLOAD}"),
            inputs=(),
        ),
        chain(
            WEBRTC,
            NodeKind.ENDPOINT,
            ElementSpec("webrtcbin", webrtc_props),
            inputs=("sink_0", "sink_1"),
            outputs=(),
            dynamic_outputs=True,
        ),
    ]
    links = [
        MediaLink("video_source", "src", COMPOSITOR, "sink_0"),
        MediaLink(COMPOSITOR, "src", "video_convert", "sink"),
        MediaLink("video_convert", "src", RELAY_TEE, "sink"),
        MediaLink(RELAY_TEE, "src_0", "video_encoder", "sink"),
        MediaLink("video_encoder", "src", WEBRTC, "sink_0"),
        MediaLink("audio_source", "src", WEBRTC, "sink_1"),
    ]
    return GraphTemplate(nodes=nodes, links=links)


# ----------------------------------------------------------- per-stream nodes


def relay_sink(rtmp_uri: Optional[str]) -> MediaNode:
    if rtmp_uri:
        return chain(
            RELAY_SINK,
            NodeKind.SINK,
            element("queue"),
            element("x264enc"),
            element("flvmux"),
            element("rtmpsink", location=f"{rtmp_uri} live=1"),
            outputs=(),
        )
    return chain(
        RELAY_SINK,
        NodeKind.SINK,
        element("queue"),
        element("fakesink", sync=False, **{"async": False}),
        outputs=(),
    )


def decoder(stream_id: str) -> MediaNode:
    return chain(f"decoder_{stream_id}", NodeKind.DECODER, element("decodebin"), dynamic_outputs=True)


def video_transform(stream_id: str, width: int, height: int) -> MediaNode:
    return chain(
        f"video_transform_{stream_id}",
        NodeKind.TRANSFORM,
        element("queue"),
        element("videoconvert"),
        element("videoscale"),
        element("capsfilter", caps=f"video/x-raw,width={int(width)},height={int(height)}"),
        element("queue"),
    )


def audio_drain(stream_id: str) -> MediaNode:
    return chain(
        f"audio_drain_{stream_id}",
        NodeKind.SINK,
        element("queue"),
        element("audioconvert"),
        element("audioresample"),
        element("fakesink"),
        outputs=(),
    )


__all__ = [
    "COMPOSITOR",
    "COMPOSITOR_REMOTE_INPUT",
    "GraphTemplate",
    "RELAY_SINK",
    "RELAY_TEE",
    "RELAY_TEE_OUTPUT",
    "WEBRTC",
    "audio_drain",
    "decoder",
    "relay_sink",
    "send_graph",
    "video_transform",
]
