"""Tests covering the media graph model, the send template and stream routing."""

import threading

import pytest

from sendrecv.errors import GraphError
from sendrecv.graph.controller import MediaGraphController, MediaKind, classify
from sendrecv.graph.model import MediaGraph, MediaLink, NodeKind, chain, element
from sendrecv.graph.template import relay_sink, send_graph
from sendrecv.runtime.engine import IncomingStream

VIDEO_CAPS = "application/x-rtp, media=(string)video, encoding-name=(string)VP8, payload=(int)97"
AUDIO_CAPS = "application/x-rtp, media=(string)audio, encoding-name=(string)OPUS, payload=(int)96"


@pytest.fixture
def graph(engine) -> MediaGraph:
    return send_graph().instantiate(engine)


@pytest.fixture
def media(engine, graph) -> MediaGraphController:
    engine.ops.clear()
    return MediaGraphController(engine, graph, relay_sink=relay_sink(None))


def test_send_template_instantiation(engine) -> None:
    graph = send_graph(stun_server="stun://stun.l.google.com:19302").instantiate(engine)

    assert set(graph.nodes) == {
        "video_source",
        "mixer",
        "video_convert",
        "rtmp_tee",
        "video_encoder",
        "audio_source",
        "sendrecv",
    }
    assert [str(link) for link in graph.links] == engine.names("link")
    assert "video_encoder.src -> sendrecv.sink_0" in engine.names("link")
    webrtc = graph.node("sendrecv").elements[0]
    assert webrtc.factory == "webrtcbin"
    assert webrtc.properties["stun-server"] == "stun://stun.l.google.com:19302"


def test_video_stream_extends_graph(media, engine, graph) -> None:
    before = set(graph.nodes)
    links_before = len(graph.links)

    handle = media.on_incoming_stream(IncomingStream("src_0", VIDEO_CAPS))

    assert handle is not None and handle.attached
    assert handle.media_kind is MediaKind.VIDEO
    assert set(graph.nodes) - before == {"decoder_src_0", "video_transform_src_0", "rtmp_sink"}
    new_links = [str(link) for link in graph.links[links_before:]]
    assert new_links == [
        "sendrecv.src_0 -> decoder_src_0.sink",
        "decoder_src_0.src -> video_transform_src_0.sink",
        "video_transform_src_0.src -> mixer.sink_1",
        "rtmp_tee.src_1 -> rtmp_sink.sink",
    ]


def test_nodes_are_synced_before_links_target_them(media, engine) -> None:
    media.on_incoming_stream(IncomingStream("src_0", VIDEO_CAPS))

    for name in ("decoder_src_0", "video_transform_src_0", "rtmp_sink"):
        synced = engine.ops.index(("sync_state", name))
        first_link = next(
            index for index, op in enumerate(engine.ops) if op[0] == "link" and f"-> {name}." in op[1]
        )
        assert engine.ops.index(("add_node", name)) < synced < first_link


def test_repeated_arrival_is_ignored(media, engine) -> None:
    first = media.on_incoming_stream(IncomingStream("src_0", VIDEO_CAPS))
    ops = list(engine.ops)

    assert first is not None
    assert media.on_incoming_stream(IncomingStream("src_0", VIDEO_CAPS)) is None
    assert engine.ops == ops


def test_concurrent_arrivals_wire_once(media, engine) -> None:
    results = []
    barrier = threading.Barrier(8)

    def arrive() -> None:
        barrier.wait()
        results.append(media.on_incoming_stream(IncomingStream("src_0", VIDEO_CAPS)))

    threads = [threading.Thread(target=arrive) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sum(1 for result in results if result is not None) == 1
    assert engine.count("add_node") == 3


def test_audio_stream_is_drained(media, graph) -> None:
    handle = media.on_incoming_stream(IncomingStream("src_1", AUDIO_CAPS))

    assert handle.attached and handle.media_kind is MediaKind.AUDIO
    assert "audio_drain_src_1" in graph
    assert "rtmp_sink" not in graph
    assert not graph.is_input_linked("mixer", "sink_1")


def test_unknown_stream_is_recorded_but_not_wired(media, engine) -> None:
    handle = media.on_incoming_stream(IncomingStream("src_2", "application/x-rtp, media=(string)application"))

    assert handle.media_kind is MediaKind.UNKNOWN
    assert not handle.attached
    assert engine.ops == []


def test_stream_without_caps_can_arrive_again(media) -> None:
    assert media.on_incoming_stream(IncomingStream("src_0")) is None
    assert "src_0" not in media.streams

    handle = media.on_incoming_stream(IncomingStream("src_0", VIDEO_CAPS))
    assert handle.attached


def test_second_video_stream_is_skipped(media, graph) -> None:
    media.on_incoming_stream(IncomingStream("src_0", VIDEO_CAPS))
    handle = media.on_incoming_stream(IncomingStream("src_2", VIDEO_CAPS))

    assert handle is not None and not handle.attached
    assert "decoder_src_2" not in graph
    assert str(graph.input_link("mixer", "sink_1")) == "video_transform_src_0.src -> mixer.sink_1"


def test_rtmp_relay_sink() -> None:
    node = relay_sink("rtmp://live.example.com/app/key")

    assert [spec.factory for spec in node.elements] == ["queue", "x264enc", "flvmux", "rtmpsink"]
    assert node.elements[-1].properties["location"] == "rtmp://live.example.com/app/key live=1"
    assert [spec.factory for spec in relay_sink(None).elements] == ["queue", "fakesink"]


@pytest.mark.parametrize(
    "caps, kind",
    [
        (VIDEO_CAPS, MediaKind.VIDEO),
        (AUDIO_CAPS, MediaKind.AUDIO),
        ("video/x-raw, format=(string)I420", MediaKind.VIDEO),
        ("audio/x-raw, rate=(int)48000", MediaKind.AUDIO),
        ("application/x-rtp, media=video", MediaKind.VIDEO),
        ("application/x-rtcp", MediaKind.UNKNOWN),
    ],
)
def test_classify(caps, kind) -> None:
    assert classify(caps) is kind


def test_element_property_names() -> None:
    spec = element("compositor", sink_1__xpos=20, is_live=True)

    assert spec.properties == {"sink_1::xpos": 20, "is-live": True}


def _line(*names: str) -> MediaGraph:
    graph = MediaGraph()
    for name in names:
        graph.add_node(chain(name, NodeKind.TRANSFORM, element("identity")))
    return graph


def test_graph_rejects_duplicates_and_unknown_ports() -> None:
    graph = _line("a", "b", "c")

    with pytest.raises(GraphError):
        graph.add_node(chain("a", NodeKind.TRANSFORM, element("identity")))
    with pytest.raises(GraphError):
        graph.add_link(MediaLink("a", "src_7", "b", "sink"))
    with pytest.raises(GraphError):
        graph.add_link(MediaLink("a", "src", "missing", "sink"))

    graph.add_link(MediaLink("a", "src", "b", "sink"))
    with pytest.raises(GraphError):
        graph.add_link(MediaLink("c", "src", "b", "sink"))


def test_graph_rejects_cycles() -> None:
    graph = _line("a", "b")
    graph.add_link(MediaLink("a", "src", "b", "sink"))

    with pytest.raises(GraphError):
        graph.add_link(MediaLink("b", "src", "a", "sink"))


def test_node_requires_elements() -> None:
    with pytest.raises(GraphError):
        chain("empty", NodeKind.SINK)


def test_describe_reports_nodes_and_links(media, graph) -> None:
    media.on_incoming_stream(IncomingStream("src_1", AUDIO_CAPS))
    snapshot = graph.describe()

    assert snapshot["nodes"]["audio_drain_src_1"] == {
        "kind": "sink",
        "elements": ["queue", "audioconvert", "audioresample", "fakesink"],
    }
    assert snapshot["nodes"]["sendrecv"]["kind"] == "endpoint"
    assert "sendrecv.src_1 -> decoder_src_1.sink" in snapshot["links"]
