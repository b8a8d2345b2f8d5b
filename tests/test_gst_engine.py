from __future__ import annotations

import pytest

from sendrecv.errors import EngineError, EngineUnavailableError
from sendrecv.graph.model import MediaLink, NodeKind, chain, element
from sendrecv.graph.template import send_graph
from sendrecv.runtime import gst_engine
from sendrecv.runtime.gst_engine import GStreamerMediaEngine


def _factories_available(*names: str) -> bool:
    if gst_engine.Gst is None:
        return False
    gst_engine._ensure_gst_initialised()
    return all(gst_engine.Gst.ElementFactory.find(name) is not None for name in names)


def test_engine_reports_missing_runtime(monkeypatch) -> None:
    monkeypatch.setattr(gst_engine, "Gst", None)
    engine = GStreamerMediaEngine()

    assert not engine.is_available
    with pytest.raises(EngineUnavailableError):
        engine.add_node(chain("drain", NodeKind.SINK, element("fakesink"), outputs=()))


def test_start_requires_a_built_graph() -> None:
    engine = GStreamerMediaEngine()

    with pytest.raises(EngineError):
        engine.start()
    # Stopping an engine that never ran is a no-op.
    engine.stop()


@pytest.mark.skipif(not _factories_available("videotestsrc", "fakesink"), reason="GStreamer core plugins missing")
def test_multi_element_nodes_become_bins() -> None:
    engine = GStreamerMediaEngine(name="bin-check-pipeline")
    engine.add_node(
        chain("source", NodeKind.SOURCE, element("videotestsrc", is_live=True), element("queue"), inputs=())
    )
    engine.add_node(chain("sink", NodeKind.SINK, element("fakesink", sync=False), outputs=()))
    engine.link(MediaLink("source", "src", "sink", "sink"))

    source = engine._element("source")  # type: ignore[attr-defined]
    assert isinstance(source, gst_engine.Gst.Bin)
    assert source.get_static_pad("src").is_linked()

    with pytest.raises(EngineError):
        engine.add_node(chain("sink", NodeKind.SINK, element("fakesink"), outputs=()))
    engine.stop()


@pytest.mark.skipif(
    not _factories_available("webrtcbin", "compositor", "vp8enc", "opusenc", "clockoverlay"),
    reason="GStreamer WebRTC plugin set missing",
)
def test_send_graph_builds_on_gstreamer() -> None:
    engine = GStreamerMediaEngine()
    graph = send_graph().instantiate(engine)

    for name in graph.nodes:
        assert engine._element(name) is not None  # type: ignore[attr-defined]
    assert engine._element("sendrecv").get_factory().get_name() == "webrtcbin"  # type: ignore[attr-defined]
    engine.stop()
