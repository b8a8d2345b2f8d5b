"""
GStreamer realisation of the media engine.

Graph nodes become elements (or bins for multi-element chains) inside a
single ``Gst.Pipeline``; the WebRTC endpoint is a ``webrtcbin`` whose signals
are forwarded to the bound :class:`EngineListener`.  Bus messages are polled
on a dedicated thread, so no GLib main loop is required.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List, Optional, Tuple, TYPE_CHECKING

from ..errors import EngineError, EngineUnavailableError
from ..graph.model import MediaLink, MediaNode
from .engine import IncomingStream, MediaEngine, SessionDescription

try:  # pragma: no cover - availability depends on host environment
    import gi  # type: ignore

    gi.require_version("Gst", "1.0")
    gi.require_version("GstSdp", "1.0")
    gi.require_version("GstWebRTC", "1.0")
    from gi.repository import Gst, GstSdp, GstWebRTC  # type: ignore
except (ImportError, ValueError) as exc:  # pragma: no cover - runtime guard
    Gst = None  # type: ignore[assignment]
    GstSdp = None  # type: ignore[assignment]
    GstWebRTC = None  # type: ignore[assignment]
    _GST_IMPORT_ERROR: Optional[BaseException] = exc
else:  # pragma: no cover - executed only when GStreamer is present
    _GST_IMPORT_ERROR = None

if TYPE_CHECKING:  # pragma: no cover - typing aid
    from gi.repository import Gst as GstModule
else:
    GstModule = Any

LOG = logging.getLogger(__name__)

BUS_POLL_INTERVAL_NS = 100_000_000  # 100ms
_GST_INIT_LOCK = threading.Lock()
_GST_INITIALISED = False


def _require_gstreamer() -> None:
    if Gst is None:
        raise EngineUnavailableError(
            "GStreamer runtime is not available. Install PyGObject and GStreamer 1.16+ "
            "with the webrtc plugins to run the client."
        ) from _GST_IMPORT_ERROR


def _ensure_gst_initialised() -> None:
    global _GST_INITIALISED
    with _GST_INIT_LOCK:
        if _GST_INITIALISED:
            return
        Gst.init(None)
        _GST_INITIALISED = True
        LOG.info("Using GStreamer %s", Gst.version_string())


class GStreamerMediaEngine(MediaEngine):
    def __init__(self, *, name: str = "sendrecv-pipeline", webrtc_node: str = "sendrecv") -> None:
        super().__init__()
        self._name = name
        self._webrtc_node = webrtc_node
        self._lock = threading.RLock()
        self._pipeline: Optional[GstModule.Pipeline] = None
        self._elements: Dict[str, GstModule.Element] = {}
        self._pad_properties: Dict[str, Dict[str, Dict[str, object]]] = {}
        self._handlers: List[Tuple[GstModule.Element, int]] = []
        self._local_offers: Dict[str, object] = {}
        self._bus_thread: Optional[threading.Thread] = None
        self._bus_stop = threading.Event()

    @property
    def is_available(self) -> bool:
        return Gst is not None

    # ------------------------------------------------------------ lifecycle

    def start(self) -> None:
        pipeline = self._pipeline
        if pipeline is None:
            raise EngineError("media graph has not been built")
        self._start_bus_monitor(pipeline)
        result = pipeline.set_state(Gst.State.PLAYING)
        if result == Gst.StateChangeReturn.FAILURE:
            raise EngineError("failed to set pipeline state to PLAYING")

    def stop(self) -> None:
        with self._lock:
            pipeline = self._pipeline
            handlers = list(self._handlers)
            self._pipeline = None
            self._handlers.clear()
            self._elements.clear()
            self._pad_properties.clear()
            self._local_offers.clear()
        if pipeline is None:
            return

        # Streaming threads may need the lock to finish; never hold it here.
        try:
            pipeline.set_state(Gst.State.NULL)
        except Exception:  # pragma: no cover
            LOG.exception("Failed to set pipeline to NULL during shutdown")

        for element, handler_id in handlers:
            try:
                element.disconnect(handler_id)
            except Exception:  # pragma: no cover
                LOG.debug("Failed to disconnect handler on %s", element, exc_info=True)
        self._stop_bus_monitor()

    # ---------------------------------------------------------- negotiation

    def create_offer(self) -> None:
        webrtc = self._webrtc()
        promise = Gst.Promise.new_with_change_func(self._on_offer_reply, webrtc, None)
        webrtc.emit("create-offer", None, promise)

    def set_local_description(self, description: SessionDescription) -> None:
        webrtc = self._webrtc()
        with self._lock:
            native = self._local_offers.pop(description.sdp, None)
        if native is None:
            native = self._parse_description(description)
        promise = Gst.Promise.new()
        webrtc.emit("set-local-description", native, promise)
        promise.interrupt()

    def set_remote_description(self, description: SessionDescription) -> None:
        webrtc = self._webrtc()
        native = self._parse_description(description)
        promise = Gst.Promise.new()
        webrtc.emit("set-remote-description", native, promise)
        promise.interrupt()

    def add_ice_candidate(self, mline_index: int, candidate: str) -> None:
        self._webrtc().emit("add-ice-candidate", int(mline_index), candidate)

    # ---------------------------------------------------------------- graph

    def add_node(self, node: MediaNode) -> None:
        pipeline = self._ensure_pipeline()
        with self._lock:
            if node.name in self._elements:
                raise EngineError(f"node '{node.name}' already exists in the pipeline")
            element = self._realise(node)
            if not pipeline.add(element):
                raise EngineError(f"failed to add node '{node.name}' to the pipeline")
            self._elements[node.name] = element
            if node.name == self._webrtc_node:
                self._connect_webrtc(element)

    def sync_state(self, node_name: str) -> None:
        element = self._element(node_name)
        if not element.sync_state_with_parent():
            raise EngineError(f"failed to sync node '{node_name}' with the pipeline state")

    def link(self, link: MediaLink) -> None:
        with self._lock:
            src = self._element(link.src)
            dst = self._element(link.dst)
            sink_pad = self._obtain_pad(dst, link.dst, link.dst_port)
            if sink_pad is None:
                raise EngineError(f"node '{link.dst}' has no pad '{link.dst_port}'")
            src_pad = self._obtain_pad(src, link.src, link.src_port)
            if src_pad is None:
                self._defer_link(src, link, sink_pad)
                return
            self._link_pads(src_pad, sink_pad, link)

    # ------------------------------------------------------------ realising

    def _ensure_pipeline(self) -> GstModule.Pipeline:
        _require_gstreamer()
        _ensure_gst_initialised()
        with self._lock:
            if self._pipeline is None:
                pipeline = Gst.Pipeline.new(self._name)
                if not pipeline:
                    raise EngineError("failed to create GstPipeline instance")
                self._pipeline = pipeline
            return self._pipeline

    def _realise(self, node: MediaNode) -> GstModule.Element:
        if len(node.elements) == 1:
            spec = node.elements[0]
            element = self._make_element(spec.factory, node.name)
            self._apply_properties(node.name, element, spec.properties)
            return element

        container = Gst.Bin.new(node.name)
        chain: List[GstModule.Element] = []
        for index, spec in enumerate(node.elements):
            element = self._make_element(spec.factory, f"{node.name}_{index}_{spec.factory}")
            self._apply_properties(node.name, element, spec.properties)
            container.add(element)
            chain.append(element)

        for upstream, downstream in zip(chain, chain[1:]):
            if not upstream.link(downstream):
                raise EngineError(
                    f"failed to link {upstream.get_name()} -> {downstream.get_name()} inside '{node.name}'"
                )

        if "sink" in node.inputs:
            self._add_ghost_pad(container, "sink", chain[0].get_static_pad("sink"))
        if "src" in node.outputs:
            self._add_ghost_pad(container, "src", chain[-1].get_static_pad("src"))
        return container

    @staticmethod
    def _make_element(factory: str, name: str) -> GstModule.Element:
        element = Gst.ElementFactory.make(factory, name)
        if not element:
            raise EngineError(f"GStreamer element '{factory}' is not available")
        return element

    def _apply_properties(self, node_name: str, element: GstModule.Element, properties) -> None:
        for key, value in properties.items():
            if "::" in key:
                pad_name, prop = key.split("::", 1)
                self._pad_properties.setdefault(node_name, {}).setdefault(pad_name, {})[prop] = value
                continue
            try:
                if isinstance(value, str):
                    Gst.util_set_object_arg(element, key, value)
                else:
                    element.set_property(key, value)
            except Exception:
                LOG.warning("Failed to set property '%s' on %s; ignoring.", key, element.get_name(), exc_info=True)

    @staticmethod
    def _add_ghost_pad(container: GstModule.Bin, name: str, target: Optional[GstModule.Pad]) -> None:
        if target is None:
            raise EngineError(f"cannot expose '{name}' on bin '{container.get_name()}'")
        ghost = Gst.GhostPad.new(name, target)
        ghost.set_active(True)
        container.add_pad(ghost)

    # -------------------------------------------------------------- linking

    def _element(self, node_name: str) -> GstModule.Element:
        with self._lock:
            element = self._elements.get(node_name)
        if element is None:
            raise EngineError(f"unknown node '{node_name}'")
        return element

    def _obtain_pad(self, element: GstModule.Element, node_name: str, port: str) -> Optional[GstModule.Pad]:
        pad = element.get_static_pad(port)
        if pad is not None:
            return pad

        request = getattr(element, "request_pad_simple", None) or element.get_request_pad
        pad = request(port)
        if pad is None:
            return None
        for prop, value in self._pad_properties.get(node_name, {}).get(port, {}).items():
            try:
                pad.set_property(prop, value)
            except Exception:
                LOG.warning("Failed to set pad property %s::%s on '%s'.", port, prop, node_name, exc_info=True)
        return pad

    def _defer_link(self, element: GstModule.Element, link: MediaLink, sink_pad: GstModule.Pad) -> None:
        LOG.debug("Deferring link %s until the output pad appears.", link)

        def _on_pad_added(_element, pad) -> None:
            if pad.get_direction() != Gst.PadDirection.SRC or sink_pad.is_linked():
                return
            try:
                self._link_pads(pad, sink_pad, link)
            except EngineError:
                LOG.exception("Deferred link failed")

        handler_id = element.connect("pad-added", _on_pad_added)
        self._handlers.append((element, handler_id))

    @staticmethod
    def _link_pads(src_pad: GstModule.Pad, sink_pad: GstModule.Pad, link: MediaLink) -> None:
        result = src_pad.link(sink_pad)
        if result != Gst.PadLinkReturn.OK:
            raise EngineError(f"failed to link {link}: {getattr(result, 'value_nick', result)}")
        LOG.debug("Linked %s", link)

    # --------------------------------------------------------------- webrtc

    def _webrtc(self) -> GstModule.Element:
        return self._element(self._webrtc_node)

    def _connect_webrtc(self, webrtc: GstModule.Element) -> None:
        for signal, callback in (
            ("on-negotiation-needed", self._on_negotiation_needed),
            ("on-ice-candidate", self._on_ice_candidate),
            ("pad-added", self._on_webrtc_pad_added),
        ):
            self._handlers.append((webrtc, webrtc.connect(signal, callback)))

    def _on_negotiation_needed(self, element: GstModule.Element) -> None:
        LOG.info("Negotiation needed on %s", element.get_name())
        if self.listener is not None:
            self.listener.on_negotiation_needed()

    def _on_ice_candidate(self, _element: GstModule.Element, mline_index: int, candidate: str) -> None:
        if self.listener is not None:
            self.listener.on_ice_candidate(int(mline_index), candidate)

    def _on_offer_reply(self, promise: GstModule.Promise, _webrtc, _user_data) -> None:
        if promise.wait() != Gst.PromiseResult.REPLIED:
            self._report_error("create-offer promise was not answered")
            return
        reply = promise.get_reply()
        offer = reply.get_value("offer") if reply is not None else None
        if offer is None:
            self._report_error("webrtcbin returned no offer")
            return
        sdp = offer.sdp.as_text()
        with self._lock:
            self._local_offers[sdp] = offer
        if self.listener is not None:
            self.listener.on_offer_created(sdp)

    def _on_webrtc_pad_added(self, element: GstModule.Element, pad: GstModule.Pad) -> None:
        if pad.get_direction() != Gst.PadDirection.SRC:
            LOG.info("Pad %s is not a source; ignoring.", pad.get_name())
            return
        caps = pad.get_current_caps()
        LOG.info("Receiving stream on %s pad %s", element.get_name(), pad.get_name())
        if self.listener is not None:
            self.listener.on_incoming_stream(
                IncomingStream(stream_id=pad.get_name(), caps=caps.to_string() if caps is not None else None)
            )

    @staticmethod
    def _parse_description(description: SessionDescription):
        sdp_types = {
            "offer": GstWebRTC.WebRTCSDPType.OFFER,
            "answer": GstWebRTC.WebRTCSDPType.ANSWER,
        }
        if description.type not in sdp_types:
            raise EngineError(f"unsupported session description type '{description.type}'")
        result, message = GstSdp.SDPMessage.new()
        if result != GstSdp.SDPResult.OK:
            raise EngineError("failed to allocate SDP message")
        result = GstSdp.sdp_message_parse_buffer(bytes(description.sdp.encode("utf-8")), message)
        if result != GstSdp.SDPResult.OK:
            raise EngineError(f"failed to parse {description.type} SDP")
        return GstWebRTC.WebRTCSessionDescription.new(sdp_types[description.type], message)

    def _report_error(self, message: str) -> None:
        LOG.error("%s", message)
        if self.listener is not None:
            self.listener.on_engine_error(message)

    # ------------------------------------------------------------------ bus

    def _start_bus_monitor(self, pipeline: GstModule.Pipeline) -> None:
        if self._bus_thread and self._bus_thread.is_alive():
            return

        bus = pipeline.get_bus()
        if not bus:
            LOG.warning("Pipeline bus is not available; skipping bus monitoring.")
            return

        self._bus_stop.clear()
        mask = (
            Gst.MessageType.ERROR
            | Gst.MessageType.EOS
            | Gst.MessageType.WARNING
            | Gst.MessageType.STATE_CHANGED
        )

        def _loop() -> None:
            while not self._bus_stop.is_set():
                message = bus.timed_pop_filtered(BUS_POLL_INTERVAL_NS, mask)
                if message is None:
                    continue
                self._handle_bus_message(pipeline, message)

        thread = threading.Thread(target=_loop, name="sendrecv-gst-bus", daemon=True)
        thread.start()
        self._bus_thread = thread

    def _stop_bus_monitor(self) -> None:
        self._bus_stop.set()
        thread = self._bus_thread
        if thread and thread.is_alive() and threading.current_thread() is not thread:
            thread.join(timeout=1.0)
        self._bus_thread = None

    def _handle_bus_message(self, pipeline: GstModule.Pipeline, message: GstModule.Message) -> None:
        msg_type = message.type
        if msg_type == Gst.MessageType.ERROR:
            err, debug = message.parse_error()
            source = message.src.get_name() if message.src is not None else "?"
            self._report_error(f"error from {source}: {err.message} ({debug})")
        elif msg_type == Gst.MessageType.EOS:
            LOG.info("Reached end of stream: %s", message.src.get_name() if message.src is not None else "?")
            if self.listener is not None:
                self.listener.on_end_of_stream()
        elif msg_type == Gst.MessageType.WARNING:
            warn, debug = message.parse_warning()
            LOG.warning("Pipeline warning: %s (%s)", warn.message, debug)
        elif msg_type == Gst.MessageType.STATE_CHANGED and message.src == pipeline:
            old, new, _pending = message.parse_state_changed()
            LOG.info(
                "Pipeline state changed from %s to %s",
                Gst.Element.state_get_name(old),
                Gst.Element.state_get_name(new),
            )


__all__ = ["GStreamerMediaEngine"]
