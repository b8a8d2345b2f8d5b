"""
Session wiring.

:class:`SendRecvClient` builds the static send graph, binds itself as the
engine listener and pumps signalling channel events into the negotiation
controller until the session ends.  Engine callbacks are routed by concern:
negotiation and ICE to the negotiation controller, stream arrivals to the
media graph controller, end-of-stream and errors to the lifecycle manager.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from .config import ClientConfig
from .errors import ClientError
from .graph.controller import MediaGraphController
from .graph.model import MediaGraph
from .graph.template import relay_sink, send_graph
from .negotiation.controller import NegotiationController, TimerFactory, daemon_timer
from .runtime.engine import IncomingStream, MediaEngine
from .runtime.gst_engine import GStreamerMediaEngine
from .runtime.lifecycle import EXIT_FAILURE, EXIT_OK, PipelineLifecycleManager
from .session import PeerSession
from .signalling.channel import SignallingChannel

LOG = logging.getLogger(__name__)

SHUTDOWN_GRACE_SECONDS = 1.0
TEARDOWN_TIMEOUT_SECONDS = 5.0


class SendRecvClient:
    def __init__(
        self,
        config: ClientConfig,
        *,
        engine: Optional[MediaEngine] = None,
        channel: Optional[SignallingChannel] = None,
        timer_factory: TimerFactory = daemon_timer,
    ) -> None:
        self.config = config
        self.session = PeerSession(
            peer_id=config.peer_id,
            server_url=config.server_url,
            rtmp_target=config.rtmp_uri,
            client_token=config.client_token,
        )
        self.engine = engine if engine is not None else GStreamerMediaEngine()
        self.channel = (
            channel
            if channel is not None
            else SignallingChannel(
                config.server_url,
                queue_size=config.outbound_queue_size,
                verify_tls=config.verify_tls,
            )
        )
        self.lifecycle = PipelineLifecycleManager(
            self.engine,
            exit_handler=self._on_exit,
            engine_errors_fatal=config.engine_errors_fatal,
        )
        self.negotiation = NegotiationController(
            self.session,
            self.channel,
            self.engine,
            self.lifecycle,
            registration_timeout=config.registration_timeout,
            answer_timeout=config.answer_timeout,
            timer_factory=timer_factory,
        )
        self.graph_controller: Optional[MediaGraphController] = None

    def build(self) -> MediaGraph:
        """Instantiate the send graph on the engine and start listening to it."""

        graph = send_graph(stun_server=self.config.stun_server).instantiate(self.engine)
        LOG.debug("Send graph built: %s", graph.describe())
        self.graph_controller = MediaGraphController(
            self.engine,
            graph,
            relay_sink=relay_sink(self.config.rtmp_uri),
            video_size=(self.config.incoming_video_width, self.config.incoming_video_height),
        )
        self.engine.bind(self)
        return graph

    async def run(self) -> int:
        """Run the session to completion and return the process exit status."""

        if self.graph_controller is None:
            try:
                self.build()
            except ClientError as exc:
                LOG.error("Failed to build the media graph: %s", exc)
                return EXIT_FAILURE

        LOG.info("Starting session %s", self.session.describe())
        async for event in self.channel.events():
            self.negotiation.submit(event)

        loop = asyncio.get_running_loop()
        if not self.lifecycle.finished:
            # The final event may still be draining on an engine thread.
            await loop.run_in_executor(None, self.lifecycle.wait, SHUTDOWN_GRACE_SECONDS)
        if not self.lifecycle.finished:
            self.lifecycle.shutdown(EXIT_OK)
        # Teardown runs on its own thread; never block the loop on it.
        if not await loop.run_in_executor(None, self.lifecycle.wait, TEARDOWN_TIMEOUT_SECONDS):
            LOG.warning("Media pipeline did not stop within %.0fs.", TEARDOWN_TIMEOUT_SECONDS)
        return self.lifecycle.exit_code if self.lifecycle.exit_code is not None else EXIT_OK

    # --------------------------------------------------------- engine events

    def on_negotiation_needed(self) -> None:
        self.negotiation.on_negotiation_needed()

    def on_offer_created(self, sdp: str) -> None:
        self.negotiation.on_offer_created(sdp)

    def on_ice_candidate(self, mline_index: int, candidate: str) -> None:
        self.negotiation.on_ice_candidate(mline_index, candidate)

    def on_incoming_stream(self, stream: IncomingStream) -> None:
        controller = self.graph_controller
        if controller is None:
            LOG.warning("Stream %s arrived before the graph was built; ignoring.", stream.stream_id)
            return
        controller.on_incoming_stream(stream)

    def on_end_of_stream(self) -> None:
        self.lifecycle.on_end_of_stream()

    def on_engine_error(self, message: str) -> None:
        self.lifecycle.on_engine_error(message)

    # --------------------------------------------------------------- helpers

    def _on_exit(self, exit_code: int) -> None:
        LOG.info("Session finished with status %d; closing signalling channel.", exit_code)
        self.channel.request_close()


__all__ = ["SendRecvClient"]
