"""
Negotiation state machine.

The controller is the single owner of :class:`~sendrecv.session.PeerSession`
state and of the engine's description/candidate setters.  Transport events and
engine callbacks never act directly: they are submitted as events and handled
one at a time, in submission order, by a :class:`SerialDispatcher`.

    Idle --open--> Registering --SESSION_OK--> SessionEstablished
         --offer created--> OfferSent --answer--> Connected

Any non-terminal state moves to Failed on a server ``ERROR``, a transport
failure, a fatal engine error or a phase timeout.  ICE candidates flow in
both directions independently of the SDP state.
"""

from __future__ import annotations

import functools
import logging
import threading
from typing import Callable, Dict, Optional, Protocol, Type

from ..errors import (
    AnswerTimeout,
    ClientError,
    EngineError,
    InvalidTransition,
    MalformedMessage,
    NegotiationTimeout,
    RegistrationTimeout,
    SignallingError,
)
from ..runtime.engine import MediaEngine, SessionDescription
from ..runtime.lifecycle import EXIT_OK, PipelineLifecycleManager
from ..session import NegotiationState, PeerSession
from ..signalling.channel import ChannelClosed, ChannelFailed, ChannelMessage, ChannelOpened
from ..signalling.codec import (
    Error,
    Hello,
    IceCandidate,
    MessageCodec,
    SdpAnswer,
    SdpOffer,
    SessionAck,
    SessionRequest,
    SignallingMessage,
)
from ..utils.dispatch import SerialDispatcher
from .events import EngineFailure, LocalIceCandidate, NegotiationNeeded, OfferCreated, TimeoutExpired

LOG = logging.getLogger(__name__)


class Outbound(Protocol):
    def send(self, text: str) -> bool: ...


class Timer(Protocol):
    def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], None]], Timer]


def daemon_timer(seconds: float, callback: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(seconds, callback)
    timer.daemon = True
    timer.start()
    return timer


class NegotiationController:
    def __init__(
        self,
        session: PeerSession,
        channel: Outbound,
        engine: MediaEngine,
        lifecycle: PipelineLifecycleManager,
        *,
        codec: Optional[MessageCodec] = None,
        registration_timeout: Optional[float] = None,
        answer_timeout: Optional[float] = None,
        timer_factory: TimerFactory = daemon_timer,
    ) -> None:
        self._session = session
        self._channel = channel
        self._engine = engine
        self._lifecycle = lifecycle
        self._codec = codec or MessageCodec()
        self._registration_timeout = registration_timeout
        self._answer_timeout = answer_timeout
        self._timer_factory = timer_factory
        self._timers: Dict[NegotiationState, Timer] = {}
        self._dispatcher: SerialDispatcher[object] = SerialDispatcher(self._handle, name="negotiation")

        self._event_handlers: Dict[type, Callable] = {
            ChannelOpened: self._on_channel_opened,
            ChannelMessage: self._on_channel_message,
            ChannelClosed: self._on_channel_closed,
            ChannelFailed: self._on_channel_failed,
            NegotiationNeeded: self._on_negotiation_needed,
            OfferCreated: self._on_offer_created,
            LocalIceCandidate: self._on_local_ice_candidate,
            EngineFailure: self._on_engine_failure,
            TimeoutExpired: self._on_timeout,
        }
        self._message_handlers: Dict[type, Callable] = {
            Hello: self._on_hello,
            SessionAck: self._on_session_ack,
            Error: self._on_server_error,
            SdpOffer: self._on_remote_offer,
            SdpAnswer: self._on_answer,
            IceCandidate: self._on_remote_ice_candidate,
        }

        lifecycle.failure_sink = self.report_failure

    @property
    def session(self) -> PeerSession:
        return self._session

    @property
    def state(self) -> NegotiationState:
        return self._session.state

    # ------------------------------------------------------------ submission

    def submit(self, event: object) -> None:
        """Queue a trigger.  Safe to call from any thread."""

        self._dispatcher.submit(event)

    def on_negotiation_needed(self) -> None:
        self.submit(NegotiationNeeded())

    def on_offer_created(self, sdp: str) -> None:
        self.submit(OfferCreated(sdp))

    def on_ice_candidate(self, mline_index: int, candidate: str) -> None:
        self.submit(LocalIceCandidate(mline_index, candidate))

    def report_failure(self, error: ClientError) -> None:
        self.submit(EngineFailure(error))

    # ------------------------------------------------------------- dispatch

    def _handle(self, event: object) -> None:
        handler = self._event_handlers.get(type(event))
        if handler is None:
            LOG.warning("Ignoring unknown negotiation event %r", event)
            return
        handler(event)

    # ------------------------------------------------------- channel events

    def _on_channel_opened(self, _event: ChannelOpened) -> None:
        if self.state is not NegotiationState.IDLE:
            LOG.warning("Channel opened in state %s; ignoring.", self.state.value)
            return
        self._send(Hello(client_token=self._session.client_token))
        self._transition(NegotiationState.REGISTERING)
        self._arm(NegotiationState.REGISTERING, self._registration_timeout, RegistrationTimeout)

    def _on_channel_message(self, event: ChannelMessage) -> None:
        if self.state.is_terminal:
            LOG.debug("Session failed; dropping inbound frame.")
            return
        try:
            message = self._codec.decode(event.text)
        except MalformedMessage as exc:
            LOG.warning("Dropping malformed signalling message: %s", exc)
            return
        self._message_handlers[type(message)](message)

    def _on_channel_closed(self, event: ChannelClosed) -> None:
        self._cancel_timers()
        if self.state.is_terminal:
            return
        LOG.info("Signalling channel closed (%s %s); shutting down.", event.code, event.reason)
        self._lifecycle.shutdown(EXIT_OK)

    def _on_channel_failed(self, event: ChannelFailed) -> None:
        self._fail(event.error)

    # ------------------------------------------------------ inbound messages

    def _on_hello(self, _message: Hello) -> None:
        if self.state is not NegotiationState.REGISTERING:
            LOG.warning("Unexpected HELLO in state %s; ignoring.", self.state.value)
            return
        self._send(SessionRequest(peer_id=self._session.peer_id))

    def _on_session_ack(self, _message: SessionAck) -> None:
        if self.state is not NegotiationState.REGISTERING:
            LOG.warning("Unexpected SESSION_OK in state %s; ignoring.", self.state.value)
            return
        self._cancel_timer(NegotiationState.REGISTERING)
        try:
            self._lifecycle.start()
        except EngineError as exc:
            self._fail(exc)
            return
        self._transition(NegotiationState.SESSION_ESTABLISHED)

    def _on_server_error(self, message: Error) -> None:
        self._fail(SignallingError(message.text or "server reported an unspecified error"))

    def _on_remote_offer(self, _message: SdpOffer) -> None:
        LOG.warning("Ignoring remote SDP offer; this client always makes the offer.")

    def _on_answer(self, message: SdpAnswer) -> None:
        if self.state is not NegotiationState.OFFER_SENT:
            LOG.warning("Unexpected SDP answer in state %s; ignoring.", self.state.value)
            return
        self._cancel_timer(NegotiationState.OFFER_SENT)
        LOG.info("Answer SDP:\n%s", message.sdp)
        try:
            self._engine.set_remote_description(SessionDescription(type="answer", sdp=message.sdp))
        except EngineError as exc:
            self._fail(exc)
            return
        self._transition(NegotiationState.CONNECTED)

    def _on_remote_ice_candidate(self, message: IceCandidate) -> None:
        LOG.debug("Adding remote ICE candidate %d: %s", message.mline_index, message.candidate)
        try:
            self._engine.add_ice_candidate(message.mline_index, message.candidate)
        except EngineError as exc:
            LOG.warning("Engine rejected ICE candidate %s: %s", message.candidate, exc)

    # --------------------------------------------------------- engine events

    def _on_negotiation_needed(self, _event: NegotiationNeeded) -> None:
        if self.state is not NegotiationState.SESSION_ESTABLISHED:
            LOG.debug("Negotiation needed in state %s; ignoring.", self.state.value)
            return
        LOG.info("Negotiation needed; requesting offer.")
        try:
            self._engine.create_offer()
        except EngineError as exc:
            self._fail(exc)

    def _on_offer_created(self, event: OfferCreated) -> None:
        if self.state is not NegotiationState.SESSION_ESTABLISHED:
            LOG.warning("Offer created in state %s; ignoring.", self.state.value)
            return
        try:
            self._engine.set_local_description(SessionDescription(type="offer", sdp=event.sdp))
        except EngineError as exc:
            self._fail(exc)
            return
        LOG.info("Sending offer:\n%s", event.sdp)
        self._send(SdpOffer(sdp=event.sdp))
        self._transition(NegotiationState.OFFER_SENT)
        self._arm(NegotiationState.OFFER_SENT, self._answer_timeout, AnswerTimeout)

    def _on_local_ice_candidate(self, event: LocalIceCandidate) -> None:
        self._send(IceCandidate(candidate=event.candidate, mline_index=event.mline_index))

    def _on_engine_failure(self, event: EngineFailure) -> None:
        self._fail(event.error)

    def _on_timeout(self, event: TimeoutExpired) -> None:
        self._timers.pop(event.state, None)
        if self.state is not event.state:
            return
        self._fail(event.error_type(f"no progress after {event.seconds:g}s in state {event.state.value}"))

    # --------------------------------------------------------------- helpers

    def _send(self, message: SignallingMessage) -> None:
        if self.state.is_terminal:
            LOG.debug("Session failed; not sending %s.", type(message).__name__)
            return
        text = self._codec.encode(message)
        LOG.debug("Sending: %s", text)
        self._channel.send(text)

    def _transition(self, target: NegotiationState) -> None:
        current = self._session.state
        if target.rank <= current.rank:
            raise InvalidTransition(f"cannot move from {current.value} to {target.value}")
        LOG.info("Negotiation state %s -> %s", current.value, target.value)
        self._session.state = target

    def _fail(self, error: ClientError) -> None:
        if self.state.is_terminal:
            return
        self._cancel_timers()
        self._transition(NegotiationState.FAILED)
        self._lifecycle.fail(error)

    def _arm(self, state: NegotiationState, seconds: Optional[float], error_type: Type[NegotiationTimeout]) -> None:
        if not seconds or seconds <= 0:
            return
        event = TimeoutExpired(state=state, error_type=error_type, seconds=float(seconds))
        self._timers[state] = self._timer_factory(float(seconds), functools.partial(self.submit, event))

    def _cancel_timer(self, state: NegotiationState) -> None:
        timer = self._timers.pop(state, None)
        if timer is not None:
            timer.cancel()

    def _cancel_timers(self) -> None:
        for state in list(self._timers):
            self._cancel_timer(state)


__all__ = ["NegotiationController", "daemon_timer"]
