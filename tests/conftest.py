"""Shared fakes for the engine, the signalling channel and phase timers."""

from __future__ import annotations

import threading
from typing import Callable, List, Optional, Tuple

import pytest

from sendrecv.errors import EngineError
from sendrecv.negotiation.controller import NegotiationController
from sendrecv.runtime.engine import MediaEngine
from sendrecv.runtime.lifecycle import PipelineLifecycleManager
from sendrecv.session import PeerSession


class FakeEngine(MediaEngine):
    """Records every command in ``ops``; optionally refuses to start."""

    def __init__(self) -> None:
        super().__init__()
        self.ops: List[Tuple] = []
        self.fail_start = False
        self.stop_threads: List[str] = []
        self._lock = threading.Lock()

    def _record(self, *op) -> None:
        with self._lock:
            self.ops.append(op)

    def names(self, kind: str) -> List:
        return [op[1] if len(op) == 2 else op[1:] for op in self.ops if op[0] == kind]

    def count(self, kind: str) -> int:
        return sum(1 for op in self.ops if op[0] == kind)

    def start(self) -> None:
        self._record("start")
        if self.fail_start:
            raise EngineError("refusing to start")

    def stop(self) -> None:
        self.stop_threads.append(threading.current_thread().name)
        self._record("stop")

    def create_offer(self) -> None:
        self._record("create_offer")

    def set_local_description(self, description) -> None:
        self._record("set_local", description.type, description.sdp)

    def set_remote_description(self, description) -> None:
        self._record("set_remote", description.type, description.sdp)

    def add_ice_candidate(self, mline_index: int, candidate: str) -> None:
        self._record("add_ice", mline_index, candidate)

    def add_node(self, node) -> None:
        self._record("add_node", node.name)

    def sync_state(self, node_name: str) -> None:
        self._record("sync_state", node_name)

    def link(self, link) -> None:
        self._record("link", str(link))


class FakeChannel:
    def __init__(self) -> None:
        self.sent: List[str] = []
        self.close_requested = False
        self._lock = threading.Lock()

    def send(self, text: str) -> bool:
        with self._lock:
            self.sent.append(text)
        return True

    def request_close(self) -> None:
        self.close_requested = True


class FakeTimer:
    def __init__(self, seconds: float, callback: Callable[[], None]) -> None:
        self.seconds = seconds
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        self.callback()


class FakeTimers:
    def __init__(self) -> None:
        self.created: List[FakeTimer] = []

    def __call__(self, seconds: float, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(seconds, callback)
        self.created.append(timer)
        return timer

    @property
    def last(self) -> Optional[FakeTimer]:
        return self.created[-1] if self.created else None


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def channel() -> FakeChannel:
    return FakeChannel()


@pytest.fixture
def timers() -> FakeTimers:
    return FakeTimers()


@pytest.fixture
def exit_codes() -> List[int]:
    return []


@pytest.fixture
def lifecycle(engine: FakeEngine, exit_codes: List[int]) -> PipelineLifecycleManager:
    return PipelineLifecycleManager(engine, exit_handler=exit_codes.append)


@pytest.fixture
def session() -> PeerSession:
    return PeerSession(peer_id="1234", server_url="wss://signalling.test:8443", client_token="564322")


@pytest.fixture
def controller(session, channel, engine, lifecycle, timers) -> NegotiationController:
    return NegotiationController(
        session,
        channel,
        engine,
        lifecycle,
        registration_timeout=10.0,
        answer_timeout=30.0,
        timer_factory=timers,
    )
