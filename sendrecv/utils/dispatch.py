"""
Single-owner event dispatch.

Triggers for the negotiation state machine arrive from the asyncio transport
loop and from GStreamer streaming threads.  Every trigger is appended to one
FIFO queue; whichever thread finds the queue idle drains it, so handlers never
run concurrently and always observe events in submission order.  A handler
that submits further events (directly or through a synchronous engine
callback) only enqueues them; they run after the current handler returns.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Callable, Deque, Generic, TypeVar

LOG = logging.getLogger(__name__)

EventT = TypeVar("EventT")


class SerialDispatcher(Generic[EventT]):
    def __init__(self, handler: Callable[[EventT], None], *, name: str = "dispatcher") -> None:
        self._handler = handler
        self._name = name
        self._queue: Deque[EventT] = deque()
        self._queue_lock = threading.Lock()
        self._drain_lock = threading.Lock()

    @property
    def pending(self) -> int:
        with self._queue_lock:
            return len(self._queue)

    def submit(self, event: EventT) -> None:
        with self._queue_lock:
            self._queue.append(event)
        self._drain()

    def _drain(self) -> None:
        while True:
            if not self._drain_lock.acquire(blocking=False):
                # Another thread (or an outer frame of this one) owns the queue.
                return
            try:
                while True:
                    with self._queue_lock:
                        if not self._queue:
                            break
                        event = self._queue.popleft()
                    try:
                        self._handler(event)
                    except Exception:  # handler failures must not stall the queue
                        LOG.exception("%s failed while handling %r", self._name, event)
            finally:
                self._drain_lock.release()

            # An event may have been queued between the final check and release.
            with self._queue_lock:
                if not self._queue:
                    return


__all__ = ["SerialDispatcher"]
