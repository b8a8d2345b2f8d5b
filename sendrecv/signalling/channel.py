"""
WebSocket transport for the signalling protocol.

The channel exposes inbound traffic as an async iterator of typed events and
accepts outbound frames from any thread.  Outbound frames are buffered in a
bounded queue drained by a sender task on the event loop; when the queue is
full the frame is dropped with a warning (there is no acknowledgement or
backpressure in the protocol).
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import ssl
from dataclasses import dataclass
from typing import AsyncIterator, Optional, Union

import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedError, WebSocketException

from ..errors import TransportError

LOG = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 64


@dataclass(frozen=True)
class ChannelOpened:
    pass


@dataclass(frozen=True)
class ChannelMessage:
    text: str


@dataclass(frozen=True)
class ChannelClosed:
    code: Optional[int] = None
    reason: str = ""


@dataclass(frozen=True)
class ChannelFailed:
    error: TransportError


ChannelEvent = Union[ChannelOpened, ChannelMessage, ChannelClosed, ChannelFailed]


class SignallingChannel:
    """Own one WebSocket connection to the signalling server."""

    def __init__(
        self,
        url: str,
        *,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        verify_tls: bool = True,
        open_timeout: Optional[float] = 10.0,
    ) -> None:
        self.url = url
        self._queue_size = max(1, int(queue_size))
        self._verify_tls = verify_tls
        self._open_timeout = open_timeout
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._send_queue: Optional["asyncio.Queue[str]"] = None
        self._connection = None
        self._closing = False

    @property
    def is_open(self) -> bool:
        return self._connection is not None and not self._closing

    async def events(self) -> AsyncIterator[ChannelEvent]:
        """
        Connect and yield channel events until the connection ends.

        Connection failures are reported as a :class:`ChannelFailed` event
        rather than raised, so consumers see every outcome on one stream.
        """

        self._loop = asyncio.get_running_loop()
        self._send_queue = asyncio.Queue(maxsize=self._queue_size)
        self._closing = False

        try:
            connection = await websockets.connect(self.url, **self._connect_options())
        except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
            LOG.error("Unable to connect to signalling server %s: %s", self.url, exc)
            yield ChannelFailed(TransportError(f"cannot connect to {self.url}: {exc}"))
            return

        LOG.info("Connected to signalling server %s", self.url)
        self._connection = connection
        sender = asyncio.create_task(self._send_loop(connection))
        try:
            yield ChannelOpened()
            try:
                async for frame in connection:
                    if isinstance(frame, bytes):
                        frame = frame.decode("utf-8", errors="replace")
                    yield ChannelMessage(frame)
            except ConnectionClosedError as exc:
                LOG.error("Signalling connection lost: %s", exc)
                yield ChannelFailed(TransportError(f"connection lost: {exc}"))
                return
            LOG.info("Signalling connection closed: %s %s", connection.close_code, connection.close_reason)
            yield ChannelClosed(code=connection.close_code, reason=connection.close_reason or "")
        finally:
            self._closing = True
            self._connection = None
            sender.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sender
            await connection.close()

    def send(self, text: str) -> bool:
        """
        Queue ``text`` for delivery.  Safe to call from any thread.

        Returns ``False`` when the channel is not connected.
        """

        loop = self._loop
        if not self.is_open or loop is None or loop.is_closed():
            LOG.warning("Signalling channel is not open; dropping outbound frame.")
            return False
        loop.call_soon_threadsafe(self._enqueue, text)
        return True

    def request_close(self) -> None:
        """Begin closing the connection.  Safe to call from any thread."""

        loop = self._loop
        if self._closing or loop is None or loop.is_closed():
            return
        self._closing = True
        loop.call_soon_threadsafe(self._begin_close)

    # ------------------------------------------------------------------ helpers

    def _connect_options(self) -> dict:
        options: dict = {"open_timeout": self._open_timeout}
        if self.url.startswith("wss://") and not self._verify_tls:
            context = ssl.create_default_context()
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
            options["ssl"] = context
        return options

    def _enqueue(self, text: str) -> None:
        queue = self._send_queue
        if queue is None:
            return
        try:
            queue.put_nowait(text)
        except asyncio.QueueFull:
            LOG.warning("Outbound signalling queue is full; dropping frame (%d bytes).", len(text))

    def _begin_close(self) -> None:
        connection = self._connection
        if connection is None:
            return
        asyncio.ensure_future(connection.close())

    async def _send_loop(self, connection) -> None:
        queue = self._send_queue
        assert queue is not None
        while True:
            text = await queue.get()
            try:
                await connection.send(text)
            except ConnectionClosed:
                LOG.debug("Send after close ignored.")
                return
            except Exception:
                LOG.exception("Failed to send signalling frame")
                return


__all__ = [
    "ChannelClosed",
    "ChannelEvent",
    "ChannelFailed",
    "ChannelMessage",
    "ChannelOpened",
    "SignallingChannel",
]
