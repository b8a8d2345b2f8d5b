"""
Pipeline lifecycle: maps session-level events onto engine start/stop.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from ..errors import ClientError, EngineError
from .engine import MediaEngine

LOG = logging.getLogger(__name__)

ExitHandler = Callable[[int], None]
FailureSink = Callable[[ClientError], None]

EXIT_OK = 0
EXIT_FAILURE = 1

TEARDOWN_THREAD_NAME = "sendrecv-teardown"


class PipelineLifecycleManager:
    """
    Start the engine once, stop it once, and report the process exit status.

    ``failure_sink`` receives fatal engine errors so the negotiation
    controller can record the failure before the shutdown happens; without a
    sink the manager fails the session itself.
    """

    def __init__(
        self,
        engine: MediaEngine,
        *,
        exit_handler: Optional[ExitHandler] = None,
        engine_errors_fatal: bool = True,
    ) -> None:
        self._engine = engine
        self._exit_handler = exit_handler
        self._engine_errors_fatal = engine_errors_fatal
        self.failure_sink: Optional[FailureSink] = None
        self._lock = threading.RLock()
        self._started = False
        self._finished = False
        self._exit_code: Optional[int] = None
        self._done = threading.Event()

    @property
    def started(self) -> bool:
        return self._started

    @property
    def finished(self) -> bool:
        return self._finished

    @property
    def exit_code(self) -> Optional[int]:
        return self._exit_code

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until teardown has finished; returns ``False`` on timeout."""

        return self._done.wait(timeout)

    def start(self) -> bool:
        """
        Move the engine to the running state.  Only the first call has an
        effect; :class:`EngineError` propagates when the engine refuses.
        """

        with self._lock:
            if self._started or self._finished:
                LOG.debug("Pipeline start ignored (started=%s, finished=%s).", self._started, self._finished)
                return False
            self._started = True
            LOG.info("Starting media pipeline.")
            self._engine.start()
            return True

    def on_end_of_stream(self) -> None:
        LOG.info("Reached end of stream; shutting down.")
        self.shutdown(EXIT_OK)

    def on_engine_error(self, message: str) -> None:
        error = EngineError(message)
        LOG.error("Media engine error: %s", message)
        if not self._engine_errors_fatal:
            return
        sink = self.failure_sink
        if sink is not None:
            sink(error)
        else:
            self.fail(error)

    def fail(self, error: ClientError) -> None:
        LOG.error("Session failed (%s): %s", type(error).__name__, error)
        self.shutdown(EXIT_FAILURE)

    def shutdown(self, exit_code: int = EXIT_OK) -> None:
        """
        Record ``exit_code`` and tear the engine down on the teardown thread.

        Callers may be engine callback threads or the event loop, neither of
        which may block on a pipeline state change.  Use :meth:`wait` to block
        until teardown has finished.
        """

        with self._lock:
            if self._finished:
                return
            self._finished = True
            self._exit_code = exit_code

        thread = threading.Thread(target=self._teardown, args=(exit_code,), name=TEARDOWN_THREAD_NAME, daemon=True)
        thread.start()

    def _teardown(self, exit_code: int) -> None:
        try:
            self._engine.stop()
        except Exception:
            LOG.exception("Failed to stop media pipeline cleanly.")

        try:
            handler = self._exit_handler
            if handler is not None:
                handler(exit_code)
        except Exception:
            LOG.exception("Exit handler failed.")
        finally:
            self._done.set()


__all__ = ["EXIT_FAILURE", "EXIT_OK", "PipelineLifecycleManager", "TEARDOWN_THREAD_NAME"]
