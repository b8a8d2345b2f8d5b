"""Tests covering serialised event dispatch."""

import threading
import time

from sendrecv.utils.dispatch import SerialDispatcher


def test_nested_submissions_run_after_current_handler() -> None:
    seen = []

    def handler(event):
        seen.append(("begin", event))
        if event == "first":
            dispatcher.submit("second")
        seen.append(("end", event))

    dispatcher = SerialDispatcher(handler)
    dispatcher.submit("first")

    assert seen == [("begin", "first"), ("end", "first"), ("begin", "second"), ("end", "second")]
    assert dispatcher.pending == 0


def test_failing_handler_does_not_stall_queue() -> None:
    seen = []

    def handler(event):
        if event == "boom":
            raise RuntimeError("boom")
        seen.append(event)

    dispatcher = SerialDispatcher(handler)
    for event in ("a", "boom", "b"):
        dispatcher.submit(event)

    assert seen == ["a", "b"]


def test_handlers_never_overlap_across_threads() -> None:
    active = []
    overlaps = []
    seen = []
    guard = threading.Lock()

    def handler(event):
        with guard:
            active.append(event)
            if len(active) > 1:
                overlaps.append(list(active))
        time.sleep(0.0005)
        seen.append(event)
        with guard:
            active.remove(event)

    dispatcher = SerialDispatcher(handler)
    barrier = threading.Barrier(4)

    def producer(index: int) -> None:
        barrier.wait()
        for n in range(20):
            dispatcher.submit((index, n))

    threads = [threading.Thread(target=producer, args=(index,)) for index in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert overlaps == []
    assert len(seen) == 80
    for index in range(4):
        assert [n for i, n in seen if i == index] == list(range(20))
