"""Cancellable fixed-interval polling used by ``wait`` and ``watch``."""

from __future__ import annotations

import signal
import threading
import time
from contextlib import contextmanager
from typing import Callable, Iterator


class Poller:
    """Iterate once per ``interval`` until stopped or the deadline passes.

    Each iteration yields the elapsed seconds. ``timed_out`` and
    ``cancelled`` report why the loop ended. Sleeping waits on the stop
    event, so ``cancel()`` wakes the loop immediately.

    Example:
        >>> poller = Poller(interval=0.0, timeout=0.0)
        >>> list(poller), poller.timed_out
        ([0.0], True)
    """

    def __init__(
        self,
        interval: float,
        timeout: float | None = None,
        *,
        stop: threading.Event | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.interval = interval
        self.timeout = timeout
        self.stop = stop or threading.Event()
        self._clock = clock
        self.timed_out = False

    @property
    def cancelled(self) -> bool:
        return self.stop.is_set()

    def cancel(self) -> None:
        self.stop.set()

    def __iter__(self) -> Iterator[float]:
        started = self._clock()
        first = True
        while not self.stop.is_set():
            elapsed = 0.0 if first else self._clock() - started
            first = False
            yield elapsed
            if self.timeout is not None and self._clock() - started >= self.timeout:
                self.timed_out = True
                return
            if self.stop.wait(self.interval):
                return


@contextmanager
def cancel_on_interrupt(poller: Poller) -> Iterator[Poller]:
    """Route SIGINT to ``poller.cancel`` for the duration of the block."""
    if threading.current_thread() is not threading.main_thread():
        yield poller
        return
    previous = signal.getsignal(signal.SIGINT)

    def _handler(_signum: int, _frame: object) -> None:
        poller.cancel()

    signal.signal(signal.SIGINT, _handler)
    try:
        yield poller
    finally:
        signal.signal(signal.SIGINT, previous)
