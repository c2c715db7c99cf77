"""Timers for the reader session and the stalled-generation monitor.

Both components take a Scheduler instead of calling asyncio directly:

    AsyncioScheduler — real timers on the running event loop.
    ManualScheduler  — a virtual clock advanced by hand; tests use it to step
                       through the one-, two-, three- and five-second windows
                       without sleeping.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
from collections.abc import Callable
from typing import Protocol


Callback = Callable[[], None]


class TimerHandle(Protocol):
    @property
    def cancelled(self) -> bool: ...

    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callback) -> TimerHandle: ...

    def call_every(self, interval: float, callback: Callback) -> TimerHandle: ...


# ---------------------------------------------------------------------------
# AsyncioScheduler
# ---------------------------------------------------------------------------

class _AsyncioTimer:
    def __init__(self) -> None:
        self._handle: asyncio.TimerHandle | None = None
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True
        if self._handle is not None:
            self._handle.cancel()


class AsyncioScheduler:
    """Scheduler backed by loop.call_later. Must be used inside a running loop."""

    def call_later(self, delay: float, callback: Callback) -> TimerHandle:
        timer = _AsyncioTimer()
        timer._handle = asyncio.get_running_loop().call_later(delay, callback)
        return timer

    def call_every(self, interval: float, callback: Callback) -> TimerHandle:
        timer = _AsyncioTimer()
        loop = asyncio.get_running_loop()

        def tick() -> None:
            if timer.cancelled:
                return
            timer._handle = loop.call_later(interval, tick)
            callback()

        timer._handle = loop.call_later(interval, tick)
        return timer


# ---------------------------------------------------------------------------
# ManualScheduler
# ---------------------------------------------------------------------------

class _ManualTimer:
    def __init__(self, interval: float | None) -> None:
        self.interval = interval
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


class ManualScheduler:
    """Virtual-time scheduler. Nothing fires until advance() is called."""

    def __init__(self) -> None:
        self.now = 0.0
        self._queue: list[tuple[float, int, _ManualTimer, Callback]] = []
        self._seq = itertools.count()

    def call_later(self, delay: float, callback: Callback) -> TimerHandle:
        timer = _ManualTimer(None)
        self._push(self.now + delay, timer, callback)
        return timer

    def call_every(self, interval: float, callback: Callback) -> TimerHandle:
        timer = _ManualTimer(interval)
        self._push(self.now + interval, timer, callback)
        return timer

    def _push(self, when: float, timer: _ManualTimer, callback: Callback) -> None:
        heapq.heappush(self._queue, (when, next(self._seq), timer, callback))

    @property
    def pending(self) -> int:
        return sum(1 for _, _, timer, _ in self._queue if not timer.cancelled)

    def advance(self, seconds: float) -> None:
        """Move the clock forward, firing every due callback in order."""
        target = self.now + seconds
        while self._queue and self._queue[0][0] <= target:
            when, _, timer, callback = heapq.heappop(self._queue)
            if timer.cancelled:
                continue
            self.now = when
            if timer.interval is not None:
                self._push(when + timer.interval, timer, callback)
            callback()
        self.now = target
