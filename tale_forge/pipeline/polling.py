"""Recovery for a story whose first segment has not shown up yet.

While a freshly created story has no segments the reader keeps three kinds
of timers alive:

    background  every 3 s, for as long as the story is empty
    burst       every 1 s for 5 s after the reader becomes visible again
    expiry      one-shot, ends the burst

A visibility or focus event also refetches immediately. Every tick checks
has_segments() first and tears everything down once the story has content.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from tale_forge.clock import Scheduler, TimerHandle

logger = logging.getLogger(__name__)


class StalledGenerationMonitor:
    def __init__(
        self,
        refetch: Callable[[], object],
        has_segments: Callable[[], bool],
        scheduler: Scheduler,
        burst_interval: float = 1.0,
        burst_duration: float = 5.0,
        background_interval: float = 3.0,
    ) -> None:
        self._refetch = refetch
        self._has_segments = has_segments
        self._scheduler = scheduler
        self._burst_interval = burst_interval
        self._burst_duration = burst_duration
        self._background_interval = background_interval

        self._background: TimerHandle | None = None
        self._burst: TimerHandle | None = None
        self._expiry: TimerHandle | None = None

    @property
    def active(self) -> bool:
        return any(
            t is not None and not t.cancelled
            for t in (self._background, self._burst, self._expiry)
        )

    def start(self) -> None:
        if self._has_segments():
            return
        if self._background is None or self._background.cancelled:
            self._background = self._scheduler.call_every(self._background_interval, self._tick)

    def on_visible(self) -> None:
        if not self._poll_once():
            return
        self._end_burst()
        self._burst = self._scheduler.call_every(self._burst_interval, self._tick)
        self._expiry = self._scheduler.call_later(self._burst_duration, self._end_burst)
        logger.debug("polling burst started")

    def on_focus(self) -> None:
        self._poll_once()

    def stop(self) -> None:
        for timer in (self._background, self._burst, self._expiry):
            if timer is not None:
                timer.cancel()

    def _poll_once(self) -> bool:
        """Refetch unless segments are already there. False once done."""
        if self._has_segments():
            self.stop()
            return False
        self._refetch()
        if self._has_segments():
            self.stop()
            return False
        return True

    def _tick(self) -> None:
        if not self._poll_once():
            logger.debug("segments arrived, polling stopped")

    def _end_burst(self) -> None:
        for timer in (self._burst, self._expiry):
            if timer is not None:
                timer.cancel()
