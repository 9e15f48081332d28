"""Cancellable one-shot timers over a manually advanced millisecond clock."""
from __future__ import annotations

import heapq
import itertools
from typing import Callable, List, Tuple


class TimerHandle:
    """A scheduled callback; ``cancel()`` guarantees it never runs."""

    __slots__ = ("when", "callback", "cancelled", "fired")

    def __init__(self, when: float, callback: Callable[[], None]) -> None:
        self.when = when
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True

    @property
    def active(self) -> bool:
        return not self.cancelled and not self.fired


class TimerScheduler:
    """Single-threaded timer queue.

    Time only moves when ``advance`` / ``advance_to`` is called, so callers
    decide whether it follows the wall clock (live sessions) or a fake clock
    (tests). Callbacks run in due order and may schedule or cancel timers.
    """

    def __init__(self, start_ms: float = 0.0) -> None:
        self._now = float(start_ms)
        self._queue: List[Tuple[float, int, TimerHandle]] = []
        self._counter = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        handle = TimerHandle(self._now + max(0.0, float(delay_ms)), callback)
        heapq.heappush(self._queue, (handle.when, next(self._counter), handle))
        return handle

    def pending(self) -> int:
        return sum(1 for _, _, handle in self._queue if handle.active)

    def advance(self, delta_ms: float) -> int:
        return self.advance_to(self._now + max(0.0, float(delta_ms)))

    def advance_to(self, target_ms: float) -> int:
        """Run every timer due at or before ``target_ms``; return how many fired."""

        fired = 0
        while self._queue and self._queue[0][0] <= target_ms:
            when, _, handle = heapq.heappop(self._queue)
            if not handle.active:
                continue
            self._now = max(self._now, when)
            handle.fired = True
            handle.callback()
            fired += 1
        self._now = max(self._now, float(target_ms))
        return fired

    def cancel_all(self) -> None:
        for _, _, handle in self._queue:
            handle.cancel()
        self._queue.clear()
