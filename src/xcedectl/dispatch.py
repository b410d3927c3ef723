"""Serialized callback queue owned by the orchestrator's caller."""

from __future__ import annotations

import heapq
import itertools
import queue
import threading
import time
from typing import Callable, List, Optional, Tuple

Callback = Callable[[], None]

# Posted only to wake a blocked run_pending() when a timer is added.
_WAKE: Callback = lambda: None  # noqa: E731


class Dispatcher:
    """
    Worker threads post callbacks here; the owning thread runs them.

    This is the "main loop" the sinks live on: callbacks execute one at a
    time, in the order they were posted, on whichever thread calls
    run_pending(). Deferred callbacks (call_later) run once their delay has
    elapsed, ahead of regular callbacks posted later.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._events: "queue.Queue[Callback]" = queue.Queue()
        self._timers: List[Tuple[float, int, Callback]] = []
        self._timer_lock = threading.Lock()
        self._seq = itertools.count()

    def post(self, fn: Callback) -> None:
        self._events.put(fn)

    def call_later(self, delay: float, fn: Callback) -> None:
        with self._timer_lock:
            heapq.heappush(self._timers, (self._clock() + max(0.0, delay), next(self._seq), fn))
        self._events.put(_WAKE)

    def _pop_due_timers(self) -> List[Callback]:
        now = self._clock()
        due: List[Callback] = []
        with self._timer_lock:
            while self._timers and self._timers[0][0] <= now:
                due.append(heapq.heappop(self._timers)[2])
        return due

    def _next_timer_delay(self) -> Optional[float]:
        with self._timer_lock:
            if not self._timers:
                return None
            return max(0.0, self._timers[0][0] - self._clock())

    @property
    def has_timers(self) -> bool:
        with self._timer_lock:
            return bool(self._timers)

    def run_pending(self, timeout: float = 0.0) -> int:
        """
        Run every callback that is ready now.

        If nothing is ready, block for up to `timeout` seconds waiting for
        the first one (or for a timer to come due).

        Returns:
            Number of callbacks executed (wake-ups not counted).
        """
        deadline = self._clock() + max(0.0, timeout)
        ran = 0
        while True:
            for fn in self._pop_due_timers():
                fn()
                ran += 1

            try:
                fn = self._events.get_nowait()
            except queue.Empty:
                if ran:
                    return ran
                remaining = deadline - self._clock()
                if remaining <= 0:
                    return ran
                nxt = self._next_timer_delay()
                wait = remaining if nxt is None else min(remaining, nxt)
                try:
                    fn = self._events.get(timeout=max(wait, 0.001))
                except queue.Empty:
                    continue

            if fn is _WAKE:
                continue
            fn()
            ran += 1
