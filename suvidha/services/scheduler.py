"""
scheduler.py - Timer abstraction for staged delays

Every delay in the kiosk (idle timeout, payment completion, biometric scan,
cash insertion counter) is a scheduled callback, never a blocking wait.
Production code runs on the asyncio loop; tests drive a virtual clock.
"""

import asyncio
import heapq
import itertools
import logging
from typing import Callable, List, Optional, Protocol

logger = logging.getLogger("Scheduler")


class TimerHandle:
    """Handle for a pending callback. Cancelling twice is harmless."""

    def __init__(self, when: float, callback: Callable, args: tuple = ()):
        self.when = when
        self._callback = callback
        self._args = args
        self._cancelled = False
        self._fired = False
        self._loop_handle: Optional[asyncio.TimerHandle] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def active(self) -> bool:
        return not (self._cancelled or self._fired)

    def cancel(self):
        self._cancelled = True
        if self._loop_handle is not None:
            self._loop_handle.cancel()

    def _run(self):
        if not self.active:
            return
        self._fired = True
        try:
            self._callback(*self._args)
        except Exception as e:
            logger.error(f"Scheduled callback error: {e}")


class Scheduler(Protocol):
    def now(self) -> float:
        ...

    def after(self, delay: float, callback: Callable, *args) -> TimerHandle:
        ...


class AsyncioScheduler:
    """Scheduler backed by the running asyncio loop (``call_later``)."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return self.loop.time()

    def after(self, delay: float, callback: Callable, *args) -> TimerHandle:
        handle = TimerHandle(self.now() + delay, callback, args)
        handle._loop_handle = self.loop.call_later(delay, handle._run)
        return handle


class VirtualScheduler:
    """
    Deterministic scheduler driven by ``advance()``.

    Callbacks run in (due time, registration order). Callbacks scheduled
    while advancing run in the same ``advance()`` call if they fall due
    before its end.
    """

    def __init__(self, start: float = 0.0):
        self._now = start
        self._queue: List[tuple] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._now

    def after(self, delay: float, callback: Callable, *args) -> TimerHandle:
        handle = TimerHandle(self._now + max(0.0, delay), callback, args)
        heapq.heappush(self._queue, (handle.when, next(self._seq), handle))
        return handle

    def advance(self, seconds: float) -> int:
        """Move the clock forward, firing due callbacks. Returns how many ran."""
        deadline = self._now + seconds
        fired = 0
        while self._queue and self._queue[0][0] <= deadline:
            when, _, handle = heapq.heappop(self._queue)
            self._now = max(self._now, when)
            if handle.active:
                handle._run()
                fired += 1
        self._now = deadline
        return fired

    def pending(self) -> int:
        return sum(1 for _, _, h in self._queue if h.active)
