"""Clock and timer service.

Every countdown, dwell timer and simulated delay in the workflow is scheduled
through a Clock. Two implementations are provided:

- AsyncioClock: wall-clock time, callbacks scheduled on the running event loop
- VirtualClock: deterministic time that only moves when advance() is called

Timers are scoped resources. A TimerHandle that has been cancelled never
fires, so the stage that armed a timer can cancel it on the transition that
ends its validity.
"""

import asyncio
import heapq
import itertools
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Callable

logger = logging.getLogger(__name__)

Callback = Callable[[], None]


class TimerHandle:
    """Cancellable handle for a scheduled callback."""

    def __init__(self) -> None:
        self._cancelled = False
        self._fired = False
        self._on_cancel: Callback | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def active(self) -> bool:
        """True while the callback is still pending."""
        return not self._cancelled and not self._fired

    def cancel(self) -> None:
        if not self.active:
            return
        self._cancelled = True
        if self._on_cancel is not None:
            self._on_cancel()

    def _mark_fired(self) -> None:
        self._fired = True


class Clock(ABC):
    """Abstract source of the current time and of scheduled callbacks."""

    @abstractmethod
    def now(self) -> datetime:
        """Current UTC time."""

    @abstractmethod
    def call_later(self, delay: float, callback: Callback) -> TimerHandle:
        """Run callback once after delay seconds."""


class AsyncioClock(Clock):
    """Clock backed by the running asyncio event loop."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def call_later(self, delay: float, callback: Callback) -> TimerHandle:
        loop = asyncio.get_running_loop()
        handle = TimerHandle()

        def _run() -> None:
            if not handle.active:
                return
            handle._mark_fired()
            callback()

        loop_handle = loop.call_later(delay, _run)
        handle._on_cancel = loop_handle.cancel
        return handle


class VirtualClock(Clock):
    """Deterministic clock for tests, scripted walkthroughs and replays.

    Time only moves when advance() is called; due callbacks fire in
    deadline order (ties in scheduling order) with now() set to their
    deadline.
    """

    def __init__(self, start: datetime | None = None) -> None:
        self._now = start or datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)
        self._queue: list[tuple[datetime, int, TimerHandle, Callback]] = []
        self._sequence = itertools.count()

    def now(self) -> datetime:
        return self._now

    def call_later(self, delay: float, callback: Callback) -> TimerHandle:
        handle = TimerHandle()
        deadline = self._now + timedelta(seconds=delay)
        heapq.heappush(self._queue, (deadline, next(self._sequence), handle, callback))
        return handle

    def advance(self, seconds: float) -> None:
        """Move time forward, firing every callback that falls due."""
        target = self._now + timedelta(seconds=seconds)
        while self._queue and self._queue[0][0] <= target:
            deadline, _, handle, callback = heapq.heappop(self._queue)
            if not handle.active:
                continue
            self._now = deadline
            handle._mark_fired()
            callback()
        self._now = target

    @property
    def pending(self) -> int:
        """Number of scheduled callbacks that can still fire."""
        return sum(1 for _, _, handle, _ in self._queue if handle.active)


class PeriodicTimer:
    """Repeating timer built on Clock.call_later.

    on_tick receives the number of ticks elapsed since start().
    """

    def __init__(
        self,
        clock: Clock,
        interval: float,
        on_tick: Callable[[int], None],
        name: str = "timer",
    ) -> None:
        self.clock = clock
        self.interval = interval
        self.on_tick = on_tick
        self.name = name
        self.ticks = 0
        self._handle: TimerHandle | None = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        self.cancel()
        self.ticks = 0
        self._running = True
        self._schedule()

    def cancel(self) -> None:
        if self._running:
            logger.debug(f"Cancelling {self.name} after {self.ticks} ticks")
        self._running = False
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _schedule(self) -> None:
        self._handle = self.clock.call_later(self.interval, self._fire)

    def _fire(self) -> None:
        if not self._running:
            return
        self.ticks += 1
        # Reschedule before the callback so a cancel() inside on_tick sticks.
        self._schedule()
        self.on_tick(self.ticks)


class Countdown:
    """1 Hz countdown that reports remaining seconds and stops at zero."""

    def __init__(
        self,
        clock: Clock,
        seconds: int,
        on_expire: Callback | None = None,
        name: str = "countdown",
    ) -> None:
        self.seconds = seconds
        self.remaining = 0
        self._total = seconds
        self.on_expire = on_expire
        self._timer = PeriodicTimer(clock, 1.0, self._tick, name=name)

    @property
    def running(self) -> bool:
        return self._timer.running

    def start(self, seconds: int | None = None) -> None:
        """Start counting down from `seconds` (defaults to the full duration)."""
        self._timer.cancel()
        self._total = self.seconds if seconds is None else min(seconds, self.seconds)
        self.remaining = max(0, self._total)
        if self.remaining == 0:
            return
        self._timer.start()

    def cancel(self) -> None:
        self._timer.cancel()
        self.remaining = 0

    def _tick(self, ticks: int) -> None:
        self.remaining = max(0, self._total - ticks)
        if self.remaining == 0:
            self._timer.cancel()
            if self.on_expire is not None:
                self.on_expire()
