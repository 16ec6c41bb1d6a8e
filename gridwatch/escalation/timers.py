"""
Clocks and Timers

Deferred level dispatch goes through a TimerService so the engine can be
driven by the real event loop in production and by virtual time in tests
and replays.

- AsyncioTimerService: loop.call_later, callbacks run as tasks
- ManualTimerService: min-heap of (fire_at, seq, key) advanced explicitly
"""

import asyncio
import heapq
import itertools
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Dict, List, Optional, Set, Tuple

logger = logging.getLogger(__name__)

TimerKey = Tuple[int, int]  # (meter_id, level)
TimerCallback = Callable[[], Awaitable[None]]


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime:
        """Current time as an aware UTC datetime."""


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class ManualClock(Clock):
    """Clock that only moves when told to."""

    def __init__(self, start: Optional[datetime] = None):
        self._now = start or datetime(2025, 1, 1, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._now

    def advance(self, seconds: float) -> datetime:
        self._now = self._now + timedelta(seconds=seconds)
        return self._now

    def set(self, moment: datetime) -> None:
        if moment < self._now:
            raise ValueError("ManualClock cannot move backwards")
        self._now = moment


class TimerService(ABC):
    """Keyed, cancellable one-shot timers."""

    @abstractmethod
    def schedule(self, key: TimerKey, delay_seconds: float, callback: TimerCallback) -> None:
        """Run callback after delay. An existing timer with the same key is replaced."""

    @abstractmethod
    def cancel(self, key: TimerKey) -> bool:
        """Cancel a pending timer. Returns False if nothing was pending under key."""

    @abstractmethod
    def pending_keys(self) -> List[TimerKey]:
        pass

    def cancel_all(self) -> int:
        count = 0
        for key in self.pending_keys():
            if self.cancel(key):
                count += 1
        return count


class AsyncioTimerService(TimerService):
    """Timers on the running asyncio event loop."""

    def __init__(self):
        self._handles: Dict[TimerKey, asyncio.TimerHandle] = {}
        self._tasks: Set[asyncio.Task] = set()

    def schedule(self, key: TimerKey, delay_seconds: float, callback: TimerCallback) -> None:
        self.cancel(key)
        loop = asyncio.get_running_loop()
        self._handles[key] = loop.call_later(delay_seconds, self._fire, key, callback)

    def _fire(self, key: TimerKey, callback: TimerCallback) -> None:
        self._handles.pop(key, None)
        task = asyncio.ensure_future(callback())
        self._tasks.add(task)
        task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Escalation timer callback failed: {exc!r}")

    def cancel(self, key: TimerKey) -> bool:
        handle = self._handles.pop(key, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def pending_keys(self) -> List[TimerKey]:
        return list(self._handles)


class ManualTimerService(TimerService):
    """
    Deterministic timers driven by a ManualClock.

    Nothing fires until advance() / run_until_idle() is awaited; due timers
    then fire in (fire_at, scheduling order), with the clock set to each
    timer's fire time while its callback runs.
    """

    def __init__(self, clock: ManualClock):
        self.clock = clock
        self._heap: List[Tuple[datetime, int, TimerKey]] = []
        self._entries: Dict[TimerKey, Tuple[int, TimerCallback]] = {}
        self._counter = itertools.count()

    def schedule(self, key: TimerKey, delay_seconds: float, callback: TimerCallback) -> None:
        seq = next(self._counter)
        fire_at = self.clock.now() + timedelta(seconds=delay_seconds)
        self._entries[key] = (seq, callback)
        heapq.heappush(self._heap, (fire_at, seq, key))

    def cancel(self, key: TimerKey) -> bool:
        # Heap entries are dropped lazily when they surface.
        return self._entries.pop(key, None) is not None

    def pending_keys(self) -> List[TimerKey]:
        return list(self._entries)

    async def advance(self, seconds: float) -> int:
        """Move time forward, firing every timer that falls due. Returns how many fired."""
        target = self.clock.now() + timedelta(seconds=seconds)
        fired = 0

        while self._heap and self._heap[0][0] <= target:
            fire_at, seq, key = heapq.heappop(self._heap)
            entry = self._entries.get(key)
            if entry is None or entry[0] != seq:
                continue
            del self._entries[key]
            self.clock.set(max(fire_at, self.clock.now()))
            await entry[1]()
            fired += 1

        self.clock.set(max(target, self.clock.now()))
        return fired

    async def run_until_idle(self) -> int:
        """Fire everything still pending, however far in the future."""
        fired = 0
        while self._entries:
            live = [fire_at for fire_at, seq, key in self._heap
                    if key in self._entries and self._entries[key][0] == seq]
            if not live:
                break
            delta = (max(live) - self.clock.now()).total_seconds()
            fired += await self.advance(max(delta, 0.0))
        return fired
