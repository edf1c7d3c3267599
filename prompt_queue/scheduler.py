"""
Scheduler — the timer capability injected into the scheduling engine.

  arm(delay_ms, callback) → handle     schedule an async callback once
  cancel(handle)                       synchronous, immediate
  now_ms()                             clock used for elapsed-time bookkeeping

Two implementations:
  AsyncioScheduler   — production, backed by loop.call_later
  VirtualScheduler   — deterministic manual clock for tests and simulations
"""
from __future__ import annotations

import abc
import asyncio
import itertools
import time
import structlog
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

logger = structlog.get_logger()

TimerCallback = Callable[[], Awaitable[Any]]


class Scheduler(abc.ABC):
    """Abstract timer capability."""

    @abc.abstractmethod
    def now_ms(self) -> float:
        ...

    @abc.abstractmethod
    def arm(self, delay_ms: float, callback: TimerCallback) -> Any:
        """Run `callback` once after `delay_ms`. Returns an opaque handle."""
        ...

    @abc.abstractmethod
    def cancel(self, handle: Any):
        ...


# ──────────────────────────────────────────────────────────────
#  asyncio
# ──────────────────────────────────────────────────────────────

class AsyncioScheduler(Scheduler):
    """
    Timers on the running event loop.
    The callback coroutine is spawned as a task when the timer fires; tasks are
    held until completion so they are not garbage collected mid-flight.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop = None):
        self._loop = loop
        self._tasks: set[asyncio.Task] = set()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop or asyncio.get_running_loop()

    def now_ms(self) -> float:
        return time.monotonic() * 1000

    def arm(self, delay_ms: float, callback: TimerCallback) -> asyncio.TimerHandle:
        return self.loop.call_later(max(0.0, delay_ms) / 1000, self._fire, callback)

    def cancel(self, handle: Optional[asyncio.TimerHandle]):
        if handle is not None:
            handle.cancel()

    def _fire(self, callback: TimerCallback):
        task = self.loop.create_task(callback())
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("scheduled_callback_failed", error=str(exc))

    async def shutdown(self):
        for task in list(self._tasks):
            task.cancel()
        for task in list(self._tasks):
            try:
                await task
            except asyncio.CancelledError:
                pass


# ──────────────────────────────────────────────────────────────
#  Virtual clock
# ──────────────────────────────────────────────────────────────

@dataclass(order=True)
class _VirtualTimer:
    due_ms: float
    seq: int
    callback: TimerCallback = field(compare=False)


class VirtualScheduler(Scheduler):
    """
    Manual clock. Nothing fires until `advance()` moves time forward; due
    callbacks are then awaited one by one in due order, so a callback that
    re-arms a timer inside the advanced window fires within the same call.
    """

    def __init__(self, start_ms: float = 0.0):
        self._now = float(start_ms)
        self._timers: dict[int, _VirtualTimer] = {}
        self._seq = itertools.count(1)

    def now_ms(self) -> float:
        return self._now

    def arm(self, delay_ms: float, callback: TimerCallback) -> int:
        handle = next(self._seq)
        self._timers[handle] = _VirtualTimer(self._now + max(0.0, delay_ms), handle, callback)
        return handle

    def cancel(self, handle: Optional[int]):
        if handle is not None:
            self._timers.pop(handle, None)

    @property
    def pending(self) -> int:
        return len(self._timers)

    def next_due_in(self) -> Optional[float]:
        """Milliseconds until the earliest armed timer fires, or None."""
        if not self._timers:
            return None
        return min(self._timers.values()).due_ms - self._now

    def skip_time(self, ms: float):
        """Move the clock without firing anything (simulates elapsed wall time)."""
        self._now += ms

    async def advance(self, ms: float) -> int:
        """Advance the clock by `ms`, firing due timers. Returns how many fired."""
        target = self._now + ms
        fired = 0
        while self._timers:
            timer = min(self._timers.values())
            if timer.due_ms > target:
                break
            del self._timers[timer.seq]
            self._now = max(self._now, timer.due_ms)
            fired += 1
            await timer.callback()
        self._now = max(self._now, target)
        return fired
