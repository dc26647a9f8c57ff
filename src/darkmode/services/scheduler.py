"""Timer / frame / idle scheduling for the engine.

The engine never touches an event loop directly. It asks a ``Scheduler`` for
four kinds of callbacks (soon, after a delay, next paint frame, when idle) and
awaits ``sleep`` / ``next_frame`` while resolving. Hosts pick the
implementation that matches their loop:

 - ``AsyncioScheduler``: default, backed by the running asyncio loop.
 - ``ManualScheduler``: virtual clock advanced explicitly; used by tests and
   by the static-render CLI where waiting on wall-clock time is pointless.
 - ``QtScheduler`` (``darkmode.services.qt_scheduler``): ``QTimer`` based, for
   hosts embedding the engine in a Qt event loop.

Handles are opaque; pass them back to ``cancel``.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import time
from typing import Any, Awaitable, Callable, List, Optional, Tuple, TypeVar

__all__ = ["Scheduler", "AsyncioScheduler", "ManualScheduler", "SchedulerStalledError"]

Callback = Callable[[], None]
T = TypeVar("T")


class SchedulerStalledError(RuntimeError):
    """Raised by ``ManualScheduler.drive`` when nothing is left to run."""


class Scheduler:
    """Base class; subclasses implement ``call_later``, ``cancel`` and ``now_ms``."""

    frame_interval_ms: float = 16.0
    idle_fallback_ms: float = 100.0

    def call_later(self, delay_ms: float, callback: Callback) -> Any:
        raise NotImplementedError

    def cancel(self, handle: Any) -> None:
        raise NotImplementedError

    def now_ms(self) -> float:
        raise NotImplementedError

    def is_alive(self, handle: Any) -> bool:
        """False once ``handle`` can no longer fire (cancelled, run, or its loop is gone)."""
        return handle is not None

    def call_soon(self, callback: Callback) -> Any:
        return self.call_later(0, callback)

    def request_frame(self, callback: Callback) -> Any:
        return self.call_later(self.frame_interval_ms, callback)

    def request_idle(self, callback: Callback, timeout_ms: Optional[float] = None) -> Any:
        return self.call_later(self.idle_fallback_ms if timeout_ms is None else timeout_ms, callback)

    async def sleep(self, delay_ms: float) -> None:
        loop = asyncio.get_running_loop()
        fut: asyncio.Future[None] = loop.create_future()

        def _wake() -> None:
            if not fut.done():
                fut.set_result(None)

        self.call_later(delay_ms, _wake)
        await fut

    async def next_frame(self) -> None:
        await self.sleep(self.frame_interval_ms)


class _AsyncioHandle:
    __slots__ = ("delay_ms", "callback", "timer", "loop", "fired", "cancelled")

    def __init__(self, delay_ms: float, callback: Callback) -> None:
        self.delay_ms = delay_ms
        self.callback = callback
        self.timer: Optional[asyncio.TimerHandle] = None
        self.loop: Optional[asyncio.AbstractEventLoop] = None
        self.fired = False
        self.cancelled = False

    def _run(self) -> None:
        self.fired = True
        self.callback()

    def arm(self, loop: asyncio.AbstractEventLoop) -> None:
        self.loop = loop
        self.timer = loop.call_later(self.delay_ms / 1000.0, self._run)

    def cancel(self) -> None:
        self.cancelled = True
        if self.timer is not None:
            self.timer.cancel()

    @property
    def alive(self) -> bool:
        if self.fired or self.cancelled:
            return False
        return self.loop is None or not self.loop.is_closed()


class AsyncioScheduler(Scheduler):
    """Scheduler bound to an asyncio loop (the running one by default).

    Callbacks requested while no loop is usable (the captured one has closed
    and nothing is running, e.g. a synchronous ``update`` after
    ``asyncio.run(engine.resolve())``) are parked and armed on the next loop
    this scheduler sees.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop
        self._parked: List[_AsyncioHandle] = []

    def _get_loop(self) -> Optional[asyncio.AbstractEventLoop]:
        if self._loop is not None and not self._loop.is_closed():
            return self._loop
        try:
            self._loop = asyncio.get_running_loop()
        except RuntimeError:
            self._loop = None
            return None
        parked, self._parked = self._parked, []
        for handle in parked:
            if not handle.cancelled:
                handle.arm(self._loop)
        return self._loop

    def call_later(self, delay_ms: float, callback: Callback) -> _AsyncioHandle:
        handle = _AsyncioHandle(max(0.0, delay_ms), callback)
        loop = self._get_loop()
        if loop is None:
            self._parked.append(handle)
        else:
            handle.arm(loop)
        return handle

    def cancel(self, handle: Any) -> None:
        if handle is not None:
            handle.cancel()

    def is_alive(self, handle: Any) -> bool:
        return isinstance(handle, _AsyncioHandle) and handle.alive

    def parked(self) -> int:
        """Callbacks waiting for a loop to appear."""
        return sum(1 for h in self._parked if not h.cancelled)

    def now_ms(self) -> float:
        return time.monotonic() * 1000.0


class _ManualHandle:
    __slots__ = ("due", "callback", "cancelled", "ran")

    def __init__(self, due: float, callback: Callback) -> None:
        self.due = due
        self.callback = callback
        self.cancelled = False
        self.ran = False

    def run(self) -> None:
        self.ran = True
        self.callback()


class ManualScheduler(Scheduler):
    """Virtual-clock scheduler. Nothing runs until ``advance``/``run_next`` is called."""

    # loop iterations granted to the driven task between clock steps
    settle_yields = 16

    def __init__(self) -> None:
        self._now = 0.0
        self._seq = itertools.count()
        self._queue: List[Tuple[float, int, _ManualHandle]] = []

    def now_ms(self) -> float:
        return self._now

    def call_later(self, delay_ms: float, callback: Callback) -> _ManualHandle:
        handle = _ManualHandle(self._now + max(0.0, delay_ms), callback)
        heapq.heappush(self._queue, (handle.due, next(self._seq), handle))
        return handle

    def cancel(self, handle: Any) -> None:
        if isinstance(handle, _ManualHandle):
            handle.cancelled = True

    def is_alive(self, handle: Any) -> bool:
        return isinstance(handle, _ManualHandle) and not (handle.cancelled or handle.ran)

    def pending(self) -> int:
        return sum(1 for _, _, h in self._queue if not h.cancelled)

    def run_next(self) -> bool:
        """Jump to the earliest pending callback and run it. False when idle."""
        while self._queue:
            due, _, handle = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self._now = max(self._now, due)
            handle.run()
            return True
        return False

    def advance(self, delta_ms: float) -> int:
        """Move the clock forward, running everything that falls due. Returns count run."""
        target = self._now + max(0.0, delta_ms)
        ran = 0
        while self._queue and self._queue[0][0] <= target:
            _, _, handle = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self._now = max(self._now, handle.due)
            handle.run()
            ran += 1
        self._now = target
        return ran

    def run_until_idle(self, max_callbacks: int = 10_000) -> int:
        ran = 0
        while ran < max_callbacks and self.run_next():
            ran += 1
        return ran

    async def drive(self, awaitable: Awaitable[T], *, max_steps: int = 10_000) -> T:
        """Run ``awaitable`` to completion, advancing virtual time whenever it blocks."""
        task = asyncio.ensure_future(awaitable)
        for _ in range(max_steps):
            # Let the task consume futures resolved by the previous callback.
            for _ in range(self.settle_yields):
                if task.done():
                    break
                await asyncio.sleep(0)
            if task.done():
                return task.result()
            if not self.run_next():
                task.cancel()
                raise SchedulerStalledError("awaitable is blocked and no callbacks are pending")
        task.cancel()
        raise SchedulerStalledError(f"awaitable did not finish within {max_steps} steps")
