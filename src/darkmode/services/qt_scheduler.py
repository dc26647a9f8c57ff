"""QTimer-backed scheduler for hosts running a Qt event loop.

Mirrors ``AsyncioScheduler`` semantics with single-shot ``QTimer`` objects.
Each pending callback keeps its timer alive in ``_timers`` until it fires or
is cancelled. Awaiting ``sleep`` requires an asyncio loop that shares the Qt
thread (for example one integrated through qasync); plain callback scheduling
works with any running ``QCoreApplication``.
"""

from __future__ import annotations

import itertools
import time
from typing import Any, Callable, Dict

from PyQt6.QtCore import QTimer

from .scheduler import Scheduler

__all__ = ["QtScheduler"]


class QtScheduler(Scheduler):
    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self._timers: Dict[int, QTimer] = {}

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> int:
        handle = next(self._ids)
        timer = QTimer()
        timer.setSingleShot(True)

        def _fire() -> None:
            if self._timers.pop(handle, None) is None:
                return
            callback()

        timer.timeout.connect(_fire)  # type: ignore[attr-defined]
        self._timers[handle] = timer
        timer.start(max(0, int(round(delay_ms))))
        return handle

    def cancel(self, handle: Any) -> None:
        timer = self._timers.pop(handle, None)
        if timer is not None:
            timer.stop()

    def is_alive(self, handle: Any) -> bool:
        return handle in self._timers

    def pending(self) -> int:
        return len(self._timers)

    def now_ms(self) -> float:
        return time.monotonic() * 1000.0
