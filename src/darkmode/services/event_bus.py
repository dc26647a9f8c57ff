"""Synchronous notifications out of the engine.

The engine announces three things on its bus (see ``EngineEvent``): visual
state transitions, completed renders and settings changes. Hosts such as the
CLI or a window relay subscribe to those; the log capture in
``logging_service`` publishes on the same bus under its own name.

Dispatch is in subscription order on the caller's stack. A handler that raises
is recorded in ``errors`` and the remaining handlers still run, so a broken
observer can never stall a render.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from time import perf_counter
from typing import Any, Callable, Deque, Dict, List, Tuple, Union

__all__ = [
    "EngineEvent",
    "Event",
    "EventBus",
    "EventHandler",
    "Subscription",
    "TraceEntry",
]


class EngineEvent(str, Enum):
    STATE_CHANGED = "state_changed"
    RENDERED = "rendered"
    SETTINGS_CHANGED = "settings_changed"


EventName = Union[str, EngineEvent]


@dataclass(frozen=True)
class Event:
    name: str
    payload: Any
    timestamp: float


EventHandler = Callable[[Event], None]


@dataclass(eq=False)
class Subscription:
    """Handle returned by ``EventBus.subscribe``; ``cancel`` mutes it at once."""

    event: str
    handler: EventHandler
    once: bool = False
    active: bool = field(default=True)

    def cancel(self) -> None:
        self.active = False


@dataclass(frozen=True)
class TraceEntry:
    name: str
    timestamp: float
    summary: str


_SUMMARY_WIDTH = 40


def _channel(name: EventName) -> str:
    return name.value if isinstance(name, EngineEvent) else str(name)


def _summarize(payload: Any) -> str:
    if payload is None:
        return "-"
    text = str(payload)
    if len(text) > _SUMMARY_WIDTH:
        return text[: _SUMMARY_WIDTH - 3] + "..."
    return text


class EventBus:
    DEFAULT_TRACE_CAPACITY = 50

    def __init__(self) -> None:
        self._channels: Dict[str, List[Subscription]] = {}
        self._errors: List[Tuple[Event, Exception]] = []
        self._trace: Deque[TraceEntry] = deque(maxlen=self.DEFAULT_TRACE_CAPACITY)
        self._tracing = False

    def subscribe(self, name: EventName, handler: EventHandler, *, once: bool = False) -> Subscription:
        sub = Subscription(_channel(name), handler, once)
        self._channels.setdefault(sub.event, []).append(sub)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        sub.active = False
        listeners = self._channels.get(sub.event)
        if listeners is None:
            return
        remaining = [s for s in listeners if s is not sub]
        if remaining:
            self._channels[sub.event] = remaining
        else:
            del self._channels[sub.event]

    def publish(self, name: EventName, payload: Any = None) -> Event:
        event = Event(_channel(name), payload, perf_counter())
        if self._tracing:
            self._trace.append(TraceEntry(event.name, event.timestamp, _summarize(payload)))
        # snapshot so handlers may (un)subscribe while we iterate
        for sub in tuple(self._channels.get(event.name, ())):
            if not sub.active:
                continue
            try:
                sub.handler(event)
            except Exception as exc:  # noqa: BLE001 - recorded, never re-raised into the engine
                self._errors.append((event, exc))
                continue
            if sub.once:
                self.unsubscribe(sub)
        return event

    def subscriber_count(self, name: EventName) -> int:
        return len(self._channels.get(_channel(name), ()))

    @property
    def errors(self) -> List[Tuple[Event, Exception]]:
        return list(self._errors)

    def clear(self) -> None:
        """Drop every subscription and recorded handler error."""
        for listeners in self._channels.values():
            for sub in listeners:
                sub.active = False
        self._channels.clear()
        self._errors.clear()

    def enable_tracing(self, enabled: bool = True, *, capacity: int | None = None) -> None:
        """Switch the publish trace on or off, optionally resizing its ring buffer."""
        self._tracing = enabled
        if capacity is not None and capacity != self._trace.maxlen:
            self._trace = deque(self._trace, maxlen=capacity)

    def recent_trace_entries(self) -> List[TraceEntry]:
        return list(self._trace)
