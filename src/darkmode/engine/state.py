"""Render-state machine.

Allowed transitions::

    INIT                   -> PENDING, DISABLED
    PENDING                -> RESOLVED_ON, RESOLVED_ALREADY_DARK, DISABLED
    RESOLVED_ON            -> DISABLED
    RESOLVED_ALREADY_DARK  -> DISABLED
    DISABLED               -> PENDING

Anything else, including a request for the current state, is refused with
``False``. Once resolved, only DISABLED is reachable; this is the lock that
keeps late heuristic runs from flipping a settled page.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, FrozenSet, List, Optional

__all__ = ["VisualState", "Transition", "StateController", "ALLOWED_TRANSITIONS"]

_logger = logging.getLogger(__name__)


class VisualState(str, Enum):
    INIT = "init"
    PENDING = "pending"
    RESOLVED_ON = "on"
    RESOLVED_ALREADY_DARK = "already-dark"
    DISABLED = "off"

    def __str__(self) -> str:  # keep f-strings and CSS attribute values plain
        return self.value


ALLOWED_TRANSITIONS: Dict[VisualState, FrozenSet[VisualState]] = {
    VisualState.INIT: frozenset({VisualState.PENDING, VisualState.DISABLED}),
    VisualState.PENDING: frozenset(
        {VisualState.RESOLVED_ON, VisualState.RESOLVED_ALREADY_DARK, VisualState.DISABLED}
    ),
    VisualState.RESOLVED_ON: frozenset({VisualState.DISABLED}),
    VisualState.RESOLVED_ALREADY_DARK: frozenset({VisualState.DISABLED}),
    VisualState.DISABLED: frozenset({VisualState.PENDING}),
}

TERMINAL_STATES = frozenset({VisualState.RESOLVED_ON, VisualState.RESOLVED_ALREADY_DARK})


@dataclass(frozen=True)
class Transition:
    previous: VisualState
    current: VisualState


TransitionListener = Callable[[Transition], None]


class StateController:
    def __init__(self, listener: Optional[TransitionListener] = None, *, history_limit: int = 50) -> None:
        self._state = VisualState.INIT
        self._listener = listener
        self._history: List[Transition] = []
        self._history_limit = history_limit

    @property
    def state(self) -> VisualState:
        return self._state

    def get_state(self) -> VisualState:
        return self._state

    def can_transition(self, target: VisualState) -> bool:
        return target != self._state and target in ALLOWED_TRANSITIONS[self._state]

    def transition(self, target: VisualState) -> bool:
        if not self.can_transition(target):
            return False
        change = Transition(previous=self._state, current=target)
        self._state = target
        self._history.append(change)
        if len(self._history) > self._history_limit:
            del self._history[0]
        _logger.debug("render state %s -> %s", change.previous.value, change.current.value)
        if self._listener is not None:
            self._listener(change)
        return True

    def is_resolved(self) -> bool:
        return self._state in TERMINAL_STATES

    @property
    def history(self) -> List[Transition]:
        return list(self._history)
