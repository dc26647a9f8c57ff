"""Typed command surface for the relay layer.

A closed set of commands replaces the string-keyed message switch. Each
command maps 1:1 onto a public engine method and yields a ``CommandResult``.

Responsibilities:
 - Command dataclasses with typed payloads
 - ``parse_command``: legacy ``{"action": ..., "data": ...}`` payloads to commands
   (``update`` is accepted as an alias of ``updateFilters``)
 - ``dispatch``: run a command with error isolation; any exception becomes a
   failed result carrying the message (logged at WARNING)
 - ``handle_message``: parse + dispatch + plain-dict response, for transports
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Type, Union

from darkmode.domain.models import Snapshot

from .engine import DarkModeEngine

__all__ = [
    "Toggle",
    "GetState",
    "SetState",
    "UpdateFilters",
    "Reset",
    "Command",
    "CommandResult",
    "UnknownCommandError",
    "parse_command",
    "dispatch",
    "handle_message",
]

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Toggle:
    pass


@dataclass(frozen=True)
class GetState:
    pass


@dataclass(frozen=True)
class SetState:
    enabled: bool


@dataclass(frozen=True)
class UpdateFilters:
    values: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Reset:
    pass


Command = Union[Toggle, GetState, SetState, UpdateFilters, Reset]


@dataclass(frozen=True)
class CommandResult:
    success: bool
    snapshot: Optional[Snapshot] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"success": self.success}
        if self.snapshot is not None:
            data.update(self.snapshot.to_dict())
        if self.error is not None:
            data["error"] = self.error
        return data


class UnknownCommandError(ValueError):
    """Raised by ``parse_command`` for a missing or unrecognised action."""


def _data(payload: Mapping[str, Any]) -> Mapping[str, Any]:
    data = payload.get("data")
    return data if isinstance(data, Mapping) else {}


_PARSERS: Dict[str, Callable[[Mapping[str, Any]], Command]] = {
    "toggle": lambda _p: Toggle(),
    "getState": lambda _p: GetState(),
    "setState": lambda p: SetState(enabled=bool(_data(p).get("enabled"))),
    "updateFilters": lambda p: UpdateFilters(values=dict(_data(p))),
    "update": lambda p: UpdateFilters(values=dict(_data(p))),
    "reset": lambda _p: Reset(),
}


def parse_command(payload: Mapping[str, Any]) -> Command:
    action = payload.get("action") if isinstance(payload, Mapping) else None
    parser = _PARSERS.get(action) if isinstance(action, str) else None
    if parser is None:
        raise UnknownCommandError(f"Unknown action: {action or 'empty'}")
    return parser(payload)


async def _toggle(engine: DarkModeEngine, _cmd: Toggle) -> Snapshot:
    await engine.toggle()
    return engine.get_snapshot()


async def _get_state(engine: DarkModeEngine, _cmd: GetState) -> Snapshot:
    return engine.get_snapshot()


async def _set_state(engine: DarkModeEngine, cmd: SetState) -> Snapshot:
    await engine.set_enabled(cmd.enabled)
    return engine.get_snapshot()


async def _update_filters(engine: DarkModeEngine, cmd: UpdateFilters) -> Snapshot:
    return engine.update(cmd.values)


async def _reset(engine: DarkModeEngine, _cmd: Reset) -> Snapshot:
    return engine.reset()


_HANDLERS: Dict[Type[Any], Callable[[DarkModeEngine, Any], Awaitable[Snapshot]]] = {
    Toggle: _toggle,
    GetState: _get_state,
    SetState: _set_state,
    UpdateFilters: _update_filters,
    Reset: _reset,
}


async def dispatch(engine: DarkModeEngine, command: Command) -> CommandResult:
    handler = _HANDLERS.get(type(command))
    if handler is None:
        return CommandResult(success=False, error=f"Unsupported command: {type(command).__name__}")
    try:
        snapshot = await handler(engine, command)
    except Exception as exc:  # noqa: BLE001 - the relay boundary reports, never raises
        _logger.warning("command %s failed: %s", type(command).__name__, exc, exc_info=True)
        return CommandResult(success=False, error=str(exc) or type(exc).__name__)
    return CommandResult(success=True, snapshot=snapshot)


async def handle_message(engine: DarkModeEngine, payload: Mapping[str, Any]) -> Dict[str, Any]:
    try:
        command = parse_command(payload)
    except UnknownCommandError as exc:
        return CommandResult(success=False, error=str(exc)).to_dict()
    result = await dispatch(engine, command)
    return result.to_dict()
