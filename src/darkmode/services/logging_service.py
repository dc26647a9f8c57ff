"""In-memory capture of the engine's log output.

``LoggingService`` hangs a handler on the ``darkmode`` logger and keeps the
most recent records in a bounded buffer. The CLI uses it for ``--log-jsonl``;
tests use it to assert on what a resolution logged without touching files.

When constructed with an ``EventBus`` every captured record is also published
as ``LOG_RECORD_EVENT`` with a short payload (level, logger name, message cut
to 120 characters).
"""

from __future__ import annotations

import json
import logging
import os
from collections import deque
from dataclasses import asdict, dataclass
from typing import Deque, Iterable, List, Optional

from .event_bus import EventBus

__all__ = [
    "LOG_RECORD_EVENT",
    "LogEntry",
    "LoggingService",
]

LOG_RECORD_EVENT = "log_record_added"
DEFAULT_EXPORT_NAME = "darkmode-logs.jsonl"
_PAYLOAD_MESSAGE_LIMIT = 120


@dataclass(frozen=True)
class LogEntry:
    level: str
    name: str
    message: str
    created: float
    file: str
    line: int

    @classmethod
    def from_record(cls, record: logging.LogRecord) -> "LogEntry":
        return cls(
            level=record.levelname,
            name=record.name,
            message=record.getMessage(),
            created=record.created,
            file=record.pathname,
            line=record.lineno,
        )

    def to_dict(self) -> dict:
        return asdict(self)


class _CaptureHandler(logging.Handler):
    def __init__(self, sink: "LoggingService") -> None:
        super().__init__(level=logging.DEBUG)
        self._sink = sink

    def emit(self, record: logging.LogRecord) -> None:
        self._sink._capture(LogEntry.from_record(record))


class LoggingService:
    def __init__(
        self, capacity: int = 500, *, logger_name: str = "darkmode", bus: Optional[EventBus] = None
    ) -> None:
        self._logger_name = logger_name
        self._bus = bus
        self._entries: Deque[LogEntry] = deque(maxlen=capacity)
        self._handler = _CaptureHandler(self)
        self._attached = False

    def _logger(self) -> logging.Logger:
        # an empty name means the root logger
        return logging.getLogger(self._logger_name or None)

    def attach(self) -> None:
        """Start capturing; a second call is a no-op.

        The logger is lowered to DEBUG when it would otherwise drop debug
        records, since the heuristic and reconciler log mostly at that level.
        """
        if self._attached:
            return
        logger = self._logger()
        logger.addHandler(self._handler)
        if logger.level == logging.NOTSET or logger.level > logging.DEBUG:
            logger.setLevel(logging.DEBUG)
        self._attached = True

    def detach(self) -> None:
        if self._attached:
            self._logger().removeHandler(self._handler)
            self._attached = False

    @property
    def attached(self) -> bool:
        return self._attached

    def _capture(self, entry: LogEntry) -> None:
        self._entries.append(entry)
        if self._bus is None:
            return
        self._bus.publish(
            LOG_RECORD_EVENT,
            {
                "level": entry.level,
                "name": entry.name,
                "message": entry.message[:_PAYLOAD_MESSAGE_LIMIT],
            },
        )

    def recent(self, limit: Optional[int] = None) -> List[LogEntry]:
        """Captured entries oldest first; ``limit`` keeps only the newest ones."""
        entries = list(self._entries)
        if limit is None:
            return entries
        return entries[-limit:]

    def filter(self, *, level: str | None = None, name_contains: str | None = None) -> List[LogEntry]:
        return list(_matching(self.recent(), level, name_contains))

    def clear(self) -> None:
        self._entries.clear()

    def export_jsonl(
        self,
        path: str | None = None,
        *,
        level: str | None = None,
        name_contains: str | None = None,
        append: bool = False,
    ) -> int:
        """Write the (filtered) buffer as one JSON object per line.

        Defaults to ``darkmode-logs.jsonl`` in the working directory. Returns
        the number of lines written.
        """
        selected = self.filter(level=level, name_contains=name_contains)
        target = path or os.path.join(os.getcwd(), DEFAULT_EXPORT_NAME)
        with open(target, "a" if append else "w", encoding="utf-8") as fh:
            fh.writelines(json.dumps(e.to_dict(), sort_keys=True) + "\n" for e in selected)
        return len(selected)


def _matching(
    entries: Iterable[LogEntry], level: Optional[str], name_contains: Optional[str]
) -> Iterable[LogEntry]:
    for entry in entries:
        if level and entry.level != level:
            continue
        if name_contains and name_contains not in entry.name:
            continue
        yield entry
