"""Origin-scoped key/value stores.

The persistence layer talks to a tiny string-to-string store, the moral
equivalent of a page's ``localStorage``. Two implementations:

 - ``MemoryKeyValueStore``: dict backed, for tests and ephemeral hosts.
 - ``SqliteKeyValueStore``: one ``kv`` table shared by every origin, rows
   scoped by the ``origin`` column so two documents from different origins
   never see each other's keys.

Both raise ``sqlite3.Error`` / ``OSError`` on storage failures; callers that
must not fail (``PersistenceLayer``) catch and degrade.
"""

from __future__ import annotations

import os
import sqlite3
from threading import RLock
from typing import Dict, List, Optional, Protocol

__all__ = [
    "KeyValueStore",
    "MemoryKeyValueStore",
    "SqliteKeyValueStore",
    "DDL",
]

DDL: list[str] = [
    """
    CREATE TABLE IF NOT EXISTS kv (
        origin TEXT NOT NULL,
        key TEXT NOT NULL,
        value TEXT NOT NULL,
        updated_at TEXT DEFAULT CURRENT_TIMESTAMP,
        PRIMARY KEY (origin, key)
    );
    """.strip(),
]


class KeyValueStore(Protocol):
    def get_item(self, key: str) -> Optional[str]: ...  # pragma: no cover - structural

    def set_item(self, key: str, value: str) -> None: ...  # pragma: no cover

    def remove_item(self, key: str) -> None: ...  # pragma: no cover

    def keys(self) -> List[str]: ...  # pragma: no cover


class MemoryKeyValueStore:
    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data[key] = str(value)

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._data)


class SqliteKeyValueStore:
    """SQLite-backed store; ``path`` may be ``":memory:"``."""

    def __init__(self, path: str, origin: str) -> None:
        if path != ":memory:":
            parent = os.path.dirname(os.path.abspath(path))
            os.makedirs(parent, exist_ok=True)
        self.path = path
        self.origin = origin
        self._lock = RLock()
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._apply_schema()

    def _apply_schema(self) -> None:
        with self._lock:
            cur = self._conn.cursor()
            for stmt in DDL:
                cur.execute(stmt)
            self._conn.commit()

    def for_origin(self, origin: str) -> "SqliteKeyValueStore":
        """View of the same database scoped to another origin (shares the connection)."""
        clone = object.__new__(SqliteKeyValueStore)
        clone.path = self.path
        clone.origin = origin
        clone._lock = self._lock
        clone._conn = self._conn
        return clone

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            row = self._conn.execute(
                "SELECT value FROM kv WHERE origin=? AND key=?", (self.origin, key)
            ).fetchone()
        return row[0] if row else None

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            self._conn.execute(
                "INSERT INTO kv(origin, key, value) VALUES(?,?,?) "
                "ON CONFLICT(origin, key) DO UPDATE SET value=excluded.value, "
                "updated_at=CURRENT_TIMESTAMP",
                (self.origin, key, str(value)),
            )
            self._conn.commit()

    def remove_item(self, key: str) -> None:
        with self._lock:
            self._conn.execute("DELETE FROM kv WHERE origin=? AND key=?", (self.origin, key))
            self._conn.commit()

    def keys(self) -> List[str]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT key FROM kv WHERE origin=? ORDER BY key", (self.origin,)
            ).fetchall()
        return [r[0] for r in rows]

    def close(self) -> None:
        with self._lock:
            self._conn.close()
