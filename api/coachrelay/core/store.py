"""Key-value stores for session → thread and session → profile document maps.

The in-memory store reproduces process-lifetime state; the SQLite store keeps
the same mappings across restarts. Neither evicts entries.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Protocol

from coachrelay.db.conn import ensure_schema, get_conn

logger = logging.getLogger("coachrelay.store")


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def put(self, key: str, value: str) -> None: ...

    def __len__(self) -> int: ...


class InMemoryStore:
    """Process-local dict-backed store."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def put(self, key: str, value: str) -> None:
        self._data[key] = value

    def __len__(self) -> int:
        return len(self._data)


class SqliteStore:
    """SQLite-backed store; several namespaces can share one database file."""

    def __init__(self, path: str, namespace: str) -> None:
        self.path = path
        self.namespace = namespace
        ensure_schema(path)

    def get(self, key: str) -> str | None:
        conn = get_conn(self.path)
        try:
            row = conn.execute(
                "SELECT value FROM kv_entry WHERE namespace = ? AND key = ?",
                (self.namespace, key),
            ).fetchone()
            return row["value"] if row else None
        finally:
            conn.close()

    def put(self, key: str, value: str) -> None:
        conn = get_conn(self.path)
        try:
            conn.execute(
                """INSERT INTO kv_entry (namespace, key, value, updated_at)
                   VALUES (?, ?, ?, ?)
                   ON CONFLICT(namespace, key) DO UPDATE SET
                       value      = excluded.value,
                       updated_at = excluded.updated_at""",
                (self.namespace, key, value, datetime.now(timezone.utc).isoformat()),
            )
            conn.commit()
        finally:
            conn.close()

    def __len__(self) -> int:
        conn = get_conn(self.path)
        try:
            row = conn.execute(
                "SELECT COUNT(*) AS n FROM kv_entry WHERE namespace = ?",
                (self.namespace,),
            ).fetchone()
            return int(row["n"])
        finally:
            conn.close()


def open_store(namespace: str, path: str = "") -> KeyValueStore:
    """Return a SQLite store when *path* is set, else an in-memory one."""
    if path:
        logger.info("Using SQLite store %s (namespace=%s)", path, namespace)
        return SqliteStore(path, namespace)
    return InMemoryStore()
