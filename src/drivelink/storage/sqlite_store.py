"""Summary: Key-value persistence for DriveLink.

Importance: Durably saves requests, drafts, the offline queue, and notifications across sessions.
Alternatives: Use an ORM or an external database immediately.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator

from drivelink.errors import StorageError


logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """Summary: Abstract key-value store holding JSON-compatible values.

    Importance: Mirrors browser-local storage so services stay storage-agnostic.
    Alternatives: Give every service its own table and schema.
    """

    @abstractmethod
    def get(self, key: str) -> Any | None:
        """Summary: Return the decoded value for a key, or None when absent.

        Importance: Lets services restore state saved in earlier sessions.
        Alternatives: Return raw strings and decode at each call site.
        """

    @abstractmethod
    def put(self, key: str, value: Any) -> None:
        """Summary: Store a JSON-compatible value under a key.

        Importance: Persists the latest in-memory state.
        Alternatives: Append change events instead of overwriting snapshots.
        """

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove a key; deleting a missing key is a no-op."""

    def get_list(self, key: str) -> list[Any]:
        """Summary: Load a list value, degrading to an empty list.

        Importance: Corrupted or missing data must never crash a service on startup.
        Alternatives: Validate stored data with a schema and fail fast.
        """

        try:
            value = self.get(key)
        except StorageError as exc:
            logger.warning("Could not load %s, starting empty: %s", key, exc)
            return []
        if value is None:
            return []
        if not isinstance(value, list):
            logger.warning("Stored value for %s is not a list, starting empty.", key)
            return []
        return value

    def get_dict(self, key: str) -> dict[str, Any]:
        """Load a dict value, degrading to an empty dict."""

        try:
            value = self.get(key)
        except StorageError as exc:
            logger.warning("Could not load %s, starting empty: %s", key, exc)
            return {}
        if not isinstance(value, dict):
            if value is not None:
                logger.warning("Stored value for %s is not a mapping, starting empty.", key)
            return {}
        return value


class MemoryKeyValueStore(KeyValueStore):
    """Summary: In-process key-value store.

    Importance: Supports tests and ephemeral sessions without touching disk.
    Alternatives: Use a temporary SQLite file for every test.
    """

    def __init__(self) -> None:
        self._values: dict[str, str] = {}

    def get(self, key: str) -> Any | None:
        raw = self._values.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            raise StorageError(f"Corrupted value for {key}") from exc

    def put(self, key: str, value: Any) -> None:
        self._values[key] = json.dumps(value)

    def put_raw(self, key: str, raw: str) -> None:
        """Store an undecoded string, e.g. to simulate corrupted data."""

        self._values[key] = raw

    def delete(self, key: str) -> None:
        self._values.pop(key, None)


class SqliteKeyValueStore(KeyValueStore):
    """Summary: SQLite-backed key-value store.

    Importance: Enables local-first persistence with minimal dependencies.
    Alternatives: Use Postgres and SQLAlchemy from day one.
    """

    def __init__(self, db_path: str) -> None:
        """Summary: Initialize the storage with a database path.

        Importance: Allows configurable database location per environment.
        Alternatives: Hardcode a default path in the class.
        """

        self._db_path = Path(db_path)

    def initialize(self) -> None:
        """Summary: Create the key-value table if it does not exist.

        Importance: Ensures the database is ready before services load state.
        Alternatives: Run migrations using a dedicated migration tool.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS kv_entries (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            connection.commit()

    def get(self, key: str) -> Any | None:
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute("SELECT value FROM kv_entries WHERE key = ?", (key,))
            row = cursor.fetchone()
        if not row:
            return None
        try:
            return json.loads(row[0])
        except json.JSONDecodeError as exc:
            raise StorageError(f"Corrupted value for {key}") from exc

    def put(self, key: str, value: Any) -> None:
        payload = json.dumps(value)
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                INSERT INTO kv_entries (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                """,
                (key, payload, datetime.now(timezone.utc).isoformat()),
            )
            connection.commit()

    def put_raw(self, key: str, raw: str) -> None:
        """Store an undecoded string, e.g. to simulate corrupted data."""

        with self._connection() as connection:
            connection.execute(
                "INSERT OR REPLACE INTO kv_entries (key, value, updated_at) VALUES (?, ?, ?)",
                (key, raw, datetime.now(timezone.utc).isoformat()),
            )
            connection.commit()

    def delete(self, key: str) -> None:
        with self._connection() as connection:
            connection.execute("DELETE FROM kv_entries WHERE key = ?", (key,))
            connection.commit()

    def keys(self) -> list[str]:
        """List stored keys in alphabetical order."""

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute("SELECT key FROM kv_entries ORDER BY key")
            rows = cursor.fetchall()
        return [row[0] for row in rows]

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Summary: Provide a SQLite connection context manager.

        Importance: Ensures connections are closed and SQLite errors surface as StorageError.
        Alternatives: Maintain a global connection for the app lifecycle.
        """

        try:
            connection = sqlite3.connect(self._db_path)
        except sqlite3.Error as exc:
            raise StorageError(f"Cannot open {self._db_path}: {exc}") from exc
        try:
            yield connection
        except sqlite3.Error as exc:
            raise StorageError(str(exc)) from exc
        finally:
            connection.close()
