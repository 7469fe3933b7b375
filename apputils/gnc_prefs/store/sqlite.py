"""
SQLite settings store for gnc-prefs.

This module persists user values of every schema in a single SQLite file.
Defaults are never written: a key without a row reads its schema default,
and reset() deletes the row.

Invariants:
    - One SQLite file (prefs.db) per data directory
    - One row per (schema_id, key) holding a user value
    - Values are stored as JSON text
    - Each write is a single autocommitted statement

How to change safely:
    - Bump SCHEMA_VERSION and migrate in _create_schema for table changes
    - Keep values JSON encoded so older readers can still decode them

Table schema:
    user_values:
        - schema_id TEXT
        - key TEXT
        - value_json TEXT
        - updated_at INTEGER (Unix ms)
        - PRIMARY KEY (schema_id, key)
"""

from __future__ import annotations

import json
import logging
import sqlite3
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from ..schema.source import SchemaSource
from ..schema.types import KeyDef
from .base import MISSING, BaseSettingsStore, StoreError, StoreSchema

logger = logging.getLogger(__name__)

DB_FILENAME = "prefs.db"


class SqliteSettingsStore(BaseSettingsStore):
    """Persistent settings store backed by SQLite.

    Thread safety:
        A connection is opened per operation; value writes are additionally
        serialized by the base class lock.

    Example:
        >>> store = SqliteSettingsStore(source, data_dir="~/.local/share/gnucash")
        >>> general = store.open_schema("org.gnucash.general")
        >>> store.set_int(general, "autosave-interval-minutes", 10)
        True
    """

    # SQLite schema version for migrations
    SCHEMA_VERSION = 1

    def __init__(
        self,
        source: SchemaSource,
        data_dir: str,
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
        read_only: bool = False,
    ) -> None:
        """Initialize the store and create the database if needed.

        Args:
            source: Installed schema definitions
            data_dir: Directory for the SQLite database file
            wal_mode: Enable SQLite WAL mode
            busy_timeout_ms: SQLite busy timeout
            read_only: Reject every write
        """
        super().__init__(source, read_only=read_only)
        self.data_dir = Path(data_dir).expanduser()
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms

        with self._get_connection() as conn:
            self._create_schema(conn)

    @property
    def db_path(self) -> Path:
        return self.data_dir / DB_FILENAME

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Open a configured connection to the preferences database.

        Raises:
            StoreError: If the database cannot be opened
        """
        self.data_dir.mkdir(parents=True, exist_ok=True)

        try:
            conn = sqlite3.connect(
                str(self.db_path),
                timeout=self.busy_timeout_ms / 1000.0,
                isolation_level=None,  # Autocommit
            )
        except sqlite3.Error as e:
            raise StoreError(f"Cannot open preferences database {self.db_path}: {e}")

        try:
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            if self.wal_mode:
                conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")
            yield conn
        finally:
            conn.close()

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        """Create database tables."""
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at INTEGER NOT NULL
            );

            CREATE TABLE IF NOT EXISTS user_values (
                schema_id TEXT NOT NULL,
                key TEXT NOT NULL,
                value_json TEXT NOT NULL,
                updated_at INTEGER NOT NULL,
                PRIMARY KEY (schema_id, key)
            );
        """)
        conn.execute(
            "INSERT OR IGNORE INTO schema_version (version, applied_at) VALUES (?, ?)",
            (self.SCHEMA_VERSION, int(time.time() * 1000)),
        )

    def _read_raw(self, schema_id: str, key: str) -> Any:
        try:
            with self._get_connection() as conn:
                row = conn.execute(
                    "SELECT value_json FROM user_values WHERE schema_id = ? AND key = ?",
                    (schema_id, key),
                ).fetchone()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to read {schema_id}:{key}: {e}")
        if row is None:
            return MISSING
        return json.loads(row[0])

    def _write_raw(self, schema_id: str, key: str, value: Any) -> None:
        try:
            encoded = json.dumps(value)
        except (TypeError, ValueError) as e:
            raise StoreError(f"Value for {schema_id}:{key} is not JSON serializable: {e}")

        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO user_values (schema_id, key, value_json, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT (schema_id, key)
                DO UPDATE SET value_json = excluded.value_json, updated_at = excluded.updated_at
                """,
                (schema_id, key, encoded, int(time.time() * 1000)),
            )

    def _delete_raw(self, schema_id: str, key: str) -> bool:
        try:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    "DELETE FROM user_values WHERE schema_id = ? AND key = ?",
                    (schema_id, key),
                )
                return cursor.rowcount > 0
        except sqlite3.Error as e:
            raise StoreError(f"Failed to reset {schema_id}:{key}: {e}")

    def _write(self, schema: StoreSchema, key_def: KeyDef, value: Any) -> bool:
        try:
            return super()._write(schema, key_def, value)
        except (StoreError, sqlite3.Error) as e:
            logger.error(f"Failed to store {schema.schema_id}:{key_def.name}: {e}")
            return False

    def close(self) -> None:
        """Drop subscriptions; connections are per-operation."""
        with self._lock:
            self._subscriptions.clear()
            self._bindings.clear()
        logger.debug(f"SqliteSettingsStore closed ({self.db_path})")

    def user_values(self, schema_id: str) -> dict[str, Any]:
        """All stored user values for a schema."""
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT key, value_json FROM user_values WHERE schema_id = ? ORDER BY key",
                (schema_id,),
            ).fetchall()
        return {key: json.loads(value_json) for key, value_json in rows}
