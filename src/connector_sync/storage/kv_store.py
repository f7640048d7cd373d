# src/connector_sync/storage/kv_store.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
import time
from pathlib import Path

logger = logging.getLogger(__name__)


class StorageError(RuntimeError):
    """Raised when the durable key-value storage cannot be read or written."""


class SqliteKVStorage:
    """
    SQLite key-value storage.

    One table, one row per collection key. Values are opaque JSON text;
    encoding and schema versions belong to the caller.

    Thread-safety:
    - each method opens its own SQLite connection
    """

    def __init__(self, db_path: str | Path = "storage.sqlite3") -> None:
        self._db_path = Path(db_path)
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._ensure_schema()
        except (OSError, sqlite3.Error) as e:
            raise StorageError(f"cannot open storage at {self._db_path}: {e}") from e
        logger.info("KV storage ready db=%s keys=%s", self._db_path, len(self.keys()))

    @property
    def path(self) -> Path:
        return self._db_path

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )
            conn.commit()
        finally:
            conn.close()

    # ---- public API ----

    def keys(self) -> list[str]:
        try:
            conn = self._get_conn()
            try:
                cur = conn.execute("SELECT key FROM kv ORDER BY key")
                return [str(row["key"]) for row in cur.fetchall()]
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StorageError(f"cannot list keys: {e}") from e

    def read(self, key: str) -> str | None:
        try:
            conn = self._get_conn()
            try:
                cur = conn.execute("SELECT value FROM kv WHERE key = ?", (key,))
                row = cur.fetchone()
                return str(row["value"]) if row else None
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StorageError(f"cannot read key={key}: {e}") from e

    def write(self, key: str, value: str) -> None:
        try:
            conn = self._get_conn()
            try:
                conn.execute(
                    """
                    INSERT INTO kv(key, value, updated_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        updated_at = excluded.updated_at
                    """,
                    (key, value, time.time()),
                )
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StorageError(f"cannot write key={key}: {e}") from e
        logger.debug("KV write key=%s bytes=%d", key, len(value))
