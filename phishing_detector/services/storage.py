# phishing_detector/services/storage.py

import sqlite3
import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """A read or write against the key-value store failed"""


class KeyValueStore:
    """
    Minimal get/set blob store.

    Values are anything JSON-serializable. `get` returns only the keys
    that exist, so callers can tell "absent" from "empty".
    """

    def get(self, keys: Iterable[str]) -> Dict[str, Any]:
        raise NotImplementedError

    def set(self, items: Dict[str, Any]) -> None:
        raise NotImplementedError

    def remove(self, keys: Iterable[str]) -> None:
        raise NotImplementedError


class MemoryKeyValueStore(KeyValueStore):
    """In-process store; values are round-tripped through JSON like the SQLite store"""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, str] = {}
        self._lock = threading.Lock()
        if initial:
            self.set(initial)

    def get(self, keys: Iterable[str]) -> Dict[str, Any]:
        with self._lock:
            return {k: json.loads(self._data[k]) for k in keys if k in self._data}

    def set(self, items: Dict[str, Any]) -> None:
        encoded = {k: json.dumps(v) for k, v in items.items()}
        with self._lock:
            self._data.update(encoded)

    def remove(self, keys: Iterable[str]) -> None:
        with self._lock:
            for k in keys:
                self._data.pop(k, None)


class SQLiteKeyValueStore(KeyValueStore):
    """
    SQLite-backed key-value store.
    One row per key, JSON-encoded value, thread-local connections.
    """

    def __init__(self, db_path: str = "data/phishing_detector.db"):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        # Thread-local storage for connections
        self._local = threading.local()
        # Every connection opened by any thread, so close() can reach them all
        self._connections = []
        self._connections_lock = threading.Lock()

        self._init_database()

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection"""
        if not hasattr(self._local, 'connection'):
            self._local.connection = sqlite3.connect(
                self.db_path,
                check_same_thread=False,
                timeout=30.0
            )

            cursor = self._local.connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.close()

            with self._connections_lock:
                self._connections.append(self._local.connection)

        return self._local.connection

    def _init_database(self):
        """Initialize database schema"""
        try:
            conn = self._get_connection()
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
                )
            """)

            conn.commit()
            cursor.close()

            logger.info(f"Key-value store initialized at {self.db_path}")

        except sqlite3.Error as e:
            logger.error(f"Failed to initialize key-value store: {e}")
            raise StorageError(str(e)) from e

    def get(self, keys: Iterable[str]) -> Dict[str, Any]:
        keys = list(keys)
        if not keys:
            return {}

        try:
            conn = self._get_connection()
            cursor = conn.cursor()

            placeholders = ", ".join("?" for _ in keys)
            cursor.execute(
                f"SELECT key, value FROM kv_store WHERE key IN ({placeholders})",
                keys
            )
            rows = cursor.fetchall()
            cursor.close()

            return {key: json.loads(value) for key, value in rows}

        except (sqlite3.Error, json.JSONDecodeError) as e:
            raise StorageError(f"Failed to read {keys}: {e}") from e

    def set(self, items: Dict[str, Any]) -> None:
        if not items:
            return

        try:
            conn = self._get_connection()
            cursor = conn.cursor()

            cursor.executemany("""
                INSERT INTO kv_store (key, value, updated_at)
                VALUES (?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
            """, [(key, json.dumps(value)) for key, value in items.items()])

            conn.commit()
            cursor.close()

            logger.debug(f"Stored keys {list(items)}")

        except (sqlite3.Error, TypeError, ValueError) as e:
            raise StorageError(f"Failed to write {list(items)}: {e}") from e

    def remove(self, keys: Iterable[str]) -> None:
        keys = list(keys)
        if not keys:
            return

        try:
            conn = self._get_connection()
            cursor = conn.cursor()

            cursor.executemany("DELETE FROM kv_store WHERE key = ?", [(k,) for k in keys])

            conn.commit()
            cursor.close()

        except sqlite3.Error as e:
            raise StorageError(f"Failed to remove {keys}: {e}") from e

    def close(self):
        """Close the connections of every thread; later calls open fresh ones"""
        with self._connections_lock:
            connections, self._connections = self._connections, []
            self._local = threading.local()

        for connection in connections:
            try:
                connection.close()
            except sqlite3.Error as e:
                logger.warning(f"Error closing connection to {self.db_path}: {e}")

        logger.debug(f"Closed {len(connections)} connections to {self.db_path}")
