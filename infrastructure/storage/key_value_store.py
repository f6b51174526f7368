"""
Durable key-value store used for cached AI artifacts and the last-active user.

Values are opaque strings; callers own serialization.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional
import os
import sqlite3

from utils.logging_config import get_logger


class KeyValueStore(ABC):
    """Minimal get/set/remove blob store"""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    def remove(self, key: str) -> None:
        ...

    @abstractmethod
    def keys(self, prefix: str = "") -> List[str]:
        ...

    def clear(self) -> None:
        for key in self.keys():
            self.remove(key)


class MemoryKeyValueStore(KeyValueStore):
    """Process-local store, used in tests and as a guest fallback"""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self, prefix: str = "") -> List[str]:
        return [key for key in self._data if key.startswith(prefix)]

    def __contains__(self, key: str) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)


class SQLiteKeyValueStore(KeyValueStore):
    """
    SQLite-backed store that survives restarts.
    Opens a short-lived connection per operation.
    """

    def __init__(self, db_path: str = "data/assistant_store.db", table_name: str = "kv_store"):
        """
        Initialize the store

        Args:
            db_path: Path to SQLite database file
            table_name: Table holding the key/value rows
        """
        self.logger = get_logger(__name__)
        self.db_path = db_path
        if not table_name.isidentifier():
            raise ValueError(f"Invalid table name: {table_name!r}")
        self.table_name = table_name
        self._init_database()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path)

    def _init_database(self):
        """Create the backing table if needed"""
        directory = os.path.dirname(self.db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        try:
            conn = self._connect()
            cursor = conn.cursor()
            cursor.execute(f'''
                CREATE TABLE IF NOT EXISTS {self.table_name} (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            ''')
            conn.commit()
            conn.close()

            self.logger.info(f"Key-value store initialized at {self.db_path}")

        except sqlite3.Error as e:
            self.logger.error(f"Error initializing key-value store: {e}")
            raise

    def get(self, key: str) -> Optional[str]:
        conn = self._connect()
        try:
            cursor = conn.cursor()
            cursor.execute(f'SELECT value FROM {self.table_name} WHERE key = ?', (key,))
            row = cursor.fetchone()
            return row[0] if row else None
        finally:
            conn.close()

    def set(self, key: str, value: str) -> None:
        conn = self._connect()
        try:
            cursor = conn.cursor()
            cursor.execute(f'''
                INSERT INTO {self.table_name} (key, value, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
            ''', (key, value, datetime.now().isoformat()))
            conn.commit()
        finally:
            conn.close()

    def remove(self, key: str) -> None:
        conn = self._connect()
        try:
            cursor = conn.cursor()
            cursor.execute(f'DELETE FROM {self.table_name} WHERE key = ?', (key,))
            conn.commit()
        finally:
            conn.close()

    def keys(self, prefix: str = "") -> List[str]:
        conn = self._connect()
        try:
            cursor = conn.cursor()
            if prefix:
                # Escape LIKE wildcards; "_" is common in cache keys
                escaped = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
                cursor.execute(
                    f"SELECT key FROM {self.table_name} WHERE key LIKE ? ESCAPE '\\' ORDER BY key",
                    (escaped + "%",)
                )
            else:
                cursor.execute(f'SELECT key FROM {self.table_name} ORDER BY key')
            return [row[0] for row in cursor.fetchall()]
        finally:
            conn.close()

    def clear(self) -> None:
        conn = self._connect()
        try:
            conn.execute(f'DELETE FROM {self.table_name}')
            conn.commit()
        finally:
            conn.close()
