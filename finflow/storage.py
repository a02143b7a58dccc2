"""
Storage Backend Module

Provides the key-value store interface the ledger persists through, with
in-memory (testing) and SQLite (durable) implementations. Values are JSON
documents; all monetary values are stored as Decimal strings.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any, Union
from decimal import Decimal
from datetime import datetime, timezone
import sqlite3
import json
import threading
from dataclasses import dataclass, asdict
from enum import Enum
from pathlib import Path
from contextlib import contextmanager

from .exceptions import StorageUnavailable


def _to_json_value(value: Any) -> Any:
    """Convert Decimal, datetime and Enum values (recursively) to JSON-safe values"""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _to_json_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_json_value(v) for v in value]
    return value


@dataclass
class StorageRecord:
    """Base class for all stored records"""
    id: str
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage"""
        return _to_json_value(asdict(self))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StorageRecord':
        """Create instance from dictionary"""
        data = dict(data)
        # Convert ISO strings back to datetime objects
        if 'created_at' in data and isinstance(data['created_at'], str):
            data['created_at'] = datetime.fromisoformat(data['created_at'])
        if 'updated_at' in data and isinstance(data['updated_at'], str):
            data['updated_at'] = datetime.fromisoformat(data['updated_at'])

        return cls(**data)


class StorageInterface(ABC):
    """Abstract interface for key-value storage backends"""

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Load the document stored under key, or None"""
        pass

    @abstractmethod
    def put(self, key: str, value: Any) -> None:
        """Store a document under key, replacing any previous value"""
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Delete key; returns whether it existed"""
        pass

    @abstractmethod
    def keys(self, prefix: str = "") -> List[str]:
        """List keys starting with prefix, in insertion order"""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close storage connection"""
        pass

    def exists(self, key: str) -> bool:
        """Check if a key is present"""
        return self.get(key) is not None

    def begin_transaction(self) -> None:
        """Start a database transaction (default no-op)"""
        pass

    def commit(self) -> None:
        """Commit current transaction (default no-op)"""
        pass

    def rollback(self) -> None:
        """Rollback current transaction (default no-op)"""
        pass

    @contextmanager
    def atomic(self):
        """
        Context manager for atomic operations.

        Exactly one of commit() or rollback() ends each begin_transaction();
        a commit that fails is responsible for its own cleanup.
        """
        self.begin_transaction()
        try:
            yield
        except Exception:
            self.rollback()
            raise
        self.commit()


class InMemoryStorage(StorageInterface):
    """In-memory storage implementation for testing"""

    def __init__(self):
        self._data: Dict[str, str] = {}
        self._lock = threading.RLock()
        self._snapshots: List[Dict[str, str]] = []
        self._closed = False

    def _check_open(self) -> None:
        if self._closed:
            raise StorageUnavailable("In-memory storage is closed")

    def get(self, key: str) -> Optional[Any]:
        """Load a document from memory"""
        with self._lock:
            self._check_open()
            raw = self._data.get(key)
            if raw is None:
                return None
            # Fresh copy on every read to prevent external mutation
            return json.loads(raw)

    def put(self, key: str, value: Any) -> None:
        """Save a document to memory"""
        with self._lock:
            self._check_open()
            self._data[key] = json.dumps(_to_json_value(value))

    def delete(self, key: str) -> bool:
        """Delete a document from memory"""
        with self._lock:
            self._check_open()
            if key in self._data:
                del self._data[key]
                return True
            return False

    def keys(self, prefix: str = "") -> List[str]:
        """List keys with the given prefix"""
        with self._lock:
            self._check_open()
            return [key for key in self._data if key.startswith(prefix)]

    def begin_transaction(self) -> None:
        """Hold the lock and snapshot the data so the block can be undone"""
        self._lock.acquire()
        self._snapshots.append(dict(self._data))

    def commit(self) -> None:
        """Drop the snapshot and release the lock"""
        self._snapshots.pop()
        self._lock.release()

    def rollback(self) -> None:
        """Restore the snapshot and release the lock"""
        self._data = self._snapshots.pop()
        self._lock.release()

    def close(self) -> None:
        """Close storage; later calls raise StorageUnavailable"""
        with self._lock:
            self._closed = True

    def get_all_data(self) -> Dict[str, Any]:
        """Get all data for debugging/inspection"""
        with self._lock:
            return {key: json.loads(raw) for key, raw in self._data.items()}


class SQLiteStorage(StorageInterface):
    """SQLite storage implementation for persistence"""

    TABLE = "kv_store"

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self.db_path = str(db_path)
        self._lock = threading.RLock()
        self._in_transaction = 0
        try:
            # Set isolation_level to 'DEFERRED' to enable manual transaction control
            self._connection = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level='DEFERRED')
            self._connection.row_factory = sqlite3.Row

            # Enable WAL mode for better concurrent access
            if self.db_path != ":memory:":
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA synchronous = NORMAL")

            self._connection.execute(f"""
                CREATE TABLE IF NOT EXISTS {self.TABLE} (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            self._connection.commit()
        except sqlite3.Error as e:
            raise StorageUnavailable(f"Cannot open SQLite database {self.db_path}: {e}") from e

    def _conn(self) -> sqlite3.Connection:
        if self._connection is None:
            raise StorageUnavailable("SQLite storage is closed")
        return self._connection

    def _commit_or_discard(self) -> None:
        connection = self._conn()
        try:
            connection.commit()
        except sqlite3.Error as e:
            # Pending writes must not ride along with a later commit
            try:
                connection.rollback()
            except sqlite3.Error as rollback_error:
                raise StorageUnavailable(
                    f"Commit failed: {e}; rollback failed: {rollback_error}"
                ) from e
            raise StorageUnavailable(f"Commit failed: {e}") from e

    def _maybe_commit(self) -> None:
        # Only commit if not in transaction
        if not self._in_transaction:
            self._commit_or_discard()

    def get(self, key: str) -> Optional[Any]:
        """Load a document from SQLite"""
        with self._lock:
            try:
                cursor = self._conn().execute(f"""
                    SELECT value FROM {self.TABLE} WHERE key = ?
                """, (key,))
                row = cursor.fetchone()
            except sqlite3.Error as e:
                raise StorageUnavailable(f"Failed to read {key}: {e}") from e
            if row:
                return json.loads(row['value'])
            return None

    def put(self, key: str, value: Any) -> None:
        """Save a document to SQLite"""
        with self._lock:
            now = datetime.now(timezone.utc).isoformat()
            value_json = json.dumps(_to_json_value(value))
            try:
                # Keep the original created_at on replace
                self._conn().execute(f"""
                    INSERT OR REPLACE INTO {self.TABLE} (key, value, created_at, updated_at)
                    VALUES (?, ?,
                        COALESCE((SELECT created_at FROM {self.TABLE} WHERE key = ?), ?),
                        ?)
                """, (key, value_json, key, now, now))
                self._maybe_commit()
            except sqlite3.Error as e:
                raise StorageUnavailable(f"Failed to write {key}: {e}") from e

    def delete(self, key: str) -> bool:
        """Delete a document from SQLite"""
        with self._lock:
            try:
                cursor = self._conn().execute(f"""
                    DELETE FROM {self.TABLE} WHERE key = ?
                """, (key,))
                self._maybe_commit()
            except sqlite3.Error as e:
                raise StorageUnavailable(f"Failed to delete {key}: {e}") from e
            return cursor.rowcount > 0

    def keys(self, prefix: str = "") -> List[str]:
        """List keys with the given prefix, oldest first"""
        with self._lock:
            try:
                cursor = self._conn().execute(f"""
                    SELECT key FROM {self.TABLE} WHERE substr(key, 1, ?) = ?
                    ORDER BY created_at, rowid
                """, (len(prefix), prefix))
                return [row['key'] for row in cursor.fetchall()]
            except sqlite3.Error as e:
                raise StorageUnavailable(f"Failed to list keys: {e}") from e

    def begin_transaction(self) -> None:
        """Start a database transaction"""
        self._lock.acquire()
        # SQLite with isolation_level='DEFERRED' starts transactions on first write
        self._in_transaction += 1

    def commit(self) -> None:
        """Commit current transaction; on failure its writes are discarded"""
        try:
            self._in_transaction -= 1
            if not self._in_transaction:
                self._commit_or_discard()
        finally:
            self._lock.release()

    def rollback(self) -> None:
        """Rollback current transaction"""
        try:
            self._in_transaction -= 1
            if not self._in_transaction and self._connection is not None:
                self._connection.rollback()
        except sqlite3.Error as e:
            raise StorageUnavailable(f"Rollback failed: {e}") from e
        finally:
            self._lock.release()

    def close(self) -> None:
        """Close SQLite connection"""
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None


def create_storage(backend: str = "sqlite", database_path: Union[str, Path] = "finflow.db") -> StorageInterface:
    """Build the storage backend named by configuration"""
    if backend == "memory":
        return InMemoryStorage()
    if backend == "sqlite":
        return SQLiteStorage(database_path)
    raise ValueError(f"Unknown storage backend: {backend}")
