"""
Storage Backend Module

Provides abstract storage interface and implementations for in-memory (testing)
and SQLite (persistence). Records are JSON documents keyed by id; tables may
declare unique fields which every backend enforces at write time, and every
backend offers real transactions through atomic().
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any, Union, Iterable
from datetime import datetime, timezone
import copy
import sqlite3
import json
import re
import threading
from dataclasses import dataclass, asdict
from pathlib import Path
from contextlib import contextmanager

from .errors import BackendUnavailableError


_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _check_identifier(name: str) -> str:
    """Table and field names are interpolated into SQL, so only plain identifiers pass"""
    if not _IDENTIFIER.match(name):
        raise ValueError(f"Invalid storage identifier: {name!r}")
    return name


class UniqueConstraintError(Exception):
    """A write collided with a unique field (or id) held by another record"""

    def __init__(self, table: str, field: str, value: Any = None):
        super().__init__(f"Unique constraint violated on {table}.{field}")
        self.table = table
        self.field = field
        self.value = value


@dataclass
class StorageRecord:
    """Base class for all stored records"""
    id: str
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage"""
        result = asdict(self)
        result['created_at'] = self.created_at.isoformat()
        result['updated_at'] = self.updated_at.isoformat()
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StorageRecord':
        """Create instance from dictionary"""
        data = dict(data)
        if 'created_at' in data and isinstance(data['created_at'], str):
            data['created_at'] = datetime.fromisoformat(data['created_at'])
        if 'updated_at' in data and isinstance(data['updated_at'], str):
            data['updated_at'] = datetime.fromisoformat(data['updated_at'])

        return cls(**data)


class StorageInterface(ABC):
    """Abstract interface for storage backends"""

    @abstractmethod
    def register_unique(self, table: str, fields: Iterable[str]) -> None:
        """Declare fields whose values must be unique across a table"""
        pass

    @abstractmethod
    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Insert or update a record"""
        pass

    @abstractmethod
    def insert(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Insert a new record; raises UniqueConstraintError if id or a unique field is taken"""
        pass

    @abstractmethod
    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record from storage"""
        pass

    @abstractmethod
    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records from a table"""
        pass

    @abstractmethod
    def delete(self, table: str, record_id: str) -> bool:
        """Delete a record from storage"""
        pass

    @abstractmethod
    def exists(self, table: str, record_id: str) -> bool:
        """Check if a record exists"""
        pass

    @abstractmethod
    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find records matching filters"""
        pass

    @abstractmethod
    def count(self, table: str) -> int:
        """Count records in table"""
        pass

    @abstractmethod
    def clear_table(self, table: str) -> None:
        """Clear all records from a table"""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close storage connection"""
        pass

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
        """Context manager for atomic operations"""
        self.begin_transaction()
        try:
            yield
        except BaseException:
            self.rollback()
            raise
        else:
            self.commit()


class InMemoryStorage(StorageInterface):
    """
    In-memory storage implementation for testing.

    A transaction holds the storage lock from begin to commit/rollback, so
    concurrent writers are serialized, and rollback restores a snapshot taken
    at begin.
    """

    def __init__(self):
        self._data: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._unique: Dict[str, List[str]] = {}
        self._snapshots: List[Dict[str, Dict[str, Dict[str, Any]]]] = []
        self._lock = threading.RLock()

    def _ensure_table(self, table: str) -> None:
        """Ensure table exists"""
        if table not in self._data:
            self._data[table] = {}

    def _check_unique(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Reject data whose unique fields are held by a different record"""
        for field_name in self._unique.get(table, []):
            value = data.get(field_name)
            if value is None:
                continue
            for other_id, other in self._data[table].items():
                if other_id != record_id and other.get(field_name) == value:
                    raise UniqueConstraintError(table, field_name, value)

    def register_unique(self, table: str, fields: Iterable[str]) -> None:
        with self._lock:
            self._ensure_table(table)
            known = self._unique.setdefault(table, [])
            for field_name in fields:
                if field_name not in known:
                    known.append(_check_identifier(field_name))

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save a record to memory"""
        with self._lock:
            self._ensure_table(table)
            self._check_unique(table, record_id, data)
            # Deep copy to prevent external mutation
            self._data[table][record_id] = json.loads(json.dumps(data, default=str))

    def insert(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Insert a new record into memory"""
        with self._lock:
            self._ensure_table(table)
            if record_id in self._data[table]:
                raise UniqueConstraintError(table, "id", record_id)
            self._check_unique(table, record_id, data)
            self._data[table][record_id] = json.loads(json.dumps(data, default=str))

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record from memory"""
        with self._lock:
            self._ensure_table(table)
            record = self._data[table].get(record_id)
            if record:
                return json.loads(json.dumps(record))
            return None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records from a table"""
        with self._lock:
            self._ensure_table(table)
            return [json.loads(json.dumps(record)) for record in self._data[table].values()]

    def delete(self, table: str, record_id: str) -> bool:
        """Delete a record from memory"""
        with self._lock:
            self._ensure_table(table)
            if record_id in self._data[table]:
                del self._data[table][record_id]
                return True
            return False

    def exists(self, table: str, record_id: str) -> bool:
        """Check if a record exists"""
        with self._lock:
            self._ensure_table(table)
            return record_id in self._data[table]

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find records matching filters"""
        with self._lock:
            self._ensure_table(table)
            results = []
            for record in self._data[table].values():
                match = True
                for key, value in filters.items():
                    if key not in record or record[key] != value:
                        match = False
                        break
                if match:
                    results.append(json.loads(json.dumps(record)))
            return results

    def count(self, table: str) -> int:
        """Count records in table"""
        with self._lock:
            self._ensure_table(table)
            return len(self._data[table])

    def clear_table(self, table: str) -> None:
        """Clear all records from a table"""
        with self._lock:
            self._data[table] = {}

    def begin_transaction(self) -> None:
        """Take the lock and remember the current state"""
        self._lock.acquire()
        self._snapshots.append(copy.deepcopy(self._data))

    def commit(self) -> None:
        """Keep changes and let other writers in"""
        try:
            if self._snapshots:
                self._snapshots.pop()
        finally:
            self._lock.release()

    def rollback(self) -> None:
        """Restore the state captured at begin"""
        try:
            if self._snapshots:
                self._data = self._snapshots.pop()
        finally:
            self._lock.release()

    def close(self) -> None:
        """Close storage (no-op for in-memory)"""
        pass


class SQLiteStorage(StorageInterface):
    """
    SQLite storage implementation for persistence.

    Each record lives in a JSON ``data`` column. Unique fields become unique
    expression indexes over json_extract(), so the database itself rejects
    duplicate values even when two writers race. The connection runs in
    autocommit mode; atomic() issues BEGIN IMMEDIATE and nests with savepoints.
    """

    def __init__(self, db_path: Union[str, Path] = ":memory:", timeout: float = 30.0):
        self.db_path = str(db_path)
        self._connection = sqlite3.connect(
            self.db_path, check_same_thread=False, isolation_level=None, timeout=timeout
        )
        self._connection.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._tables: set = set()
        self._unique: Dict[str, List[str]] = {}
        self._depth = 0

        # Enable WAL mode for better concurrent access
        if self.db_path != ":memory:":
            with self._lock:
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA synchronous = NORMAL")

    @property
    def _conn(self) -> sqlite3.Connection:
        if self._connection is None:
            raise BackendUnavailableError("Storage connection is closed")
        return self._connection

    @contextmanager
    def _guard(self, table: Optional[str] = None):
        """Translate driver errors into storage-level errors"""
        try:
            yield
        except sqlite3.IntegrityError as e:
            raise self._unique_violation(table or "", e) from e
        except sqlite3.Error as e:
            raise BackendUnavailableError(f"Storage backend failure: {e}") from e

    def _unique_violation(self, table: str, error: sqlite3.IntegrityError) -> Exception:
        message = str(error)
        match = re.search(r"index '(ux_[A-Za-z0-9_]+)'", message)
        if match:
            prefix = f"ux_{table}_"
            index_name = match.group(1)
            field_name = index_name[len(prefix):] if index_name.startswith(prefix) else index_name
            return UniqueConstraintError(table, field_name)
        if "UNIQUE constraint failed" in message:
            return UniqueConstraintError(table, message.rsplit(".", 1)[-1].strip())
        return BackendUnavailableError(f"Storage integrity failure: {message}")

    def _create_unique_index(self, table: str, field_name: str) -> None:
        self._conn.execute(f"""
            CREATE UNIQUE INDEX IF NOT EXISTS ux_{table}_{field_name}
            ON {table}(json_extract(data, '$.{field_name}'))
        """)

    def _ensure_table(self, table: str) -> None:
        """Ensure table exists with proper schema"""
        if table in self._tables:
            return
        _check_identifier(table)
        with self._lock, self._guard(table):
            self._conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {table} (
                    id TEXT PRIMARY KEY,
                    data TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            self._conn.execute(f"""
                CREATE INDEX IF NOT EXISTS idx_{table}_created_at
                ON {table}(created_at)
            """)
            for field_name in self._unique.get(table, []):
                self._create_unique_index(table, field_name)
            # DDL inside an open transaction is undone by a rollback
            if self._depth == 0:
                self._tables.add(table)

    def register_unique(self, table: str, fields: Iterable[str]) -> None:
        with self._lock:
            self._ensure_table(table)
            known = self._unique.setdefault(table, [])
            for field_name in fields:
                _check_identifier(field_name)
                if field_name not in known:
                    known.append(field_name)
                with self._guard(table):
                    self._create_unique_index(table, field_name)

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save a record to SQLite"""
        self._ensure_table(table)
        now = datetime.now(timezone.utc).isoformat()
        data_json = json.dumps(data, default=str)

        with self._lock, self._guard(table):
            # UPSERT on id only: a clash on any unique index still raises
            self._conn.execute(f"""
                INSERT INTO {table} (id, data, created_at, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    data = excluded.data,
                    updated_at = excluded.updated_at
            """, (record_id, data_json, now, now))

    def insert(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Insert a new record into SQLite"""
        self._ensure_table(table)
        now = datetime.now(timezone.utc).isoformat()
        data_json = json.dumps(data, default=str)

        with self._lock, self._guard(table):
            self._conn.execute(f"""
                INSERT INTO {table} (id, data, created_at, updated_at)
                VALUES (?, ?, ?, ?)
            """, (record_id, data_json, now, now))

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record from SQLite"""
        self._ensure_table(table)
        with self._lock, self._guard(table):
            cursor = self._conn.execute(f"""
                SELECT data FROM {table} WHERE id = ?
            """, (record_id,))
            row = cursor.fetchone()
            if row:
                return json.loads(row['data'])
            return None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records from a table"""
        self._ensure_table(table)
        with self._lock, self._guard(table):
            cursor = self._conn.execute(f"""
                SELECT data FROM {table} ORDER BY created_at, rowid
            """)
            return [json.loads(row['data']) for row in cursor.fetchall()]

    def delete(self, table: str, record_id: str) -> bool:
        """Delete a record from SQLite"""
        self._ensure_table(table)
        with self._lock, self._guard(table):
            cursor = self._conn.execute(f"""
                DELETE FROM {table} WHERE id = ?
            """, (record_id,))
            return cursor.rowcount > 0

    def exists(self, table: str, record_id: str) -> bool:
        """Check if a record exists"""
        self._ensure_table(table)
        with self._lock, self._guard(table):
            cursor = self._conn.execute(f"""
                SELECT 1 FROM {table} WHERE id = ? LIMIT 1
            """, (record_id,))
            return cursor.fetchone() is not None

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find records matching filters using json_extract (index-backed for unique fields)"""
        self._ensure_table(table)
        conditions = []
        params: List[Any] = []
        for key, value in filters.items():
            conditions.append(f"json_extract(data, '$.{_check_identifier(key)}') = ?")
            params.append(value)
        where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        with self._lock, self._guard(table):
            cursor = self._conn.execute(f"""
                SELECT data FROM {table} {where_clause} ORDER BY created_at, rowid
            """, params)
            return [json.loads(row['data']) for row in cursor.fetchall()]

    def count(self, table: str) -> int:
        """Count records in table"""
        self._ensure_table(table)
        with self._lock, self._guard(table):
            cursor = self._conn.execute(f"""
                SELECT COUNT(*) as count FROM {table}
            """)
            return cursor.fetchone()['count']

    def clear_table(self, table: str) -> None:
        """Clear all records from a table"""
        self._ensure_table(table)
        with self._lock, self._guard(table):
            self._conn.execute(f"DELETE FROM {table}")

    def begin_transaction(self) -> None:
        """Start a transaction, or a savepoint when one is already open"""
        self._lock.acquire()
        try:
            with self._guard():
                if self._depth == 0:
                    self._conn.execute("BEGIN IMMEDIATE")
                else:
                    self._conn.execute(f"SAVEPOINT sp_{self._depth}")
        except Exception:
            self._lock.release()
            raise
        self._depth += 1

    def commit(self) -> None:
        """Commit current transaction"""
        try:
            self._depth -= 1
            if self._depth == 0:
                try:
                    with self._guard():
                        self._conn.execute("COMMIT")
                except Exception:
                    self._abandon_transaction()
                    raise
            else:
                with self._guard():
                    self._conn.execute(f"RELEASE SAVEPOINT sp_{self._depth}")
        finally:
            self._lock.release()

    def _abandon_transaction(self) -> None:
        """Roll back a transaction whose COMMIT failed so the connection is reusable"""
        if self._connection is not None and self._connection.in_transaction:
            try:
                self._connection.execute("ROLLBACK")
            except sqlite3.Error:
                # The commit failure is what gets reported
                pass

    def rollback(self) -> None:
        """Rollback current transaction"""
        try:
            self._depth -= 1
            with self._guard():
                if self._depth == 0:
                    self._conn.execute("ROLLBACK")
                else:
                    self._conn.execute(f"ROLLBACK TO SAVEPOINT sp_{self._depth}")
                    self._conn.execute(f"RELEASE SAVEPOINT sp_{self._depth}")
        finally:
            self._lock.release()

    def close(self) -> None:
        """Close SQLite connection"""
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None


def create_storage(database_url: str) -> StorageInterface:
    """
    Build a storage backend from a URL.

    ``memory://`` gives InMemoryStorage, ``sqlite://`` an in-memory SQLite
    database and ``sqlite:///path/to/file.db`` a file-backed one.
    """
    if database_url == "memory://":
        return InMemoryStorage()
    if database_url == "sqlite://" or database_url == "sqlite:///:memory:":
        return SQLiteStorage(":memory:")
    if database_url.startswith("sqlite:///"):
        return SQLiteStorage(database_url[len("sqlite:///"):])
    raise ValueError(f"Unsupported database URL: {database_url}")
