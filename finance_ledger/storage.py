"""
Storage Backend Module

Document storage for ledger records. A record is a JSON object stored under
a string id inside a named table; monetary values travel as Decimal strings.

Three backends share one interface:

* InMemoryStorage - dictionaries, used by the test suite
* SQLiteStorage - a single database file (the default deployment)
* PostgreSQLStorage - JSONB documents, needs the ``postgres`` extra

atomic() is the unit-of-work primitive. The enclosed block holds the
backend's writer lock inside a database transaction, and every write made in
it commits or rolls back together. Nested blocks join the outermost one.
"""

from abc import ABC, abstractmethod
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass, fields
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union
import json
import sqlite3
import threading


class DuplicateRecordError(Exception):
    """Raised by insert() when the record id already exists in the table"""

    def __init__(self, table: str, record_id: str):
        super().__init__(f"Record {record_id!r} already exists in {table}")
        self.table = table
        self.record_id = record_id


@dataclass
class StorageRecord:
    """Common identity and timestamps of every persisted record"""
    id: str
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        """Field values in their JSON form"""
        return {f.name: _to_json_value(getattr(self, f.name)) for f in fields(self)}


def _to_json_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    return value


def matches_filters(record: Dict[str, Any], filters: Dict[str, Any]) -> bool:
    """True when the record has every filter key with an equal value"""
    return all(key in record and record[key] == value for key, value in filters.items())


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class StorageInterface(ABC):
    """
    Table/document store used by every ledger component.

    Subclasses provide the record operations plus begin_transaction(),
    commit() and rollback(); atomic() builds the unit of work on top of them.
    """

    _lock: threading.RLock
    _in_transaction: bool = False

    @abstractmethod
    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Insert or replace a record"""

    @abstractmethod
    def insert(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Insert a new record, raising DuplicateRecordError if the id is taken"""

    @abstractmethod
    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """The record, or None"""

    def load_for_update(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record the current unit of work is about to modify"""
        return self.load(table, record_id)

    @abstractmethod
    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Every record in the table, oldest first"""

    @abstractmethod
    def delete(self, table: str, record_id: str) -> bool:
        """Remove a record; False when it did not exist"""

    def exists(self, table: str, record_id: str) -> bool:
        return self.load(table, record_id) is not None

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Records whose fields equal every filter value"""
        return [record for record in self.load_all(table) if matches_filters(record, filters)]

    def count(self, table: str) -> int:
        return len(self.load_all(table))

    @abstractmethod
    def clear_table(self, table: str) -> None:
        """Remove every record from the table"""

    @abstractmethod
    def close(self) -> None:
        """Release the backend's connection"""

    @abstractmethod
    def begin_transaction(self) -> None:
        pass

    @abstractmethod
    def commit(self) -> None:
        pass

    @abstractmethod
    def rollback(self) -> None:
        pass

    @contextmanager
    def atomic(self):
        """Run the block as one unit of work; nested blocks join the outer one"""
        with self._lock:
            if self._in_transaction:
                yield
                return

            self.begin_transaction()
            try:
                yield
                self.commit()
            except BaseException:
                self.rollback()
                raise


class InMemoryStorage(StorageInterface):
    """Dictionary backend; rollback restores a snapshot taken at begin"""

    def __init__(self):
        self._tables: Dict[str, Dict[str, Dict[str, Any]]] = defaultdict(dict)
        self._snapshot: Optional[Dict[str, Dict[str, Dict[str, Any]]]] = None
        self._lock = threading.RLock()
        self._in_transaction = False

    @staticmethod
    def _clone(value: Any) -> Any:
        # Round trip through JSON so callers never share state with the store
        return json.loads(json.dumps(value, default=str))

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        with self._lock:
            self._tables[table][record_id] = self._clone(data)

    def insert(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        with self._lock:
            rows = self._tables[table]
            if record_id in rows:
                raise DuplicateRecordError(table, record_id)
            rows[record_id] = self._clone(data)

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._tables[table].get(record_id)
            return self._clone(record) if record is not None else None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        with self._lock:
            return self._clone(list(self._tables[table].values()))

    def delete(self, table: str, record_id: str) -> bool:
        with self._lock:
            return self._tables[table].pop(record_id, None) is not None

    def exists(self, table: str, record_id: str) -> bool:
        with self._lock:
            return record_id in self._tables[table]

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        with self._lock:
            return self._clone([
                record for record in self._tables[table].values()
                if matches_filters(record, filters)
            ])

    def count(self, table: str) -> int:
        with self._lock:
            return len(self._tables[table])

    def clear_table(self, table: str) -> None:
        with self._lock:
            self._tables[table].clear()

    def begin_transaction(self) -> None:
        with self._lock:
            self._snapshot = self._clone(self._tables)
            self._in_transaction = True

    def commit(self) -> None:
        with self._lock:
            self._snapshot = None
            self._in_transaction = False

    def rollback(self) -> None:
        with self._lock:
            if self._snapshot is not None:
                self._tables = defaultdict(dict, self._snapshot)
            self._snapshot = None
            self._in_transaction = False

    def close(self) -> None:
        pass


class SQLiteStorage(StorageInterface):
    """
    Single-file backend. Each table holds (id, body, created_at, updated_at)
    rows with the document as JSON text in ``body``; find() filters with
    SQLite's JSON functions.
    """

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self.db_path = str(db_path)
        self._lock = threading.RLock()
        self._in_transaction = False
        self._known_tables = set()
        # One shared connection guarded by _lock; transactions are explicit
        self._connection = sqlite3.connect(self.db_path, check_same_thread=False)
        self._connection.row_factory = sqlite3.Row

        if self.db_path != ":memory:":
            with self._lock:
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA busy_timeout = 5000")

    def _finish_write(self) -> None:
        if not self._in_transaction:
            self._connection.commit()

    def _table(self, table: str) -> str:
        """Create the table on first use and return its name"""
        if table not in self._known_tables:
            self._connection.execute(
                f"CREATE TABLE IF NOT EXISTS {table} ("
                "id TEXT PRIMARY KEY, body TEXT NOT NULL, "
                "created_at TEXT NOT NULL, updated_at TEXT NOT NULL)"
            )
            self._connection.execute(
                f"CREATE INDEX IF NOT EXISTS ix_{table}_created ON {table} (created_at)"
            )
            self._finish_write()
            self._known_tables.add(table)
        return table

    @staticmethod
    def _documents(rows: Iterable[sqlite3.Row]) -> List[Dict[str, Any]]:
        return [json.loads(row["body"]) for row in rows]

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        with self._lock:
            name = self._table(table)
            stamp = _now()
            self._connection.execute(
                f"INSERT INTO {name} (id, body, created_at, updated_at) VALUES (?, ?, ?, ?) "
                "ON CONFLICT (id) DO UPDATE SET body = excluded.body, updated_at = excluded.updated_at",
                (record_id, json.dumps(data, default=str), stamp, stamp)
            )
            self._finish_write()

    def insert(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        with self._lock:
            name = self._table(table)
            stamp = _now()
            try:
                self._connection.execute(
                    f"INSERT INTO {name} (id, body, created_at, updated_at) VALUES (?, ?, ?, ?)",
                    (record_id, json.dumps(data, default=str), stamp, stamp)
                )
            except sqlite3.IntegrityError:
                if not self._in_transaction:
                    self._connection.rollback()
                raise DuplicateRecordError(table, record_id)
            self._finish_write()

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            row = self._connection.execute(
                f"SELECT body FROM {self._table(table)} WHERE id = ?", (record_id,)
            ).fetchone()
            return json.loads(row["body"]) if row else None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        with self._lock:
            return self._documents(self._connection.execute(
                f"SELECT body FROM {self._table(table)} ORDER BY created_at, rowid"
            ))

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        clauses = []
        params = []
        for key, value in filters.items():
            clauses.append("json_extract(body, ?) = ?")
            params.extend([f'$."{key}"', value])
        where = " AND ".join(clauses) or "1 = 1"

        with self._lock:
            return self._documents(self._connection.execute(
                f"SELECT body FROM {self._table(table)} WHERE {where} ORDER BY created_at, rowid",
                params
            ))

    def delete(self, table: str, record_id: str) -> bool:
        with self._lock:
            cursor = self._connection.execute(
                f"DELETE FROM {self._table(table)} WHERE id = ?", (record_id,)
            )
            self._finish_write()
            return cursor.rowcount > 0

    def exists(self, table: str, record_id: str) -> bool:
        with self._lock:
            row = self._connection.execute(
                f"SELECT 1 FROM {self._table(table)} WHERE id = ?", (record_id,)
            ).fetchone()
            return row is not None

    def count(self, table: str) -> int:
        with self._lock:
            return self._connection.execute(
                f"SELECT COUNT(*) FROM {self._table(table)}"
            ).fetchone()[0]

    def clear_table(self, table: str) -> None:
        with self._lock:
            self._connection.execute(f"DELETE FROM {self._table(table)}")
            self._finish_write()

    def begin_transaction(self) -> None:
        with self._lock:
            # Reserve the write lock up front so a read-check-write sequence
            # cannot interleave with another writer, in-process or not
            self._connection.execute("BEGIN IMMEDIATE")
            self._in_transaction = True

    def commit(self) -> None:
        with self._lock:
            self._connection.commit()
            self._in_transaction = False

    def rollback(self) -> None:
        with self._lock:
            try:
                self._connection.rollback()
            finally:
                self._in_transaction = False
                # DDL is transactional in SQLite
                self._known_tables.clear()

    def close(self) -> None:
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None


class PostgreSQLStorage(StorageInterface):
    """
    PostgreSQL backend storing documents as JSONB. load_for_update() takes a
    row lock that lasts until the unit of work ends.
    """

    def __init__(self, connection_string: str):
        try:
            import psycopg2
            import psycopg2.extras
        except ImportError:
            raise ImportError(
                "psycopg2 is required for PostgreSQL storage. "
                "Install with: pip install finance-ledger[postgres]"
            )

        self.psycopg2 = psycopg2
        self.extras = psycopg2.extras
        self.connection_string = connection_string
        self._lock = threading.RLock()
        self._in_transaction = False
        self._known_tables = set()
        self._connection = psycopg2.connect(connection_string, cursor_factory=psycopg2.extras.RealDictCursor)

    @contextmanager
    def _cursor(self):
        """Cursor whose statements commit on their own outside a unit of work"""
        cursor = self._connection.cursor()
        try:
            yield cursor
        except self.psycopg2.Error:
            if not self._in_transaction:
                self._connection.rollback()
            raise
        else:
            if not self._in_transaction:
                self._connection.commit()
        finally:
            cursor.close()

    def _table(self, table: str) -> str:
        if table not in self._known_tables:
            with self._cursor() as cursor:
                cursor.execute(
                    f"CREATE TABLE IF NOT EXISTS {table} ("
                    "id TEXT PRIMARY KEY, body JSONB NOT NULL, "
                    "created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(), "
                    "updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW())"
                )
                cursor.execute(f"CREATE INDEX IF NOT EXISTS ix_{table}_body ON {table} USING gin (body)")
            self._known_tables.add(table)
        return table

    def _query(self, sql: str, params: tuple = ()) -> List[Dict[str, Any]]:
        with self._cursor() as cursor:
            cursor.execute(sql, params)
            return [dict(row["body"]) for row in cursor.fetchall()]

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        with self._lock:
            name = self._table(table)
            with self._cursor() as cursor:
                cursor.execute(
                    f"INSERT INTO {name} (id, body) VALUES (%s, %s) "
                    "ON CONFLICT (id) DO UPDATE SET body = EXCLUDED.body, updated_at = NOW()",
                    (record_id, self.extras.Json(data, dumps=lambda v: json.dumps(v, default=str)))
                )

    def insert(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        with self._lock:
            name = self._table(table)
            with self._cursor() as cursor:
                # DO NOTHING keeps an open transaction usable on conflict
                cursor.execute(
                    f"INSERT INTO {name} (id, body) VALUES (%s, %s) ON CONFLICT (id) DO NOTHING",
                    (record_id, self.extras.Json(data, dumps=lambda v: json.dumps(v, default=str)))
                )
                inserted = cursor.rowcount
            if inserted == 0:
                raise DuplicateRecordError(table, record_id)

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            rows = self._query(f"SELECT body FROM {self._table(table)} WHERE id = %s", (record_id,))
            return rows[0] if rows else None

    def load_for_update(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            rows = self._query(
                f"SELECT body FROM {self._table(table)} WHERE id = %s FOR UPDATE", (record_id,)
            )
            return rows[0] if rows else None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        with self._lock:
            return self._query(f"SELECT body FROM {self._table(table)} ORDER BY created_at")

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """JSONB containment query, served by the GIN index"""
        with self._lock:
            return self._query(
                f"SELECT body FROM {self._table(table)} WHERE body @> %s::jsonb ORDER BY created_at",
                (json.dumps(filters, default=str),)
            )

    def delete(self, table: str, record_id: str) -> bool:
        with self._lock:
            name = self._table(table)
            with self._cursor() as cursor:
                cursor.execute(f"DELETE FROM {name} WHERE id = %s", (record_id,))
                return cursor.rowcount > 0

    def count(self, table: str) -> int:
        with self._lock:
            name = self._table(table)
            with self._cursor() as cursor:
                cursor.execute(f"SELECT COUNT(*) AS n FROM {name}")
                return cursor.fetchone()["n"]

    def clear_table(self, table: str) -> None:
        with self._lock:
            name = self._table(table)
            with self._cursor() as cursor:
                cursor.execute(f"DELETE FROM {name}")

    def begin_transaction(self) -> None:
        # psycopg2 opens the transaction with the next statement
        with self._lock:
            self._in_transaction = True

    def commit(self) -> None:
        with self._lock:
            self._connection.commit()
            self._in_transaction = False

    def rollback(self) -> None:
        with self._lock:
            try:
                self._connection.rollback()
            finally:
                self._in_transaction = False
                self._known_tables.clear()

    def close(self) -> None:
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None


def create_storage(database_url: str) -> StorageInterface:
    """
    Build a storage backend from a database URL.

    Supported forms: ``memory://``, ``sqlite:///relative.db``,
    ``sqlite:////absolute/path.db``, ``sqlite:///:memory:`` and
    ``postgresql://...`` / ``postgres://...``.
    """
    if database_url.startswith("memory://"):
        return InMemoryStorage()
    if database_url.startswith("sqlite:///"):
        return SQLiteStorage(database_url[len("sqlite:///"):] or ":memory:")
    if database_url.startswith(("postgresql://", "postgres://")):
        return PostgreSQLStorage(database_url)
    raise ValueError(f"Unsupported database URL: {database_url}")
