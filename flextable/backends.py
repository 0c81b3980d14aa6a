"""Document store abstraction layer for FlexTable."""

import copy
import json
import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .config import config
from .errors import StorageError

logger = logging.getLogger(__name__)


@dataclass
class WriteOp:
    """One write inside an atomic batch."""
    kind: str  # set | update | delete | increment
    collection: str
    doc_id: str
    data: Dict[str, Any] = field(default_factory=dict)
    field_name: Optional[str] = None
    delta: int = 0
    floor: Optional[int] = None


def _sort_key(value: Any) -> Tuple[int, Any]:
    """Order None first, then numbers, then strings, then anything else."""
    if value is None:
        return (0, 0)
    if isinstance(value, (bool, int, float)):
        return (1, value)
    if isinstance(value, str):
        return (2, value)
    return (3, json.dumps(value, sort_keys=True, default=str))


class DocumentStore(ABC):
    """Abstract base class for document store backends."""

    def __init__(self, max_batch_writes: Optional[int] = None) -> None:
        self.max_batch_writes = max_batch_writes or config.batch_write_limit

    @abstractmethod
    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Fetch one document, or None when it does not exist."""
        pass

    @abstractmethod
    def query(self, collection: str, filters: Optional[Dict[str, Any]] = None,
              order_by: Optional[str] = None, descending: bool = False,
              limit: Optional[int] = None, offset: int = 0) -> List[Dict[str, Any]]:
        """List documents matching equality filters, optionally ordered and paged."""
        pass

    @abstractmethod
    def count(self, collection: str, filters: Optional[Dict[str, Any]] = None) -> int:
        """Count documents matching equality filters."""
        pass

    @abstractmethod
    def list_ids(self, collection: str) -> List[str]:
        """List every document id of a collection."""
        pass

    @abstractmethod
    def commit_batch(self, ops: List[WriteOp]) -> None:
        """Apply all operations atomically, or none of them."""
        pass

    @abstractmethod
    def get_name(self) -> str:
        """Get the backend name."""
        pass

    def close(self) -> None:
        """Release backend resources."""

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        """Create or replace a document."""
        self.commit_batch([WriteOp('set', collection, doc_id, data)])

    def update(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        """Merge fields into an existing document."""
        self.commit_batch([WriteOp('update', collection, doc_id, data)])

    def delete(self, collection: str, doc_id: str) -> None:
        """Delete a document; deleting a missing document is a no-op."""
        self.commit_batch([WriteOp('delete', collection, doc_id)])

    def increment(self, collection: str, doc_id: str, field_name: str, delta: int,
                  floor: Optional[int] = None) -> None:
        """Atomically adjust a numeric field."""
        self.commit_batch([WriteOp('increment', collection, doc_id,
                                   field_name=field_name, delta=delta, floor=floor)])


def _apply_increment(doc: Dict[str, Any], op: WriteOp) -> Dict[str, Any]:
    value = (doc.get(op.field_name) or 0) + op.delta
    if op.floor is not None:
        value = max(op.floor, value)
    return {**doc, op.field_name: value}


class MemoryBackend(DocumentStore):
    """In-process document store guarded by a lock."""

    _DELETED = object()

    def __init__(self, max_batch_writes: Optional[int] = None) -> None:
        super().__init__(max_batch_writes)
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.RLock()

    def get(self, collection, doc_id):
        with self._lock:
            doc = self._collections.get(collection, {}).get(doc_id)
            return copy.deepcopy(doc) if doc is not None else None

    def _matching(self, collection: str, filters: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
        docs = self._collections.get(collection, {}).values()
        if not filters:
            return list(docs)
        return [doc for doc in docs
                if all(doc.get(key) == value for key, value in filters.items())]

    def query(self, collection, filters=None, order_by=None, descending=False,
              limit=None, offset=0):
        with self._lock:
            docs = self._matching(collection, filters)
            if order_by:
                docs = sorted(docs, key=lambda doc: _sort_key(doc.get(order_by)), reverse=descending)
            end = None if limit is None else offset + limit
            return copy.deepcopy(docs[offset:end])

    def count(self, collection, filters=None):
        with self._lock:
            return len(self._matching(collection, filters))

    def list_ids(self, collection):
        with self._lock:
            return list(self._collections.get(collection, {}).keys())

    def commit_batch(self, ops):
        with self._lock:
            staged: Dict[Tuple[str, str], Any] = {}

            def current(op: WriteOp) -> Optional[Dict[str, Any]]:
                key = (op.collection, op.doc_id)
                if key in staged:
                    doc = staged[key]
                    return None if doc is self._DELETED else doc
                return self._collections.get(op.collection, {}).get(op.doc_id)

            for op in ops:
                key = (op.collection, op.doc_id)
                if op.kind == 'set':
                    staged[key] = copy.deepcopy(op.data)
                elif op.kind == 'delete':
                    staged[key] = self._DELETED
                elif op.kind in ('update', 'increment'):
                    doc = current(op)
                    if doc is None:
                        raise StorageError(f"No document '{op.doc_id}' in '{op.collection}' to {op.kind}")
                    if op.kind == 'update':
                        staged[key] = {**doc, **copy.deepcopy(op.data)}
                    else:
                        staged[key] = _apply_increment(doc, op)
                else:
                    raise StorageError(f"Unknown write operation: {op.kind}")

            for (collection, doc_id), doc in staged.items():
                if doc is self._DELETED:
                    self._collections.get(collection, {}).pop(doc_id, None)
                else:
                    self._collections.setdefault(collection, {})[doc_id] = doc

    def get_name(self) -> str:
        return "memory"


class SqliteBackend(DocumentStore):
    """SQLite document store: one documents table holding JSON bodies."""

    def __init__(self, db_path: str = 'flextable.db', max_batch_writes: Optional[int] = None) -> None:
        super().__init__(max_batch_writes)
        self.db_path = db_path
        self._lock = threading.RLock()
        try:
            self._connection = sqlite3.connect(db_path, check_same_thread=False, isolation_level=None)
            self._connection.execute("""
                CREATE TABLE IF NOT EXISTS documents (
                    collection TEXT NOT NULL,
                    id TEXT NOT NULL,
                    body TEXT NOT NULL,
                    PRIMARY KEY (collection, id)
                )
            """)
        except sqlite3.Error as e:
            raise StorageError(f"Failed to open sqlite database '{db_path}'", e)

    @staticmethod
    def _path(field_name: str) -> str:
        return '$."' + field_name.replace('"', '') + '"'

    def _execute(self, query: str, params: Iterable[Any] = ()) -> sqlite3.Cursor:
        try:
            return self._connection.execute(query, tuple(params))
        except sqlite3.Error as e:
            raise StorageError("SQLite operation failed", e)

    def _where(self, collection: str, filters: Optional[Dict[str, Any]]) -> Tuple[str, List[Any]]:
        clause = "WHERE collection = ?"
        params: List[Any] = [collection]
        for key, value in (filters or {}).items():
            clause += " AND json_extract(body, ?) = ?"
            params.extend([self._path(key), value])
        return clause, params

    def get(self, collection, doc_id):
        with self._lock:
            row = self._execute(
                "SELECT body FROM documents WHERE collection = ? AND id = ?",
                (collection, doc_id),
            ).fetchone()
        return json.loads(row[0]) if row else None

    def query(self, collection, filters=None, order_by=None, descending=False,
              limit=None, offset=0):
        where, params = self._where(collection, filters)
        query = f"SELECT body FROM documents {where}"
        if order_by:
            query += f" ORDER BY json_extract(body, ?) {'DESC' if descending else 'ASC'}, rowid"
            params.append(self._path(order_by))
        else:
            query += " ORDER BY rowid"
        query += " LIMIT ? OFFSET ?"
        params.extend([-1 if limit is None else limit, offset])

        with self._lock:
            rows = self._execute(query, params).fetchall()
        return [json.loads(row[0]) for row in rows]

    def count(self, collection, filters=None):
        where, params = self._where(collection, filters)
        with self._lock:
            row = self._execute(f"SELECT COUNT(*) FROM documents {where}", params).fetchone()
        return row[0]

    def list_ids(self, collection):
        with self._lock:
            rows = self._execute(
                "SELECT id FROM documents WHERE collection = ? ORDER BY rowid", (collection,)
            ).fetchall()
        return [row[0] for row in rows]

    def _load(self, op: WriteOp) -> Dict[str, Any]:
        row = self._execute(
            "SELECT body FROM documents WHERE collection = ? AND id = ?",
            (op.collection, op.doc_id),
        ).fetchone()
        if not row:
            raise StorageError(f"No document '{op.doc_id}' in '{op.collection}' to {op.kind}")
        return json.loads(row[0])

    def _store(self, op: WriteOp, body: Dict[str, Any]) -> None:
        self._execute(
            "INSERT INTO documents (collection, id, body) VALUES (?, ?, ?) "
            "ON CONFLICT (collection, id) DO UPDATE SET body = excluded.body",
            (op.collection, op.doc_id, json.dumps(body, default=str)),
        )

    def commit_batch(self, ops):
        with self._lock:
            self._execute("BEGIN")
            try:
                for op in ops:
                    if op.kind == 'set':
                        self._store(op, op.data)
                    elif op.kind == 'delete':
                        self._execute(
                            "DELETE FROM documents WHERE collection = ? AND id = ?",
                            (op.collection, op.doc_id),
                        )
                    elif op.kind == 'update':
                        self._store(op, {**self._load(op), **op.data})
                    elif op.kind == 'increment':
                        self._store(op, _apply_increment(self._load(op), op))
                    else:
                        raise StorageError(f"Unknown write operation: {op.kind}")
                self._execute("COMMIT")
            except Exception:
                try:
                    self._connection.execute("ROLLBACK")
                except sqlite3.Error:
                    logger.warning("Rollback failed for %s", self.db_path)
                raise

    def close(self) -> None:
        with self._lock:
            self._connection.close()

    def get_name(self) -> str:
        return "sqlite"


def get_backend(backend_name: str = "memory", connection_info: Any = None,
                max_batch_writes: Optional[int] = None) -> DocumentStore:
    """Get a document store instance."""
    if backend_name == "memory":
        return MemoryBackend(max_batch_writes)
    elif backend_name == "sqlite":
        return SqliteBackend(connection_info or config.db_path, max_batch_writes)
    else:
        raise ValueError(f"Unknown backend: {backend_name}. Supported backends: memory, sqlite")
