"""Write batch management for FlexTable operations."""

from contextlib import contextmanager
from typing import Any, Dict, Generator, List, Optional

from .backends import DocumentStore, WriteOp
from .errors import BatchLimitExceededError


class WriteBatch:
    """
    Collects writes that are committed as one atomic transaction.

    A batch refuses to grow past the store's per-transaction ceiling.
    """

    def __init__(self, store: DocumentStore) -> None:
        self.store = store
        self.ops: List[WriteOp] = []
        self.committed = False

    def __len__(self) -> int:
        return len(self.ops)

    def _add(self, op: WriteOp) -> 'WriteBatch':
        if self.committed:
            raise RuntimeError("Cannot add to a batch that was already committed")
        if len(self.ops) >= self.store.max_batch_writes:
            raise BatchLimitExceededError(self.store.max_batch_writes)
        self.ops.append(op)
        return self

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> 'WriteBatch':
        return self._add(WriteOp('set', collection, doc_id, data))

    def update(self, collection: str, doc_id: str, data: Dict[str, Any]) -> 'WriteBatch':
        return self._add(WriteOp('update', collection, doc_id, data))

    def delete(self, collection: str, doc_id: str) -> 'WriteBatch':
        return self._add(WriteOp('delete', collection, doc_id))

    def increment(self, collection: str, doc_id: str, field_name: str, delta: int,
                  floor: Optional[int] = None) -> 'WriteBatch':
        return self._add(WriteOp('increment', collection, doc_id,
                                 field_name=field_name, delta=delta, floor=floor))

    def commit(self) -> None:
        if self.committed:
            return
        if self.ops:
            self.store.commit_batch(self.ops)
        self.committed = True


@contextmanager
def transaction_context(store: DocumentStore) -> Generator[WriteBatch, None, None]:
    """
    Context manager that collects writes and commits them atomically.

    Nothing is written if the block raises.

    Example:
        with transaction_context(store) as batch:
            batch.set(collection, record_id, record)
            batch.increment(schemas, schema_id, 'record_count', 1)
    """
    batch = WriteBatch(store)
    yield batch
    batch.commit()
