"""Tests for document store backends and write batches."""

import pytest

from flextable.backends import MemoryBackend, SqliteBackend, WriteOp, get_backend
from flextable.errors import BatchLimitExceededError, StorageError
from flextable.transactions import WriteBatch, transaction_context


@pytest.fixture(params=['memory', 'sqlite'])
def backend(request, temp_db_path):
    """Each test runs against both backends."""
    if request.param == 'memory':
        store = MemoryBackend(max_batch_writes=5)
    else:
        store = SqliteBackend(temp_db_path, max_batch_writes=5)
    yield store
    store.close()


class TestDocumentStore:
    """Behaviour shared by every backend."""

    def test_set_get(self, backend):
        backend.set('c', 'd1', {'name': 'a', 'n': 1})
        assert backend.get('c', 'd1') == {'name': 'a', 'n': 1}
        assert backend.get('c', 'missing') is None
        assert backend.get('other', 'd1') is None

    def test_update_merges(self, backend):
        backend.set('c', 'd1', {'a': 1, 'b': 2})
        backend.update('c', 'd1', {'b': 3, 'c': 4})
        assert backend.get('c', 'd1') == {'a': 1, 'b': 3, 'c': 4}

    def test_update_missing_document_fails(self, backend):
        with pytest.raises(StorageError):
            backend.update('c', 'nope', {'a': 1})

    def test_delete(self, backend):
        backend.set('c', 'd1', {'a': 1})
        backend.delete('c', 'd1')
        backend.delete('c', 'd1')
        assert backend.get('c', 'd1') is None

    def test_query_filters_order_and_paging(self, backend):
        for i, group in enumerate(['x', 'y', 'x', 'x', 'y']):
            backend.set('c', f'd{i}', {'group': group, 'rank': i})

        xs = backend.query('c', {'group': 'x'}, order_by='rank', descending=True)
        assert [doc['rank'] for doc in xs] == [3, 2, 0]

        page = backend.query('c', order_by='rank', limit=2, offset=2)
        assert [doc['rank'] for doc in page] == [2, 3]

        assert backend.count('c') == 5
        assert backend.count('c', {'group': 'y'}) == 2
        assert sorted(backend.list_ids('c')) == ['d0', 'd1', 'd2', 'd3', 'd4']

    def test_increment_with_floor(self, backend):
        backend.set('c', 'd1', {'count': 2})
        backend.increment('c', 'd1', 'count', 3)
        assert backend.get('c', 'd1')['count'] == 5
        backend.increment('c', 'd1', 'count', -10, floor=0)
        assert backend.get('c', 'd1')['count'] == 0

    def test_batch_is_atomic(self, backend):
        backend.set('c', 'keep', {'v': 1})
        with pytest.raises(StorageError):
            backend.commit_batch([
                WriteOp('set', 'c', 'new', {'v': 2}),
                WriteOp('update', 'c', 'ghost', {'v': 3}),
            ])
        assert backend.get('c', 'new') is None
        assert backend.count('c') == 1

    def test_get_name(self, backend):
        assert backend.get_name() in ('memory', 'sqlite')


class TestWriteBatch:
    """Batches commit once and respect the write ceiling."""

    def test_transaction_context_commits(self):
        store = MemoryBackend()
        with transaction_context(store) as batch:
            batch.set('c', 'a', {'v': 1})
            batch.set('c', 'b', {'v': 2})
            assert store.count('c') == 0
        assert store.count('c') == 2

    def test_nothing_written_when_block_raises(self):
        store = MemoryBackend()
        with pytest.raises(ValueError):
            with transaction_context(store) as batch:
                batch.set('c', 'a', {'v': 1})
                raise ValueError("boom")
        assert store.count('c') == 0

    def test_ceiling(self):
        store = MemoryBackend(max_batch_writes=2)
        batch = WriteBatch(store)
        batch.set('c', 'a', {}).set('c', 'b', {})
        with pytest.raises(BatchLimitExceededError):
            batch.set('c', 'c', {})
        assert len(batch) == 2


def test_get_backend():
    assert isinstance(get_backend('memory'), MemoryBackend)
    with pytest.raises(ValueError, match="Unknown backend"):
        get_backend('libsql')
