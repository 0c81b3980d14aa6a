"""Shared test fixtures for FlexTable tests."""

import os
import tempfile

import pytest

import flextable
from flextable.backends import MemoryBackend
from flextable.bulk import BulkProcessor
from flextable.records import RecordEngine
from flextable.schema import SchemaManager

NAMESPACE = 'testapp'
APP_ID = 'app_1'
OWNER = 'user_owner'


class CountingBackend(MemoryBackend):
    """Memory backend that records the size of every committed batch."""

    def __init__(self, max_batch_writes=None, fail_on_commit=None):
        super().__init__(max_batch_writes)
        self.commits = []
        self.fail_on_commit = fail_on_commit

    def commit_batch(self, ops):
        if self.fail_on_commit is not None and len(self.commits) + 1 == self.fail_on_commit:
            self.fail_on_commit = None
            raise RuntimeError("simulated store outage")
        super().commit_batch(ops)
        self.commits.append(len(ops))


@pytest.fixture
def store():
    return MemoryBackend()


@pytest.fixture
def schemas(store):
    return SchemaManager(store)


@pytest.fixture
def records(store, schemas):
    return RecordEngine(store, schemas)


@pytest.fixture
def bulk(store, schemas):
    return BulkProcessor(store, schemas)


@pytest.fixture
def contact_fields():
    return [
        {'name': 'name', 'type': 'text', 'required': True},
        {'name': 'email', 'type': 'email', 'required': True},
        {'name': 'age', 'type': 'number'},
        {'name': 'status', 'type': 'select', 'options': ['Active', 'Inactive']},
        {'name': 'tags', 'type': 'multiselect', 'options': ['vip', 'new', 'churned']},
        {'name': 'subscribed', 'type': 'boolean'},
    ]


@pytest.fixture
def contacts(schemas, contact_fields):
    """A table named Contacts owned by OWNER."""
    return schemas.create(NAMESPACE, APP_ID, 'Contacts', contact_fields, OWNER)


@pytest.fixture
def db():
    """In-memory connection."""
    connection = flextable.connect()
    yield connection
    connection.close()


@pytest.fixture
def temp_db_path():
    """Path for a temporary SQLite database file."""
    with tempfile.NamedTemporaryFile(suffix='.db', delete=False) as tmp:
        db_path = tmp.name

    yield db_path

    if os.path.exists(db_path):
        os.unlink(db_path)
