"""Tests for API client functionality."""

from unittest.mock import patch

import httpx
import pytest
from fastapi.testclient import TestClient

import flextable
from flextable.api_client import APIError, RemoteConnection, connect_remote
from flextable.api_server import app, get_connection

FIELDS = [
    {'name': 'title', 'type': 'text', 'required': True},
    {'name': 'rating', 'type': 'rating'},
]


@pytest.fixture
def remote():
    """Remote connection talking to the app in-process."""
    connection = flextable.connect()
    app.dependency_overrides[get_connection] = lambda: connection
    with RemoteConnection("http://testserver", "library", "app_books", client=TestClient(app)) as conn:
        yield conn
    app.dependency_overrides.clear()
    connection.close()


class TestRemoteConnectionSetup:
    """Construction and URL building."""

    def test_initialization(self):
        conn = connect_remote("http://localhost:8000/", "library", "app_books")

        assert conn.base_url == "http://localhost:8000"
        assert conn.namespace == "library"
        assert conn.app_id == "app_books"
        assert conn.timeout == 30.0
        assert isinstance(conn.client, httpx.Client)
        conn.close()

    def test_endpoint_generation(self):
        conn = RemoteConnection("http://localhost:8000", "library", "app_books")

        assert conn._tables_endpoint() == "/api/v1/library/apps/app_books/tables"
        assert conn._tables_endpoint("schema_1") == "/api/v1/library/apps/app_books/tables/schema_1"
        assert conn._records_endpoint("schema_1", "/bulk-create") == \
            "/api/v1/library/apps/app_books/tables/schema_1/records/bulk-create"
        conn.close()

    @patch('httpx.Client.request')
    def test_connection_error_handling(self, mock_request):
        mock_request.side_effect = httpx.ConnectError("Connection failed")

        conn = RemoteConnection("http://localhost:8000", "library", "app_books")

        with pytest.raises(APIError) as exc_info:
            conn._make_request('GET', '/health')

        assert "Connection error" in str(exc_info.value)
        assert exc_info.value.status_code is None


class TestRemoteOperations:
    """Round trips through the real server app."""

    def test_table_and_record_lifecycle(self, remote):
        schema = remote.create_table("Books", FIELDS, "librarian")
        schema_id = schema['schema_id']
        assert [table['schema_id'] for table in remote.list_tables()] == [schema_id]

        record = remote.create_record(schema_id, {'title': 'Dune', 'rating': 5}, "librarian")
        assert remote.get_record(schema_id, record['id'])['title'] == 'Dune'

        updated = remote.update_record(schema_id, record['id'], {'rating': 4}, "reader")
        assert updated['rating'] == 4

        page = remote.list_records(schema_id, search='dune')
        assert len(page['records']) == 1

        assert remote.delete_record(schema_id, record['id'])['deleted_record_id'] == record['id']

        deleted = remote.delete_table(schema_id, "librarian", confirm_delete=True)
        assert deleted['deleted_records'] == 0

    def test_errors_carry_code_and_status(self, remote):
        with pytest.raises(APIError) as exc_info:
            remote.get_table("schema_missing")

        assert exc_info.value.status_code == 404
        assert exc_info.value.code == 'SCHEMA_NOT_FOUND'

        schema_id = remote.create_table("Books", FIELDS, "librarian")['schema_id']
        with pytest.raises(APIError) as exc_info:
            remote.create_record(schema_id, {'rating': 9}, "librarian")

        assert exc_info.value.code == 'VALIDATION_ERROR'
        assert set(exc_info.value.details['errors']) == {'title', 'rating'}

    def test_bulk_and_validate(self, remote):
        schema_id = remote.create_table("Books", FIELDS, "librarian")['schema_id']

        assert remote.validate_record(schema_id, {'title': 'Emma'}) == {'valid': True, 'errors': {}}

        created = remote.bulk_create(schema_id, [{'title': 'A'}, {'title': 'B'}], "librarian")
        assert created['inserted_count'] == 2

        ids = [item['id'] for item in remote.list_records(schema_id)['records']]
        updated = remote.bulk_update(schema_id, [{'record_id': i, 'data': {'rating': 3}} for i in ids], "reader")
        assert updated['updated_count'] == 2

        deleted = remote.bulk_delete(schema_id, ids)
        assert deleted['deleted_count'] == 2

    def test_csv_import_and_export(self, remote):
        imported = remote.import_csv("title,rating\nDune,5\nEmma,4\n", "books.csv", "librarian",
                                     create_new_table=True, display_name="Imported Books")
        assert imported['inserted_records'] == 2

        exported = remote.export_csv(imported['schema_id'])
        assert exported['filename'].startswith('Imported_Books_')
        assert exported['content'].splitlines()[0] == 'title,rating'

        appended = remote.import_csv(b"title,rating\nOdyssey,5\n", "more.csv", "librarian",
                                     schema_id=imported['schema_id'])
        assert appended['total_records'] == 3

    def test_field_types(self, remote):
        assert len(remote.field_types()) == 18
