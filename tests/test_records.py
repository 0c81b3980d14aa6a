"""Tests for single-record operations."""

import pytest

from flextable.errors import InvalidInputError, RecordNotFoundError, SchemaNotFoundError, ValidationError

from .conftest import APP_ID, NAMESPACE, OWNER


@pytest.fixture
def alice(records, contacts):
    return records.create(NAMESPACE, APP_ID, contacts.schema_id,
                          {'name': 'Alice', 'email': 'alice@example.com', 'age': 30}, OWNER)


class TestCreate:
    """Record creation."""

    def test_create_stamps_system_fields(self, alice):
        assert alice['id'].startswith('rec_')
        assert alice['created_by'] == alice['updated_by'] == OWNER
        assert alice['created_at'] == alice['updated_at']
        assert alice['name'] == 'Alice'

    def test_create_increments_count(self, schemas, alice, contacts):
        assert schemas.get(NAMESPACE, APP_ID, contacts.schema_id).record_count == 1

    def test_caller_system_fields_are_overwritten(self, records, contacts):
        record = records.create(NAMESPACE, APP_ID, contacts.schema_id, {
            'name': 'Mallory', 'email': 'm@example.com',
            'id': 'rec_forged', 'created_by': 'admin', 'created_at': '1999-01-01',
        }, OWNER)
        assert record['id'] != 'rec_forged'
        assert record['created_by'] == OWNER
        assert record['created_at'] != '1999-01-01'

    def test_validation_failure_writes_nothing(self, records, schemas, contacts):
        with pytest.raises(ValidationError) as exc_info:
            records.create(NAMESPACE, APP_ID, contacts.schema_id, {'name': 'Bob', 'email': 'nope'}, OWNER)
        assert exc_info.value.errors == {'email': 'Invalid email format for email'}
        assert schemas.store.count(contacts.internal_name) == 0
        assert schemas.get(NAMESPACE, APP_ID, contacts.schema_id).record_count == 0

    def test_unknown_schema(self, records):
        with pytest.raises(SchemaNotFoundError):
            records.create(NAMESPACE, APP_ID, 'schema_missing', {'name': 'x'}, OWNER)

    def test_data_must_be_object(self, records, contacts):
        with pytest.raises(InvalidInputError):
            records.create(NAMESPACE, APP_ID, contacts.schema_id, ['not', 'a', 'dict'], OWNER)


class TestGetUpdateDelete:
    """Read, partial update and delete."""

    def test_get(self, records, contacts, alice):
        assert records.get(NAMESPACE, APP_ID, contacts.schema_id, alice['id']) == alice

    def test_get_missing(self, records, contacts):
        with pytest.raises(RecordNotFoundError):
            records.get(NAMESPACE, APP_ID, contacts.schema_id, 'rec_missing')

    def test_partial_update(self, records, contacts, alice):
        updated = records.update(NAMESPACE, APP_ID, contacts.schema_id, alice['id'],
                                 {'age': 31, 'created_by': 'forger'}, 'editor')

        assert updated['age'] == 31
        assert updated['name'] == 'Alice'
        assert updated['created_by'] == OWNER
        assert updated['updated_by'] == 'editor'
        assert records.get(NAMESPACE, APP_ID, contacts.schema_id, alice['id']) == updated

    def test_update_validates_supplied_fields(self, records, contacts, alice):
        with pytest.raises(ValidationError):
            records.update(NAMESPACE, APP_ID, contacts.schema_id, alice['id'], {'name': ''}, OWNER)

    def test_update_missing(self, records, contacts):
        with pytest.raises(RecordNotFoundError):
            records.update(NAMESPACE, APP_ID, contacts.schema_id, 'rec_missing', {'age': 1}, OWNER)

    def test_delete(self, records, schemas, contacts, alice):
        assert records.delete(NAMESPACE, APP_ID, contacts.schema_id, alice['id']) == {
            'deleted_record_id': alice['id']
        }
        assert schemas.get(NAMESPACE, APP_ID, contacts.schema_id).record_count == 0
        with pytest.raises(RecordNotFoundError):
            records.delete(NAMESPACE, APP_ID, contacts.schema_id, alice['id'])

    def test_validate_only(self, records, schemas, contacts):
        assert records.validate(NAMESPACE, APP_ID, contacts.schema_id,
                                {'name': 'A', 'email': 'a@b.co'}) == {'valid': True, 'errors': {}}

        result = records.validate(NAMESPACE, APP_ID, contacts.schema_id, {'name': 'A'})
        assert result == {'valid': False, 'errors': {'email': 'email is required'}}
        assert schemas.store.count(contacts.internal_name) == 0


class TestList:
    """Paging, sorting and page-local search."""

    @pytest.fixture
    def populated(self, records, contacts):
        for i in range(25):
            records.create(NAMESPACE, APP_ID, contacts.schema_id, {
                'name': f'Person {i:02d}',
                'email': f'p{i}@example.com',
                'age': i,
                'status': 'Active' if i % 5 else 'Inactive',
            }, OWNER)
        return contacts

    def test_defaults(self, records, populated):
        page = records.list(NAMESPACE, APP_ID, populated.schema_id)
        assert len(page.records) == 20
        assert page.pagination.model_dump() == {
            'current_page': 1,
            'page_size': 20,
            'total_records': 25,
            'total_pages': 2,
            'has_next_page': True,
            'has_previous_page': False,
        }

    def test_sort_and_page(self, records, populated):
        page = records.list(NAMESPACE, APP_ID, populated.schema_id, page=2, page_size=10,
                            sort_by='age', sort_order='asc')
        assert [record['age'] for record in page.records] == list(range(10, 20))
        assert page.pagination.has_previous_page and page.pagination.has_next_page

    def test_search_filters_current_page_only(self, records, populated):
        page = records.list(NAMESPACE, APP_ID, populated.schema_id, page_size=10,
                            sort_by='age', sort_order='asc', search_query='inactive')
        assert [record['age'] for record in page.records] == [0, 5]
        assert page.pagination.total_records == 25

    def test_search_is_case_insensitive(self, records, populated):
        page = records.list(NAMESPACE, APP_ID, populated.schema_id, page_size=100,
                            search_query='PERSON 07')
        assert [record['name'] for record in page.records] == ['Person 07']

    def test_empty_table(self, records, contacts):
        page = records.list(NAMESPACE, APP_ID, contacts.schema_id)
        assert page.records == []
        assert page.pagination.total_pages == 0
        assert not page.pagination.has_next_page

    @pytest.mark.parametrize("kwargs", [
        {'page': 0},
        {'page_size': 0},
        {'page_size': 101},
        {'sort_order': 'sideways'},
        {'sort_by': 'agee'},
    ])
    def test_bad_arguments(self, records, contacts, kwargs):
        with pytest.raises(InvalidInputError):
            records.list(NAMESPACE, APP_ID, contacts.schema_id, **kwargs)
