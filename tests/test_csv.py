"""Tests for CSV parsing, import and export."""

import re

import pytest

from flextable.csv_io import export_csv, generate_csv, import_csv, parse_csv, validate_csv_upload
from flextable.errors import CSVParseError, CSVSchemaMismatchError, RecordNotFoundError
from flextable.models import CSVUpload

from .conftest import APP_ID, NAMESPACE, OWNER


def upload(text, filename='data.csv', content_type='text/csv'):
    content = text.encode('utf-8')
    return CSVUpload(content=content, filename=filename, content_type=content_type, size=len(content))


class TestParse:
    """RFC 4180 parsing."""

    def test_quoted_fields(self):
        text = 'name,notes\n"Smith, Jane","said ""hi""\nthen left"\nBob,plain\n'
        headers, rows = parse_csv(text)
        assert headers == ['name', 'notes']
        assert rows == [
            {'name': 'Smith, Jane', 'notes': 'said "hi"\nthen left'},
            {'name': 'Bob', 'notes': 'plain'},
        ]

    def test_blank_lines_and_short_rows(self):
        headers, rows = parse_csv('a,b,c\n\n1,2\n   \n4,5,6\n')
        assert rows == [{'a': '1', 'b': '2', 'c': ''}, {'a': '4', 'b': '5', 'c': '6'}]

    def test_empty(self):
        with pytest.raises(CSVParseError, match="empty"):
            parse_csv('  \n ')

    def test_empty_header(self):
        with pytest.raises(CSVParseError, match="header is empty"):
            parse_csv(' , ,\n1,2,3')


class TestUploadValidation:
    """Upload size and type checks."""

    def test_accepts_csv_extension_with_any_type(self):
        validate_csv_upload(upload('a\n1', filename='DATA.CSV', content_type='application/octet-stream'))

    def test_accepts_csv_mime_type(self):
        validate_csv_upload(upload('a\n1', filename='export', content_type='application/vnd.ms-excel'))

    def test_rejects_other_files(self):
        with pytest.raises(CSVParseError, match="must be a CSV"):
            validate_csv_upload(upload('a\n1', filename='photo.png', content_type='image/png'))

    def test_rejects_oversize(self):
        big = CSVUpload(content=b'a\n1', filename='a.csv', size=10 * 1024 * 1024 + 1)
        with pytest.raises(CSVParseError, match="10MB"):
            validate_csv_upload(big)

    def test_missing_file(self):
        with pytest.raises(CSVParseError, match="No file"):
            validate_csv_upload(None)


class TestImportNewTable:
    """Creating a table from a CSV file."""

    def test_infers_fields_and_inserts(self, schemas, bulk):
        lines = ['email,phone,role']
        for i in range(20):
            lines.append(f"user{i}@example.com,98765432{i:02d},{'Admin' if i % 2 else 'Editor'}")
        result = import_csv(schemas, bulk, upload('\n'.join(lines)), NAMESPACE, APP_ID, OWNER,
                            create_new_table=True, display_name='Team Members')

        types = {field['name']: field['type'] for field in result['fields']}
        assert types == {'email': 'email', 'phone': 'phone', 'role': 'select'}
        role = next(field for field in result['fields'] if field['name'] == 'role')
        assert sorted(role['options']) == ['Admin', 'Editor']
        assert result['inserted_records'] == 20
        assert result['total_rows_in_csv'] == 20
        assert result['skipped_rows'] == 0
        assert 'internal_name' not in result

        schema = schemas.get(NAMESPACE, APP_ID, result['schema_id'])
        assert schema.record_count == 20

    def test_string_flag(self, schemas, bulk):
        result = import_csv(schemas, bulk, upload('score\n1\n2'), NAMESPACE, APP_ID, OWNER,
                            create_new_table='true', display_name='Scores')
        assert result['inserted_records'] == 2
        stored = schemas.store.query(schemas.get(NAMESPACE, APP_ID, result['schema_id']).internal_name)
        assert sorted(record['score'] for record in stored) == [1, 2]

    def test_requires_display_name(self, schemas, bulk):
        with pytest.raises(Exception, match="display_name is required"):
            import_csv(schemas, bulk, upload('a\n1'), NAMESPACE, APP_ID, OWNER, create_new_table=True)

    def test_no_data_rows(self, schemas, bulk):
        with pytest.raises(CSVParseError, match="no data rows"):
            import_csv(schemas, bulk, upload('a,b\n'), NAMESPACE, APP_ID, OWNER,
                       create_new_table=True, display_name='Nothing')
        assert schemas.list(NAMESPACE, APP_ID) == []


class TestImportAppend:
    """Appending a CSV file to an existing table."""

    def test_header_mismatch(self, schemas, bulk, contacts):
        text = 'name,email,age,status,tags,nickname\nA,a@b.co,1,Active,vip,Al'
        with pytest.raises(CSVSchemaMismatchError) as exc_info:
            import_csv(schemas, bulk, upload(text), NAMESPACE, APP_ID, OWNER, schema_id=contacts.schema_id)

        assert exc_info.value.details == {'missing_fields': ['subscribed'], 'extra_fields': ['nickname']}
        assert schemas.store.count(contacts.internal_name) == 0

    def test_invalid_rows_are_skipped(self, schemas, bulk, contacts):
        text = '\n'.join([
            'name,email,age,status,tags,subscribed',
            'Ann,ann@example.com,34,Active,vip; new,yes',
            'Bad,not-an-email,1,Active,,no',
            'Cid,cid@example.com,,Inactive,,',
            ',nobody@example.com,5,Active,,true',
        ])
        result = import_csv(schemas, bulk, upload(text), NAMESPACE, APP_ID, OWNER, schema_id=contacts.schema_id)

        assert result['inserted_records'] == 2
        assert result['skipped_rows'] == 2
        assert result['total_records'] == 2
        assert [error['index'] for error in result['errors']] == [3, 5]
        assert 'email' in result['errors'][0]['errors']

        ann = schemas.store.query(contacts.internal_name, {'name': 'Ann'})[0]
        assert ann['age'] == 34
        assert ann['tags'] == ['vip', 'new']
        assert ann['subscribed'] is True

    def test_error_sample_capped_at_ten(self, schemas, bulk, contacts):
        rows = ['name,email,age,status,tags,subscribed'] + [f'N{i},bad,,,,' for i in range(15)]
        result = import_csv(schemas, bulk, upload('\n'.join(rows)), NAMESPACE, APP_ID, OWNER,
                            schema_id=contacts.schema_id)
        assert result['skipped_rows'] == 15
        assert len(result['errors']) == 10


class TestExport:
    """Rendering tables as CSV."""

    def test_generate_escapes(self):
        records = [{'a': 'x,y', 'b': 'say "hi"', 'c': ['p', 'q']}, {'a': 'line\nbreak', 'b': None, 'c': {'k': 1}}]
        assert generate_csv(records, ['a', 'b', 'c']) == (
            'a,b,c\n'
            '"x,y","say ""hi""",p; q\n'
            '"line\nbreak",,"{""k"": 1}"'
        )

    def test_generate_with_system_fields(self):
        text = generate_csv([{'id': 'rec_1', 'a': 1}], ['a'], include_system_fields=True)
        assert text.splitlines()[0] == 'id,a,created_by,created_at,updated_by,updated_at'

    def test_generate_nothing(self):
        assert generate_csv([], ['a']) == ''

    def test_export_filename_and_content(self, schemas, records, contacts):
        records.create(NAMESPACE, APP_ID, contacts.schema_id, {'name': 'Ann', 'email': 'ann@example.com'}, OWNER)
        result = export_csv(schemas, NAMESPACE, APP_ID, contacts.schema_id)

        assert result['content_type'] == 'text/csv; charset=utf-8'
        assert re.fullmatch(r'Contacts_\d{4}-\d{2}-\d{2}\.csv', result['filename'])
        assert result['content'].splitlines() == [
            'name,email,age,status,tags,subscribed',
            'Ann,ann@example.com,,,,',
        ]

    def test_export_subset(self, schemas, records, contacts):
        ids = [records.create(NAMESPACE, APP_ID, contacts.schema_id,
                              {'name': f'P{i}', 'email': f'p{i}@example.com'}, OWNER)['id']
               for i in range(3)]
        result = export_csv(schemas, NAMESPACE, APP_ID, contacts.schema_id,
                            record_ids=f'{ids[2]},rec_missing')
        assert result['record_count'] == 1
        assert 'P2' in result['content']

    def test_export_empty_table(self, schemas, contacts):
        with pytest.raises(RecordNotFoundError, match="No records found to export"):
            export_csv(schemas, NAMESPACE, APP_ID, contacts.schema_id)

    def test_round_trip(self, schemas, records, bulk, contacts):
        original = {
            'name': 'Round, Trip', 'email': 'rt@example.com', 'age': 41.5,
            'status': 'Inactive', 'tags': ['vip', 'churned'], 'subscribed': False,
        }
        records.create(NAMESPACE, APP_ID, contacts.schema_id, original, OWNER)
        exported = export_csv(schemas, NAMESPACE, APP_ID, contacts.schema_id)

        copy = schemas.create(NAMESPACE, APP_ID, 'Contacts Copy',
                              [field.model_dump() for field in contacts.fields], OWNER)
        result = import_csv(schemas, bulk, upload(exported['content']), NAMESPACE, APP_ID, OWNER,
                            schema_id=copy.schema_id)

        assert result['inserted_records'] == 1
        imported = schemas.store.query(copy.internal_name)[0]
        assert {key: imported[key] for key in original} == original


@pytest.mark.parametrize("field_type,value,options", [
    ('text', 'Hello, "world"', []),
    ('textarea', 'line one\nline two', []),
    ('number', 41.5, []),
    ('email', 'rt@example.com', []),
    ('phone', '0123456789', []),
    ('url', 'https://example.com/a?b=1,2', []),
    ('date', '2025-12-27', []),
    ('datetime', '2025-12-27T10:30:00Z', []),
    ('boolean', False, []),
    ('select', 'Closed', ['Open', 'Closed']),
    ('multiselect', ['a', 'c'], ['a', 'b', 'c']),
    ('currency', 0, []),
    ('percentage', 99.5, []),
    ('rating', 4, []),
    ('color', '#A1b2C3', []),
    ('file', 'https://files.example.com/a.pdf', []),
    ('image', 'img/logo.png', []),
    ('json', {'nested': [1, 'two', None]}, []),
    ('json', [1, 2], []),
    ('json', '"quoted"', []),
    ('json', True, []),
])
def test_export_import_round_trip(schemas, records, bulk, field_type, value, options):
    """A value accepted for its kind is still accepted, and unchanged, after export and import."""
    fields = [{'name': 'value', 'type': field_type, 'options': options}]
    source = schemas.create(NAMESPACE, APP_ID, 'Source', fields, OWNER)
    records.create(NAMESPACE, APP_ID, source.schema_id, {'value': value}, OWNER)
    exported = export_csv(schemas, NAMESPACE, APP_ID, source.schema_id)

    copy = schemas.create(NAMESPACE, APP_ID, 'Copy', fields, OWNER)
    result = import_csv(schemas, bulk, upload(exported['content']), NAMESPACE, APP_ID, OWNER,
                        schema_id=copy.schema_id)

    assert result['inserted_records'] == 1, result['errors']
    assert schemas.store.query(copy.internal_name)[0]['value'] == value
