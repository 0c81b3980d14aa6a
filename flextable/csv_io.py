"""CSV import and export for FlexTable tables."""

import csv
import io
import logging
import re
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from .bulk import BulkProcessor
from .constants import CSV_CONTENT_TYPES, ERROR_SAMPLE_SIZE, MAX_CSV_BYTES, SYSTEM_FIELDS
from .errors import (
    CSVParseError,
    CSVSchemaMismatchError,
    InvalidInputError,
    RecordNotFoundError,
    require,
)
from .inference import suggest_fields
from .models import CSVUpload, TableSchema
from .schema import SchemaManager
from .timestamps import current_date
from .types import coerce_from_text, render_for_csv, validate_record

logger = logging.getLogger(__name__)

CSV_RESPONSE_CONTENT_TYPE = 'text/csv; charset=utf-8'


def validate_csv_upload(upload: Optional[CSVUpload]) -> None:
    """
    Reject uploads that are missing, too large, or not plausibly CSV.

    A CSV extension is accepted whatever the declared content type.
    """
    if upload is None:
        raise CSVParseError("No file provided")

    if upload.declared_size > MAX_CSV_BYTES:
        raise CSVParseError("File size exceeds 10MB limit", size=upload.declared_size, limit=MAX_CSV_BYTES)

    is_csv_extension = (upload.filename or '').lower().endswith('.csv')
    if upload.content_type not in CSV_CONTENT_TYPES and not is_csv_extension:
        raise CSVParseError("File must be a CSV file",
                            filename=upload.filename, content_type=upload.content_type)


def decode_upload(content: bytes) -> str:
    try:
        return content.decode('utf-8-sig')
    except UnicodeDecodeError as e:
        raise CSVParseError("CSV file is not valid UTF-8", position=e.start)


def parse_csv(text: str) -> Tuple[List[str], List[Dict[str, str]]]:
    """
    Parse CSV text into headers and rows keyed by header.

    Quoted fields may hold commas, newlines and doubled quotes. Blank lines
    are skipped, values are stripped, and short rows are padded with ''.

    Returns:
        Tuple of (headers, rows)
    """
    if not text or not text.strip():
        raise CSVParseError("CSV file is empty")

    try:
        lines = list(csv.reader(io.StringIO(text.strip())))
    except csv.Error as e:
        raise CSVParseError(f"Malformed CSV: {e}")

    headers = [header.strip() for header in lines[0]]
    if not any(headers):
        raise CSVParseError("CSV header is empty")

    rows = []
    for values in lines[1:]:
        if not any(cell.strip() for cell in values):
            continue
        rows.append({
            header: values[index].strip() if index < len(values) else ''
            for index, header in enumerate(headers)
        })

    return headers, rows


def coerce_row(row: Dict[str, Any], fields: Sequence[Any]) -> Dict[str, Any]:
    """Convert the cells of one row to their field kinds; empty cells are dropped."""
    coerced = {}
    for field in fields:
        value = coerce_from_text(row.get(field.name), field)
        if value is not None:
            coerced[field.name] = value
    return coerced


def split_valid_rows(rows: Sequence[Dict[str, Any]], fields: Sequence[Any]) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    """
    Coerce and validate each row independently.

    Returns:
        Tuple of (valid rows, skipped rows with their 1-indexed source line)
    """
    valid = []
    skipped = []
    for i, row in enumerate(rows):
        coerced = coerce_row(row, fields)
        is_valid, errors = validate_record(coerced, fields)
        if is_valid:
            valid.append(coerced)
        else:
            # Line 1 is the header
            skipped.append({'index': i + 2, 'errors': errors})
    return valid, skipped


def generate_csv(records: Sequence[Dict[str, Any]], fields: Sequence[Any],
                 include_system_fields: bool = False) -> str:
    """
    Render records as CSV text, one header line plus one line per record.

    ``fields`` holds field definitions or bare field names; definitions let
    each cell be rendered for its kind.

    Returns '' when there are no records.
    """
    if not records:
        return ''

    definitions = {}
    for field in fields:
        if isinstance(field, str):
            definitions[field] = None
        elif isinstance(field, dict):
            definitions[field['name']] = field
        else:
            definitions[field.name] = field

    headers = list(definitions)
    if include_system_fields:
        headers = ['id', *headers, *[name for name in SYSTEM_FIELDS if name != 'id']]

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator='\n')
    writer.writerow(headers)
    for record in records:
        writer.writerow([render_for_csv(record.get(header), definitions.get(header)) for header in headers])

    return buffer.getvalue().rstrip('\n')


_WHITESPACE_RUN = re.compile(r'\s+')


def export_filename(display_name: str) -> str:
    return f"{_WHITESPACE_RUN.sub('_', display_name)}_{current_date()}.csv"


def _import_new_table(schemas: SchemaManager, bulk: BulkProcessor, namespace: str, app_id: str,
                      actor: str, display_name: str, headers: List[str],
                      rows: List[Dict[str, str]]) -> Dict[str, Any]:
    fields = suggest_fields(headers, rows)
    logger.info("Inferred field types for %s: %s", display_name,
                ', '.join(f"{field['name']}={field['type']}" for field in fields))

    schema = schemas.create(namespace, app_id, display_name, fields, actor)
    valid, skipped = split_valid_rows(rows, schema.fields)

    try:
        inserted = bulk.commit_creates(namespace, schema, valid, actor)
    except Exception:
        logger.warning("Removing table %s after a failed CSV import", schema.schema_id)
        schemas.delete(namespace, app_id, schema.schema_id, actor, confirm=True)
        raise

    logger.info("Created table %s from CSV with %d records (%d skipped)",
                schema.schema_id, inserted, len(skipped))
    return {
        'schema_id': schema.schema_id,
        'display_name': schema.display_name,
        'fields': [field.model_dump() for field in schema.fields],
        'inserted_records': inserted,
        'total_rows_in_csv': len(rows),
        'skipped_rows': len(skipped),
        'errors': skipped[:ERROR_SAMPLE_SIZE],
    }


def _import_append(schemas: SchemaManager, bulk: BulkProcessor, namespace: str, app_id: str,
                   actor: str, schema_id: str, headers: List[str],
                   rows: List[Dict[str, str]]) -> Dict[str, Any]:
    schema = schemas.get(namespace, app_id, schema_id)

    missing = [name for name in schema.field_names if name not in headers]
    extra = [header for header in headers if header not in schema.field_names]
    if missing or extra:
        logger.warning("CSV headers for table %s do not match: missing=%s extra=%s",
                       schema_id, missing, extra)
        raise CSVSchemaMismatchError(missing, extra)

    valid, skipped = split_valid_rows(rows, schema.fields)
    inserted = bulk.commit_creates(namespace, schema, valid, actor)
    total = schemas.get(namespace, app_id, schema_id).record_count

    logger.info("Appended %d records to table %s from CSV (%d skipped)",
                inserted, schema_id, len(skipped))
    return {
        'schema_id': schema_id,
        'display_name': schema.display_name,
        'inserted_records': inserted,
        'total_records': total,
        'skipped_rows': len(skipped),
        'errors': skipped[:ERROR_SAMPLE_SIZE],
    }


def import_csv(schemas: SchemaManager, bulk: BulkProcessor, upload: Optional[CSVUpload],
               namespace: str, app_id: str, actor: str,
               create_new_table: Union[bool, str] = False,
               display_name: Optional[str] = None,
               schema_id: Optional[str] = None) -> Dict[str, Any]:
    """
    Import an uploaded CSV file into a new or an existing table.

    New-table mode infers every column's kind and creates the table first.
    Append mode requires the header set to equal the table's field names.
    In both modes invalid rows are skipped and reported, never fatal.

    Args:
        schemas: Schema manager of the target store
        bulk: Bulk processor used for the chunked insert
        upload: The uploaded file
        namespace: Namespace prefix
        app_id: Owning application
        actor: Importing user
        create_new_table: True (or 'true') to create a table from the file
        display_name: Name of the new table
        schema_id: Table to append to

    Returns:
        Counts of inserted and skipped rows plus a sample of row errors
    """
    validate_csv_upload(upload)
    require(namespace=namespace, app_id=app_id, user_id=actor)

    is_new_table = create_new_table is True or str(create_new_table).lower() == 'true'
    if is_new_table and not display_name:
        raise InvalidInputError("display_name is required when create_new_table is true")
    if not is_new_table and not schema_id:
        raise InvalidInputError("schema_id is required when create_new_table is false")

    headers, rows = parse_csv(decode_upload(upload.content))
    logger.info("Parsed CSV %s: %d columns, %d rows", upload.filename, len(headers), len(rows))
    if not rows:
        raise CSVParseError("CSV file contains no data rows")

    if is_new_table:
        return _import_new_table(schemas, bulk, namespace, app_id, actor, display_name, headers, rows)
    return _import_append(schemas, bulk, namespace, app_id, actor, schema_id, headers, rows)


def _requested_ids(record_ids: Union[None, str, Sequence[str]]) -> List[str]:
    if not record_ids:
        return []
    if isinstance(record_ids, str):
        record_ids = record_ids.split(',')
    return [record_id.strip() for record_id in record_ids if record_id and record_id.strip()]


def fetch_export_records(schemas: SchemaManager, schema: TableSchema,
                         record_ids: Union[None, str, Sequence[str]] = None) -> List[Dict[str, Any]]:
    """Requested records that exist, or the whole table oldest first."""
    ids = _requested_ids(record_ids)
    if ids:
        found = (schemas.store.get(schema.internal_name, record_id) for record_id in ids)
        return [record for record in found if record is not None]
    return schemas.store.query(schema.internal_name, order_by='created_at')


def export_csv(schemas: SchemaManager, namespace: str, app_id: str, schema_id: str,
               record_ids: Union[None, str, Sequence[str]] = None,
               include_system_fields: Union[bool, str] = False) -> Dict[str, Any]:
    """
    Export a table, or a subset of its records, as CSV.

    Returns:
        Dict with content, content_type, filename and record_count
    """
    schema = schemas.get(namespace, app_id, schema_id)
    records = fetch_export_records(schemas, schema, record_ids)
    if not records:
        raise RecordNotFoundError(None, schema_id, "No records found to export")

    include_system = include_system_fields is True or str(include_system_fields).lower() == 'true'
    content = generate_csv(records, schema.fields, include_system)

    logger.info("Exported %d records from table %s", len(records), schema_id)
    return {
        'content': content,
        'content_type': CSV_RESPONSE_CONTENT_TYPE,
        'filename': export_filename(schema.display_name),
        'record_count': len(records),
    }
