"""Constants for FlexTable, including system field names and product limits."""

import re

# Engine-managed audit attributes present on every record
SYSTEM_FIELDS = ('id', 'created_by', 'created_at', 'updated_by', 'updated_at')

# Schema limits
MAX_FIELDS_PER_TABLE = 50
MAX_DISPLAY_NAME_LENGTH = 100

# Caller-facing bulk ceilings
MAX_BULK_CREATE = 1000
MAX_BULK_UPDATE = 500
MAX_BULK_DELETE = 500

# Per-transaction write ceiling of the document store
DEFAULT_BATCH_WRITE_LIMIT = 500

# Number of per-item / per-row errors returned to the caller
ERROR_SAMPLE_SIZE = 10

# Record listing
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

# CSV uploads
MAX_CSV_BYTES = 10 * 1024 * 1024
CSV_CONTENT_TYPES = {'text/csv', 'application/csv', 'text/plain', 'application/vnd.ms-excel'}

DISPLAY_NAME_PATTERN = re.compile(r'[a-zA-Z0-9 ]+')
FIELD_NAME_PATTERN = re.compile(r'[a-zA-Z0-9_]+')


def is_system_field(field_name: str) -> bool:
    """Check if a field name is one of the engine-managed system fields."""
    return field_name in SYSTEM_FIELDS


def strip_system_fields(data: dict) -> dict:
    """Return a copy of caller data without any system field keys."""
    return {key: value for key, value in data.items() if key not in SYSTEM_FIELDS}


def schema_collection_name(namespace: str) -> str:
    """Name of the collection holding every schema document of a namespace."""
    return f"{namespace}_data_schemas"
