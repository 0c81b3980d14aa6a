"""
FlexTable - user-defined tables with typed fields, validation and CSV interchange.

Tables are defined at runtime with a field list drawn from a closed set of
field kinds. Records are validated against that definition, stamped with
audit fields, and stored in a collection whose name is never exposed.
"""

__version__ = "0.1.0"

# Connection-based API (recommended)
from .connection import Connection, connect

# Remote access to an API server
from .api_client import APIError, RemoteConnection, connect_remote

# Backend configuration
from .config import set_default_backend, get_default_backend, setup_logging
from .backends import get_backend

# Service objects for library use
from .schema import SchemaManager
from .records import RecordEngine
from .bulk import BulkProcessor
from .csv_io import parse_csv, generate_csv, validate_csv_upload, import_csv, export_csv

# Models and errors
from .models import CSVUpload, FieldDefinition, OperationResult, TableSchema
from .errors import ErrorCode, FlexTableError
from .types import FieldType, validate_field, validate_record

__all__ = [
    # Connection-based API
    "Connection",
    "connect",
    "RemoteConnection",
    "connect_remote",
    "APIError",

    # Configuration
    "set_default_backend",
    "get_default_backend",
    "setup_logging",
    "get_backend",

    # Services
    "SchemaManager",
    "RecordEngine",
    "BulkProcessor",
    "parse_csv",
    "generate_csv",
    "validate_csv_upload",
    "import_csv",
    "export_csv",

    # Models and errors
    "CSVUpload",
    "FieldDefinition",
    "OperationResult",
    "TableSchema",
    "ErrorCode",
    "FlexTableError",
    "FieldType",
    "validate_field",
    "validate_record",
]
