"""
Connection class for FlexTable - the operation boundary.

Every public method returns an OperationResult. Typed FlexTable errors
become failed results with their code, and anything unexpected becomes an
INTERNAL_ERROR result with the traceback logged instead of returned.
"""

import functools
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from .backends import DocumentStore, get_backend
from .bulk import BulkProcessor
from .config import config
from .csv_io import export_csv, import_csv
from .errors import FlexTableError, InternalError
from .models import CSVUpload, OperationResult
from .records import RecordEngine
from .schema import SchemaManager
from .types import SUPPORTED_FIELD_TYPES, field_type_info

logger = logging.getLogger(__name__)


def operation(method: Callable[..., Any]) -> Callable[..., OperationResult]:
    """Run a method and fold its outcome into an OperationResult."""

    @functools.wraps(method)
    def wrapper(self: 'Connection', *args: Any, **kwargs: Any) -> OperationResult:
        try:
            return OperationResult.ok(method(self, *args, **kwargs))
        except FlexTableError as e:
            logger.warning("%s failed with %s: %s", method.__name__, e.code.value, e.message)
            return OperationResult.fail(e)
        except Exception as e:
            logger.exception("Unexpected error in %s", method.__name__)
            return OperationResult.fail(InternalError(str(e) or type(e).__name__, error_type=type(e).__name__))

    return wrapper


class Connection:
    """
    FlexTable connection exposing every table, record, bulk and CSV operation.

    Examples:
        db = flextable.connect()
        result = db.create_table('myapp', 'app1', 'Customers',
                                 [{'name': 'email', 'type': 'email', 'required': True}],
                                 user_id='alice')
        schema_id = result.data['schema_id']

        db.create_record('myapp', 'app1', schema_id, {'email': 'a@b.co'}, user_id='alice')
        page = db.list_records('myapp', 'app1', schema_id, page_size=50).data
    """

    def __init__(self, connection_info: str = ':memory:', backend: Optional[str] = None,
                 store: Optional[DocumentStore] = None) -> None:
        """
        Initialize a FlexTable connection.

        Args:
            connection_info: Database file path, or ':memory:'
            backend: Store backend ('memory', 'sqlite'); detected from the path when omitted
            store: Ready-made document store, used as is
        """
        self.connection_info = connection_info
        if store is None:
            self.backend_name = config.get_backend_for_path(connection_info, backend)
            store = get_backend(self.backend_name, connection_info)
        else:
            self.backend_name = store.get_name()

        self.store = store
        self.schemas = SchemaManager(store)
        self.records = RecordEngine(store, self.schemas)
        self.bulk = BulkProcessor(store, self.schemas)

    # Tables

    @operation
    def create_table(self, namespace: str, app_id: str, display_name: str,
                     fields: Sequence[Dict[str, Any]], user_id: str) -> Dict[str, Any]:
        """Create a table; the result carries the new schema."""
        return self.schemas.create(namespace, app_id, display_name, fields, user_id).model_dump()

    @operation
    def list_tables(self, namespace: str, app_id: str) -> Dict[str, Any]:
        schemas = [schema.model_dump() for schema in self.schemas.list(namespace, app_id)]
        return {'schemas': schemas, 'total_tables': len(schemas)}

    @operation
    def get_table(self, namespace: str, app_id: str, schema_id: str) -> Dict[str, Any]:
        return self.schemas.get(namespace, app_id, schema_id).model_dump()

    @operation
    def delete_table(self, namespace: str, app_id: str, schema_id: str, user_id: str,
                     confirm_delete: bool = False) -> Dict[str, Any]:
        """Delete a table and all of its records. Only the creator may do this."""
        return self.schemas.delete(namespace, app_id, schema_id, user_id, confirm_delete)

    @operation
    def field_types(self) -> List[Dict[str, Any]]:
        """Describe every supported field kind."""
        return [field_type_info(field_type) for field_type in SUPPORTED_FIELD_TYPES]

    # Records

    @operation
    def create_record(self, namespace: str, app_id: str, schema_id: str,
                      data: Dict[str, Any], user_id: str) -> Dict[str, Any]:
        return self.records.create(namespace, app_id, schema_id, data, user_id)

    @operation
    def get_record(self, namespace: str, app_id: str, schema_id: str, record_id: str) -> Dict[str, Any]:
        return self.records.get(namespace, app_id, schema_id, record_id)

    @operation
    def list_records(self, namespace: str, app_id: str, schema_id: str, page: int = 1,
                     page_size: int = 20, sort_by: str = 'created_at', sort_order: str = 'desc',
                     search_query: Optional[str] = None) -> Dict[str, Any]:
        """
        List one page of records.

        ``search_query`` filters only the fetched page; pagination totals
        describe the whole table.
        """
        return self.records.list(namespace, app_id, schema_id, page, page_size,
                                 sort_by, sort_order, search_query).model_dump()

    @operation
    def update_record(self, namespace: str, app_id: str, schema_id: str, record_id: str,
                      data: Dict[str, Any], user_id: str) -> Dict[str, Any]:
        return self.records.update(namespace, app_id, schema_id, record_id, data, user_id)

    @operation
    def delete_record(self, namespace: str, app_id: str, schema_id: str, record_id: str) -> Dict[str, Any]:
        return self.records.delete(namespace, app_id, schema_id, record_id)

    @operation
    def validate_record(self, namespace: str, app_id: str, schema_id: str,
                        data: Dict[str, Any]) -> Dict[str, Any]:
        """Check data against a table without writing; never a VALIDATION_ERROR result."""
        return self.records.validate(namespace, app_id, schema_id, data)

    # Bulk

    @operation
    def bulk_create(self, namespace: str, app_id: str, schema_id: str,
                    records: List[Dict[str, Any]], user_id: str) -> Dict[str, Any]:
        return self.bulk.create(namespace, app_id, schema_id, records, user_id)

    @operation
    def bulk_update(self, namespace: str, app_id: str, schema_id: str,
                    updates: List[Dict[str, Any]], user_id: str) -> Dict[str, Any]:
        return self.bulk.update(namespace, app_id, schema_id, updates, user_id)

    @operation
    def bulk_delete(self, namespace: str, app_id: str, schema_id: str,
                    record_ids: List[str]) -> Dict[str, Any]:
        return self.bulk.delete(namespace, app_id, schema_id, record_ids)

    # CSV

    @operation
    def import_csv(self, namespace: str, app_id: str, upload: Optional[CSVUpload], user_id: str,
                   create_new_table: Union[bool, str] = False, display_name: Optional[str] = None,
                   schema_id: Optional[str] = None) -> Dict[str, Any]:
        """Import a CSV upload into a new table or append it to an existing one."""
        return import_csv(self.schemas, self.bulk, upload, namespace, app_id, user_id,
                          create_new_table, display_name, schema_id)

    @operation
    def export_csv(self, namespace: str, app_id: str, schema_id: str,
                   record_ids: Union[None, str, Sequence[str]] = None,
                   include_system_fields: Union[bool, str] = False) -> Dict[str, Any]:
        """Export records as CSV text with a suggested download filename."""
        return export_csv(self.schemas, namespace, app_id, schema_id, record_ids, include_system_fields)

    def __repr__(self) -> str:
        return f"Connection({self.connection_info}, backend={self.backend_name})"

    def close(self) -> None:
        """Close the underlying store."""
        self.store.close()

    def __enter__(self) -> 'Connection':
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()


def connect(connection_info: str = ':memory:', backend: Optional[str] = None) -> Connection:
    """
    Create a FlexTable connection.

    Args:
        connection_info: Database file path, or ':memory:'
        backend: Store backend ('memory', 'sqlite')

    Returns:
        Connection instance

    Examples:
        db = flextable.connect()                  # in-memory
        db = flextable.connect('tables.db')       # SQLite file
    """
    return Connection(connection_info, backend)
