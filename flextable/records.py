"""Per-table record lifecycle: create, read, list, update, delete, validate."""

import logging
import math
from difflib import get_close_matches
from typing import Any, Dict, Iterable, Optional

from .backends import DocumentStore
from .constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, SYSTEM_FIELDS, strip_system_fields
from .errors import InvalidInputError, RecordNotFoundError, ValidationError, require
from .models import Pagination, RecordPage, TableSchema
from .naming import generate_record_id
from .schema import SchemaManager
from .timestamps import get_current_timestamp
from .transactions import transaction_context
from .types import render_for_csv, validate_record

logger = logging.getLogger(__name__)


def clean_record_data(data: Any, fields: Iterable[Any], partial: bool = False) -> Dict[str, Any]:
    """
    Strip system fields from caller data and validate what remains.

    Raises:
        InvalidInputError: data is not a mapping
        ValidationError: one or more fields failed, carrying the field map
    """
    if not isinstance(data, dict):
        raise InvalidInputError("data must be an object")

    cleaned = strip_system_fields(data)
    is_valid, errors = validate_record(cleaned, fields, partial=partial)
    if not is_valid:
        raise ValidationError(errors)
    return cleaned


def stamp_new_record(data: Dict[str, Any], actor: str, timestamp: Optional[str] = None) -> Dict[str, Any]:
    """Assign an id and the audit fields; the creator is also the first modifier."""
    timestamp = timestamp or get_current_timestamp()
    return {
        'id': generate_record_id(),
        **data,
        'created_by': actor,
        'created_at': timestamp,
        'updated_by': actor,
        'updated_at': timestamp,
    }


def stamp_update(data: Dict[str, Any], actor: str, timestamp: Optional[str] = None) -> Dict[str, Any]:
    return {
        **data,
        'updated_by': actor,
        'updated_at': timestamp or get_current_timestamp(),
    }


def matches_search(record: Dict[str, Any], search_query: str) -> bool:
    """Case-insensitive substring match against the string form of every value."""
    needle = search_query.lower()
    return any(
        value is not None and needle in render_for_csv(value).lower()
        for value in record.values()
    )


class RecordEngine:
    """Sole writer of single records in a table's physical collection."""

    def __init__(self, store: DocumentStore, schemas: SchemaManager) -> None:
        self.store = store
        self.schemas = schemas

    def _load_record(self, schema: TableSchema, record_id: str) -> Dict[str, Any]:
        require(record_id=record_id)
        record = self.store.get(schema.internal_name, record_id)
        if record is None:
            raise RecordNotFoundError(record_id, schema.schema_id)
        return record

    def create(self, namespace: str, app_id: str, schema_id: str,
               data: Dict[str, Any], actor: str) -> Dict[str, Any]:
        """
        Validate and store one record.

        The record and the table's record count are written in the same
        transaction.

        Returns:
            The stored record including its system fields
        """
        require(user_id=actor, data=data)
        schema = self.schemas.get(namespace, app_id, schema_id)
        cleaned = clean_record_data(data, schema.fields)
        record = stamp_new_record(cleaned, actor)

        with transaction_context(self.store) as batch:
            batch.set(schema.internal_name, record['id'], record)
            self.schemas.adjust_record_count(namespace, schema_id, 1, batch)

        logger.info("Created record %s in table %s", record['id'], schema_id)
        return record

    def get(self, namespace: str, app_id: str, schema_id: str, record_id: str) -> Dict[str, Any]:
        schema = self.schemas.get(namespace, app_id, schema_id)
        return self._load_record(schema, record_id)

    def list(self, namespace: str, app_id: str, schema_id: str, page: int = 1,
             page_size: int = DEFAULT_PAGE_SIZE, sort_by: str = 'created_at',
             sort_order: str = 'desc', search_query: Optional[str] = None) -> RecordPage:
        """
        List one page of records.

        Sorting and paging happen in the store. ``search_query`` only filters
        the records of the fetched page, while the pagination totals always
        describe the unfiltered table, so a searched page may hold fewer rows
        than ``page_size`` even when more matches exist on other pages.

        Returns:
            Page of records with pagination metadata
        """
        schema = self.schemas.get(namespace, app_id, schema_id)

        try:
            page = int(page)
            page_size = int(page_size)
        except (TypeError, ValueError):
            raise InvalidInputError("page and page_size must be integers", page=page, page_size=page_size)
        if page < 1:
            raise InvalidInputError("page must be 1 or greater", page=page)
        if not 1 <= page_size <= MAX_PAGE_SIZE:
            raise InvalidInputError(f"page_size must be between 1 and {MAX_PAGE_SIZE}", page_size=page_size)

        sort_order = (sort_order or 'desc').lower()
        if sort_order not in ('asc', 'desc'):
            raise InvalidInputError("sort_order must be 'asc' or 'desc'", sort_order=sort_order)

        sortable = list(SYSTEM_FIELDS) + schema.field_names
        if sort_by not in sortable:
            similar = get_close_matches(str(sort_by), sortable, n=1, cutoff=0.6)
            raise InvalidInputError(
                f"Cannot sort by '{sort_by}'" + (f", did you mean '{similar[0]}'?" if similar else ""),
                sort_by=sort_by,
                sortable_fields=sortable,
            )

        total_records = self.store.count(schema.internal_name)
        records = self.store.query(
            schema.internal_name,
            order_by=sort_by,
            descending=sort_order == 'desc',
            limit=page_size,
            offset=(page - 1) * page_size,
        )

        if search_query:
            records = [record for record in records if matches_search(record, search_query)]

        total_pages = math.ceil(total_records / page_size)
        logger.info("Listed %d records from table %s (page %d of %d)",
                    len(records), schema_id, page, total_pages)

        return RecordPage(
            records=records,
            pagination=Pagination(
                current_page=page,
                page_size=page_size,
                total_records=total_records,
                total_pages=total_pages,
                has_next_page=page < total_pages,
                has_previous_page=page > 1,
            ),
        )

    def update(self, namespace: str, app_id: str, schema_id: str, record_id: str,
               data: Dict[str, Any], actor: str) -> Dict[str, Any]:
        """
        Apply a partial update; omitted fields keep their values.

        ``id``, ``created_by`` and ``created_at`` never change.

        Returns:
            The record after the update
        """
        require(user_id=actor, data=data)
        schema = self.schemas.get(namespace, app_id, schema_id)
        existing = self._load_record(schema, record_id)
        cleaned = clean_record_data(data, schema.fields, partial=True)

        changes = stamp_update(cleaned, actor)
        self.store.update(schema.internal_name, record_id, changes)

        logger.info("Updated record %s in table %s", record_id, schema_id)
        return {**existing, **changes}

    def delete(self, namespace: str, app_id: str, schema_id: str, record_id: str) -> Dict[str, Any]:
        """Delete one record and decrement the table's record count."""
        schema = self.schemas.get(namespace, app_id, schema_id)
        self._load_record(schema, record_id)

        with transaction_context(self.store) as batch:
            batch.delete(schema.internal_name, record_id)
            self.schemas.adjust_record_count(namespace, schema_id, -1, batch)

        logger.info("Deleted record %s from table %s", record_id, schema_id)
        return {'deleted_record_id': record_id}

    def validate(self, namespace: str, app_id: str, schema_id: str,
                 data: Dict[str, Any]) -> Dict[str, Any]:
        """Run the create validation path without writing anything."""
        require(data=data)
        schema = self.schemas.get(namespace, app_id, schema_id)
        try:
            clean_record_data(data, schema.fields)
        except ValidationError as e:
            return {'valid': False, 'errors': e.errors}
        return {'valid': True, 'errors': {}}
