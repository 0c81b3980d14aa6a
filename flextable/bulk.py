"""Bulk create, update and delete, chunked to the store's write ceiling."""

import logging
from typing import Any, Dict, List, Sequence

from .backends import DocumentStore
from .constants import MAX_BULK_CREATE, MAX_BULK_DELETE, MAX_BULK_UPDATE
from .errors import (
    BulkLimitExceededError,
    BulkValidationError,
    InvalidInputError,
    ValidationError,
    require,
)
from .models import TableSchema
from .naming import chunked
from .records import clean_record_data, stamp_new_record, stamp_update
from .schema import SchemaManager
from .timestamps import get_current_timestamp
from .transactions import transaction_context

logger = logging.getLogger(__name__)


def _check_items(items: Any, name: str, operation: str, limit: int) -> None:
    if not isinstance(items, (list, tuple)):
        raise InvalidInputError(f"{name} must be an array")
    if len(items) == 0:
        raise InvalidInputError(f"At least one item is required in {name}")
    if len(items) > limit:
        raise BulkLimitExceededError(operation, len(items), limit)


class BulkProcessor:
    """
    Applies many record writes per call.

    Every item is validated before anything is written. Writes then go out
    in sequential chunks, each chunk one atomic transaction; chunks already
    committed stay committed if a later one fails. The table's record count
    is adjusted once after the chunks, or by the committed part on failure.
    """

    def __init__(self, store: DocumentStore, schemas: SchemaManager) -> None:
        self.store = store
        self.schemas = schemas

    @property
    def chunk_size(self) -> int:
        return self.store.max_batch_writes

    def commit_creates(self, namespace: str, schema: TableSchema,
                       rows: Sequence[Dict[str, Any]], actor: str) -> int:
        """
        Write already validated rows as new records.

        Returns:
            Number of records inserted
        """
        inserted = 0
        timestamp = get_current_timestamp()
        try:
            for chunk in chunked(list(rows), self.chunk_size):
                with transaction_context(self.store) as batch:
                    for row in chunk:
                        record = stamp_new_record(row, actor, timestamp)
                        batch.set(schema.internal_name, record['id'], record)
                inserted += len(chunk)
        except Exception:
            logger.error("Bulk insert into table %s failed after %d of %d records",
                         schema.schema_id, inserted, len(rows))
            raise
        finally:
            self.schemas.adjust_record_count(namespace, schema.schema_id, inserted)
        return inserted

    def create(self, namespace: str, app_id: str, schema_id: str,
               records: List[Dict[str, Any]], actor: str) -> Dict[str, Any]:
        """
        Create up to 1000 records, all or nothing at validation time.

        Returns:
            Dict with inserted_count, total_requested, failed and errors
        """
        require(schema_id=schema_id, user_id=actor)
        _check_items(records, 'records', 'create', MAX_BULK_CREATE)
        schema = self.schemas.get(namespace, app_id, schema_id)

        valid = []
        item_errors = []
        for index, data in enumerate(records):
            try:
                valid.append(clean_record_data(data, schema.fields))
            except ValidationError as e:
                item_errors.append({'index': index, 'data': data, 'errors': e.errors})
            except InvalidInputError as e:
                item_errors.append({'index': index, 'data': data, 'error': e.message})

        if item_errors:
            logger.warning("Bulk create on table %s rejected: %d invalid records",
                           schema_id, len(item_errors))
            raise BulkValidationError(item_errors, len(valid))

        inserted = self.commit_creates(namespace, schema, valid, actor)
        logger.info("Bulk created %d records in table %s", inserted, schema_id)

        return {
            'inserted_count': inserted,
            'total_requested': len(records),
            'failed': 0,
            'errors': [],
        }

    def update(self, namespace: str, app_id: str, schema_id: str,
               updates: List[Dict[str, Any]], actor: str) -> Dict[str, Any]:
        """
        Apply up to 500 partial updates, each ``{'record_id': ..., 'data': {...}}``.

        Every target record must exist; one missing record rejects the call.

        Returns:
            Dict with updated_count, total_requested and failed
        """
        require(schema_id=schema_id, user_id=actor)
        _check_items(updates, 'updates', 'update', MAX_BULK_UPDATE)
        schema = self.schemas.get(namespace, app_id, schema_id)

        valid = []
        item_errors = []
        for index, update in enumerate(updates):
            record_id = update.get('record_id') if isinstance(update, dict) else None
            data = update.get('data') if isinstance(update, dict) else None
            if not record_id or data is None:
                item_errors.append({'index': index, 'record_id': record_id,
                                    'error': 'record_id and data are required'})
                continue
            if self.store.get(schema.internal_name, record_id) is None:
                item_errors.append({'index': index, 'record_id': record_id,
                                    'error': f"Record '{record_id}' not found"})
                continue
            try:
                valid.append((record_id, clean_record_data(data, schema.fields, partial=True)))
            except ValidationError as e:
                item_errors.append({'index': index, 'record_id': record_id, 'errors': e.errors})
            except InvalidInputError as e:
                item_errors.append({'index': index, 'record_id': record_id, 'error': e.message})

        if item_errors:
            logger.warning("Bulk update on table %s rejected: %d invalid updates",
                           schema_id, len(item_errors))
            raise BulkValidationError(item_errors, len(valid), noun="update")

        updated = 0
        timestamp = get_current_timestamp()
        for chunk in chunked(valid, self.chunk_size):
            with transaction_context(self.store) as batch:
                for record_id, data in chunk:
                    batch.update(schema.internal_name, record_id, stamp_update(data, actor, timestamp))
            updated += len(chunk)

        logger.info("Bulk updated %d records in table %s", updated, schema_id)
        return {
            'updated_count': updated,
            'total_requested': len(updates),
            'failed': 0,
        }

    def delete(self, namespace: str, app_id: str, schema_id: str,
               record_ids: List[str]) -> Dict[str, Any]:
        """
        Delete up to 500 records by id.

        Ids that do not exist are reported under ``missing_ids`` and do not
        count against the table's record count.

        Returns:
            Dict with deleted_count, total_requested, deleted_ids and missing_ids
        """
        require(schema_id=schema_id)
        _check_items(record_ids, 'record_ids', 'delete', MAX_BULK_DELETE)
        schema = self.schemas.get(namespace, app_id, schema_id)

        existing = []
        missing = []
        for record_id in dict.fromkeys(record_ids):
            if self.store.get(schema.internal_name, record_id) is None:
                missing.append(record_id)
            else:
                existing.append(record_id)

        deleted = []
        try:
            for chunk in chunked(existing, self.chunk_size):
                with transaction_context(self.store) as batch:
                    for record_id in chunk:
                        batch.delete(schema.internal_name, record_id)
                deleted.extend(chunk)
        finally:
            self.schemas.adjust_record_count(namespace, schema_id, -len(deleted))

        if missing:
            logger.warning("Bulk delete on table %s skipped %d missing records", schema_id, len(missing))
        logger.info("Bulk deleted %d records from table %s", len(deleted), schema_id)

        return {
            'deleted_count': len(deleted),
            'total_requested': len(record_ids),
            'deleted_ids': deleted,
            'missing_ids': missing,
        }
