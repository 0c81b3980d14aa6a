"""Table definitions: creation, listing, retrieval and deletion."""

import logging
from typing import Any, Dict, List, Optional, Sequence

from .backends import DocumentStore
from .constants import (
    DISPLAY_NAME_PATTERN,
    FIELD_NAME_PATTERN,
    MAX_DISPLAY_NAME_LENGTH,
    MAX_FIELDS_PER_TABLE,
    is_system_field,
    schema_collection_name,
)
from .errors import (
    DuplicateFieldError,
    DuplicateTableError,
    FieldLimitExceededError,
    ForbiddenNotOwnerError,
    InvalidFieldTypeError,
    InvalidInputError,
    SchemaNotFoundError,
    ValidationError,
    require,
)
from .models import FieldDefinition, TableSchema
from .naming import chunked, generate_internal_name, generate_schema_id
from .timestamps import current_millis, get_current_timestamp
from .transactions import transaction_context
from .types import CHOICE_TYPES, SUPPORTED_FIELD_TYPES, FieldType, is_valid_field_type

logger = logging.getLogger(__name__)


def validate_display_name(display_name: Any) -> None:
    """Display names are 1-100 characters of letters, digits and spaces."""
    if not display_name or not isinstance(display_name, str):
        raise ValidationError({'display_name': 'Display name is required'})

    if len(display_name) > MAX_DISPLAY_NAME_LENGTH:
        raise ValidationError({'display_name': f'Display name must be 1-{MAX_DISPLAY_NAME_LENGTH} characters'})

    if not DISPLAY_NAME_PATTERN.fullmatch(display_name):
        raise ValidationError({'display_name': 'Display name can only contain letters, numbers, and spaces'})


def validate_field_definitions(fields: Any) -> List[FieldDefinition]:
    """
    Check a list of raw field definitions and build models from it.

    Raises:
        ValidationError: Empty list, bad name, reserved name or missing options
        FieldLimitExceededError: More than 50 fields
        InvalidFieldTypeError: Kind outside the registry
        DuplicateFieldError: Two fields share a name
    """
    if not isinstance(fields, (list, tuple)) or len(fields) == 0:
        raise ValidationError({'fields': 'At least one field is required'})

    if len(fields) > MAX_FIELDS_PER_TABLE:
        raise FieldLimitExceededError(len(fields), MAX_FIELDS_PER_TABLE)

    definitions = []
    seen = set()

    for raw in fields:
        if isinstance(raw, FieldDefinition):
            raw = raw.model_dump()
        if not isinstance(raw, dict):
            raise ValidationError({'fields': 'Each field must be an object with name and type'})

        name = raw.get('name')
        if not name or not isinstance(name, str):
            raise ValidationError({'fields': 'Field name is required'})
        if not FIELD_NAME_PATTERN.fullmatch(name):
            raise ValidationError({name: 'Field name can only contain letters, numbers, and underscores'})
        if is_system_field(name):
            raise ValidationError({name: f"Field name '{name}' is reserved for system fields"})

        field_type = raw.get('type')
        if not field_type:
            raise ValidationError({name: 'Field type is required'})
        if not is_valid_field_type(field_type):
            raise InvalidFieldTypeError(name, field_type, SUPPORTED_FIELD_TYPES)

        options = raw.get('options') or []
        if not isinstance(options, (list, tuple)):
            raise ValidationError({name: 'Field options must be a list'})
        if FieldType(field_type) in CHOICE_TYPES and len(options) == 0:
            raise ValidationError({name: f'{field_type} type requires non-empty options array'})

        if name in seen:
            raise DuplicateFieldError(name)
        seen.add(name)

        definitions.append(FieldDefinition(
            name=name,
            type=field_type,
            required=bool(raw.get('required', False)),
            options=[str(option) for option in options],
        ))

    return definitions


class SchemaManager:
    """Sole writer of table definitions within a namespace."""

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    def create(self, namespace: str, app_id: str, display_name: str,
               fields: Sequence[Dict[str, Any]], actor: str,
               instant: Optional[int] = None) -> TableSchema:
        """
        Create a table definition with a salted physical collection name.

        Args:
            namespace: Namespace prefix the table lives under
            app_id: Owning application
            display_name: User-visible table name, unique within the app
            fields: Raw field definitions
            actor: Creating user
            instant: Creation instant in epoch milliseconds (defaults to now)

        Returns:
            The stored table definition
        """
        require(namespace=namespace, app_id=app_id, display_name=display_name,
                fields=fields, user_id=actor)
        validate_display_name(display_name)
        definitions = validate_field_definitions(fields)

        collection = schema_collection_name(namespace)
        existing = self.store.query(collection, {'app_id': app_id, 'display_name': display_name}, limit=1)
        if existing:
            raise DuplicateTableError(display_name, existing[0]['schema_id'])

        instant = current_millis() if instant is None else instant
        timestamp = get_current_timestamp()
        schema = TableSchema(
            schema_id=generate_schema_id(),
            display_name=display_name,
            internal_name=generate_internal_name(namespace, display_name, instant),
            app_id=app_id,
            app_prefix=namespace,
            fields=definitions,
            record_count=0,
            created_by=actor,
            created_at=timestamp,
            updated_by=actor,
            updated_at=timestamp,
        )

        self.store.set(collection, schema.schema_id, schema.to_document())
        logger.info("Created table %s (%s) with %d fields", schema.schema_id, display_name, len(definitions))
        return schema

    def list(self, namespace: str, app_id: str) -> List[TableSchema]:
        """All tables of an app, newest first."""
        require(namespace=namespace, app_id=app_id)
        docs = self.store.query(schema_collection_name(namespace), {'app_id': app_id})
        # Ordered here so the store needs no composite index
        docs.sort(key=lambda doc: doc.get('created_at') or '', reverse=True)
        return [TableSchema.model_validate(doc) for doc in docs]

    def get(self, namespace: str, app_id: str, schema_id: str) -> TableSchema:
        """Fetch a table definition that belongs to the given app."""
        require(namespace=namespace, app_id=app_id, schema_id=schema_id)
        doc = self.store.get(schema_collection_name(namespace), schema_id)
        if doc is None or doc.get('app_id') != app_id:
            raise SchemaNotFoundError(schema_id, app_id)
        return TableSchema.model_validate(doc)

    def delete(self, namespace: str, app_id: str, schema_id: str, actor: str,
               confirm: bool = False) -> Dict[str, Any]:
        """
        Delete a table and every record in it.

        Only the creator may delete. Records go first, then the definition,
        so an interrupted delete can simply be retried.

        Returns:
            Dict with schema_id, display_name and deleted_records
        """
        require(namespace=namespace, app_id=app_id, schema_id=schema_id, user_id=actor)
        if confirm is not True:
            raise InvalidInputError("confirm_delete must be true", confirm_delete=confirm)

        schema = self.get(namespace, app_id, schema_id)
        if schema.created_by != actor:
            logger.warning("User %s refused deletion of table %s owned by %s",
                           actor, schema_id, schema.created_by)
            raise ForbiddenNotOwnerError(actor, schema.created_by)

        record_ids = self.store.list_ids(schema.internal_name)
        for chunk in chunked(record_ids, self.store.max_batch_writes):
            with transaction_context(self.store) as batch:
                for record_id in chunk:
                    batch.delete(schema.internal_name, record_id)

        self.store.delete(schema_collection_name(namespace), schema_id)
        logger.info("Deleted table %s (%s) and %d records",
                    schema_id, schema.display_name, len(record_ids))

        return {
            'schema_id': schema_id,
            'display_name': schema.display_name,
            'deleted_records': len(record_ids),
        }

    def adjust_record_count(self, namespace: str, schema_id: str, delta: int, batch=None) -> None:
        """
        Atomically shift the stored record count, floored at zero.

        With ``batch`` the adjustment joins that write transaction.
        """
        if delta == 0:
            return
        if batch is None:
            with transaction_context(self.store) as own_batch:
                self.adjust_record_count(namespace, schema_id, delta, own_batch)
            return

        collection = schema_collection_name(namespace)
        batch.increment(collection, schema_id, 'record_count', delta, floor=0)
        batch.update(collection, schema_id, {'updated_at': get_current_timestamp()})
