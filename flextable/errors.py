"""Typed errors for FlexTable, each carrying a machine-checkable error code."""

from difflib import get_close_matches
from enum import Enum
from typing import Any, Dict, List, Optional

from .constants import ERROR_SAMPLE_SIZE


class ErrorCode(str, Enum):
    """Machine-checkable error kinds returned across the operation boundary."""
    INVALID_INPUT = "INVALID_INPUT"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_FIELD_TYPE = "INVALID_FIELD_TYPE"
    DUPLICATE_TABLE = "DUPLICATE_TABLE"
    DUPLICATE_FIELD = "DUPLICATE_FIELD"
    SCHEMA_NOT_FOUND = "SCHEMA_NOT_FOUND"
    RECORD_NOT_FOUND = "RECORD_NOT_FOUND"
    FORBIDDEN_NOT_OWNER = "FORBIDDEN_NOT_OWNER"
    BULK_LIMIT_EXCEEDED = "BULK_LIMIT_EXCEEDED"
    FIELD_LIMIT_EXCEEDED = "FIELD_LIMIT_EXCEEDED"
    CSV_PARSE_ERROR = "CSV_PARSE_ERROR"
    CSV_SCHEMA_MISMATCH = "CSV_SCHEMA_MISMATCH"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class FlexTableError(Exception):
    """Base exception for FlexTable with enhanced error messages."""
    
    code: ErrorCode = ErrorCode.INTERNAL_ERROR
    
    def __init__(self, message: str, suggestions: List[str] | None = None,
                 context: Dict[str, Any] | None = None):
        self.message = message
        self.suggestions = suggestions or []
        self.context = context or {}
        super().__init__(self.format_message())
    
    @property
    def details(self) -> Dict[str, Any]:
        """JSON-safe payload describing the failure."""
        return dict(self.context)
    
    def format_message(self) -> str:
        """Format the error message with suggestions."""
        formatted = self.message
        
        if self.suggestions:
            formatted += "\n\nSuggestions:"
            for suggestion in self.suggestions:
                formatted += f"\n  • {suggestion}"
        
        return formatted
    
    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the error shape used by operation results."""
        return {
            'code': self.code.value,
            'message': self.message,
            'details': self.details,
        }


class InvalidInputError(FlexTableError):
    """Missing or malformed request fields."""
    
    code = ErrorCode.INVALID_INPUT
    
    def __init__(self, message: str, **context: Any):
        super().__init__(message, context=context)


class ValidationError(FlexTableError):
    """One or more field values failed their type or required rules."""
    
    code = ErrorCode.VALIDATION_ERROR
    
    def __init__(self, errors: Dict[str, str], message: str | None = None, **context: Any):
        self.errors = errors
        if message is None:
            failed = ', '.join(sorted(errors)) if errors else 'record'
            message = f"Validation failed for: {failed}"
        super().__init__(message, context=context)
    
    @property
    def details(self) -> Dict[str, Any]:
        return {'errors': dict(self.errors), **self.context}


class BulkValidationError(ValidationError):
    """At least one item of a bulk call failed validation; nothing was written."""
    
    def __init__(self, item_errors: List[Dict[str, Any]], valid_count: int, noun: str = "record"):
        self.item_errors = item_errors
        super().__init__(
            {},
            f"{len(item_errors)} {noun}(s) failed validation",
            valid_items=valid_count,
            invalid_items=len(item_errors),
        )
    
    @property
    def details(self) -> Dict[str, Any]:
        return {
            'message': self.message,
            **self.context,
            'errors': self.item_errors[:ERROR_SAMPLE_SIZE],
        }


class InvalidFieldTypeError(FlexTableError):
    """A field definition referenced a kind outside the registry."""
    
    code = ErrorCode.INVALID_FIELD_TYPE
    
    def __init__(self, field_name: str, field_type: Any, valid_types: List[str] | None = None):
        valid_types = valid_types or []
        suggestions = []
        
        similar = get_close_matches(str(field_type), valid_types, n=2, cutoff=0.6)
        if similar:
            suggestions.append(f"Did you mean: {', '.join(similar)}?")
        if valid_types:
            suggestions.append(f"Valid types: {', '.join(valid_types)}")
        
        super().__init__(
            f"Invalid field type '{field_type}' for field '{field_name}'",
            suggestions,
            {'field': field_name, 'type': field_type},
        )


class DuplicateTableError(FlexTableError):
    """A table with the same display name already exists in the app."""
    
    code = ErrorCode.DUPLICATE_TABLE
    
    def __init__(self, display_name: str, existing_schema_id: str):
        super().__init__(
            f"Table '{display_name}' already exists",
            ["Choose a different display name", "Append to the existing table instead"],
            {'display_name': display_name, 'existing_schema_id': existing_schema_id},
        )


class DuplicateFieldError(FlexTableError):
    """Two field definitions share a name."""
    
    code = ErrorCode.DUPLICATE_FIELD
    
    def __init__(self, field_name: str):
        super().__init__(
            f"Field name '{field_name}' is used more than once",
            context={'field': field_name, 'reason': 'Field name must be unique'},
        )


class SchemaNotFoundError(FlexTableError):
    """The schema does not exist or belongs to another app."""
    
    code = ErrorCode.SCHEMA_NOT_FOUND
    
    def __init__(self, schema_id: str, app_id: str | None = None):
        super().__init__(
            f"Table '{schema_id}' not found",
            context={'schema_id': schema_id, 'app_id': app_id},
        )


class RecordNotFoundError(FlexTableError):
    """The record does not exist in the table."""
    
    code = ErrorCode.RECORD_NOT_FOUND
    
    def __init__(self, record_id: str | None, schema_id: str, message: str | None = None):
        super().__init__(
            message or f"Record '{record_id}' not found",
            context={'record_id': record_id, 'schema_id': schema_id},
        )


class ForbiddenNotOwnerError(FlexTableError):
    """A destructive operation was attempted by someone other than the creator."""
    
    code = ErrorCode.FORBIDDEN_NOT_OWNER
    
    def __init__(self, user_id: str, created_by: str):
        super().__init__(
            "Only the table owner can delete tables",
            context={'user_id': user_id, 'schema_created_by': created_by},
        )


class BulkLimitExceededError(FlexTableError):
    """A bulk call carried more items than its ceiling allows."""
    
    code = ErrorCode.BULK_LIMIT_EXCEEDED
    
    def __init__(self, operation: str, requested: int, limit: int):
        super().__init__(
            f"Maximum {limit} items allowed per bulk {operation} operation, got {requested}",
            [f"Split the request into batches of at most {limit} items"],
            {'operation': operation, 'requested': requested, 'limit': limit},
        )


class FieldLimitExceededError(FlexTableError):
    """A table definition carried too many fields."""
    
    code = ErrorCode.FIELD_LIMIT_EXCEEDED
    
    def __init__(self, count: int, limit: int):
        super().__init__(
            f"Maximum {limit} fields allowed per table, got {count}",
            context={'count': count, 'limit': limit},
        )


class CSVParseError(FlexTableError):
    """The upload is not a usable CSV file."""
    
    code = ErrorCode.CSV_PARSE_ERROR
    
    def __init__(self, message: str, **context: Any):
        suggestions = [
            "Ensure the file has CSV format with a header row",
            "Verify the file encoding (UTF-8 is expected)",
        ]
        super().__init__(message, suggestions, context)


class CSVSchemaMismatchError(FlexTableError):
    """Append-mode CSV headers do not match the table's field names."""
    
    code = ErrorCode.CSV_SCHEMA_MISMATCH
    
    def __init__(self, missing_fields: List[str], extra_fields: List[str]):
        super().__init__(
            "CSV headers don't match schema",
            context={'missing_fields': missing_fields, 'extra_fields': extra_fields},
        )


class StorageError(FlexTableError):
    """The document store failed or refused an operation."""
    
    code = ErrorCode.INTERNAL_ERROR
    
    def __init__(self, message: str, original_error: Optional[Exception] = None, **context: Any):
        self.original_error = original_error
        if original_error:
            message += f": {original_error}"
        super().__init__(message, context=context)


class BatchLimitExceededError(StorageError):
    """A write batch grew past the store's per-transaction ceiling."""
    
    def __init__(self, limit: int):
        super().__init__(f"Write batch exceeds the limit of {limit} operations", limit=limit)


class InternalError(FlexTableError):
    """Anything unexpected, with the underlying message kept for diagnostics."""
    
    code = ErrorCode.INTERNAL_ERROR
    
    def __init__(self, message: str, **context: Any):
        super().__init__(message, context=context)


def format_validation_errors(errors: Dict[str, str]) -> str:
    """Format a field-to-message map with helpful context."""
    if not errors:
        return ""
    
    if len(errors) == 1:
        field, message = next(iter(errors.items()))
        return f"Validation error: {field}: {message}"
    
    formatted = "Multiple validation errors found:\n"
    for i, (field, message) in enumerate(errors.items(), 1):
        formatted += f"  {i}. {field}: {message}\n"
    
    formatted += "\nTip: Fix these issues and try again"
    return formatted.strip()


def require(**values: Any) -> None:
    """Raise InvalidInputError naming every argument that is missing or empty."""
    missing = [name for name, value in values.items() if value is None or value == '']
    if missing:
        raise InvalidInputError(
            f"{', '.join(missing)} {'is' if len(missing) == 1 else 'are'} required",
            missing=missing,
        )
