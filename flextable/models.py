"""Type-safe models for FlexTable using Pydantic."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .errors import ErrorCode, FlexTableError
from .types import FieldType


class FieldDefinition(BaseModel):
    """One column definition inside a table."""

    model_config = ConfigDict(use_enum_values=True)

    name: str
    type: FieldType
    required: bool = False
    options: List[str] = Field(default_factory=list)


class TableSchema(BaseModel):
    """A table definition. The physical collection name is never serialized."""

    model_config = ConfigDict(use_enum_values=True)

    schema_id: str
    display_name: str
    internal_name: str = Field(exclude=True, repr=False)
    app_id: str
    app_prefix: str
    fields: List[FieldDefinition]
    record_count: int = 0
    created_by: str
    created_at: str
    updated_by: str
    updated_at: str

    @property
    def field_names(self) -> List[str]:
        return [field.name for field in self.fields]

    def to_document(self) -> Dict[str, Any]:
        """Full storage form, including the physical collection name."""
        return {**self.model_dump(), 'internal_name': self.internal_name}


class Pagination(BaseModel):
    """Page metadata for record listings, computed from the unfiltered total."""

    current_page: int
    page_size: int
    total_records: int
    total_pages: int
    has_next_page: bool
    has_previous_page: bool


class RecordPage(BaseModel):
    records: List[Dict[str, Any]]
    pagination: Pagination


class CSVUpload(BaseModel):
    """An uploaded file buffer as handed over by the upload layer."""

    content: bytes
    filename: str = ''
    content_type: Optional[str] = None
    size: Optional[int] = None

    @property
    def declared_size(self) -> int:
        return self.size if self.size is not None else len(self.content)


class ErrorInfo(BaseModel):
    """Error structure returned in operation results."""

    code: ErrorCode
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class OperationResult(BaseModel):
    """Outcome of one exposed operation: a success payload or a typed error."""

    success: bool
    data: Optional[Any] = None
    error: Optional[ErrorInfo] = None

    @classmethod
    def ok(cls, data: Any = None) -> 'OperationResult':
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: FlexTableError) -> 'OperationResult':
        return cls(
            success=False,
            error=ErrorInfo(code=error.code, message=error.message, details=error.details),
        )

    @property
    def error_code(self) -> Optional[str]:
        return self.error.code.value if self.error else None
