"""FastAPI server for FlexTable remote access."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import uvicorn
from fastapi import Depends, FastAPI, File, Form, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from . import __version__
from .config import config
from .connection import Connection, connect
from .constants import DEFAULT_PAGE_SIZE
from .errors import ErrorCode
from .models import CSVUpload, OperationResult

logger = logging.getLogger(__name__)


# Response models
class APIResponse(BaseModel):
    """Standard API response wrapper."""
    success: bool
    data: Optional[Any] = None
    error: Optional[Dict[str, Any]] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ErrorResponse(BaseModel):
    """Error response structure."""
    code: str
    message: str
    details: Optional[Dict[str, Any]] = None


# Request models
class TableCreateRequest(BaseModel):
    """Request to create a table."""
    display_name: str
    fields: List[Dict[str, Any]] = Field(description="Field definitions: name, type, required, options")
    user_id: str


class RecordCreateRequest(BaseModel):
    """Request to create a record."""
    data: Dict[str, Any]
    user_id: str


class RecordUpdateRequest(BaseModel):
    """Request to update a record; omitted fields are left untouched."""
    data: Dict[str, Any]
    user_id: str


class RecordValidateRequest(BaseModel):
    """Request to validate record data without saving it."""
    data: Dict[str, Any]


class BulkCreateRequest(BaseModel):
    """Request to create many records."""
    records: List[Dict[str, Any]]
    user_id: str


class BulkUpdateItem(BaseModel):
    record_id: str
    data: Dict[str, Any]


class BulkUpdateRequest(BaseModel):
    """Request to update many records."""
    updates: List[BulkUpdateItem]
    user_id: str


class BulkDeleteRequest(BaseModel):
    """Request to delete many records."""
    record_ids: List[str]


STATUS_CODES = {
    ErrorCode.INVALID_INPUT: 400,
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.INVALID_FIELD_TYPE: 400,
    ErrorCode.DUPLICATE_FIELD: 400,
    ErrorCode.BULK_LIMIT_EXCEEDED: 400,
    ErrorCode.FIELD_LIMIT_EXCEEDED: 400,
    ErrorCode.CSV_PARSE_ERROR: 400,
    ErrorCode.CSV_SCHEMA_MISMATCH: 400,
    ErrorCode.FORBIDDEN_NOT_OWNER: 403,
    ErrorCode.SCHEMA_NOT_FOUND: 404,
    ErrorCode.RECORD_NOT_FOUND: 404,
    ErrorCode.DUPLICATE_TABLE: 409,
    ErrorCode.INTERNAL_ERROR: 500,
}


_connection: Optional[Connection] = None


def get_connection() -> Connection:
    """Get or create the server's connection from configuration."""
    global _connection
    if _connection is None:
        connection_info = config.db_path if config.backend == 'sqlite' else ':memory:'
        _connection = connect(connection_info, backend=config.backend)
        logger.info("API server using %r", _connection)
    return _connection


def create_response(data: Any = None, error: Optional[str] = None,
                    error_code: Optional[str] = None,
                    error_details: Optional[Dict[str, Any]] = None, **metadata) -> APIResponse:
    """Create a standardized API response."""
    response_metadata = {
        "timestamp": datetime.now().isoformat(),
        "version": __version__,
        **metadata
    }

    if error:
        return APIResponse(
            success=False,
            data=None,
            error=ErrorResponse(
                code=error_code or "UNKNOWN_ERROR",
                message=error,
                details=error_details
            ).model_dump(),
            metadata=response_metadata
        )

    return APIResponse(
        success=True,
        data=data,
        error=None,
        metadata=response_metadata
    )


def respond(result: OperationResult, status_code: int = 200, **metadata) -> JSONResponse:
    """Translate an operation result into an HTTP response."""
    if result.success:
        body = create_response(data=result.data, **metadata)
    else:
        status_code = STATUS_CODES.get(result.error.code, 500)
        body = create_response(
            error=result.error.message,
            error_code=result.error_code,
            error_details=result.error.details,
            **metadata
        )
    return JSONResponse(status_code=status_code, content=body.model_dump(mode='json'))


# FastAPI app
app = FastAPI(
    title="FlexTable API",
    description="REST API for FlexTable - user-defined tables with typed fields and CSV interchange",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

TABLES = "/api/v1/{namespace}/apps/{app_id}/tables"
RECORDS = TABLES + "/{schema_id}/records"


@app.get("/api/v1/field-types")
async def list_field_types(db: Connection = Depends(get_connection)):
    """Describe every supported field type."""
    return respond(db.field_types())


# Table operations
@app.post(TABLES)
async def create_table(namespace: str, app_id: str, request: TableCreateRequest,
                       db: Connection = Depends(get_connection)):
    """Create a new table."""
    result = db.create_table(namespace, app_id, request.display_name, request.fields, request.user_id)
    return respond(result, 201, namespace=namespace)


@app.get(TABLES)
async def list_tables(namespace: str, app_id: str, db: Connection = Depends(get_connection)):
    """List all tables of an app, newest first."""
    return respond(db.list_tables(namespace, app_id), namespace=namespace)


@app.get(TABLES + "/{schema_id}")
async def get_table(namespace: str, app_id: str, schema_id: str,
                    db: Connection = Depends(get_connection)):
    """Get a table definition."""
    return respond(db.get_table(namespace, app_id, schema_id), namespace=namespace)


@app.delete(TABLES + "/{schema_id}")
async def delete_table(namespace: str, app_id: str, schema_id: str,
                       user_id: str = Query(..., description="Deleting user, must be the table creator"),
                       confirm_delete: bool = Query(False),
                       db: Connection = Depends(get_connection)):
    """Delete a table and every record in it."""
    result = db.delete_table(namespace, app_id, schema_id, user_id, confirm_delete)
    return respond(result, namespace=namespace)


# Record operations
@app.post(RECORDS)
async def create_record(namespace: str, app_id: str, schema_id: str, request: RecordCreateRequest,
                        db: Connection = Depends(get_connection)):
    """Create a record."""
    result = db.create_record(namespace, app_id, schema_id, request.data, request.user_id)
    return respond(result, 201, namespace=namespace)


@app.get(RECORDS)
async def list_records(namespace: str, app_id: str, schema_id: str,
                       page: int = Query(1, ge=1),
                       page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1),
                       sort_by: str = Query('created_at'),
                       sort_order: str = Query('desc'),
                       search: Optional[str] = Query(None, description="Filters the returned page only"),
                       db: Connection = Depends(get_connection)):
    """List one page of records."""
    result = db.list_records(namespace, app_id, schema_id, page, page_size, sort_by, sort_order, search)
    return respond(result, namespace=namespace)


@app.post(RECORDS + "/validate")
async def validate_record(namespace: str, app_id: str, schema_id: str, request: RecordValidateRequest,
                          db: Connection = Depends(get_connection)):
    """Validate record data without saving it."""
    return respond(db.validate_record(namespace, app_id, schema_id, request.data), namespace=namespace)


@app.post(RECORDS + "/bulk-create")
async def bulk_create(namespace: str, app_id: str, schema_id: str, request: BulkCreateRequest,
                      db: Connection = Depends(get_connection)):
    """Create up to 1000 records."""
    result = db.bulk_create(namespace, app_id, schema_id, request.records, request.user_id)
    return respond(result, 201, namespace=namespace)


@app.post(RECORDS + "/bulk-update")
async def bulk_update(namespace: str, app_id: str, schema_id: str, request: BulkUpdateRequest,
                      db: Connection = Depends(get_connection)):
    """Update up to 500 records."""
    updates = [update.model_dump() for update in request.updates]
    return respond(db.bulk_update(namespace, app_id, schema_id, updates, request.user_id), namespace=namespace)


@app.post(RECORDS + "/bulk-delete")
async def bulk_delete(namespace: str, app_id: str, schema_id: str, request: BulkDeleteRequest,
                      db: Connection = Depends(get_connection)):
    """Delete up to 500 records."""
    return respond(db.bulk_delete(namespace, app_id, schema_id, request.record_ids), namespace=namespace)


@app.get(RECORDS + "/{record_id}")
async def get_record(namespace: str, app_id: str, schema_id: str, record_id: str,
                     db: Connection = Depends(get_connection)):
    """Get a single record."""
    return respond(db.get_record(namespace, app_id, schema_id, record_id), namespace=namespace)


@app.put(RECORDS + "/{record_id}")
async def update_record(namespace: str, app_id: str, schema_id: str, record_id: str,
                        request: RecordUpdateRequest, db: Connection = Depends(get_connection)):
    """Update a record."""
    result = db.update_record(namespace, app_id, schema_id, record_id, request.data, request.user_id)
    return respond(result, namespace=namespace)


@app.delete(RECORDS + "/{record_id}")
async def delete_record(namespace: str, app_id: str, schema_id: str, record_id: str,
                        db: Connection = Depends(get_connection)):
    """Delete a record."""
    return respond(db.delete_record(namespace, app_id, schema_id, record_id), namespace=namespace)


# CSV operations
@app.post("/api/v1/{namespace}/apps/{app_id}/import-csv")
async def import_csv(namespace: str, app_id: str,
                     file: UploadFile = File(...),
                     user_id: str = Form(...),
                     create_new_table: bool = Form(False),
                     display_name: Optional[str] = Form(None),
                     schema_id: Optional[str] = Form(None),
                     db: Connection = Depends(get_connection)):
    """Import a CSV file into a new table or append it to an existing one."""
    content = await file.read()
    upload = CSVUpload(
        content=content,
        filename=file.filename or '',
        content_type=file.content_type,
        size=len(content),
    )
    result = db.import_csv(namespace, app_id, upload, user_id,
                           create_new_table, display_name, schema_id)
    return respond(result, 201, namespace=namespace)


@app.get(TABLES + "/{schema_id}/export-csv")
async def export_csv(namespace: str, app_id: str, schema_id: str,
                     record_ids: Optional[str] = Query(None, description="Comma-separated record ids"),
                     include_system_fields: bool = Query(False),
                     db: Connection = Depends(get_connection)):
    """Export records as a CSV download."""
    result = db.export_csv(namespace, app_id, schema_id, record_ids, include_system_fields)
    if not result.success:
        return respond(result, namespace=namespace)

    return Response(
        content=result.data['content'],
        media_type=result.data['content_type'],
        headers={"Content-Disposition": f'attachment; filename="{result.data["filename"]}"'},
    )


# Health check
@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return create_response(data={"status": "healthy", "service": "flextable-api"})


@app.get("/")
async def root():
    """Root endpoint with basic info."""
    return create_response(
        data={
            "service": "FlexTable API",
            "version": __version__,
            "docs": "/docs",
            "health": "/health"
        }
    )


def start_server(host: str = "127.0.0.1", port: int = 8000, reload: bool = False):
    """Start the API server."""
    uvicorn.run(
        "flextable.api_server:app",
        host=host,
        port=port,
        reload=reload,
        log_level="info"
    )


if __name__ == "__main__":
    start_server()
