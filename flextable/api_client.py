"""API client for FlexTable remote connections."""

import re
from typing import Any, Dict, List, Optional, Union
from urllib.parse import urljoin

import httpx


class APIError(Exception):
    """Exception raised for API errors."""

    def __init__(self, message: str, status_code: Optional[int] = None,
                 response_data: Optional[Dict] = None):
        super().__init__(message)
        self.status_code = status_code
        self.response_data = response_data or {}

    @property
    def code(self) -> Optional[str]:
        """Error code reported by the server, e.g. 'SCHEMA_NOT_FOUND'."""
        return (self.response_data.get('error') or {}).get('code')

    @property
    def details(self) -> Dict[str, Any]:
        return (self.response_data.get('error') or {}).get('details') or {}


class RemoteConnection:
    """Remote connection to one app of a FlexTable API server."""

    def __init__(self, base_url: str, namespace: str, app_id: str, timeout: float = 30.0,
                 client: Optional[httpx.Client] = None):
        """Initialize remote connection.

        Args:
            base_url: Base URL of the API server (e.g., "http://localhost:8000")
            namespace: Namespace prefix the app's tables live under
            app_id: Application whose tables are addressed
            timeout: Request timeout in seconds
            client: Preconfigured httpx client to send requests with
        """
        self.base_url = base_url.rstrip('/')
        self.namespace = namespace
        self.app_id = app_id
        self.timeout = timeout
        self.client = client or httpx.Client(timeout=timeout)

    def _send(self, method: str, endpoint: str, **kwargs) -> httpx.Response:
        url = urljoin(self.base_url + '/', endpoint.lstrip('/'))
        try:
            return self.client.request(method, url, **kwargs)
        except httpx.RequestError as e:
            raise APIError(f"Connection error: {e}")

    @staticmethod
    def _raise_for_error(response: httpx.Response) -> None:
        try:
            data = response.json()
        except ValueError:
            raise APIError(response.text or f"HTTP {response.status_code}", response.status_code)

        error_info = data.get('error') or {}
        message = error_info.get('message') or data.get('detail') or 'Unknown API error'
        raise APIError(str(message), response.status_code, data)

    def _make_request(self, method: str, endpoint: str, **kwargs) -> Any:
        """Make an HTTP request to the API and unwrap the response envelope."""
        response = self._send(method, endpoint, **kwargs)
        if response.is_error:
            self._raise_for_error(response)

        data = response.json()
        if not data.get('success', True):
            self._raise_for_error(response)
        return data.get('data')

    def _tables_endpoint(self, path: str = '') -> str:
        base = f"/api/v1/{self.namespace}/apps/{self.app_id}/tables"
        return base + ('/' + path.lstrip('/') if path else '')

    def _records_endpoint(self, schema_id: str, path: str = '') -> str:
        return self._tables_endpoint(f"{schema_id}/records") + ('/' + path.lstrip('/') if path else '')

    # Table operations
    def create_table(self, display_name: str, fields: List[Dict[str, Any]], user_id: str) -> Dict[str, Any]:
        """Create a new table."""
        return self._make_request(
            'POST',
            self._tables_endpoint(),
            json={'display_name': display_name, 'fields': fields, 'user_id': user_id}
        )

    def list_tables(self) -> List[Dict[str, Any]]:
        """List all tables of the app."""
        return self._make_request('GET', self._tables_endpoint())['schemas']

    def get_table(self, schema_id: str) -> Dict[str, Any]:
        return self._make_request('GET', self._tables_endpoint(schema_id))

    def delete_table(self, schema_id: str, user_id: str, confirm_delete: bool = False) -> Dict[str, Any]:
        """Delete a table and its records."""
        return self._make_request(
            'DELETE',
            self._tables_endpoint(schema_id),
            params={'user_id': user_id, 'confirm_delete': confirm_delete}
        )

    def field_types(self) -> List[Dict[str, Any]]:
        return self._make_request('GET', '/api/v1/field-types')

    # Record operations
    def create_record(self, schema_id: str, data: Dict[str, Any], user_id: str) -> Dict[str, Any]:
        return self._make_request('POST', self._records_endpoint(schema_id),
                                  json={'data': data, 'user_id': user_id})

    def get_record(self, schema_id: str, record_id: str) -> Dict[str, Any]:
        return self._make_request('GET', self._records_endpoint(schema_id, record_id))

    def list_records(self, schema_id: str, page: int = 1, page_size: int = 20,
                     sort_by: str = 'created_at', sort_order: str = 'desc',
                     search: Optional[str] = None) -> Dict[str, Any]:
        """List one page of records with pagination metadata."""
        params = {'page': page, 'page_size': page_size, 'sort_by': sort_by, 'sort_order': sort_order}
        if search:
            params['search'] = search
        return self._make_request('GET', self._records_endpoint(schema_id), params=params)

    def update_record(self, schema_id: str, record_id: str, data: Dict[str, Any],
                      user_id: str) -> Dict[str, Any]:
        return self._make_request('PUT', self._records_endpoint(schema_id, record_id),
                                  json={'data': data, 'user_id': user_id})

    def delete_record(self, schema_id: str, record_id: str) -> Dict[str, Any]:
        return self._make_request('DELETE', self._records_endpoint(schema_id, record_id))

    def validate_record(self, schema_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._make_request('POST', self._records_endpoint(schema_id, 'validate'),
                                  json={'data': data})

    # Bulk operations
    def bulk_create(self, schema_id: str, records: List[Dict[str, Any]], user_id: str) -> Dict[str, Any]:
        return self._make_request('POST', self._records_endpoint(schema_id, 'bulk-create'),
                                  json={'records': records, 'user_id': user_id})

    def bulk_update(self, schema_id: str, updates: List[Dict[str, Any]], user_id: str) -> Dict[str, Any]:
        return self._make_request('POST', self._records_endpoint(schema_id, 'bulk-update'),
                                  json={'updates': updates, 'user_id': user_id})

    def bulk_delete(self, schema_id: str, record_ids: List[str]) -> Dict[str, Any]:
        return self._make_request('POST', self._records_endpoint(schema_id, 'bulk-delete'),
                                  json={'record_ids': record_ids})

    # CSV operations
    def import_csv(self, content: Union[bytes, str], filename: str, user_id: str,
                   create_new_table: bool = False, display_name: Optional[str] = None,
                   schema_id: Optional[str] = None) -> Dict[str, Any]:
        """Upload CSV content to create a new table or append to an existing one."""
        if isinstance(content, str):
            content = content.encode('utf-8')
        form = {'user_id': user_id, 'create_new_table': str(create_new_table).lower()}
        if display_name:
            form['display_name'] = display_name
        if schema_id:
            form['schema_id'] = schema_id
        return self._make_request(
            'POST',
            f"/api/v1/{self.namespace}/apps/{self.app_id}/import-csv",
            data=form,
            files={'file': (filename, content, 'text/csv')}
        )

    def export_csv(self, schema_id: str, record_ids: Optional[List[str]] = None,
                   include_system_fields: bool = False) -> Dict[str, Any]:
        """Download records as CSV.

        Returns:
            Dict with content and the server-suggested filename
        """
        params: Dict[str, Any] = {'include_system_fields': include_system_fields}
        if record_ids:
            params['record_ids'] = ','.join(record_ids)

        response = self._send('GET', self._tables_endpoint(f"{schema_id}/export-csv"), params=params)
        if response.is_error:
            self._raise_for_error(response)

        match = re.search(r'filename="([^"]+)"', response.headers.get('content-disposition', ''))
        return {
            'content': response.text,
            'filename': match.group(1) if match else None,
        }

    def close(self) -> None:
        """Close the HTTP client."""
        self.client.close()

    def __enter__(self) -> 'RemoteConnection':
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()


def connect_remote(base_url: str, namespace: str, app_id: str, timeout: float = 30.0) -> RemoteConnection:
    """Create a remote connection to a FlexTable API server.

    Example:
        db = connect_remote("http://localhost:8000", "myapp", "app1")
        tables = db.list_tables()
    """
    return RemoteConnection(base_url, namespace, app_id, timeout)
