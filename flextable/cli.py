"""CLI interface for FlexTable using Typer with noun-first structure."""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
from rich.console import Console
from rich.table import Table

from . import connect
from .config import setup_logging
from .errors import format_validation_errors
from .models import CSVUpload, OperationResult

app = typer.Typer(
    name="flextable",
    help="FlexTable - user-defined tables with typed fields and CSV interchange",
    invoke_without_command=True,
    add_completion=False,
)
console = Console()


@app.callback()
def main_callback(
    ctx: typer.Context,
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Logging level (DEBUG, INFO, WARNING)"),
) -> None:
    """FlexTable - user-defined tables with typed fields and CSV interchange"""
    if log_level:
        setup_logging(log_level)
    if ctx.invoked_subcommand is None:
        print(ctx.get_help())
        raise typer.Exit()


table_app = typer.Typer(
    name="table",
    help="Table operations",
    invoke_without_command=True
)
record_app = typer.Typer(
    name="record",
    help="Record operations",
    invoke_without_command=True
)


@table_app.callback()
def table_callback(ctx: typer.Context) -> None:
    """Table operations"""
    if ctx.invoked_subcommand is None:
        print(ctx.get_help())
        raise typer.Exit()


@record_app.callback()
def record_callback(ctx: typer.Context) -> None:
    """Record operations"""
    if ctx.invoked_subcommand is None:
        print(ctx.get_help())
        raise typer.Exit()


app.add_typer(table_app, name="table", help="Table operations")
app.add_typer(record_app, name="record", help="Record operations")


PATH_OPTION = typer.Option("flextable.db", "--path", "-p", help="Database file path")
BACKEND_OPTION = typer.Option(None, "--backend", "-b", help="Store backend (memory, sqlite)")
PREFIX_OPTION = typer.Option("flextable", "--prefix", help="Namespace prefix")
APP_OPTION = typer.Option("default", "--app", "-a", help="Application id")
USER_OPTION = typer.Option("cli", "--user", "-u", help="Acting user id")


def unwrap(result: OperationResult, action: str) -> Any:
    """Return the result data, or print the error and exit."""
    if result.success:
        return result.data

    console.print(f"[red]Error {action}: {result.error.message} ({result.error_code})[/red]")
    field_errors = result.error.details.get('errors')
    if isinstance(field_errors, dict):
        console.print(f"[red]{format_validation_errors(field_errors)}[/red]")
    elif isinstance(field_errors, list):
        for item in field_errors:
            console.print(f"[red]  • {item}[/red]")
    raise typer.Exit(1)


def parse_field_spec(spec: str, required: List[str]) -> Dict[str, Any]:
    """Parse 'name:type' or 'name:type:option1|option2' into a field definition."""
    parts = spec.split(':', 2)
    if len(parts) < 2 or not parts[0] or not parts[1]:
        raise typer.BadParameter(f"Field must look like name:type[:opt1|opt2], got '{spec}'")
    name, field_type = parts[0].strip(), parts[1].strip()
    options = [option.strip() for option in parts[2].split('|')] if len(parts) == 3 else []
    return {'name': name, 'type': field_type, 'required': name in required, 'options': options}


@table_app.command("create")
def table_create(
    name: str = typer.Argument(..., help="Table display name"),
    field: List[str] = typer.Option(..., "--field", "-f", help="Field as name:type[:opt1|opt2], repeatable"),
    required: List[str] = typer.Option([], "--required", "-r", help="Name of a required field, repeatable"),
    path: str = PATH_OPTION,
    backend: str = BACKEND_OPTION,
    prefix: str = PREFIX_OPTION,
    app_id: str = APP_OPTION,
    user: str = USER_OPTION,
) -> None:
    """Create a new table."""
    fields = [parse_field_spec(spec, required) for spec in field]
    with connect(path, backend) as db:
        schema = unwrap(db.create_table(prefix, app_id, name, fields, user), "creating table")
    console.print(f"[green]Created table '{name}' with ID {schema['schema_id']}[/green]")


@table_app.command("list")
def table_list(
    path: str = PATH_OPTION,
    backend: str = BACKEND_OPTION,
    prefix: str = PREFIX_OPTION,
    app_id: str = APP_OPTION,
) -> None:
    """List all tables of an app."""
    with connect(path, backend) as db:
        data = unwrap(db.list_tables(prefix, app_id), "listing tables")

    if not data['schemas']:
        console.print("[yellow]No tables found[/yellow]")
        return

    table_display = Table(title="Tables")
    table_display.add_column("ID", style="cyan")
    table_display.add_column("Name", style="green")
    table_display.add_column("Fields", style="magenta")
    table_display.add_column("Records", style="blue")
    table_display.add_column("Created At", style="yellow")

    for schema in data['schemas']:
        table_display.add_row(
            schema['schema_id'],
            schema['display_name'],
            str(len(schema['fields'])),
            str(schema['record_count']),
            schema['created_at'],
        )

    console.print(table_display)


@table_app.command("show")
def table_show(
    schema_id: str = typer.Argument(..., help="Table schema id"),
    path: str = PATH_OPTION,
    backend: str = BACKEND_OPTION,
    prefix: str = PREFIX_OPTION,
    app_id: str = APP_OPTION,
) -> None:
    """Show detailed table information."""
    with connect(path, backend) as db:
        schema = unwrap(db.get_table(prefix, app_id, schema_id), "showing table")

    console.print(f"[bold]Table:[/bold] {schema['display_name']}")
    console.print(f"[bold]ID:[/bold] {schema['schema_id']}")
    console.print(f"[bold]Created:[/bold] {schema['created_at']} by {schema['created_by']}")
    console.print(f"[bold]Records:[/bold] {schema['record_count']}")

    table_display = Table(title=f"Fields in '{schema['display_name']}'")
    table_display.add_column("Name", style="green")
    table_display.add_column("Type", style="magenta")
    table_display.add_column("Required", style="yellow")
    table_display.add_column("Options", style="cyan")
    for definition in schema['fields']:
        table_display.add_row(
            definition['name'],
            definition['type'],
            "yes" if definition['required'] else "",
            ", ".join(definition['options']),
        )
    console.print(table_display)


@table_app.command("delete")
def table_delete(
    schema_id: str = typer.Argument(..., help="Table schema id"),
    path: str = PATH_OPTION,
    backend: str = BACKEND_OPTION,
    prefix: str = PREFIX_OPTION,
    app_id: str = APP_OPTION,
    user: str = USER_OPTION,
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
) -> None:
    """Delete a table and all its records."""
    if not yes:
        confirm = typer.confirm(f"Are you sure you want to delete table '{schema_id}' and all its records?")
        if not confirm:
            console.print("[yellow]Operation cancelled[/yellow]")
            raise typer.Exit(0)

    with connect(path, backend) as db:
        data = unwrap(db.delete_table(prefix, app_id, schema_id, user, confirm_delete=True), "deleting table")
    console.print(f"[green]Deleted table '{data['display_name']}' and {data['deleted_records']} records[/green]")


@table_app.command("types")
def table_types() -> None:
    """List the supported field types."""
    with connect(':memory:') as db:
        types = unwrap(db.field_types(), "listing field types")

    table_display = Table(title="Field Types")
    table_display.add_column("Type", style="green")
    table_display.add_column("Description", style="cyan")
    table_display.add_column("Example", style="yellow")
    for info in types:
        table_display.add_row(info['type'], info['description'], info.get('pattern', ''))
    console.print(table_display)


@record_app.command("add")
def record_add(
    schema_id: str = typer.Argument(..., help="Table schema id"),
    data: str = typer.Argument(..., help="Record data as a JSON object"),
    path: str = PATH_OPTION,
    backend: str = BACKEND_OPTION,
    prefix: str = PREFIX_OPTION,
    app_id: str = APP_OPTION,
    user: str = USER_OPTION,
) -> None:
    """Add a record from JSON data."""
    try:
        values = json.loads(data)
    except json.JSONDecodeError as e:
        console.print(f"[red]Invalid JSON data: {e}[/red]")
        raise typer.Exit(1)

    with connect(path, backend) as db:
        record = unwrap(db.create_record(prefix, app_id, schema_id, values, user), "adding record")
    console.print(f"[green]Added record {record['id']}[/green]")


@record_app.command("list")
def record_list(
    schema_id: str = typer.Argument(..., help="Table schema id"),
    page: int = typer.Option(1, "--page", help="Page number"),
    page_size: int = typer.Option(20, "--page-size", help="Records per page"),
    sort_by: str = typer.Option("created_at", "--sort-by", help="Field to sort by"),
    sort_order: str = typer.Option("desc", "--sort-order", help="asc or desc"),
    search: Optional[str] = typer.Option(None, "--search", "-s", help="Filter the page by substring"),
    format: str = typer.Option("table", "--format", help="Output format (table, json)"),
    path: str = PATH_OPTION,
    backend: str = BACKEND_OPTION,
    prefix: str = PREFIX_OPTION,
    app_id: str = APP_OPTION,
) -> None:
    """List records of a table."""
    with connect(path, backend) as db:
        schema = unwrap(db.get_table(prefix, app_id, schema_id), "listing records")
        data = unwrap(db.list_records(prefix, app_id, schema_id, page, page_size,
                                      sort_by, sort_order, search), "listing records")

    records = data['records']
    pagination = data['pagination']

    if format == "json":
        console.print_json(json.dumps(data, default=str))
        return

    if not records:
        console.print("[yellow]No records found[/yellow]")
        return

    columns = ['id'] + [definition['name'] for definition in schema['fields']]
    table_display = Table(title=f"{schema['display_name']} (page {pagination['current_page']} of {pagination['total_pages']})")
    for column in columns:
        table_display.add_column(column)
    for record in records:
        table_display.add_row(*[str(record.get(column, "")) for column in columns])

    console.print(table_display)
    console.print(f"[blue]Total records: {pagination['total_records']}[/blue]")


@record_app.command("delete")
def record_delete(
    schema_id: str = typer.Argument(..., help="Table schema id"),
    record_id: str = typer.Argument(..., help="Record id"),
    path: str = PATH_OPTION,
    backend: str = BACKEND_OPTION,
    prefix: str = PREFIX_OPTION,
    app_id: str = APP_OPTION,
) -> None:
    """Delete a record."""
    with connect(path, backend) as db:
        unwrap(db.delete_record(prefix, app_id, schema_id, record_id), "deleting record")
    console.print(f"[green]Deleted record {record_id}[/green]")


@app.command("import-csv")
def import_csv_cmd(
    file_path: Path = typer.Argument(..., help="Path to CSV file", exists=True, dir_okay=False),
    table_name: Optional[str] = typer.Option(None, "--new-table", "-n", help="Create a new table with this name"),
    schema_id: Optional[str] = typer.Option(None, "--schema-id", "-s", help="Append to this existing table"),
    path: str = PATH_OPTION,
    backend: str = BACKEND_OPTION,
    prefix: str = PREFIX_OPTION,
    app_id: str = APP_OPTION,
    user: str = USER_OPTION,
) -> None:
    """Import a CSV file into a new or an existing table."""
    if bool(table_name) == bool(schema_id):
        console.print("[red]Pass exactly one of --new-table or --schema-id[/red]")
        raise typer.Exit(1)

    content = file_path.read_bytes()
    upload = CSVUpload(content=content, filename=file_path.name, size=len(content))

    with console.status("[bold green]Importing CSV file..."):
        with connect(path, backend) as db:
            result = db.import_csv(prefix, app_id, upload, user,
                                   create_new_table=bool(table_name),
                                   display_name=table_name, schema_id=schema_id)
    data = unwrap(result, "importing CSV")

    console.print("[green]Successfully imported CSV file![/green]")
    console.print(f"[blue]Table: {data['display_name']} ({data['schema_id']})[/blue]")
    console.print(f"[blue]Rows inserted: {data['inserted_records']}[/blue]")
    if data['skipped_rows']:
        console.print(f"[yellow]Rows skipped: {data['skipped_rows']}[/yellow]")
        for error in data['errors']:
            console.print(f"[yellow]  • line {error['index']}: {error['errors']}[/yellow]")


@app.command("export-csv")
def export_csv_cmd(
    schema_id: str = typer.Argument(..., help="Table schema id"),
    output: Optional[Path] = typer.Argument(None, help="Output CSV file path (defaults to the suggested filename)"),
    system_fields: bool = typer.Option(False, "--system-fields", help="Include id and audit columns"),
    path: str = PATH_OPTION,
    backend: str = BACKEND_OPTION,
    prefix: str = PREFIX_OPTION,
    app_id: str = APP_OPTION,
) -> None:
    """Export table records to a CSV file."""
    with connect(path, backend) as db:
        data = unwrap(db.export_csv(prefix, app_id, schema_id,
                                    include_system_fields=system_fields), "exporting CSV")

    target = output or Path(data['filename'])
    target.write_text(data['content'], encoding='utf-8')
    console.print("[green]Successfully exported to CSV![/green]")
    console.print(f"[blue]File: {target}[/blue]")
    console.print(f"[blue]Rows exported: {data['record_count']}[/blue]")


@app.command("serve")
def serve_cmd(
    host: str = typer.Option("127.0.0.1", "--host", "-h", help="Host to bind to"),
    port: int = typer.Option(8000, "--port", help="Port to bind to"),
    reload: bool = typer.Option(False, "--reload", "-r", help="Enable auto-reload for development"),
) -> None:
    """Start the FlexTable API server."""
    from .api_server import start_server
    console.print(f"[green]Starting FlexTable API server on {host}:{port}[/green]")
    if reload:
        console.print("[yellow]Auto-reload enabled (development mode)[/yellow]")
    start_server(host=host, port=port, reload=reload)


@app.command("remote-test")
def remote_test_cmd(
    url: str = typer.Option("http://localhost:8000", "--url", help="API server URL"),
    prefix: str = PREFIX_OPTION,
    app_id: str = APP_OPTION,
) -> None:
    """Test the connection to a FlexTable API server."""
    from .api_client import APIError, connect_remote

    console.print(f"[blue]Testing connection to {url}[/blue]")
    try:
        with connect_remote(url, prefix, app_id) as client:
            types = client.field_types()
            tables = client.list_tables()
    except APIError as e:
        console.print(f"[red]Error connecting to API server: {e}[/red]")
        raise typer.Exit(1)

    console.print(f"[green]✓ Connection successful ({len(types)} field types)[/green]")
    console.print(f"[blue]Tables in {prefix}/{app_id}: {len(tables)}[/blue]")
    for schema in tables:
        console.print(f"  • {schema['display_name']} ({schema['schema_id']})")


if __name__ == "__main__":
    app()
