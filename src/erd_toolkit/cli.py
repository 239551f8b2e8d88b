"""Command line interface for ER Toolkit."""

import logging
import sys
from collections.abc import Callable
from json import dumps
from pathlib import Path
from typing import Annotated, Literal

from compiler import make_compiler, reconcile
from cyclopts import App, Parameter
from diagram import Canvas, Settings, graph_to_html, load_settings
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table
from schema import (
    CompilerError,
    ImportFormatError,
    InvalidIntent,
    add_column,
    check_snapshot,
    document_to_json,
    empty_snapshot,
    load_document,
    remove_column,
    rename_table,
    save_document,
)
from schema.defaults import default_data_type
from schema.joins import iter_owned_joins, join_endpoints
from schema.types import (
    ColumnSchema,
    CompilerTarget,
    DataTypeName,
    JoinType,
    ReferentialAction,
    Snapshot,
    TableSchema,
)

app = App(help="ER Toolkit CLI tool")
table_app = App(name="table", help="Add, remove and rename tables.")
column_app = App(name="column", help="Add and remove columns.")
join_app = App(name="join", help="Connect, configure and delete joins.")
app.command(table_app)
app.command(column_app)
app.command(join_app)

type Format = Literal["html", "json"]

console = Console()
err_console = Console(stderr=True)


def print_error(message: str) -> None:
    """Print error message to stderr."""
    err_console.print(f"[bold red]Error:[/] {message}")


def print_success(message: str) -> None:
    """Print success message to stderr."""
    err_console.print(f"[bold green]✓[/] {message}")


def print_info(message: str) -> None:
    """Print info message to stderr."""
    err_console.print(f"[bold blue]i[/] {message}")


def configure_logging(*, verbose: bool) -> None:
    """Send log records to stderr through rich."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def read_settings() -> Settings:
    """Load editor settings from the working directory."""
    try:
        return load_settings()
    except (OSError, ValueError) as e:
        print_error(f"Invalid settings: {e}")
        sys.exit(1)


def open_canvas(document: Path) -> Canvas:
    """Load a document into a canvas."""
    if not document.exists():
        print_error(f"Document does not exist: {document}")
        sys.exit(1)
    try:
        snapshot, layout = load_document(document)
    except (ImportFormatError, OSError) as e:
        print_error(f"Cannot read document {document}: {e}")
        sys.exit(1)
    return Canvas(snapshot=snapshot, layout=layout, settings=read_settings())


def save_canvas(document: Path, canvas: Canvas) -> None:
    """Write the canvas snapshot and layout back to its document."""
    try:
        save_document(document, canvas.snapshot, canvas.layout)
    except OSError as e:
        print_error(f"Cannot write document {document}: {e}")
        sys.exit(1)


def report_notices(canvas: Canvas) -> bool:
    """Print pending session notices and tell whether any was an error."""
    failed = False
    for notice in canvas.session.drain_notices():
        if notice.level == "error":
            print_error(notice.message)
            failed = True
        else:
            print_info(notice.message)
    return failed


def apply_edit(
    document: Path,
    canvas: Canvas,
    edit: Callable[[Snapshot], Snapshot],
    description: str,
) -> None:
    """Apply an edit to a canvas and save it, or exit when it is rejected."""
    if not canvas.apply(edit):
        report_notices(canvas)
        print_error(f"{description} was not applied (run with --verbose for details)")
        sys.exit(1)
    save_canvas(document, canvas)
    print_success(description)


def find_table(snapshot: Snapshot, name: str) -> TableSchema:
    """Look up a table by name, exiting when it does not exist."""
    for table in snapshot["tables"]:
        if table["name"] == name:
            return table
    print_error(f"Unknown table '{name}'")
    sys.exit(1)


def find_column(table: TableSchema, name: str) -> ColumnSchema:
    """Look up a column by name, exiting when it does not exist."""
    for column in table["columns"]:
        if column["name"] == name:
            return column
    print_error(f"Unknown column '{name}' in table '{table['name']}'")
    sys.exit(1)


def find_join(snapshot: Snapshot, source: str, target: str) -> str:
    """Find the id of the one join between two tables, in either direction."""
    endpoints = {find_table(snapshot, source)["id"], find_table(snapshot, target)["id"]}
    matches = [
        location.join["id"]
        for location in iter_owned_joins(snapshot["tables"])
        if set(join_endpoints(location.join)) == endpoints
    ]
    if not matches:
        print_error(f"No join between '{source}' and '{target}'")
        sys.exit(1)
    if len(matches) > 1:
        print_error(f"Several joins between '{source}' and '{target}': {', '.join(matches)}")
        sys.exit(1)
    return matches[0]


def format_snapshot_table(snapshot: Snapshot) -> None:
    """Format the tables of a snapshot as a rich table."""
    if not snapshot["tables"]:
        console.print("The document has no tables.")
        return

    names = {table["id"]: table["name"] for table in snapshot["tables"]}
    table = Table(title="Tables")
    table.add_column("Table", style="bold cyan")
    table.add_column("Primary Key", style="bold yellow")
    table.add_column("Columns")
    table.add_column("Joins")

    for entry in snapshot["tables"]:
        primary_key = next(
            (col["name"] for col in entry["columns"] if col["primary_key"]),
            "",
        )
        joins = [
            f"{names.get(source, source)} -> {names.get(target, target)} ({join['type']})"
            for join in (location.join for location in iter_owned_joins([entry]))
            for source, target in [join_endpoints(join)]
        ]
        table.add_row(
            entry["name"],
            primary_key,
            ", ".join(col["name"] for col in entry["columns"]),
            "\n".join(joins),
        )

    console.print(table)


@app.meta.default
def launcher(
    *tokens: Annotated[str, Parameter(show=False, allow_leading_hyphen=True)],
    verbose: bool = False,
) -> None:
    """Configure logging, then run the requested command.

    Parameters
    ----------
    verbose
        Log every edit decision to stderr.
    """
    configure_logging(verbose=verbose)
    app(tokens)


@app.command
def new(document: Path, *, force: bool = False) -> None:
    """Create an empty schema document."""
    if document.exists() and not force:
        print_error(f"Document already exists: {document}")
        sys.exit(1)
    save_canvas(document, Canvas(snapshot=empty_snapshot()))
    print_success(f"Created {document}")


@table_app.command(name="add")
def add_table(document: Path, name: str) -> None:
    """Add a table seeded with a primary key column."""
    canvas = open_canvas(document)
    if canvas.add_table(name) is None:
        print_error(f"Table '{name}' was not added")
        sys.exit(1)
    save_canvas(document, canvas)
    print_success(f"Added table '{name}'")


@table_app.command(name="remove")
def remove_table(document: Path, name: str) -> None:
    """Remove a table and every join it takes part in."""
    canvas = open_canvas(document)
    table = find_table(canvas.snapshot, name)
    if not canvas.remove_table(table["id"]):
        print_error(f"Table '{name}' was not removed")
        sys.exit(1)
    save_canvas(document, canvas)
    print_success(f"Removed table '{name}'")


@table_app.command(name="rename")
def rename(document: Path, name: str, new_name: str) -> None:
    """Rename a table."""
    canvas = open_canvas(document)
    table_id = find_table(canvas.snapshot, name)["id"]
    apply_edit(
        document,
        canvas,
        lambda snapshot: rename_table(snapshot, table_id, new_name),
        f"Renamed table '{name}' to '{new_name}'",
    )


@table_app.command(name="copy")
def copy_table(document: Path, name: str) -> None:
    """Duplicate a table without its relationships."""
    canvas = open_canvas(document)
    copy_id = canvas.copy_table(find_table(canvas.snapshot, name)["id"])
    if copy_id is None:
        print_error(f"Table '{name}' was not copied")
        sys.exit(1)
    save_canvas(document, canvas)
    copy = next(t for t in canvas.snapshot["tables"] if t["id"] == copy_id)
    print_success(f"Copied table '{name}' to '{copy['name']}'")


@column_app.command(name="add")
def add(  # noqa: PLR0913
    document: Path,
    table: str,
    name: str,
    data_type: DataTypeName = "string",
    *,
    primary_key: bool = False,
    unique: bool = False,
    nullable: bool = False,
    index: bool = False,
) -> None:
    """Add a column to a table."""
    canvas = open_canvas(document)
    table_id = find_table(canvas.snapshot, table)["id"]
    apply_edit(
        document,
        canvas,
        lambda snapshot: add_column(
            snapshot,
            table_id,
            name=name,
            data_type=default_data_type(data_type),
            primary_key=primary_key,
            unique=unique,
            nullable=nullable,
            index=index,
        )[0],
        f"Added column '{table}.{name}'",
    )


@column_app.command(name="remove")
def remove(document: Path, table: str, name: str) -> None:
    """Remove a column and the joins that carry or reference it."""
    canvas = open_canvas(document)
    entry = find_table(canvas.snapshot, table)
    column_id = find_column(entry, name)["id"]
    apply_edit(
        document,
        canvas,
        lambda snapshot: remove_column(snapshot, entry["id"], column_id),
        f"Removed column '{table}.{name}'",
    )


@join_app.command(name="connect")
def connect(
    document: Path,
    source: str,
    target: str,
    *,
    column: str | None = None,
) -> None:
    """Start an unconfigured join from one table to another."""
    canvas = open_canvas(document)
    source_table = find_table(canvas.snapshot, source)
    target_table = find_table(canvas.snapshot, target)
    target_column = find_column(target_table, column)["id"] if column else None
    connected = canvas.handle(
        {
            "kind": "connect",
            "source": source_table["id"],
            "target": target_table["id"],
            "target_column": target_column,
        },
    )
    if not connected:
        print_error(f"'{source}' was not connected to '{target}'")
        sys.exit(1)
    save_canvas(document, canvas)
    print_success(f"Connected '{source}' to '{target}'")


@join_app.command(name="configure")
def configure(  # noqa: PLR0913
    document: Path,
    source: str,
    target: str,
    join_type: JoinType = "one-to-one",
    *,
    on_delete: ReferentialAction | None = None,
    on_update: ReferentialAction | None = None,
    through: str | None = None,
) -> None:
    """Configure the join between two tables, creating its foreign key."""
    canvas = open_canvas(document)
    identity = find_join(canvas.snapshot, source, target)
    if not canvas.handle({"kind": "select", "edge_id": identity}):
        print_error(f"Join {identity} cannot be selected")
        sys.exit(1)
    try:
        canvas.session.stage_join(type=join_type)
        if on_delete is not None:
            canvas.session.stage_join(on_delete=on_delete)
        if on_update is not None:
            canvas.session.stage_join(on_update=on_update)
        if through is not None:
            canvas.session.stage_join(through=through)
    except InvalidIntent as e:
        print_error(str(e))
        sys.exit(1)

    committed = canvas.commit_join()
    if report_notices(canvas) or not committed:
        print_error(f"Join between '{source}' and '{target}' was not configured")
        sys.exit(1)
    save_canvas(document, canvas)
    print_success(f"Configured {join_type} join between '{source}' and '{target}'")


@join_app.command(name="delete")
def delete(document: Path, source: str, target: str) -> None:
    """Delete the join between two tables."""
    canvas = open_canvas(document)
    identity = find_join(canvas.snapshot, source, target)
    if not canvas.handle({"kind": "disconnect", "edge_id": identity}):
        print_error(f"Join between '{source}' and '{target}' was not deleted")
        sys.exit(1)
    save_canvas(document, canvas)
    print_success(f"Deleted join between '{source}' and '{target}'")


@app.command
def check(document: Path) -> None:
    """Print the tables of a document and any invariant violations."""
    if not document.exists():
        print_error(f"Document does not exist: {document}")
        sys.exit(1)
    try:
        snapshot, _ = load_document(document, validate=False)
    except (ImportFormatError, OSError) as e:
        print_error(str(e))
        sys.exit(1)

    format_snapshot_table(snapshot)
    if violations := check_snapshot(snapshot):
        for violation in violations:
            print_error(violation)
        sys.exit(1)
    print_success("Document is consistent")


@app.command
def compile(  # noqa: A001
    document: Path,
    *,
    base_class: str | None = None,
    target: CompilerTarget | None = None,
) -> None:
    """Generate SQLAlchemy models or MongoDB collections from a document.

    Parameters
    ----------
    document
        Schema document to compile.
    base_class
        Declarative base class name, overriding the settings.
    target
        Source format to generate, overriding the settings.
    """
    canvas = open_canvas(document)
    compiler = make_compiler(
        target or canvas.settings["target"],
        base_class=base_class or canvas.settings["base_class"],
    )
    print_info(f"Document: {document}")

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=err_console,
    ) as progress:
        progress.add_task("Generating models...", total=None)
        try:
            source = compiler.serialize(canvas.snapshot)
        except CompilerError as e:
            print_error(str(e))
            sys.exit(1)

    sys.stdout.write(source)
    print_success("Model generation completed successfully")


@app.command
def parse(
    source: Path,
    *,
    document: Path | None = None,
    target: CompilerTarget | None = None,
) -> None:
    """Read SQLAlchemy models or MongoDB collections back into a document.

    With a document, table, column and join identities and table positions are
    carried over from it. The source format comes from ``target``, falling
    back to the settings.
    """
    if not source.exists():
        print_error(f"Source file does not exist: {source}")
        sys.exit(1)
    previous, layout = empty_snapshot(), {}
    if document is not None:
        canvas = open_canvas(document)
        previous, layout = canvas.snapshot, canvas.layout
    print_info(f"Source: {source}")

    compiler = make_compiler(target or read_settings()["target"])
    try:
        parsed = compiler.parse(source.read_text())
    except CompilerError as e:
        print_error(str(e))
        sys.exit(1)

    snapshot, positions = reconcile(previous, parsed, layout)
    sys.stdout.write(document_to_json(snapshot, positions))
    print_success(f"Parsed {len(snapshot['tables'])} tables")


@app.command
def diagram(document: Path, fmt: Format = "html") -> None:
    """Render a document as a diagram."""
    canvas = open_canvas(document)
    if fmt == "json":
        sys.stdout.write(dumps(canvas.graph, indent=2))
        return
    sys.stdout.write(graph_to_html(canvas.graph, title=document.stem))
    print_success("Diagram generated successfully")


def main() -> None:
    """Entry point for the CLI."""
    app.meta()


if __name__ == "__main__":
    main()
