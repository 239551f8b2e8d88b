"""JSON document persistence for schema snapshots.

Two document shapes are accepted on import: the relational form
``{"tables": [...], "joins": [...]}`` written by this module, and the visual
form ``{"nodes": [...], "edges": [...]}`` where every node carries a table in
``data`` and its position in ``position``. Imports are validated in full before
anything is returned, so a malformed document never reaches the live model.
"""

from __future__ import annotations

from json import JSONDecodeError, dumps, loads
from logging import getLogger
from typing import TYPE_CHECKING, Any, NotRequired, TypedDict, cast

from schema.errors import ImportFormatError
from schema.invariants import check_snapshot
from schema.joins import configured_joins
from schema.types import (
    DATA_TYPE_NAMES,
    JOIN_TYPES,
    REFERENTIAL_ACTIONS,
    ColumnSchema,
    JoinSchema,
    JoinTarget,
    JunctionColumn,
    TableSchema,
)

if TYPE_CHECKING:
    from collections.abc import Mapping
    from pathlib import Path

    from schema.types import Layout, Position, Snapshot

logger = getLogger(__name__)


class SchemaDocument(TypedDict):
    """Relational persistence form of a snapshot."""

    tables: list[TableSchema]
    joins: list[JoinSchema]  # Flattened configured joins, informational
    layout: NotRequired[Layout]


def snapshot_to_document(
    snapshot: Snapshot,
    layout: Layout | None = None,
) -> SchemaDocument:
    """Build the relational document for a snapshot."""
    document: SchemaDocument = {
        "tables": snapshot["tables"],
        "joins": configured_joins(snapshot),
    }
    if layout:
        document["layout"] = layout
    return document


def _require_list(document: Mapping[str, Any], key: str) -> list[Any]:
    value = document.get(key, [])
    if not isinstance(value, list):
        msg = f"Document key '{key}' must be a list"
        raise ImportFormatError(msg)
    return value


def _has_keys(value: Any, schema: type) -> bool:  # noqa: ANN401
    return isinstance(value, dict) and not schema.__required_keys__ - value.keys()


def _check_join(join: Any) -> None:  # noqa: ANN401
    """Check a join entry, its target and its enumerated fields."""
    if not _has_keys(join, JoinSchema):
        msg = f"Malformed join entry: {join!r}"
        raise ImportFormatError(msg)
    target = join["target"]
    if target is not None and not _has_keys(target, JoinTarget):
        msg = f"Join {join['id']} has a malformed target"
        raise ImportFormatError(msg)
    if join["type"] not in JOIN_TYPES:
        msg = f"Join {join['id']} has an unknown type {join['type']!r}"
        raise ImportFormatError(msg)
    for key in ("on_delete", "on_update"):
        if join[key] not in REFERENTIAL_ACTIONS:
            msg = f"Join {join['id']} has an unknown {key} action {join[key]!r}"
            raise ImportFormatError(msg)
    for key in ("join_column", "inverse_column"):
        if join[key] is not None and not _has_keys(join[key], JunctionColumn):
            msg = f"Join {join['id']} has a malformed {key}"
            raise ImportFormatError(msg)


def _check_table(table: Any) -> TableSchema:  # noqa: ANN401
    """Check a table and its columns carry every required key."""
    if not isinstance(table, dict):
        msg = f"Expected a table object, got {type(table).__name__}"
        raise ImportFormatError(msg)
    if missing := TableSchema.__required_keys__ - table.keys():
        msg = f"Table {table.get('id', '?')} is missing {', '.join(sorted(missing))}"
        raise ImportFormatError(msg)
    if not isinstance(table["columns"], list) or not isinstance(table["joins"], list):
        msg = f"Table {table['id']} columns and joins must be lists"
        raise ImportFormatError(msg)
    for column in table["columns"]:
        if not isinstance(column, dict):
            msg = f"Table {table['id']} has a malformed column"
            raise ImportFormatError(msg)
        if missing := ColumnSchema.__required_keys__ - column.keys():
            msg = (
                f"Column {column.get('id', '?')} of table {table['id']} "
                f"is missing {', '.join(sorted(missing))}"
            )
            raise ImportFormatError(msg)
        data_type = column["data_type"]
        if not isinstance(data_type, dict) or data_type.get("type") not in DATA_TYPE_NAMES:
            msg = f"Column {column['id']} of table {table['id']} has a malformed data type"
            raise ImportFormatError(msg)
        if column["foreign_key"] is not None:
            _check_join(column["foreign_key"])
    for join in table["joins"]:
        _check_join(join)
    return cast("TableSchema", table)


def _check_position(position: Any) -> Position:  # noqa: ANN401
    if (
        not isinstance(position, dict)
        or not isinstance(position.get("x"), int | float)
        or not isinstance(position.get("y"), int | float)
    ):
        msg = f"Malformed node position: {position!r}"
        raise ImportFormatError(msg)
    return {"x": position["x"], "y": position["y"]}


def document_to_snapshot(
    document: Any,  # noqa: ANN401
    *,
    validate: bool = True,
) -> tuple[Snapshot, Layout]:
    """Read a persisted document into a validated snapshot and its layout.

    Raises ImportFormatError when the document has neither form, is malformed,
    or, unless validate is off, describes a snapshot that breaks a model
    invariant.
    """
    if not isinstance(document, dict):
        msg = "Document must be a JSON object"
        raise ImportFormatError(msg)

    layout: Layout = {}
    if "tables" in document or "joins" in document:
        tables = [_check_table(table) for table in _require_list(document, "tables")]
        raw_layout = document.get("layout", {})
        if not isinstance(raw_layout, dict):
            msg = "Document key 'layout' must be an object"
            raise ImportFormatError(msg)
        layout = {
            table_id: _check_position(position)
            for table_id, position in raw_layout.items()
        }
    elif "nodes" in document or "edges" in document:
        tables = []
        for node in _require_list(document, "nodes"):
            if not isinstance(node, dict) or "data" not in node:
                msg = "Every node must carry its table in 'data'"
                raise ImportFormatError(msg)
            table = _check_table(node["data"])
            tables.append(table)
            if "position" in node:
                layout[table["id"]] = _check_position(node["position"])
    else:
        msg = "Document has neither 'tables'/'joins' nor 'nodes'/'edges'"
        raise ImportFormatError(msg)

    snapshot: Snapshot = {"tables": tables}
    if validate and (violations := check_snapshot(snapshot)):
        logger.error("Rejected document with %d invariant violations", len(violations))
        msg = f"Document breaks model invariants: {'; '.join(violations)}"
        raise ImportFormatError(msg)

    known = {table["id"] for table in tables}
    return snapshot, {key: pos for key, pos in layout.items() if key in known}


def document_from_json(text: str, *, validate: bool = True) -> tuple[Snapshot, Layout]:
    """Parse JSON text into a validated snapshot and its layout."""
    try:
        document = loads(text)
    except JSONDecodeError as e:
        msg = f"Document is not valid JSON: {e}"
        raise ImportFormatError(msg) from e
    return document_to_snapshot(document, validate=validate)


def document_to_json(snapshot: Snapshot, layout: Layout | None = None) -> str:
    """Serialize a snapshot to relational document JSON."""
    return dumps(snapshot_to_document(snapshot, layout), indent=2)


def load_document(path: Path, *, validate: bool = True) -> tuple[Snapshot, Layout]:
    """Load a document file."""
    logger.debug("Loading document %s", path)
    return document_from_json(path.read_text(encoding="utf-8"), validate=validate)


def save_document(path: Path, snapshot: Snapshot, layout: Layout | None = None) -> None:
    """Write a snapshot, and optionally its layout, to a document file."""
    path.write_text(document_to_json(snapshot, layout), encoding="utf-8")
    logger.debug("Saved %d tables to %s", len(snapshot["tables"]), path)
