"""Pure edit operations over schema snapshots.

Every function takes a snapshot and returns a new one without touching its
input. An edit that refers to something missing raises InvalidIntent, and
compound edits (table deletion, join configuration, junction synthesis) are
built completely before the new snapshot is returned.
"""

from __future__ import annotations

from collections import Counter
from logging import getLogger
from typing import TYPE_CHECKING, Literal, TypedDict, Unpack

from schema.defaults import (
    ColumnOverrides,
    join_id,
    make_default_column,
    make_default_table,
    make_join,
    new_id,
)
from schema.errors import InvalidIntent, InvariantViolation
from schema.invariants import normalize_column
from schema.joins import (
    find_column,
    join_endpoints,
    key_column,
    locate_join,
    locate_mirrors,
    mirror_of,
    strip_join,
    tables_by_id,
)
from schema.junction import synthesize_junction
from schema.naming import foreign_key_names, stored_name, unique_name

if TYPE_CHECKING:
    from schema.types import (
        ColumnSchema,
        JoinSchema,
        JoinTarget,
        JoinType,
        JunctionColumn,
        ReferentialAction,
        Snapshot,
        TableSchema,
    )

logger = getLogger(__name__)

type PrimaryKeyType = Literal["uuid", "number"]


class TableFields(TypedDict, total=False):
    """Table fields that can be replaced in place."""

    name: str
    storage_name: str
    description: str


class JoinSettings(TypedDict, total=False):
    """Requested configuration of a join."""

    target: JoinTarget | None
    type: JoinType
    on_delete: ReferentialAction
    on_update: ReferentialAction
    through: str | None
    join_column: JunctionColumn | None
    inverse_column: JunctionColumn | None


def empty_snapshot() -> Snapshot:
    """A snapshot without tables."""
    return {"tables": []}


def get_table(snapshot: Snapshot, table_id: str) -> TableSchema:
    """Look up a table, raising InvalidIntent when it does not exist."""
    for table in snapshot["tables"]:
        if table["id"] == table_id:
            return table
    msg = f"Unknown table: {table_id}"
    raise InvalidIntent(msg)


def _replace(snapshot: Snapshot, *updated: TableSchema) -> Snapshot:
    """Swap in updated tables by id, keeping order."""
    by_id = {table["id"]: table for table in updated}
    return {"tables": [by_id.get(table["id"], table) for table in snapshot["tables"]]}


def _prune_dangling(tables: list[TableSchema]) -> list[TableSchema]:
    """Drop every join whose endpoints no longer exist.

    Foreign-key columns lose their join together with the column, unconfigured
    joins pointing at a removed column forget the column, and mirrors whose
    owning copy is gone are removed.
    """
    by_id = {table["id"]: table for table in tables}
    live: set[str] = set()
    pruned: list[TableSchema] = []

    for table in tables:
        columns: list[ColumnSchema] = []
        for column in table["columns"]:
            join = column["foreign_key"]
            if join is not None:
                target = join["target"]
                target_table = by_id.get(target["table"]) if target else None
                if target is None or target_table is None or (
                    find_column(target_table, target["column"]) is None
                ):
                    logger.debug(
                        "Dropping foreign key %s.%s of removed join %s",
                        table["name"],
                        column["name"],
                        join["id"],
                    )
                    continue
                live.add(join["id"])
            columns.append(column)

        joins: list[JoinSchema] = []
        for join in table["joins"]:
            target = join["target"]
            if target is not None:
                target_table = by_id.get(target["table"])
                if target_table is None:
                    continue
                if find_column(target_table, target["column"]) is None:
                    join = {**join, "target": {**target, "column": None}}  # noqa: PLW2901
                live.add(join["id"])
            joins.append(join)
        pruned.append({**table, "columns": columns, "joins": joins})

    return [
        {
            **table,
            "joins": [
                join
                for join in table["joins"]
                if join["target"] is not None or join["id"] in live
            ],
        }
        for table in pruned
    ]


def create_table(
    snapshot: Snapshot,
    name: str,
    *,
    primary_key_type: PrimaryKeyType = "uuid",
) -> tuple[Snapshot, TableSchema]:
    """Append a new table seeded with a primary key column."""
    table = make_default_table(new_id(), name, primary_key_type)
    logger.debug("Created table %s (%s)", name, table["id"])
    return {"tables": [*snapshot["tables"], table]}, table


def delete_table(snapshot: Snapshot, table_id: str) -> Snapshot:
    """Remove a table and every join it takes part in."""
    table = get_table(snapshot, table_id)
    remaining = [t for t in snapshot["tables"] if t["id"] != table_id]
    logger.debug("Deleted table %s (%s)", table["name"], table_id)
    return {"tables": _prune_dangling(remaining)}


def duplicate_table(snapshot: Snapshot, table_id: str) -> tuple[Snapshot, TableSchema]:
    """Copy a table under fresh ids, leaving its relationships behind."""
    table = get_table(snapshot, table_id)
    copy_id = new_id()
    columns: list[ColumnSchema] = [
        {**column, "id": new_id(), "table_id": copy_id}
        for column in table["columns"]
        if column["foreign_key"] is None
    ]
    primary_key = next((col["id"] for col in columns if col["primary_key"]), None)
    stored = [stored_name(t) for t in snapshot["tables"]]
    name = unique_name(
        f"{table['name']}_copy",
        [*(t["name"] for t in snapshot["tables"]), *stored],
    )
    storage_name = table["storage_name"]
    if storage_name:
        storage_name = unique_name(f"{storage_name}_copy", [*stored, name])
    copy: TableSchema = {
        **table,
        "id": copy_id,
        "name": name,
        "storage_name": storage_name,
        "primary_key_column_id": primary_key,
        "columns": columns,
        "joins": [],
    }
    return {"tables": [*snapshot["tables"], copy]}, copy


def replace_columns(
    snapshot: Snapshot,
    table_id: str,
    columns: list[ColumnSchema],
) -> Snapshot:
    """Replace a table's columns wholesale.

    Joins carried by dropped foreign-key columns, and joins referencing dropped
    columns, are removed in the same step.
    """
    table = get_table(snapshot, table_id)
    normalized = [normalize_column({**col, "table_id": table_id}) for col in columns]
    primary_keys = [col for col in normalized if col["primary_key"]]
    if normalized and len(primary_keys) != 1:
        msg = f"Table {table['name']} needs exactly one primary key column"
        raise InvalidIntent(msg)

    updated: TableSchema = {
        **table,
        "columns": normalized,
        "primary_key_column_id": primary_keys[0]["id"] if primary_keys else None,
    }
    return {"tables": _prune_dangling(_replace(snapshot, updated)["tables"])}


def replace_table_fields(
    snapshot: Snapshot,
    table_id: str,
    fields: TableFields,
) -> Snapshot:
    """Replace plain table fields such as the name."""
    table = get_table(snapshot, table_id)
    return _replace(snapshot, {**table, **fields})


def rename_table(snapshot: Snapshot, table_id: str, name: str) -> Snapshot:
    """Give a table a new name."""
    return replace_table_fields(snapshot, table_id, {"name": name})


def _with_primary_key(columns: list[ColumnSchema], key_id: str) -> list[ColumnSchema]:
    """Clear the primary key flag on every column but one."""
    return [
        col
        if col["id"] == key_id
        else {**col, "primary_key": False, "auto_increment": False}
        for col in columns
    ]


def add_column(
    snapshot: Snapshot,
    table_id: str,
    **overrides: Unpack[ColumnOverrides],
) -> tuple[Snapshot, ColumnSchema]:
    """Append a column built from the default column."""
    table = get_table(snapshot, table_id)
    overrides.pop("foreign_key", None)
    column = normalize_column(make_default_column(table_id, **overrides))
    columns = [*table["columns"], column]
    if column["primary_key"]:
        columns = _with_primary_key(columns, column["id"])
    return replace_columns(snapshot, table_id, columns), column


def update_column(snapshot: Snapshot, column: ColumnSchema) -> Snapshot:
    """Replace a column by id within its owning table.

    Turning a column into the primary key clears the flag on every other column
    of the table in the same step. The foreign key a column carries is only
    changed through join configuration.
    """
    table = get_table(snapshot, column["table_id"])
    existing = find_column(table, column["id"])
    if existing is None:
        msg = f"Unknown column {column['id']} in table {table['name']}"
        raise InvalidIntent(msg)

    column = normalize_column({**column, "foreign_key": existing["foreign_key"]})
    if existing["primary_key"] and not column["primary_key"]:
        msg = f"Table {table['name']} must keep a primary key column"
        raise InvalidIntent(msg)

    columns = [column if col["id"] == column["id"] else col for col in table["columns"]]
    if column["primary_key"]:
        columns = _with_primary_key(columns, column["id"])
    return replace_columns(snapshot, table["id"], columns)


def remove_column(snapshot: Snapshot, table_id: str, column_id: str) -> Snapshot:
    """Remove a column along with the joins that carry or reference it."""
    table = get_table(snapshot, table_id)
    column = find_column(table, column_id)
    if column is None:
        msg = f"Unknown column {column_id} in table {table['name']}"
        raise InvalidIntent(msg)
    if column["primary_key"]:
        msg = f"Cannot remove the primary key column of {table['name']}"
        raise InvalidIntent(msg)
    columns = [col for col in table["columns"] if col["id"] != column_id]
    return replace_columns(snapshot, table_id, columns)


def connect(
    snapshot: Snapshot,
    source_table_id: str,
    target_table_id: str,
    target_column_id: str | None = None,
) -> tuple[Snapshot, JoinSchema]:
    """Start an unconfigured one-to-one join between two tables.

    The target column defaults to the first primary key or unique column of the
    target table. Connecting an already connected ordered pair returns the
    existing join unchanged.
    """
    source = get_table(snapshot, source_table_id)
    target = get_table(snapshot, target_table_id)

    if existing := locate_join(snapshot, join_id(source_table_id, target_table_id)):
        return snapshot, existing.join

    if target_column_id is not None:
        column = find_column(target, target_column_id)
        if column is None:
            msg = f"Unknown column {target_column_id} in table {target['name']}"
            raise InvalidIntent(msg)
    else:
        column = key_column(target)

    join = make_join(
        source_table_id,
        {"table": target_table_id, "column": column["id"] if column else None},
    )
    source = {**source, "joins": [*source["joins"], join]}
    if source_table_id == target_table_id:
        logger.debug("Connected table %s to itself", source["name"])
        return _replace(snapshot, source), join

    target = {**target, "joins": [*target["joins"], mirror_of(join)]}
    logger.debug("Connected table %s to %s", source["name"], target["name"])
    return _replace(snapshot, source, target), join


def _orientation(
    join: JoinSchema,
    join_type: JoinType,
    target: JoinTarget | None,
    *,
    configured: bool,
) -> tuple[str, str, str | None]:
    """Decide (referencing table, referenced table, referenced column) ids."""
    first, second = join_endpoints(join)
    if target is not None:
        if target["table"] not in (first, second):
            msg = f"Table {target['table']} is not an endpoint of join {join['id']}"
            raise InvalidIntent(msg)
        referencing = first if target["table"] == second else second
        return referencing, target["table"], target["column"]
    if join_type == "one-to-many" and not configured:
        # The "many" end holds the foreign key
        return second, first, None
    current = join["target"]
    return first, second, current["column"] if current else None


def _foreign_key_column(
    table: TableSchema,
    referenced_table: TableSchema,
    referenced_column: ColumnSchema,
    join: JoinSchema,
    column_id: str | None,
) -> ColumnSchema:
    """New foreign-key column named after the referenced table."""
    name, storage_name = foreign_key_names(referenced_table["name"] or referenced_table["id"])
    return make_default_column(
        table["id"],
        id=column_id or new_id(),
        name=unique_name(name, (col["name"] for col in table["columns"])),
        storage_name=unique_name(
            storage_name,
            (stored_name(col) for col in table["columns"]),
        ),
        data_type=referenced_column["data_type"].copy(),
        foreign_key=join,
    )


def configure_join(
    snapshot: Snapshot,
    identity: str,
    settings: JoinSettings,
    *,
    primary_key_type: PrimaryKeyType = "uuid",
) -> Snapshot:
    """Apply settings to a join, creating or retyping its foreign-key column.

    Many-to-many joins are handed to junction synthesis instead. A join that
    already has a foreign-key column reuses it rather than adding another one.
    """
    location = locate_join(snapshot, identity)
    if location is None:
        msg = f"Unknown join: {identity}"
        raise InvalidIntent(msg)

    current = location.join
    merged: JoinSchema = {**current, **settings, "target": current["target"]}
    explicit_target = settings.get("target")

    if merged["type"] == "many-to-many":
        return synthesize_junction(
            snapshot,
            location,
            merged,
            explicit_target,
            primary_key_type=primary_key_type,
        )

    referencing_id, referenced_id, column_id = _orientation(
        current,
        merged["type"],
        explicit_target,
        configured=location.configured,
    )
    tables = tables_by_id(snapshot)
    referenced = tables.get(referenced_id)
    if referenced is None:
        msg = f"Join {identity} targets a missing table {referenced_id}"
        raise InvalidIntent(msg)
    if column_id is not None:
        referenced_column = find_column(referenced, column_id)
        if referenced_column is None:
            msg = f"Unknown column {column_id} in table {referenced['name']}"
            raise InvalidIntent(msg)
    else:
        referenced_column = key_column(referenced)
        if referenced_column is None:
            msg = f"Table {referenced['name']} has no key column to reference"
            raise InvalidIntent(msg)

    join: JoinSchema = {
        **merged,
        "source": referencing_id,
        "target": {"table": referenced_id, "column": referenced_column["id"]},
        "through": None,
        "join_column": None,
        "inverse_column": None,
    }
    reuse_in_place = location.configured and location.table_id == referencing_id

    updated: list[TableSchema] = []
    for table in snapshot["tables"]:
        columns: list[ColumnSchema] = []
        for column in table["columns"]:
            carried = column["foreign_key"]
            if carried is not None and carried["id"] == identity:
                if not reuse_in_place:
                    continue
                column = normalize_column(  # noqa: PLW2901
                    {
                        **column,
                        "data_type": referenced_column["data_type"].copy(),
                        "foreign_key": join,
                    },
                )
            columns.append(column)

        if table["id"] == referencing_id and not reuse_in_place:
            columns.append(
                _foreign_key_column(
                    {**table, "columns": columns},
                    referenced,
                    referenced_column,
                    join,
                    location.column_id,
                ),
            )

        joins = [entry for entry in table["joins"] if entry["id"] != identity]
        if table["id"] == referenced_id and referenced_id != referencing_id:
            joins.append(mirror_of(join))
        updated.append({**table, "columns": columns, "joins": joins})

    logger.debug(
        "Configured join %s as %s from %s to %s",
        identity,
        join["type"],
        referencing_id,
        referenced_id,
    )
    return {"tables": updated}


def delete_join(snapshot: Snapshot, identity: str) -> Snapshot:
    """Remove a join: its foreign-key column, unconfigured entry and mirror."""
    location = locate_join(snapshot, identity)
    if location is None:
        if locate_mirrors(snapshot, identity):
            msg = f"Join {identity} is mirrored without an owning side"
            raise InvariantViolation([msg])
        msg = f"Unknown join: {identity}"
        raise InvalidIntent(msg)

    logger.debug("Deleted join %s", identity)
    return {"tables": [strip_join(table, identity) for table in snapshot["tables"]]}


def find_duplicate_table_names(snapshot: Snapshot) -> list[str]:
    """Names used by more than one table, in first-seen order."""
    counts = Counter(table["name"] for table in snapshot["tables"] if table["name"])
    return [name for name, count in counts.items() if count > 1]


def find_duplicate_column_names(table: TableSchema) -> list[str]:
    """Column names used more than once within a table."""
    counts = Counter(col["name"] for col in table["columns"])
    return [name for name, count in counts.items() if count > 1]

