"""Model invariants and the column normalisation that upholds them."""

from __future__ import annotations

from collections import Counter, defaultdict
from typing import TYPE_CHECKING

from schema.errors import InvariantViolation
from schema.joins import find_column, iter_mirrors, iter_owned_joins, tables_by_id

if TYPE_CHECKING:
    from schema.types import ColumnSchema, JoinSchema, Snapshot, TableSchema

# Fields that the owning copy and the mirror of a join must agree on
MIRRORED_FIELDS = ("on_delete", "on_update", "through", "type")


def normalize_column(column: ColumnSchema) -> ColumnSchema:
    """Return the column with flag combinations that break invariants fixed."""
    primary_key = column["primary_key"] and column["foreign_key"] is None
    auto_increment = (
        column["auto_increment"] and primary_key and column["data_type"]["type"] == "number"
    )
    nullable = column["nullable"] and not column["unique"] and not primary_key
    return {
        **column,
        "primary_key": primary_key,
        "auto_increment": auto_increment,
        "nullable": nullable,
    }


def _check_columns(table: TableSchema) -> list[str]:
    """Column level invariants for a single table."""
    violations: list[str] = []
    name = table["name"] or table["id"]
    primary_keys = [col for col in table["columns"] if col["primary_key"]]

    if table["columns"] and len(primary_keys) != 1:
        violations.append(
            f"Table {name} has {len(primary_keys)} primary key columns, expected 1",
        )
    if len(primary_keys) == 1 and primary_keys[0]["id"] != table["primary_key_column_id"]:
        violations.append(f"Table {name} primary key id does not match its column")

    for column in table["columns"]:
        label = f"{name}.{column['name'] or column['id']}"
        if column["table_id"] != table["id"]:
            violations.append(f"Column {label} belongs to {column['table_id']}")
        if column["auto_increment"] and not (
            column["primary_key"] and column["data_type"]["type"] == "number"
        ):
            violations.append(f"Column {label} auto increments without a number key")
        if column["unique"] and column["nullable"]:
            violations.append(f"Column {label} is unique and nullable")
        if column["primary_key"] and column["nullable"]:
            violations.append(f"Column {label} is a nullable primary key")

    duplicates = Counter(col["id"] for col in table["columns"])
    violations.extend(
        f"Column id {column_id} repeats in table {name}"
        for column_id, count in duplicates.items()
        if count > 1
    )
    return violations


def _check_joins(snapshot: Snapshot) -> list[str]:
    """Join level invariants across the whole snapshot."""
    violations: list[str] = []
    tables = tables_by_id(snapshot)
    owners: dict[str, JoinSchema] = {}

    for location in iter_owned_joins(snapshot["tables"]):
        join = location.join
        if join["id"] in owners:
            violations.append(f"Join {join['id']} is owned more than once")
        owners[join["id"]] = join
        if join["source"] != location.table_id:
            violations.append(f"Join {join['id']} is stored away from its source")

        target = join["target"]
        if target is None:
            continue
        target_table = tables.get(target["table"])
        if target_table is None:
            violations.append(f"Join {join['id']} targets a missing table")
        elif location.configured and find_column(target_table, target["column"]) is None:
            violations.append(f"Join {join['id']} targets a missing column")
        if location.configured and join["type"] == "many-to-many":
            violations.append(f"Join {join['id']} is a many-to-many foreign key")

    mirrors: dict[str, list[str]] = defaultdict(list)
    for mirror in iter_mirrors(snapshot["tables"]):
        join = mirror.join
        mirrors[join["id"]].append(mirror.table_id)
        owner = owners.get(join["id"])
        if owner is None:
            violations.append(f"Join {join['id']} is mirrored without an owner")
            continue
        if owner["target"] and owner["target"]["table"] != mirror.table_id:
            violations.append(f"Join {join['id']} is mirrored on the wrong table")
        violations.extend(
            f"Join {join['id']} disagrees with its mirror on {field}"
            for field in MIRRORED_FIELDS
            if owner[field] != join[field]
        )

    for identity, table_ids in mirrors.items():
        if len(table_ids) > 1:
            violations.append(f"Join {identity} is mirrored {len(table_ids)} times")

    return violations


def check_snapshot(snapshot: Snapshot) -> list[str]:
    """Collect every invariant violation in the snapshot."""
    violations: list[str] = []
    seen = Counter(table["id"] for table in snapshot["tables"])
    violations.extend(
        f"Table id {table_id} repeats" for table_id, count in seen.items() if count > 1
    )
    for table in snapshot["tables"]:
        violations.extend(_check_columns(table))
    violations.extend(_check_joins(snapshot))
    return violations


def assert_consistent(snapshot: Snapshot) -> None:
    """Raise if the snapshot breaks any invariant."""
    if violations := check_snapshot(snapshot):
        raise InvariantViolation(violations)
