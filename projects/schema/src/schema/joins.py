"""Lookups over the joins stored in a snapshot."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import TYPE_CHECKING, NamedTuple

if TYPE_CHECKING:
    from schema.types import ColumnSchema, JoinSchema, Snapshot, TableSchema


class JoinLocation(NamedTuple):
    """Where the owning copy of a join is stored."""

    table_id: str
    column_id: str | None  # Foreign-key column, None while unconfigured
    join: JoinSchema

    @property
    def configured(self) -> bool:
        """Whether a foreign-key column carries the join."""
        return self.column_id is not None


class MirrorLocation(NamedTuple):
    """A mirrored join entry on the referenced table."""

    table_id: str
    join: JoinSchema


def is_self_join(join: JoinSchema) -> bool:
    """Check if both ends of the join are the same table."""
    return join["target"] is not None and join["source"] == join["target"]["table"]


def mirror_of(join: JoinSchema) -> JoinSchema:
    """Copy of the join as kept by the referenced table."""
    return {**join, "target": None}


def tables_by_id(snapshot: Snapshot) -> dict[str, TableSchema]:
    """Index the snapshot's tables by id."""
    return {table["id"]: table for table in snapshot["tables"]}


def find_column(table: TableSchema, column_id: str | None) -> ColumnSchema | None:
    """Find a column of a table by id."""
    return next((col for col in table["columns"] if col["id"] == column_id), None)


def key_column(table: TableSchema) -> ColumnSchema | None:
    """First column usable as a reference target (primary key or unique)."""
    return next(
        (col for col in table["columns"] if col["primary_key"] or col["unique"]),
        None,
    )


def primary_key_column(table: TableSchema) -> ColumnSchema | None:
    """The table's primary key column, if any."""
    return next((col for col in table["columns"] if col["primary_key"]), None)


def iter_owned_joins(tables: Iterable[TableSchema]) -> Iterator[JoinLocation]:
    """Yield the owning copy of every join, configured or not."""
    for table in tables:
        for column in table["columns"]:
            if column["foreign_key"] is not None:
                yield JoinLocation(table["id"], column["id"], column["foreign_key"])
        for join in table["joins"]:
            if join["target"] is not None:
                yield JoinLocation(table["id"], None, join)


def iter_mirrors(tables: Iterable[TableSchema]) -> Iterator[MirrorLocation]:
    """Yield every mirrored join entry."""
    for table in tables:
        for join in table["joins"]:
            if join["target"] is None:
                yield MirrorLocation(table["id"], join)


def locate_join(snapshot: Snapshot, join_id: str) -> JoinLocation | None:
    """Find the owning copy of a join by id."""
    return next(
        (loc for loc in iter_owned_joins(snapshot["tables"]) if loc.join["id"] == join_id),
        None,
    )


def locate_mirrors(snapshot: Snapshot, join_id: str) -> list[MirrorLocation]:
    """Find all mirrored entries of a join."""
    return [m for m in iter_mirrors(snapshot["tables"]) if m.join["id"] == join_id]


def join_endpoints(join: JoinSchema) -> tuple[str, str]:
    """Return the (referencing, referenced) table ids of an owning join."""
    if join["target"] is None:
        msg = f"Join {join['id']} is a mirrored entry without a target"
        raise ValueError(msg)
    return join["source"], join["target"]["table"]


def configured_joins(snapshot: Snapshot) -> list[JoinSchema]:
    """All joins carried by a foreign-key column."""
    return [loc.join for loc in iter_owned_joins(snapshot["tables"]) if loc.configured]


def join_ids(tables: Iterable[TableSchema]) -> set[str]:
    """Every join id present anywhere in the tables."""
    tables = list(tables)
    return {loc.join["id"] for loc in iter_owned_joins(tables)} | {
        m.join["id"] for m in iter_mirrors(tables)
    }


def unique_join_id(base: str, taken: Iterable[str]) -> str:
    """Disambiguate a join id derived from an endpoint pair already in use."""
    existing = set(taken)
    if base not in existing:
        return base
    counter = 2
    while f"{base}#{counter}" in existing:
        counter += 1
    return f"{base}#{counter}"


def strip_join(table: TableSchema, join_id: str) -> TableSchema:
    """Remove every copy of a join from a table, foreign-key column included."""
    columns = [
        col
        for col in table["columns"]
        if col["foreign_key"] is None or col["foreign_key"]["id"] != join_id
    ]
    joins = [join for join in table["joins"] if join["id"] != join_id]
    if len(columns) == len(table["columns"]) and len(joins) == len(table["joins"]):
        return table
    return {**table, "columns": columns, "joins": joins}
