"""Carry identities and layout across a serialize then parse cycle.

Generated source has no room for ids, so a parsed snapshot arrives with fresh
ones. Tables and columns are matched to the previous snapshot by name, joins by
their endpoint pair, and the previous ids are put back wherever a match exists.
"""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from schema.defaults import join_id
from schema.joins import (
    find_column,
    iter_owned_joins,
    join_ids,
    mirror_of,
    tables_by_id,
    unique_join_id,
)

if TYPE_CHECKING:
    from schema.types import (
        ColumnSchema,
        JoinSchema,
        Layout,
        Position,
        Snapshot,
        TableSchema,
    )

logger = getLogger(__name__)


def offset_position(index: int) -> Position:
    """Position for a table the previous layout does not know."""
    return {"x": (index + 1) * 10, "y": (index + 1) * 10}


def _match_tables(previous: Snapshot, parsed: Snapshot) -> dict[str, str]:
    """Map parsed table ids to previous ids by table name."""
    unmatched: dict[str, list[str]] = {}
    for table in previous["tables"]:
        unmatched.setdefault(table["name"], []).append(table["id"])
    return {
        table["id"]: (
            unmatched[table["name"]].pop(0) if unmatched.get(table["name"]) else table["id"]
        )
        for table in parsed["tables"]
    }


def _match_columns(
    previous: TableSchema | None,
    parsed: TableSchema,
) -> dict[str, str]:
    """Map parsed column ids to previous ids by column name."""
    unmatched: dict[str, list[str]] = {}
    for column in previous["columns"] if previous else []:
        unmatched.setdefault(column["name"], []).append(column["id"])
    return {
        column["id"]: (
            unmatched[column["name"]].pop(0)
            if unmatched.get(column["name"])
            else column["id"]
        )
        for column in parsed["columns"]
    }


def _match_joins(
    previous: Snapshot,
    parsed: Snapshot,
    table_ids: dict[str, str],
) -> dict[str, str]:
    """Map parsed join ids to previous ids of joins between the same tables."""
    unmatched: dict[tuple[str, str], list[str]] = {}
    for location in iter_owned_joins(previous["tables"]):
        if location.configured and location.join["target"] is not None:
            pair = (location.join["source"], location.join["target"]["table"])
            unmatched.setdefault(pair, []).append(location.join["id"])

    mapping: dict[str, str] = {}
    for location in iter_owned_joins(parsed["tables"]):
        join = location.join
        if join["target"] is None:
            continue
        pair = (table_ids[join["source"]], table_ids[join["target"]["table"]])
        if candidates := unmatched.get(pair):
            mapping[join["id"]] = candidates.pop(0)
    for location in iter_owned_joins(parsed["tables"]):
        join = location.join
        if join["id"] in mapping or join["target"] is None:
            continue
        pair = (table_ids[join["source"]], table_ids[join["target"]["table"]])
        mapping[join["id"]] = unique_join_id(join_id(*pair), mapping.values())
    return mapping


def _remap_join(
    join: JoinSchema,
    table_ids: dict[str, str],
    column_ids: dict[str, str],
    identities: dict[str, str],
) -> JoinSchema:
    """Rewrite the ids a join refers to."""
    target = join["target"]
    return {
        **join,
        "id": identities.get(join["id"], join["id"]),
        "source": table_ids[join["source"]],
        "target": None
        if target is None
        else {
            "table": table_ids[target["table"]],
            "column": column_ids.get(target["column"], target["column"])
            if target["column"]
            else None,
        },
    }


def _pending_joins(previous: Snapshot, tables: list[TableSchema]) -> list[TableSchema]:
    """Keep joins that were never configured, and so never reached the source."""
    by_id = tables_by_id({"tables": tables})
    taken = join_ids(tables)
    kept: dict[str, list[JoinSchema]] = {}
    for location in iter_owned_joins(previous["tables"]):
        join = location.join
        target = join["target"]
        if location.configured or target is None or join["id"] in taken:
            continue
        if join["source"] not in by_id or target["table"] not in by_id:
            continue
        if find_column(by_id[target["table"]], target["column"]) is None:
            join = {**join, "target": {**target, "column": None}}
        kept.setdefault(location.table_id, []).append(join)
        if join["source"] != target["table"]:
            kept.setdefault(target["table"], []).append(mirror_of(join))
    return [
        {**table, "joins": [*table["joins"], *kept.get(table["id"], [])]}
        for table in tables
    ]


def reconcile(
    previous: Snapshot,
    parsed: Snapshot,
    layout: Layout,
) -> tuple[Snapshot, Layout]:
    """Give a parsed snapshot the ids and positions of the previous one.

    Tables the previous layout has no position for are staggered by index.
    """
    table_ids = _match_tables(previous, parsed)
    previous_tables = tables_by_id(previous)
    column_ids: dict[str, str] = {}
    for table in parsed["tables"]:
        column_ids |= _match_columns(previous_tables.get(table_ids[table["id"]]), table)
    identities = _match_joins(previous, parsed, table_ids)

    def remap_column(column: ColumnSchema) -> ColumnSchema:
        foreign_key = column["foreign_key"]
        return {
            **column,
            "id": column_ids[column["id"]],
            "table_id": table_ids[column["table_id"]],
            "foreign_key": None
            if foreign_key is None
            else _remap_join(foreign_key, table_ids, column_ids, identities),
        }

    tables: list[TableSchema] = [
        {
            **table,
            "id": table_ids[table["id"]],
            "primary_key_column_id": column_ids.get(
                table["primary_key_column_id"] or "",
                table["primary_key_column_id"],
            ),
            "columns": [remap_column(column) for column in table["columns"]],
            "joins": [
                _remap_join(join, table_ids, column_ids, identities)
                for join in table["joins"]
            ],
        }
        for table in parsed["tables"]
    ]
    tables = _pending_joins(previous, tables)

    positions: Layout = {}
    for index, table in enumerate(tables):
        positions[table["id"]] = layout.get(table["id"], offset_position(index))

    logger.debug(
        "Reconciled %d parsed tables, %d kept their ids",
        len(tables),
        sum(1 for table in tables if table["id"] in previous_tables),
    )
    return {"tables": tables}, positions
