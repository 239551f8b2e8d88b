"""Junction table synthesis for many-to-many joins.

A configured many-to-many join between tables A and B is never stored as a
foreign key. It is replaced by a new junction table holding two foreign-key
columns and two one-to-many joins, junction -> A and junction -> B.
"""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING, Literal

from schema.defaults import (
    join_id,
    make_default_column,
    make_default_table,
    make_join,
    new_id,
)
from schema.errors import InvalidIntent, SynthesisFailure
from schema.joins import (
    join_endpoints,
    join_ids,
    mirror_of,
    primary_key_column,
    strip_join,
    tables_by_id,
    unique_join_id,
)
from schema.naming import foreign_key_names, snake_case, stored_name, unique_name

if TYPE_CHECKING:
    from schema.joins import JoinLocation
    from schema.types import (
        ColumnSchema,
        JoinSchema,
        JoinTarget,
        JunctionColumn,
        Snapshot,
        TableSchema,
    )

logger = getLogger(__name__)


def resolve_referenced_column(
    table: TableSchema,
    junction_column: JunctionColumn | None,
) -> ColumnSchema | None:
    """Pick the column a junction foreign key references on one side.

    The user supplied ``referenced_column_name`` wins, the primary key is the
    fallback.
    """
    if junction_column is not None:
        named = next(
            (
                col
                for col in table["columns"]
                if col["name"] == junction_column["referenced_column_name"]
            ),
            None,
        )
        if named is not None:
            return named
    return primary_key_column(table)


def _junction_key(
    junction_id: str,
    side: TableSchema,
    referenced: ColumnSchema,
    join: JoinSchema,
    junction_column: JunctionColumn | None,
    columns: list[ColumnSchema],
) -> ColumnSchema:
    """Foreign-key column inside the junction table for one side."""
    if junction_column is not None:
        name = junction_column["name"]
        storage_name = snake_case(name)
    else:
        name, storage_name = foreign_key_names(side["name"] or side["id"])
    return make_default_column(
        junction_id,
        name=unique_name(name, (col["name"] for col in columns)),
        storage_name=unique_name(storage_name, (stored_name(col) for col in columns)),
        data_type=referenced["data_type"].copy(),
        foreign_key=join,
    )


def synthesize_junction(
    snapshot: Snapshot,
    location: JoinLocation,
    join: JoinSchema,
    target: JoinTarget | None = None,
    *,
    primary_key_type: Literal["uuid", "number"] = "uuid",
) -> Snapshot:
    """Replace a many-to-many join by a junction table and two one-to-many joins.

    ``join`` carries the requested settings merged over the stored join. Raises
    SynthesisFailure, leaving the caller's snapshot untouched, when a side has
    neither the named referenced column nor a primary key.
    """
    tables = tables_by_id(snapshot)
    first_id, second_id = join_endpoints(location.join)
    if target is not None:
        if target["table"] not in (first_id, second_id):
            msg = f"Table {target['table']} is not an endpoint of join {join['id']}"
            raise InvalidIntent(msg)
        if target["table"] == first_id:
            first_id, second_id = second_id, first_id

    first = tables.get(first_id)
    second = tables.get(second_id)
    if first is None or second is None:
        msg = f"Join {join['id']} connects a missing table"
        raise InvalidIntent(msg)

    first_key = resolve_referenced_column(first, join["join_column"])
    second_key = resolve_referenced_column(second, join["inverse_column"])
    if first_key is None or second_key is None:
        side = first if first_key is None else second
        msg = (
            f"Cannot synthesize a junction table for {join['id']}: "
            f"{side['name'] or side['id']} has no referenced column or primary key"
        )
        raise SynthesisFailure(msg)

    junction_id = new_id()
    name = unique_name(
        join["through"] or f"{first['name']}{second['name']}",
        [*(t["name"] for t in snapshot["tables"]), *map(stored_name, snapshot["tables"])],
    )
    junction = make_default_table(junction_id, name, primary_key_type)

    taken_ids = join_ids(snapshot["tables"]) - {join["id"]}
    first_join: JoinSchema = {
        **make_join(junction_id, {"table": first_id, "column": first_key["id"]}, "one-to-many"),
        "on_delete": join["on_delete"],
        "on_update": join["on_update"],
    }
    second_identity = unique_join_id(
        join_id(junction_id, second_id),
        taken_ids | {first_join["id"]},
    )
    second_join: JoinSchema = {
        **make_join(
            junction_id,
            {"table": second_id, "column": second_key["id"]},
            "one-to-many",
            identity=second_identity,
        ),
        "on_delete": join["on_delete"],
        "on_update": join["on_update"],
    }

    first_column = _junction_key(
        junction_id, first, first_key, first_join, join["join_column"], junction["columns"],
    )
    second_column = _junction_key(
        junction_id,
        second,
        second_key,
        second_join,
        join["inverse_column"],
        [*junction["columns"], first_column],
    )
    junction = {**junction, "columns": [*junction["columns"], first_column, second_column]}

    updated: list[TableSchema] = []
    for table in snapshot["tables"]:
        stripped = strip_join(table, join["id"])
        mirrors = [
            mirror_of(new_join)
            for new_join in (first_join, second_join)
            if new_join["target"] is not None and new_join["target"]["table"] == table["id"]
        ]
        updated.append(
            {**stripped, "joins": [*stripped["joins"], *mirrors]} if mirrors else stripped,
        )

    logger.debug(
        "Replaced many-to-many join %s with junction table %s",
        join["id"],
        junction["name"],
    )
    return {"tables": [*updated, junction]}
