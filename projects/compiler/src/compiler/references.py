"""Foreign key references collected while parsing, resolved into joins."""

from typing import NamedTuple

from schema.defaults import join_id, make_join
from schema.errors import ValidationError
from schema.invariants import normalize_column
from schema.joins import mirror_of, unique_join_id
from schema.naming import stored_name
from schema.types import JoinSchema, JoinType, ReferentialAction, TableSchema


class ForeignKeyReference(NamedTuple):
    """A foreign key waiting for its target to be resolved."""

    table_id: str
    column_id: str
    target_table: str  # Database name of the referenced table
    target_column: str  # Database name of the referenced column
    on_delete: ReferentialAction
    on_update: ReferentialAction
    join_type: JoinType
    location: str  # Where the reference was written, for error messages


def resolve_references(
    tables: list[TableSchema],
    references: list[ForeignKeyReference],
) -> list[TableSchema]:
    """Attach joins for every foreign key, with mirrors on referenced tables.

    Raises ValidationError for a reference to a table or column that is not
    defined.
    """
    by_storage = {stored_name(table): table for table in tables}
    carried: dict[str, JoinSchema] = {}  # Column id -> join
    mirrors: dict[str, list[JoinSchema]] = {table["id"]: [] for table in tables}
    taken: set[str] = set()

    for reference in references:
        target = by_storage.get(reference.target_table)
        column = (
            next(
                (
                    col
                    for col in target["columns"]
                    if stored_name(col) == reference.target_column
                ),
                None,
            )
            if target
            else None
        )
        if target is None or column is None:
            msg = (
                f"{reference.location}: Unknown foreign key target "
                f"{reference.target_table}.{reference.target_column}"
            )
            raise ValidationError(msg)

        identity = unique_join_id(join_id(reference.table_id, target["id"]), taken)
        taken.add(identity)
        join: JoinSchema = {
            **make_join(
                reference.table_id,
                {"table": target["id"], "column": column["id"]},
                reference.join_type,
                identity=identity,
            ),
            "on_delete": reference.on_delete,
            "on_update": reference.on_update,
        }
        carried[reference.column_id] = join
        if target["id"] != reference.table_id:
            mirrors[target["id"]].append(mirror_of(join))

    resolved: list[TableSchema] = []
    for table in tables:
        columns = [
            normalize_column({**col, "foreign_key": carried[col["id"]]})
            if col["id"] in carried
            else col
            for col in table["columns"]
        ]
        primary_key = next((col["id"] for col in columns if col["primary_key"]), None)
        resolved.append(
            {
                **table,
                "columns": columns,
                "primary_key_column_id": primary_key,
                "joins": mirrors[table["id"]],
            },
        )
    return resolved
