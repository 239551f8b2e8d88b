"""Factories for fresh tables, columns and joins."""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal, TypedDict, Unpack
from uuid import uuid4

if TYPE_CHECKING:
    from schema.types import (
        ColumnSchema,
        DataType,
        DataTypeName,
        DefaultValue,
        JoinSchema,
        JoinTarget,
        JoinType,
        TableSchema,
    )

DEFAULT_STRING_LENGTH = 255


class ColumnOverrides(TypedDict, total=False):
    """Fields that may be overridden on a default column."""

    id: str
    name: str
    storage_name: str
    data_type: DataType
    primary_key: bool
    unique: bool
    index: bool
    nullable: bool
    auto_increment: bool
    default_value: DefaultValue
    description: str
    foreign_key: JoinSchema | None


def new_id() -> str:
    """Allocate a fresh stable identity."""
    return uuid4().hex


def join_id(source_table_id: str, target_table_id: str) -> str:
    """Derive the join id from the ordered pair of endpoint tables."""
    return f"{source_table_id}->{target_table_id}"


def default_data_type(name: DataTypeName) -> DataType:
    """Build the default variant for a data type name."""
    match name:
        case "string":
            return {"type": "string", "length": DEFAULT_STRING_LENGTH, "collation": None}
        case "float":
            return {"type": "float", "precision": None, "scale": None}
        case "number":
            return {"type": "number"}
        case "date":
            return {"type": "date"}
        case "json":
            return {"type": "json"}
        case "uuid":
            return {"type": "uuid"}
        case "objectId":
            return {"type": "objectId"}
    msg = f"Unknown data type: {name}"
    raise ValueError(msg)


def make_default_column(
    table_id: str,
    **overrides: Unpack[ColumnOverrides],
) -> ColumnSchema:
    """Return a default column for a table with the given overrides applied."""
    column: ColumnSchema = {
        "id": new_id(),
        "table_id": table_id,
        "name": "",
        "storage_name": "",
        "data_type": default_data_type("string"),
        "primary_key": False,
        "unique": False,
        "index": False,
        "nullable": False,
        "auto_increment": False,
        "default_value": None,
        "description": "",
        "foreign_key": None,
    }
    column.update(overrides)
    return column


def make_default_table(
    table_id: str,
    name: str,
    primary_key_type: Literal["uuid", "number"] = "uuid",
) -> TableSchema:
    """Return a table seeded with a single primary key ``id`` column."""
    column = make_default_column(
        table_id,
        name="id",
        storage_name="id",
        data_type=default_data_type(primary_key_type),
        primary_key=True,
        auto_increment=primary_key_type == "number",
    )
    return {
        "id": table_id,
        "name": name,
        "storage_name": "",
        "primary_key_column_id": column["id"],
        "description": "",
        "columns": [column],
        "joins": [],
    }


def make_join(
    source_table_id: str,
    target: JoinTarget,
    join_type: JoinType = "one-to-one",
    *,
    identity: str | None = None,
) -> JoinSchema:
    """Return a join from the source table to the target with default actions."""
    return {
        "id": identity or join_id(source_table_id, target["table"]),
        "type": join_type,
        "source": source_table_id,
        "target": target,
        "on_delete": "CASCADE",
        "on_update": "CASCADE",
        "through": None,
        "join_column": None,
        "inverse_column": None,
    }
