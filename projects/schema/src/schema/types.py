"""TypedDict schemas for the editable schema model."""

from __future__ import annotations

from typing import Literal, TypedDict, get_args

# Column data types, one variant per logical type


class StringType(TypedDict):
    """String column type with length and optional collation."""

    type: Literal["string"]
    length: int
    collation: str | None


class NumberType(TypedDict):
    """Integer column type, the only type that may auto increment."""

    type: Literal["number"]


class FloatType(TypedDict):
    """Decimal column type with precision and scale."""

    type: Literal["float"]
    precision: int | None
    scale: int | None


class DateType(TypedDict):
    """Date/time column type."""

    type: Literal["date"]


class JsonType(TypedDict):
    """JSON document column type."""

    type: Literal["json"]


class UuidType(TypedDict):
    """UUID column type."""

    type: Literal["uuid"]


class ObjectIdType(TypedDict):
    """Document database object id column type."""

    type: Literal["objectId"]


type DataType = (
    StringType
    | NumberType
    | FloatType
    | DateType
    | JsonType
    | UuidType
    | ObjectIdType
)

type DataTypeName = Literal[
    "string", "number", "float", "date", "json", "uuid", "objectId"
]

type JoinType = Literal["one-to-one", "one-to-many", "many-to-one", "many-to-many"]

type ReferentialAction = Literal["CASCADE", "SET NULL", "RESTRICT"]

type DefaultValue = str | int | float | bool | None

type CompilerTarget = Literal["sqlalchemy", "mongodb"]  # Source format compiled to

DATA_TYPE_NAMES: tuple[str, ...] = get_args(DataTypeName.__value__)
JOIN_TYPES: tuple[str, ...] = get_args(JoinType.__value__)
REFERENTIAL_ACTIONS: tuple[str, ...] = get_args(ReferentialAction.__value__)


class JoinTarget(TypedDict):
    """The referenced side of a join."""

    table: str  # Table id
    column: str | None  # Column id, None until chosen


class JunctionColumn(TypedDict):
    """Foreign key naming inside a synthesized junction table."""

    name: str
    referenced_column_name: str


class JoinSchema(TypedDict):
    """Relationship between two tables.

    The owning copy (carried by a foreign-key column, or by the source table's
    ``joins`` while unconfigured) has a ``target``. The mirrored copy kept on the
    referenced table has ``target`` set to None.
    """

    id: str
    type: JoinType
    source: str  # Referencing table id
    target: JoinTarget | None
    on_delete: ReferentialAction
    on_update: ReferentialAction
    through: str | None  # Junction table name, many-to-many only
    join_column: JunctionColumn | None
    inverse_column: JunctionColumn | None


class ColumnSchema(TypedDict):
    """Schema for a table column."""

    id: str
    table_id: str
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


class TableSchema(TypedDict):
    """Schema for a table node."""

    id: str
    name: str
    storage_name: str
    primary_key_column_id: str | None
    description: str
    columns: list[ColumnSchema]
    joins: list[JoinSchema]


class Snapshot(TypedDict):
    """Complete immutable state of the schema at one point in time."""

    tables: list[TableSchema]


class Position(TypedDict):
    """Opaque visual coordinates of a table node."""

    x: float
    y: float


type Layout = dict[str, Position]  # Table id -> position
