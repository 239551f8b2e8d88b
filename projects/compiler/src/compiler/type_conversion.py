"""Module for mapping logical column types onto SQLAlchemy types."""

from typing import Any, NamedTuple

from sqlalchemy.types import (
    JSON,
    Date,
    DateTime,
    Float,
    Integer,
    Numeric,
    String,
    TypeEngine,
    Uuid,
)

from schema.defaults import DEFAULT_STRING_LENGTH
from schema.types import DataType, DataTypeName

OBJECT_ID_LENGTH = 24

# Type constructors that may appear in generated or hand edited source
SQL_TYPES: dict[str, type[TypeEngine[Any]]] = {
    "String": String,
    "Integer": Integer,
    "Numeric": Numeric,
    "Float": Float,
    "DateTime": DateTime,
    "Date": Date,
    "JSON": JSON,
    "Uuid": Uuid,
}


class TypeInfo(NamedTuple):
    """Holds information about a SQLAlchemy type for code generation."""

    module: str
    name: str
    expression: str


def data_type_to_sql(data_type: DataType) -> TypeEngine[Any]:
    """Convert a logical data type to a SQLAlchemy TypeEngine."""
    match data_type:
        case {"type": "string", "length": length, "collation": collation}:
            return String(length, collation=collation)
        case {"type": "number"}:
            return Integer()
        case {"type": "float", "precision": None}:
            return Float()
        case {"type": "float", "precision": precision, "scale": scale}:
            return Numeric(precision=precision, scale=scale)
        case {"type": "date"}:
            return DateTime()
        case {"type": "json"}:
            return JSON()
        case {"type": "uuid"}:
            return Uuid()
        case {"type": "objectId"}:
            return String(OBJECT_ID_LENGTH)
    msg = f"Unknown data type: {data_type}"
    raise ValueError(msg)


def sql_to_data_type(
    sql_type: TypeEngine[Any],
    hint: DataTypeName | None = None,
) -> DataType:
    """Parse a SQLAlchemy TypeEngine into a logical data type.

    ``hint`` is the logical type recorded next to the column, needed to tell an
    object id apart from a plain string.
    """
    match sql_type:
        case String() if hint == "objectId":
            return {"type": "objectId"}
        case String():
            return {
                "type": "string",
                "length": sql_type.length or DEFAULT_STRING_LENGTH,
                "collation": sql_type.collation,
            }
        case Integer():
            return {"type": "number"}
        case Float():
            return {"type": "float", "precision": None, "scale": None}
        case Numeric():
            return {
                "type": "float",
                "precision": sql_type.precision,
                "scale": sql_type.scale,
            }
        case DateTime() | Date():
            return {"type": "date"}
        case JSON():
            return {"type": "json"}
        case Uuid():
            return {"type": "uuid"}
    msg = f"Unsupported column type: {sql_type!r}"
    raise ValueError(msg)


def sql_to_string(sql_type: TypeEngine[Any]) -> str:
    """Convert a SQLAlchemy type to its string representation for code generation."""
    match sql_type:
        case String() if sql_type.length and sql_type.collation:
            return f'String({sql_type.length}, collation="{sql_type.collation}")'
        case String() if sql_type.length:
            return f"String({sql_type.length})"
        case Float():
            return "Float()"
        case Numeric() if sql_type.precision is not None and sql_type.scale is not None:
            return f"Numeric({sql_type.precision}, {sql_type.scale})"
        case Numeric() if sql_type.precision is not None:
            return f"Numeric({sql_type.precision})"
        case _:
            return f"{sql_type.__class__.__name__}()"


def sql_to_python(sql_type: TypeEngine[Any]) -> TypeInfo:
    """Get the 3 components needed for code generation from SQLAlchemy type.

    Returns module, import_name, and expression.
    """
    match sql_type:
        case JSON():
            return TypeInfo(module="typing", name="Any", expression="dict[str, Any]")
        case _:
            py_type = sql_type.python_type
            return TypeInfo(
                module=py_type.__module__,
                name=py_type.__name__,
                expression=py_type.__name__,
            )


def python_to_sql(annotation: str) -> TypeEngine[Any] | None:
    """Guess a column type from a Mapped[...] annotation without one."""
    return {
        "str": String(),
        "int": Integer(),
        "float": Float(),
        "Decimal": Numeric(),
        "datetime": DateTime(),
        "date": Date(),
        "UUID": Uuid(),
        "dict": JSON(),
    }.get(annotation)


# BSON types accepted in a $jsonSchema validator, besides "null"
BSON_TYPES: tuple[str, ...] = (
    "string",
    "int",
    "long",
    "double",
    "decimal",
    "date",
    "timestamp",
    "object",
    "array",
    "binData",
    "objectId",
)


def data_type_to_bson(data_type: DataType) -> str:
    """Convert a logical data type to a MongoDB BSON type name."""
    match data_type:
        case {"type": "string"}:
            return "string"
        case {"type": "number"}:
            return "int"
        case {"type": "float", "precision": None}:
            return "double"
        case {"type": "float"}:
            return "decimal"
        case {"type": "date"}:
            return "date"
        case {"type": "json"}:
            return "object"
        case {"type": "uuid"}:
            return "binData"
        case {"type": "objectId"}:
            return "objectId"
    msg = f"Unknown data type: {data_type}"
    raise ValueError(msg)


def bson_to_data_type(
    bson_type: str,
    *,
    max_length: int | None = None,
    collation: str | None = None,
    precision: int | None = None,
    scale: int | None = None,
) -> DataType:
    """Parse a BSON type name, with the settings stored beside it, into a data type."""
    match bson_type:
        case "string":
            return {
                "type": "string",
                "length": max_length or DEFAULT_STRING_LENGTH,
                "collation": collation,
            }
        case "int" | "long":
            return {"type": "number"}
        case "double":
            return {"type": "float", "precision": None, "scale": None}
        case "decimal":
            return {"type": "float", "precision": precision, "scale": scale}
        case "date" | "timestamp":
            return {"type": "date"}
        case "object" | "array":
            return {"type": "json"}
        case "binData":
            return {"type": "uuid"}
        case "objectId":
            return {"type": "objectId"}
    msg = f"Unsupported BSON type: {bson_type!r}"
    raise ValueError(msg)
