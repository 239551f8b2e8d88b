"""Name conversions shared by the model and the code generator."""

from __future__ import annotations

import keyword
from re import sub
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

    from schema.types import ColumnSchema, TableSchema


def pascal_case(name: str) -> str:
    """Convert name to PascalCase."""
    words = sub(r"\W", "_", name).split("_")
    return "".join(word[0].upper() + word[1:] for word in words if word)


def snake_case(name: str) -> str:
    """Convert name to snake_case."""
    return sub("([a-z0-9])([A-Z])|([A-Z])([A-Z][a-z])", r"\1\3_\2\4", name).lower()


def camel_case(name: str) -> str:
    """Convert name to camelCase."""
    pascal = pascal_case(name)
    return pascal[:1].lower() + pascal[1:]


def python_identifier(name: str) -> str:
    """Make a name usable as a Python attribute."""
    identifier = sub(r"\W", "_", name) or "_"
    if identifier[0].isdigit():
        identifier = f"_{identifier}"
    if keyword.iskeyword(identifier):
        identifier = f"{identifier}_"
    return identifier


def unique_name(name: str, taken: Iterable[str]) -> str:
    """Append the smallest counter that makes the name unused."""
    existing = set(taken)
    if name not in existing:
        return name
    counter = 2
    while f"{name}{counter}" in existing:
        counter += 1
    return f"{name}{counter}"


def foreign_key_names(table_name: str) -> tuple[str, str]:
    """Return the column name and storage name for a key referencing a table."""
    return f"{camel_case(table_name)}Id", f"{snake_case(table_name)}_id"


def stored_name(entry: TableSchema | ColumnSchema) -> str:
    """Name of a table or column in the database, falling back to its name."""
    return entry["storage_name"] or entry["name"]
