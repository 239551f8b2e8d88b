"""Name checks shared by every code generator."""

from collections import Counter
from collections.abc import Iterable

from schema.errors import CompilerError
from schema.mutations import find_duplicate_column_names, find_duplicate_table_names
from schema.naming import stored_name
from schema.types import Snapshot


def _repeated(names: Iterable[str]) -> list[str]:
    """Names that occur more than once."""
    return [name for name, count in Counter(names).items() if count > 1]


def check_unique_names(snapshot: Snapshot) -> None:
    """Refuse snapshots whose table or column names would collide.

    Both the logical names and the database names must be unique, tables
    within the snapshot and columns within their table.
    """
    if duplicates := find_duplicate_table_names(snapshot):
        msg = f"Duplicate table names: {', '.join(duplicates)}"
        raise CompilerError(msg)
    if duplicates := _repeated(map(stored_name, snapshot["tables"])):
        msg = f"Duplicate database table names: {', '.join(duplicates)}"
        raise CompilerError(msg)
    for table in snapshot["tables"]:
        if not table["name"]:
            msg = f"Table {table['id']} has no name"
            raise CompilerError(msg)
        if duplicates := find_duplicate_column_names(table):
            msg = f"Duplicate column names in {table['name']}: {', '.join(duplicates)}"
            raise CompilerError(msg)
        if duplicates := _repeated(map(stored_name, table["columns"])):
            msg = (
                f"Duplicate database column names in {table['name']}: "
                f"{', '.join(duplicates)}"
            )
            raise CompilerError(msg)
