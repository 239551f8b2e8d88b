"""Schema model and consistency-preserving edit operations."""

from schema.documents import (
    document_from_json,
    document_to_json,
    load_document,
    save_document,
)
from schema.errors import (
    CompilerError,
    ImportFormatError,
    InvalidIntent,
    InvariantViolation,
    SchemaError,
    SynthesisFailure,
    ValidationError,
)
from schema.invariants import assert_consistent, check_snapshot
from schema.mutations import (
    add_column,
    configure_join,
    connect,
    create_table,
    delete_join,
    delete_table,
    duplicate_table,
    empty_snapshot,
    remove_column,
    rename_table,
    replace_columns,
    replace_table_fields,
    update_column,
)
from schema.session import EditSession, Notice

__all__ = [
    "CompilerError",
    "EditSession",
    "ImportFormatError",
    "InvalidIntent",
    "InvariantViolation",
    "Notice",
    "SchemaError",
    "SynthesisFailure",
    "ValidationError",
    "add_column",
    "assert_consistent",
    "check_snapshot",
    "configure_join",
    "connect",
    "create_table",
    "delete_join",
    "delete_table",
    "document_from_json",
    "document_to_json",
    "duplicate_table",
    "empty_snapshot",
    "load_document",
    "remove_column",
    "rename_table",
    "replace_columns",
    "replace_table_fields",
    "save_document",
    "update_column",
]
