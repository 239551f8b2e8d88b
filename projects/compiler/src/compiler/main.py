"""Compiler service turning snapshots into source text and back."""

from typing import Protocol

from schema.errors import CompilerError
from schema.types import CompilerTarget, Snapshot

from compiler.mongodb_export import schema_to_mongodb
from compiler.mongodb_import import mongodb_to_schema
from compiler.sqlalchemy_export import schema_to_sqlalchemy
from compiler.sqlalchemy_import import sqlalchemy_to_schema


class Compiler(Protocol):
    """Serializes snapshots to source text and parses them back."""

    def serialize(self, snapshot: Snapshot) -> str:
        """Render a snapshot as source text, raising CompilerError on failure."""
        ...

    def parse(self, source: str) -> Snapshot:
        """Read source text into a snapshot, raising ValidationError on failure."""
        ...


def _serialize_error(e: ValueError) -> CompilerError:
    msg = f"Cannot serialize snapshot: {e}"
    return CompilerError(msg)


class SQLAlchemyCompiler:
    """Compiler for SQLAlchemy 2.0 declarative models."""

    def __init__(self, base_class: str = "Base") -> None:
        """Name the declarative base class of generated source."""
        self.base_class = base_class

    def serialize(self, snapshot: Snapshot) -> str:
        """Render a snapshot as SQLAlchemy models."""
        try:
            return schema_to_sqlalchemy(snapshot, self.base_class)
        except CompilerError:
            raise
        except ValueError as e:
            raise _serialize_error(e) from e

    def parse(self, source: str) -> Snapshot:
        """Read SQLAlchemy models into a snapshot with fresh ids."""
        return sqlalchemy_to_schema(source)


class MongoDBCompiler:
    """Compiler for MongoDB collection definitions with $jsonSchema validators."""

    def serialize(self, snapshot: Snapshot) -> str:
        """Render a snapshot as MongoDB collection definitions."""
        try:
            return schema_to_mongodb(snapshot)
        except CompilerError:
            raise
        except ValueError as e:
            raise _serialize_error(e) from e

    def parse(self, source: str) -> Snapshot:
        """Read MongoDB collection definitions into a snapshot with fresh ids."""
        return mongodb_to_schema(source)


def make_compiler(target: CompilerTarget, *, base_class: str = "Base") -> Compiler:
    """Build the compiler for a target."""
    match target:
        case "sqlalchemy":
            return SQLAlchemyCompiler(base_class)
        case "mongodb":
            return MongoDBCompiler()
    msg = f"Unknown compiler target: {target}"
    raise ValueError(msg)
