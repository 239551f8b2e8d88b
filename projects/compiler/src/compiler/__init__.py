"""Compiler service between schema snapshots and generated source."""

from compiler.main import (
    Compiler,
    MongoDBCompiler,
    SQLAlchemyCompiler,
    make_compiler,
)
from compiler.mongodb_export import schema_to_mongodb
from compiler.mongodb_import import mongodb_to_schema
from compiler.reconcile import reconcile
from compiler.scheduler import CompileTask
from compiler.sqlalchemy_export import schema_to_sqlalchemy
from compiler.sqlalchemy_import import sqlalchemy_to_schema

__all__ = [
    "CompileTask",
    "Compiler",
    "MongoDBCompiler",
    "SQLAlchemyCompiler",
    "make_compiler",
    "mongodb_to_schema",
    "reconcile",
    "schema_to_mongodb",
    "schema_to_sqlalchemy",
    "sqlalchemy_to_schema",
]
