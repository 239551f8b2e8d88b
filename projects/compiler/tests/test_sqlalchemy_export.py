"""Tests for SQLAlchemy model generation."""

import ast

import pytest

from compiler import schema_to_sqlalchemy
from schema import (
    CompilerError,
    add_column,
    configure_join,
    connect,
    create_table,
    empty_snapshot,
    replace_columns,
    replace_table_fields,
)
from schema.types import Snapshot


@pytest.fixture(name="blog")
def blog_snapshot() -> Snapshot:
    """User -> Post one-to-many, plus an unconfigured Post -> Tag join."""
    snapshot, user = create_table(empty_snapshot(), "User")
    snapshot, post = create_table(snapshot, "Post")
    snapshot, tag = create_table(snapshot, "Tag")
    snapshot, _ = add_column(snapshot, user["id"], name="email", unique=True)
    snapshot, join = connect(snapshot, user["id"], post["id"])
    snapshot = configure_join(snapshot, join["id"], {"type": "one-to-many"})
    snapshot, _ = connect(snapshot, post["id"], tag["id"])
    return snapshot


def test_generated_source_is_valid_python(blog: Snapshot) -> None:
    """The generated module parses and defines every model."""
    source = schema_to_sqlalchemy(blog)

    tree = ast.parse(source)
    classes = [node.name for node in tree.body if isinstance(node, ast.ClassDef)]
    assert classes == ["Base", "User", "Post", "Tag"]
    assert source.startswith('"""SQLAlchemy models generated by erd-toolkit."""')
    assert "from __future__ import annotations" in source


def test_foreign_key_and_relationship(blog: Snapshot) -> None:
    """Configured joins become ForeignKey arguments and relationships."""
    source = schema_to_sqlalchemy(blog)

    assert (
        'userId: Mapped[UUID] = mapped_column("user_id", Uuid(), '
        'ForeignKey("User.id", ondelete="CASCADE", onupdate="CASCADE"), '
        'nullable=False, info={"data_type": "uuid", "join_type": "one-to-many"})'
    ) in source
    assert "user: Mapped[User] = relationship(foreign_keys=[userId])" in source
    assert source.count("ForeignKey(") == 1


def test_column_flags(blog: Snapshot) -> None:
    """Primary keys and unique columns carry their flags."""
    source = schema_to_sqlalchemy(blog)

    assert 'id: Mapped[UUID] = mapped_column("id", Uuid(), primary_key=True' in source
    assert (
        'email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False'
    ) in source


def test_custom_base_class(blog: Snapshot) -> None:
    """The declarative base class name is configurable."""
    source = schema_to_sqlalchemy(blog, "Model")

    assert "class Model(DeclarativeBase):" in source
    assert "class User(Model):" in source


def test_table_names_keep_their_spelling() -> None:
    """Names that are not class names are recorded for parse-back."""
    snapshot, table = create_table(empty_snapshot(), "order items")
    snapshot = replace_table_fields(snapshot, table["id"], {"description": "Lines"})

    source = schema_to_sqlalchemy(snapshot)

    assert "class OrderItems(Base):" in source
    assert '__tablename__ = "order items"' in source
    assert '__table_args__ = {"info": {"name": "order items"}}' in source
    assert '"""Lines"""' in source


def test_self_join_has_remote_side() -> None:
    """A self referencing relationship names its remote side."""
    snapshot, employee = create_table(empty_snapshot(), "Employee")
    snapshot, join = connect(snapshot, employee["id"], employee["id"])
    snapshot = configure_join(snapshot, join["id"], {"type": "many-to-one"})

    source = schema_to_sqlalchemy(snapshot)

    assert "employee: Mapped[Employee] = relationship(" in source
    assert "remote_side=[id]" in source


def test_duplicate_table_names_are_refused() -> None:
    """Two tables with one name cannot be generated."""
    snapshot, _ = create_table(empty_snapshot(), "User")
    snapshot, _ = create_table(snapshot, "User")

    with pytest.raises(CompilerError, match="Duplicate table names"):
        schema_to_sqlalchemy(snapshot)


def test_duplicate_database_table_names_are_refused() -> None:
    """Two tables stored under one database name cannot be generated."""
    snapshot, _ = create_table(empty_snapshot(), "users")
    snapshot, account = create_table(snapshot, "Account")
    snapshot = replace_table_fields(snapshot, account["id"], {"storage_name": "users"})

    with pytest.raises(CompilerError, match="Duplicate database table names: users"):
        schema_to_sqlalchemy(snapshot)


def test_duplicate_database_column_names_are_refused() -> None:
    """Two columns stored under one database name cannot be generated."""
    snapshot, user = create_table(empty_snapshot(), "User")
    snapshot, email = add_column(snapshot, user["id"], name="email")
    table = snapshot["tables"][0]
    snapshot = replace_columns(
        snapshot,
        user["id"],
        [*table["columns"], {**email, "id": "mail", "name": "mail", "storage_name": "email"}],
    )

    with pytest.raises(CompilerError, match="Duplicate database column names in User"):
        schema_to_sqlalchemy(snapshot)
