"""Tests for the pure edit operations over snapshots."""

import pytest

from schema import (
    InvalidIntent,
    add_column,
    check_snapshot,
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
from schema.joins import iter_mirrors, locate_join, tables_by_id
from schema.types import Snapshot, TableSchema


@pytest.fixture(name="blog")
def blog_snapshot() -> tuple[Snapshot, TableSchema, TableSchema]:
    """Snapshot with a User and a Post table."""
    snapshot, user = create_table(empty_snapshot(), "User")
    snapshot, post = create_table(snapshot, "Post")
    return snapshot, user, post


def test_create_table_seeds_primary_key() -> None:
    """A new table holds exactly one uuid primary key named id."""
    snapshot, table = create_table(empty_snapshot(), "User")

    assert snapshot["tables"] == [table]
    assert [col["name"] for col in table["columns"]] == ["id"]
    key = table["columns"][0]
    assert key["primary_key"]
    assert key["data_type"] == {"type": "uuid"}
    assert table["primary_key_column_id"] == key["id"]
    assert check_snapshot(snapshot) == []


def test_create_table_with_number_key_auto_increments() -> None:
    """A number primary key is seeded with auto increment."""
    _, table = create_table(empty_snapshot(), "Order", primary_key_type="number")

    key = table["columns"][0]
    assert key["data_type"] == {"type": "number"}
    assert key["auto_increment"]


def test_edits_do_not_touch_their_input(blog: tuple[Snapshot, TableSchema, TableSchema]) -> None:
    """Every edit returns a new snapshot and leaves the old one alone."""
    snapshot, user, _ = blog

    renamed = rename_table(snapshot, user["id"], "Account")

    assert tables_by_id(renamed)[user["id"]]["name"] == "Account"
    assert tables_by_id(snapshot)[user["id"]]["name"] == "User"


def test_unknown_table_is_invalid_intent() -> None:
    """Edits naming a missing table raise InvalidIntent."""
    with pytest.raises(InvalidIntent):
        delete_table(empty_snapshot(), "missing")
    with pytest.raises(InvalidIntent):
        rename_table(empty_snapshot(), "missing", "Name")


def test_replace_table_fields(blog: tuple[Snapshot, TableSchema, TableSchema]) -> None:
    """Plain table fields are replaced in place."""
    snapshot, user, _ = blog

    updated = replace_table_fields(
        snapshot,
        user["id"],
        {"storage_name": "users", "description": "People"},
    )

    table = tables_by_id(updated)[user["id"]]
    assert table["storage_name"] == "users"
    assert table["description"] == "People"
    assert table["columns"] == user["columns"]


def test_add_column_primary_key_moves_the_key(
    blog: tuple[Snapshot, TableSchema, TableSchema],
) -> None:
    """Adding a primary key column clears the flag on the old key."""
    snapshot, user, _ = blog

    snapshot, column = add_column(snapshot, user["id"], name="email", primary_key=True)

    table = tables_by_id(snapshot)[user["id"]]
    assert [col["name"] for col in table["columns"] if col["primary_key"]] == ["email"]
    assert table["primary_key_column_id"] == column["id"]
    assert check_snapshot(snapshot) == []


def test_add_column_normalizes_flags(blog: tuple[Snapshot, TableSchema, TableSchema]) -> None:
    """A unique column never stays nullable."""
    snapshot, user, _ = blog

    _, column = add_column(snapshot, user["id"], name="email", unique=True, nullable=True)

    assert column["unique"]
    assert not column["nullable"]


def test_replace_columns_requires_single_primary_key(
    blog: tuple[Snapshot, TableSchema, TableSchema],
) -> None:
    """Replacing columns without a primary key is rejected."""
    snapshot, user, _ = blog
    columns = [{**col, "primary_key": False} for col in user["columns"]]

    with pytest.raises(InvalidIntent):
        replace_columns(snapshot, user["id"], columns)


def test_update_column_keeps_primary_key(
    blog: tuple[Snapshot, TableSchema, TableSchema],
) -> None:
    """The only primary key cannot be unset through a column update."""
    snapshot, user, _ = blog
    key = user["columns"][0]

    with pytest.raises(InvalidIntent):
        update_column(snapshot, {**key, "primary_key": False})


def test_update_column_renames(blog: tuple[Snapshot, TableSchema, TableSchema]) -> None:
    """A column update replaces the column by id."""
    snapshot, user, _ = blog
    snapshot, column = add_column(snapshot, user["id"], name="email")

    updated = update_column(snapshot, {**column, "name": "mail", "nullable": True})

    table = tables_by_id(updated)[user["id"]]
    assert [col["name"] for col in table["columns"]] == ["id", "mail"]
    assert table["columns"][1]["nullable"]


def test_remove_primary_key_column_is_invalid(
    blog: tuple[Snapshot, TableSchema, TableSchema],
) -> None:
    """The primary key column cannot be removed."""
    snapshot, user, _ = blog

    with pytest.raises(InvalidIntent):
        remove_column(snapshot, user["id"], user["primary_key_column_id"] or "")


def test_connect_creates_join_and_mirror(
    blog: tuple[Snapshot, TableSchema, TableSchema],
) -> None:
    """Connecting two tables stores the join on the source and a mirror on the target."""
    snapshot, user, post = blog

    snapshot, join = connect(snapshot, user["id"], post["id"])

    assert join["id"] == f"{user['id']}->{post['id']}"
    assert join["type"] == "one-to-one"
    assert join["target"] == {"table": post["id"], "column": post["primary_key_column_id"]}
    tables = tables_by_id(snapshot)
    assert tables[user["id"]]["joins"] == [join]
    assert tables[post["id"]]["joins"] == [{**join, "target": None}]
    assert check_snapshot(snapshot) == []


def test_connect_existing_pair_returns_existing_join(
    blog: tuple[Snapshot, TableSchema, TableSchema],
) -> None:
    """Connecting the same ordered pair twice keeps the snapshot."""
    snapshot, user, post = blog
    snapshot, join = connect(snapshot, user["id"], post["id"])

    again, existing = connect(snapshot, user["id"], post["id"])

    assert again is snapshot
    assert existing == join


def test_connect_unknown_column_is_invalid(
    blog: tuple[Snapshot, TableSchema, TableSchema],
) -> None:
    """A target column outside the target table is rejected."""
    snapshot, user, post = blog

    with pytest.raises(InvalidIntent):
        connect(snapshot, user["id"], post["id"], "missing")


def test_one_to_many_puts_foreign_key_on_the_many_side(
    blog: tuple[Snapshot, TableSchema, TableSchema],
) -> None:
    """User -> Post one-to-many creates Post.userId referencing User.id."""
    snapshot, user, post = blog
    snapshot, join = connect(snapshot, user["id"], post["id"])

    snapshot = configure_join(snapshot, join["id"], {"type": "one-to-many"})

    tables = tables_by_id(snapshot)
    foreign_keys = [col for col in tables[post["id"]]["columns"] if col["foreign_key"]]
    assert [col["name"] for col in foreign_keys] == ["userId"]
    column = foreign_keys[0]
    assert column["storage_name"] == "user_id"
    assert column["data_type"] == {"type": "uuid"}
    assert column["foreign_key"] is not None
    assert column["foreign_key"]["source"] == post["id"]
    assert column["foreign_key"]["target"] == {
        "table": user["id"],
        "column": user["primary_key_column_id"],
    }
    assert tables[post["id"]]["joins"] == []
    assert [j["target"] for j in tables[user["id"]]["joins"]] == [None]
    assert check_snapshot(snapshot) == []


def test_reconfigure_reuses_foreign_key_column(
    blog: tuple[Snapshot, TableSchema, TableSchema],
) -> None:
    """Configuring a configured join again changes the column in place."""
    snapshot, user, post = blog
    snapshot, join = connect(snapshot, user["id"], post["id"])
    snapshot = configure_join(snapshot, join["id"], {"type": "one-to-many"})
    before = locate_join(snapshot, join["id"])

    snapshot = configure_join(
        snapshot,
        join["id"],
        {"type": "one-to-many", "on_delete": "SET NULL"},
    )

    after = locate_join(snapshot, join["id"])
    assert before is not None
    assert after is not None
    assert after.column_id == before.column_id
    assert after.join["on_delete"] == "SET NULL"
    mirrors = [m.join for m in iter_mirrors(snapshot["tables"])]
    assert [m["on_delete"] for m in mirrors] == ["SET NULL"]
    assert check_snapshot(snapshot) == []


def test_configure_unknown_join_is_invalid() -> None:
    """Configuring a join that does not exist raises InvalidIntent."""
    with pytest.raises(InvalidIntent):
        configure_join(empty_snapshot(), "a->b", {"type": "one-to-one"})


def test_self_join_has_no_mirror() -> None:
    """A self join is stored once and configured onto the same table."""
    snapshot, employee = create_table(empty_snapshot(), "Employee")
    snapshot, join = connect(snapshot, employee["id"], employee["id"])

    assert tables_by_id(snapshot)[employee["id"]]["joins"] == [join]

    snapshot = configure_join(snapshot, join["id"], {"type": "many-to-one"})

    table = tables_by_id(snapshot)[employee["id"]]
    assert table["joins"] == []
    assert [col["name"] for col in table["columns"]] == ["id", "employeeId"]
    assert check_snapshot(snapshot) == []


def test_delete_join_removes_every_copy(
    blog: tuple[Snapshot, TableSchema, TableSchema],
) -> None:
    """Deleting a configured join drops its column and its mirror."""
    snapshot, user, post = blog
    original = snapshot
    snapshot, join = connect(snapshot, user["id"], post["id"])
    snapshot = configure_join(snapshot, join["id"], {"type": "one-to-many"})

    snapshot = delete_join(snapshot, join["id"])

    assert snapshot == original


def test_delete_unknown_join_is_invalid() -> None:
    """Deleting a missing join raises InvalidIntent."""
    with pytest.raises(InvalidIntent):
        delete_join(empty_snapshot(), "a->b")


def test_delete_table_cascades_to_joins(
    blog: tuple[Snapshot, TableSchema, TableSchema],
) -> None:
    """Deleting a referenced table drops the foreign keys pointing at it."""
    snapshot, user, post = blog
    snapshot, join = connect(snapshot, user["id"], post["id"])
    snapshot = configure_join(snapshot, join["id"], {"type": "one-to-many"})

    snapshot = delete_table(snapshot, user["id"])

    assert [table["name"] for table in snapshot["tables"]] == ["Post"]
    remaining = snapshot["tables"][0]
    assert [col["name"] for col in remaining["columns"]] == ["id"]
    assert remaining["joins"] == []
    assert check_snapshot(snapshot) == []


def test_delete_table_drops_unconfigured_joins(
    blog: tuple[Snapshot, TableSchema, TableSchema],
) -> None:
    """Unconfigured joins and their mirrors go with a deleted endpoint."""
    snapshot, user, post = blog
    snapshot, _ = connect(snapshot, user["id"], post["id"])

    snapshot = delete_table(snapshot, post["id"])

    assert snapshot["tables"][0]["joins"] == []
    assert check_snapshot(snapshot) == []


def test_remove_referenced_column_drops_foreign_key(
    blog: tuple[Snapshot, TableSchema, TableSchema],
) -> None:
    """Removing the column a foreign key references removes the join."""
    snapshot, user, post = blog
    snapshot, email = add_column(snapshot, user["id"], name="email", unique=True)
    snapshot, join = connect(snapshot, post["id"], user["id"], email["id"])
    snapshot = configure_join(snapshot, join["id"], {"type": "many-to-one"})

    snapshot = remove_column(snapshot, user["id"], email["id"])

    tables = tables_by_id(snapshot)
    assert [col["name"] for col in tables[post["id"]]["columns"]] == ["id"]
    assert tables[user["id"]]["joins"] == []
    assert check_snapshot(snapshot) == []


def test_duplicate_table_leaves_relationships(
    blog: tuple[Snapshot, TableSchema, TableSchema],
) -> None:
    """A duplicated table gets fresh ids, a free name and no joins."""
    snapshot, user, post = blog
    snapshot, join = connect(snapshot, user["id"], post["id"])
    snapshot = configure_join(snapshot, join["id"], {"type": "one-to-many"})

    snapshot, copy = duplicate_table(snapshot, post["id"])

    assert copy["name"] == "Post_copy"
    assert copy["id"] != post["id"]
    assert [col["name"] for col in copy["columns"]] == ["id"]
    assert copy["joins"] == []
    assert all(col["table_id"] == copy["id"] for col in copy["columns"])
    assert check_snapshot(snapshot) == []


def test_remove_foreign_key_column_drops_join(
    blog: tuple[Snapshot, TableSchema, TableSchema],
) -> None:
    """Removing a foreign-key column removes its join and the mirror."""
    snapshot, user, post = blog
    original = snapshot
    snapshot, join = connect(snapshot, user["id"], post["id"])
    snapshot = configure_join(snapshot, join["id"], {"type": "one-to-many"})
    location = locate_join(snapshot, join["id"])
    assert location is not None
    assert location.column_id is not None

    snapshot = remove_column(snapshot, post["id"], location.column_id)

    assert snapshot == original


def test_duplicate_table_gets_free_storage_name() -> None:
    """Copies of a table with a database name get their own database name."""
    snapshot, user = create_table(empty_snapshot(), "User")
    snapshot = replace_table_fields(snapshot, user["id"], {"storage_name": "users"})

    snapshot, first = duplicate_table(snapshot, user["id"])
    snapshot, second = duplicate_table(snapshot, user["id"])

    assert (first["name"], first["storage_name"]) == ("User_copy", "users_copy")
    assert (second["name"], second["storage_name"]) == ("User_copy2", "users_copy2")
    assert check_snapshot(snapshot) == []


def test_foreign_key_storage_name_avoids_plain_column_names(
    blog: tuple[Snapshot, TableSchema, TableSchema],
) -> None:
    """A column stored under its own name blocks the foreign key's default."""
    snapshot, user, post = blog
    snapshot, _ = add_column(snapshot, post["id"], name="user_id")
    snapshot, join = connect(snapshot, user["id"], post["id"])

    snapshot = configure_join(snapshot, join["id"], {"type": "one-to-many"})

    columns = tables_by_id(snapshot)[post["id"]]["columns"]
    assert [(col["name"], col["storage_name"]) for col in columns] == [
        ("id", "id"),
        ("user_id", ""),
        ("userId", "user_id2"),
    ]
