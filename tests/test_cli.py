"""Tests for the erd command line interface."""

import json
from pathlib import Path

import pytest

from erd_toolkit import cli
from schema import load_document
from schema.joins import iter_owned_joins


@pytest.fixture(name="document")
def blog_document(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Document with User and Post tables in a clean working directory."""
    monkeypatch.chdir(tmp_path)
    path = tmp_path / "blog.json"
    cli.new(path)
    cli.add_table(path, "User")
    cli.add_table(path, "Post")
    return path


def test_new_refuses_to_overwrite(document: Path) -> None:
    """An existing document is only replaced with --force."""
    with pytest.raises(SystemExit) as excinfo:
        cli.new(document)
    assert excinfo.value.code == 1

    cli.new(document, force=True)
    snapshot, _ = load_document(document)
    assert snapshot["tables"] == []


def test_table_commands(document: Path) -> None:
    """Tables can be added, renamed, copied and removed by name."""
    cli.rename(document, "User", "Account")
    cli.copy_table(document, "Post")
    cli.remove_table(document, "Post")

    snapshot, layout = load_document(document)
    assert [table["name"] for table in snapshot["tables"]] == ["Account", "Post_copy"]
    assert set(layout) == {table["id"] for table in snapshot["tables"]}


def test_unknown_table_exits(document: Path) -> None:
    """Naming a missing table exits with status 1."""
    with pytest.raises(SystemExit) as excinfo:
        cli.remove_table(document, "Missing")
    assert excinfo.value.code == 1


def test_column_commands(document: Path) -> None:
    """Columns are added with flags and removed by name."""
    cli.add(document, "User", "email", "string", unique=True)
    cli.add(document, "User", "age", "number", nullable=True)
    cli.remove(document, "User", "age")

    snapshot, _ = load_document(document)
    user = snapshot["tables"][0]
    assert [col["name"] for col in user["columns"]] == ["id", "email"]
    assert user["columns"][1]["unique"]


def test_rejected_edit_exits(document: Path) -> None:
    """Removing a primary key column is refused."""
    with pytest.raises(SystemExit) as excinfo:
        cli.remove(document, "User", "id")
    assert excinfo.value.code == 1


def test_join_workflow(document: Path) -> None:
    """Joins are connected, configured and deleted by table names."""
    cli.connect(document, "User", "Post")
    cli.configure(document, "User", "Post", "one-to-many", on_delete="SET NULL")

    snapshot, _ = load_document(document)
    joins = list(iter_owned_joins(snapshot["tables"]))
    assert len(joins) == 1
    assert joins[0].configured
    assert joins[0].join["on_delete"] == "SET NULL"
    assert [col["name"] for col in snapshot["tables"][1]["columns"]] == ["id", "userId"]

    cli.delete(document, "Post", "User")
    snapshot, _ = load_document(document)
    assert list(iter_owned_joins(snapshot["tables"])) == []


def test_many_to_many_creates_junction(document: Path) -> None:
    """A many-to-many join is configured into a junction table."""
    cli.connect(document, "User", "Post")
    cli.configure(document, "User", "Post", "many-to-many", through="authorship")

    snapshot, _ = load_document(document)
    assert [table["name"] for table in snapshot["tables"]] == ["User", "Post", "authorship"]


def test_check_reports_tables(document: Path, capsys: pytest.CaptureFixture[str]) -> None:
    """Consistent documents pass the check."""
    cli.check(document)

    output = capsys.readouterr()
    assert "User" in output.out
    assert "Document is consistent" in output.err


def test_check_reports_violations(
    document: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    """Invariant violations are listed and exit with status 1."""
    data = json.loads(document.read_text())
    data["tables"][0]["columns"][0]["nullable"] = True
    document.write_text(json.dumps(data))

    with pytest.raises(SystemExit) as excinfo:
        cli.check(document)

    assert excinfo.value.code == 1
    assert "nullable primary key" in capsys.readouterr().err


def test_compile_and_parse(
    document: Path,
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    """Generated models parse back onto the document they came from."""
    cli.connect(document, "User", "Post")
    cli.configure(document, "User", "Post", "one-to-many")
    capsys.readouterr()

    cli.compile(document)
    source = capsys.readouterr().out
    assert "class Post(Base):" in source

    models = tmp_path / "models.py"
    models.write_text(source)
    cli.parse(models, document=document)
    parsed = json.loads(capsys.readouterr().out)

    snapshot, layout = load_document(document)
    assert parsed["tables"] == snapshot["tables"]
    assert parsed["layout"] == layout


def test_compile_and_parse_mongodb(
    document: Path,
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    """The target option switches compile and parse to MongoDB collections."""
    cli.connect(document, "User", "Post")
    cli.configure(document, "User", "Post", "one-to-many")
    capsys.readouterr()

    cli.compile(document, target="mongodb")
    source = capsys.readouterr().out
    names = [entry["name"] for entry in json.loads(source)["collections"]]
    assert names == ["User", "Post"]

    collections = tmp_path / "collections.json"
    collections.write_text(source)
    cli.parse(collections, document=document, target="mongodb")
    parsed = json.loads(capsys.readouterr().out)

    snapshot, _ = load_document(document)
    assert parsed["tables"] == snapshot["tables"]


def test_compile_target_from_settings(
    document: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    """Without the option the configured target is compiled."""
    Path("erd.toml").write_text('[erd]\ntarget = "mongodb"\n')
    capsys.readouterr()

    cli.compile(document)

    assert "$jsonSchema" in capsys.readouterr().out


def test_diagram(document: Path, capsys: pytest.CaptureFixture[str]) -> None:
    """Diagrams render as HTML or as graph JSON."""
    capsys.readouterr()

    cli.diagram(document)
    assert "<title>blog</title>" in capsys.readouterr().out

    cli.diagram(document, "json")
    graph = json.loads(capsys.readouterr().out)
    assert [node["data"]["name"] for node in graph["nodes"]] == ["User", "Post"]


def test_invalid_settings_exit(document: Path) -> None:
    """A broken erd.toml stops commands that read it."""
    Path("erd.toml").write_text("[erd]\ncolour = 'blue'\n")

    with pytest.raises(SystemExit) as excinfo:
        cli.add_table(document, "Comment")
    assert excinfo.value.code == 1


def test_number_keys_from_settings(document: Path) -> None:
    """The configured primary key type applies to new tables."""
    Path("erd.toml").write_text('[erd]\nprimary_key_type = "number"\n')

    cli.add_table(document, "Comment")

    snapshot, _ = load_document(document)
    key = snapshot["tables"][2]["columns"][0]
    assert key["data_type"] == {"type": "number"}
    assert key["auto_increment"]
