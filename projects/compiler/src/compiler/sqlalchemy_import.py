"""Parse SQLAlchemy declarative source back into a schema snapshot.

Only the declarative subset produced by the code generator, and the usual hand
written variations of it, is understood. The source is never executed: classes
are read from the syntax tree and every argument must be a literal.
"""

import ast
from logging import getLogger
from typing import Any

from sqlalchemy.types import TypeEngine

from schema.defaults import make_default_column, new_id
from schema.errors import ValidationError
from schema.invariants import check_snapshot, normalize_column
from schema.naming import stored_name
from schema.types import (
    JOIN_TYPES,
    REFERENTIAL_ACTIONS,
    ColumnSchema,
    DataType,
    DefaultValue,
    JoinType,
    Snapshot,
    TableSchema,
)

from compiler.references import ForeignKeyReference, resolve_references
from compiler.type_conversion import SQL_TYPES, python_to_sql, sql_to_data_type

logger = getLogger(__name__)

DECLARATIVE_BASES = frozenset({"DeclarativeBase", "DeclarativeBaseNoMeta"})
COLUMN_FACTORIES = frozenset({"mapped_column", "Column"})


def _error(node: ast.AST, message: str) -> ValidationError:
    """Build a validation error pointing at a source line."""
    line = getattr(node, "lineno", "?")
    return ValidationError(f"Line {line}: {message}")


def _call_name(node: ast.expr) -> str | None:
    """Name of the callable in ``name(...)`` or ``module.name(...)``."""
    func = node.func if isinstance(node, ast.Call) else node
    if isinstance(func, ast.Name):
        return func.id
    if isinstance(func, ast.Attribute):
        return func.attr
    return None


def _literal(node: ast.expr) -> Any:  # noqa: ANN401
    """Evaluate a literal argument."""
    try:
        return ast.literal_eval(node)
    except (ValueError, TypeError, SyntaxError) as e:
        raise _error(node, f"Expected a literal, got {ast.unparse(node)}") from e


def _keywords(call: ast.Call) -> dict[str, Any]:
    """Evaluate the keyword arguments of a call."""
    keywords: dict[str, Any] = {}
    for keyword in call.keywords:
        if keyword.arg is None:
            raise _error(call, "Keyword unpacking is not supported")
        keywords[keyword.arg] = _literal(keyword.value)
    return keywords


def _is_base(node: ast.ClassDef, bases: set[str]) -> bool:
    """Check if a class is a declarative base rather than a model."""
    if any(_call_name(base) in DECLARATIVE_BASES for base in node.bases):
        return True
    if any(
        keyword.arg == "metaclass" and _call_name(keyword.value) == "DeclarativeMeta"
        for keyword in node.keywords
    ):
        return True
    return not any(_call_name(base) in bases for base in node.bases) and not any(
        isinstance(stmt, ast.Assign | ast.AnnAssign) for stmt in node.body
    )


def _is_mapped(annotation: ast.expr | None) -> bool:
    """Check for a ``Mapped[...]`` annotation."""
    return isinstance(annotation, ast.Subscript) and _call_name(annotation.value) == "Mapped"


def _unwrap_mapped(annotation: ast.expr | None) -> tuple[ast.expr | None, bool]:
    """Strip ``Mapped[...]`` and report whether the inner type is optional."""
    if _is_mapped(annotation):
        annotation = annotation.slice  # type: ignore[union-attr]
    if isinstance(annotation, ast.BinOp) and isinstance(annotation.op, ast.BitOr):
        parts = [annotation.left, annotation.right]
        kept = [p for p in parts if not (isinstance(p, ast.Constant) and p.value is None)]
        if len(kept) == 1:
            return kept[0], True
    if isinstance(annotation, ast.Subscript) and _call_name(annotation.value) == "Optional":
        return annotation.slice, True
    return annotation, False


def _sql_type(node: ast.expr) -> TypeEngine[Any]:
    """Instantiate a SQLAlchemy type written as ``String(255)`` or ``Integer``."""
    name = _call_name(node)
    factory = SQL_TYPES.get(name or "")
    if factory is None:
        raise _error(node, f"Unknown column type {ast.unparse(node)}")
    if not isinstance(node, ast.Call):
        return factory()
    args = [_literal(arg) for arg in node.args]
    try:
        return factory(*args, **_keywords(node))
    except TypeError as e:
        raise _error(node, f"Invalid arguments for {name}: {e}") from e


def _coerce_default(value: Any, data_type: DataType) -> DefaultValue:  # noqa: ANN401
    """Turn a server default back into a value of the column's type."""
    if value is None or not isinstance(value, str):
        return value
    try:
        match data_type["type"]:
            case "number":
                return int(value)
            case "float":
                return float(value)
    except ValueError:
        return value
    return value


def _foreign_key(
    node: ast.Call,
    table_id: str,
    column_id: str,
    join_type: JoinType,
) -> ForeignKeyReference:
    """Read a ForeignKey(...) argument."""
    if not node.args:
        raise _error(node, "ForeignKey needs a target column")
    reference = _literal(node.args[0])
    if not isinstance(reference, str) or "." not in reference:
        raise _error(node, f"Invalid foreign key target {reference!r}")
    target_table, _, target_column = reference.rpartition(".")
    keywords = _keywords(node)
    on_delete = keywords.get("ondelete", "CASCADE")
    on_update = keywords.get("onupdate", "CASCADE")
    for action in (on_delete, on_update):
        if action not in REFERENTIAL_ACTIONS:
            raise _error(node, f"Unsupported referential action {action!r}")
    return ForeignKeyReference(
        table_id,
        column_id,
        target_table,
        target_column,
        on_delete,
        on_update,
        join_type,
        f"Line {node.lineno}",
    )


def parse_column(
    table_id: str,
    attribute: str,
    annotation: ast.expr | None,
    call: ast.Call | None,
) -> tuple[ColumnSchema, ForeignKeyReference | None]:
    """Build a column from an annotated mapped_column(...) assignment."""
    node: ast.AST = call or annotation or ast.Pass()
    inner, optional = _unwrap_mapped(annotation)
    keywords = _keywords(call) if call else {}
    info = keywords.get("info") or {}
    if not isinstance(info, dict):
        raise _error(node, f"Column {attribute} info must be a dict")

    storage_name = ""
    sql_type: TypeEngine[Any] | None = None
    foreign_key: ast.Call | None = None
    for index, arg in enumerate(call.args if call else []):
        if index == 0 and isinstance(arg, ast.Constant) and isinstance(arg.value, str):
            storage_name = arg.value
        elif _call_name(arg) == "ForeignKey" and isinstance(arg, ast.Call):
            foreign_key = arg
        else:
            sql_type = _sql_type(arg)

    if sql_type is None and inner is not None:
        sql_type = python_to_sql(ast.unparse(inner).rpartition(".")[2])
    if sql_type is None:
        raise _error(node, f"Column {attribute} has no recognisable type")

    try:
        data_type = sql_to_data_type(sql_type, info.get("data_type"))
    except ValueError as e:
        raise _error(node, str(e)) from e

    primary_key = keywords.get("primary_key") is True
    unique = keywords.get("unique") is True
    column = make_default_column(
        table_id,
        name=info.get("name", attribute),
        storage_name=storage_name,
        data_type=data_type,
        primary_key=primary_key,
        unique=unique,
        index=keywords.get("index") is True,
        nullable=keywords.get("nullable", optional and not primary_key) is True,
        auto_increment=keywords.get("autoincrement") is True,
        default_value=_coerce_default(keywords.get("server_default"), data_type),
        description=keywords.get("comment") or "",
    )

    reference = None
    if foreign_key is not None:
        join_type = info.get("join_type") or ("one-to-one" if unique else "many-to-one")
        if join_type not in JOIN_TYPES or join_type == "many-to-many":
            raise _error(node, f"Invalid join type {join_type!r} on {attribute}")
        reference = _foreign_key(foreign_key, table_id, column["id"], join_type)
    return column, reference


def parse_class(
    node: ast.ClassDef,
) -> tuple[TableSchema, list[ForeignKeyReference]]:
    """Build a table from a declarative model class."""
    table_id = new_id()
    tablename: str | None = None
    name = node.name
    description = ""
    columns: list[ColumnSchema] = []
    references: list[ForeignKeyReference] = []
    seen: set[str] = set()

    for stmt in node.body:
        match stmt:
            case ast.AnnAssign(target=ast.Name(id=attribute), annotation=annotation, value=value):
                pass
            case ast.Assign(targets=[ast.Name(id=attribute)], value=value):
                annotation = None
            case _:
                continue

        if attribute in seen:
            raise _error(stmt, f"Duplicate attribute {attribute} in class {node.name}")
        seen.add(attribute)

        if attribute == "__tablename__":
            tablename = _literal(value) if value is not None else None
            continue
        if attribute == "__table_args__":
            table_args = _literal(value) if value is not None else {}
            if isinstance(table_args, dict) and "name" in table_args.get("info", {}):
                name = table_args["info"]["name"]
            continue
        if attribute.startswith("__"):
            continue

        call = value if isinstance(value, ast.Call) else None
        callee = _call_name(call) if call is not None else None
        if callee == "relationship":
            continue
        if call is not None and callee not in COLUMN_FACTORIES:
            raise _error(stmt, f"Unsupported attribute value {ast.unparse(call)}")
        if call is None and (value is not None or not _is_mapped(annotation)):
            continue

        column, reference = parse_column(table_id, attribute, annotation, call)
        columns.append(column)
        if reference is not None:
            references.append(reference)

    if not isinstance(tablename, str) or not tablename:
        raise _error(node, f"Class {node.name} has no __tablename__")

    docstring = ast.get_docstring(node)
    if docstring and docstring != f"Auto-generated model for the {name} table.":
        description = docstring

    columns = [normalize_column(column) for column in columns]
    primary_key = next((col["id"] for col in columns if col["primary_key"]), None)
    table: TableSchema = {
        "id": table_id,
        "name": name,
        "storage_name": tablename if tablename != name else "",
        "primary_key_column_id": primary_key,
        "description": description,
        "columns": columns,
        "joins": [],
    }
    return table, references


def sqlalchemy_to_schema(source: str) -> Snapshot:
    """Parse declarative model source into a snapshot with fresh ids.

    Raises ValidationError for syntax errors, classes without ``__tablename__``,
    attributes defined twice in one class, unknown types, and foreign keys to
    tables or columns that are not defined.
    """
    try:
        tree = ast.parse(source)
    except SyntaxError as e:
        msg = f"Line {e.lineno}: {e.msg}"
        raise ValidationError(msg) from e

    bases: set[str] = set()
    tables: list[TableSchema] = []
    references: list[ForeignKeyReference] = []
    for node in tree.body:
        if not isinstance(node, ast.ClassDef):
            continue
        if _is_base(node, bases):
            bases.add(node.name)
            continue
        table, table_references = parse_class(node)
        tables.append(table)
        references.extend(table_references)

    names = [stored_name(table) for table in tables]
    if len(set(names)) != len(names):
        msg = "Two classes share the same __tablename__"
        raise ValidationError(msg)

    snapshot: Snapshot = {"tables": resolve_references(tables, references)}
    if violations := check_snapshot(snapshot):
        raise ValidationError("; ".join(violations))

    logger.debug("Parsed %d tables from source", len(snapshot["tables"]))
    return snapshot
