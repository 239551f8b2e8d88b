"""SQLAlchemy declarative code generation from schema snapshots."""

from collections import defaultdict
from json import dumps

from schema.errors import CompilerError
from schema.joins import find_column, primary_key_column, tables_by_id
from schema.naming import (
    pascal_case,
    python_identifier,
    snake_case,
    stored_name,
    unique_name,
)
from schema.types import ColumnSchema, JoinSchema, Snapshot, TableSchema

from compiler.type_conversion import data_type_to_sql, sql_to_python, sql_to_string
from compiler.validation import check_unique_names

type Imports = dict[str, set[str]]

INDENT = "    "


def table_name(table: TableSchema) -> str:
    """Name of the table in the database."""
    return stored_name(table)


def column_name(column: ColumnSchema) -> str:
    """Name of the column in the database."""
    return stored_name(column)


def class_names(snapshot: Snapshot, base_class: str) -> dict[str, str]:
    """Assign every table a distinct Python class name."""
    names: dict[str, str] = {}
    for table in snapshot["tables"]:
        base = python_identifier(pascal_case(table["name"]) or "Table")
        names[table["id"]] = unique_name(base, [base_class, *names.values()])
    return names


def attribute_name(column: ColumnSchema) -> str:
    """Python attribute for a column."""
    return python_identifier(column["name"])


def relationship_name(column: ColumnSchema, target: TableSchema, taken: set[str]) -> str:
    """Name the relationship attribute that follows a foreign key."""
    attribute = attribute_name(column)
    for suffix in ("_id", "Id", "ID"):
        if attribute.endswith(suffix) and attribute != suffix:
            base = attribute.removesuffix(suffix)
            break
    else:
        base = f"{attribute}_{snake_case(pascal_case(target['name']))}"
    return unique_name(python_identifier(base), taken)


def _literal(value: object) -> str:
    """Render a value as a Python literal, strings double quoted."""
    if isinstance(value, str):
        return dumps(value)
    return repr(value)


def _info(column: ColumnSchema) -> str:
    """Render the info dict carrying what SQLAlchemy types cannot express."""
    info: dict[str, object] = {"data_type": column["data_type"]["type"]}
    if attribute_name(column) != column["name"]:
        info["name"] = column["name"]
    if column["foreign_key"] is not None:
        info["join_type"] = column["foreign_key"]["type"]
    items = ", ".join(f"{_literal(key)}: {_literal(value)}" for key, value in info.items())
    return f"info={{{items}}}"


def render_foreign_key(join: JoinSchema, tables: dict[str, TableSchema]) -> str:
    """Render the ForeignKey construct for a configured join."""
    target = join["target"]
    referenced = tables.get(target["table"]) if target else None
    column = find_column(referenced, target["column"]) if referenced and target else None
    if referenced is None or column is None:
        msg = f"Join {join['id']} references a missing column"
        raise CompilerError(msg)
    ref = f"{table_name(referenced)}.{column_name(column)}"
    return (
        f"ForeignKey({_literal(ref)}, ondelete={_literal(join['on_delete'])}, "
        f"onupdate={_literal(join['on_update'])})"
    )


def generate_column_definition(
    column: ColumnSchema,
    tables: dict[str, TableSchema],
    imports: Imports,
) -> str:
    """Generate mapped_column definition for a column."""
    sql_type = data_type_to_sql(column["data_type"])
    type_info = sql_to_python(sql_type)
    if type_info.module != "builtins":
        imports[type_info.module].add(type_info.name)
    imports["sqlalchemy"].add(sql_type.__class__.__name__)

    python_type = (
        f"{type_info.expression} | None" if column["nullable"] else type_info.expression
    )

    args: list[str] = []
    if column["storage_name"]:
        args.append(_literal(column["storage_name"]))
    args.append(sql_to_string(sql_type))

    if column["foreign_key"] is not None:
        imports["sqlalchemy"].add("ForeignKey")
        args.append(render_foreign_key(column["foreign_key"], tables))

    if column["primary_key"]:
        args.append("primary_key=True")
    if column["auto_increment"]:
        args.append("autoincrement=True")
    if column["unique"]:
        args.append("unique=True")
    if column["index"]:
        args.append("index=True")
    if not column["primary_key"]:
        args.append(f"nullable={column['nullable']}")
    if column["default_value"] is not None:
        args.append(f"server_default={_literal(str(column['default_value']))}")
    if column["description"]:
        args.append(f"comment={_literal(column['description'])}")
    args.append(_info(column))

    imports["sqlalchemy.orm"].update(("Mapped", "mapped_column"))
    return (
        f"{INDENT}{attribute_name(column)}: Mapped[{python_type}] = "
        f"mapped_column({', '.join(args)})"
    )


def generate_relationship_definition(
    column: ColumnSchema,
    table: TableSchema,
    tables: dict[str, TableSchema],
    names: dict[str, str],
    taken: set[str],
    imports: Imports,
) -> str:
    """Generate the relationship that follows a foreign-key column."""
    join = column["foreign_key"]
    if join is None or join["target"] is None:
        msg = f"Column {column['name']} carries no configured join"
        raise CompilerError(msg)
    target = tables[join["target"]["table"]]
    rel_name = relationship_name(column, target, taken)
    taken.add(rel_name)

    target_class = names[target["id"]]
    type_def = f"{target_class} | None" if column["nullable"] else target_class
    args = [f"foreign_keys=[{attribute_name(column)}]"]
    if target["id"] == table["id"] and (key := primary_key_column(table)):
        args.append(f"remote_side=[{attribute_name(key)}]")

    imports["sqlalchemy.orm"].update(("Mapped", "relationship"))
    return f"{INDENT}{rel_name}: Mapped[{type_def}] = relationship({', '.join(args)})"


def generate_class_definition(
    table: TableSchema,
    tables: dict[str, TableSchema],
    names: dict[str, str],
    base_class: str,
    imports: Imports,
) -> str:
    """Generate complete SQLAlchemy class definition for a table."""
    class_name = names[table["id"]]
    default = f"Auto-generated model for the {table['name']} table."
    docstring = (table["description"] or default).replace("\\", "\\\\").replace('"""', "'''")
    lines = [
        f"class {class_name}({base_class}):",
        f'{INDENT}"""{docstring}"""',
        "",
        f"{INDENT}__tablename__ = {_literal(table_name(table))}",
    ]
    if class_name != table["name"]:
        info = _literal(table["name"])
        lines.append(f'{INDENT}__table_args__ = {{"info": {{"name": {info}}}}}')
    lines.append("")

    lines.extend(
        generate_column_definition(column, tables, imports) for column in table["columns"]
    )

    keys = [column for column in table["columns"] if column["foreign_key"] is not None]
    if keys:
        taken = {attribute_name(column) for column in table["columns"]}
        lines.append("")
        lines.extend(
            generate_relationship_definition(column, table, tables, names, taken, imports)
            for column in keys
        )
    return "\n".join(lines)


def generate_imports(imports: Imports) -> str:
    """Generate import statements from collected imports."""
    return "\n".join(
        f"from {module} import {', '.join(sorted(names))}"
        for module, names in sorted(
            imports.items(),
            key=lambda item: (item[0] != "__future__", item[0]),
        )
    )


def generate_base_class(base_name: str) -> str:
    """Generate the base class definition."""
    return f'''class {base_name}(DeclarativeBase):
    """Base class for all generated models."""'''


def check_serializable(snapshot: Snapshot) -> None:
    """Refuse snapshots whose names would collide in generated source."""
    check_unique_names(snapshot)
    for table in snapshot["tables"]:
        attributes = [attribute_name(column) for column in table["columns"]]
        if len(set(attributes)) != len(attributes):
            msg = f"Column names in {table['name']} collide as Python attributes"
            raise CompilerError(msg)


def schema_to_sqlalchemy(snapshot: Snapshot, base_class: str = "Base") -> str:
    """Generate SQLAlchemy models for every table of a snapshot.

    Only configured joins are rendered; joins still waiting for configuration
    have no foreign key to express.
    """
    check_serializable(snapshot)
    tables = tables_by_id(snapshot)
    names = class_names(snapshot, base_class)

    imports: Imports = defaultdict(set)
    imports["__future__"].add("annotations")
    imports["sqlalchemy.orm"].add("DeclarativeBase")

    # Force evaluation so the imports are complete before they are rendered
    models = [
        generate_class_definition(table, tables, names, base_class, imports)
        for table in snapshot["tables"]
    ]

    parts = (
        '"""SQLAlchemy models generated by erd-toolkit."""',
        "",
        generate_imports(imports),
        "",
        "",
        generate_base_class(base_class),
        *(f"\n\n{model}" for model in models),
    )
    return "\n".join(parts) + "\n"
