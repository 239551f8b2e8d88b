"""MongoDB collection definitions generated from schema snapshots.

Every table becomes a collection with a ``$jsonSchema`` validator and the index
specs MongoDB's ``createIndexes`` takes. What a validator cannot hold (the
primary key, auto increment, defaults, collations, decimal precision and the
references between collections) is kept in the collection's ``erd`` block so
the definitions can be read back without losing the model. A ``title`` holds
the model name of a table or column that has its own database name.
"""

from json import dumps
from typing import Any

from schema.errors import CompilerError
from schema.joins import find_column, tables_by_id
from schema.naming import stored_name
from schema.types import ColumnSchema, Snapshot, TableSchema

from compiler.type_conversion import data_type_to_bson
from compiler.validation import check_unique_names

type Document = dict[str, Any]


def check_field_names(snapshot: Snapshot) -> None:
    """Refuse names MongoDB does not allow for collections or fields."""
    for table in snapshot["tables"]:
        collection = stored_name(table)
        if collection.startswith("system.") or "$" in collection:
            msg = f"Invalid collection name: {collection}"
            raise CompilerError(msg)
        for column in table["columns"]:
            field = stored_name(column)
            if not field or field.startswith("$") or "." in field:
                msg = f"Invalid field name in {table['name']}: {field!r}"
                raise CompilerError(msg)


def generate_property(column: ColumnSchema) -> Document:
    """Generate the validator entry of one field."""
    bson_type = data_type_to_bson(column["data_type"])
    prop: Document = {"bsonType": [bson_type, "null"] if column["nullable"] else bson_type}
    if column["storage_name"]:
        prop["title"] = column["name"]
    if column["description"]:
        prop["description"] = column["description"]
    if column["data_type"]["type"] == "string":
        prop["maxLength"] = column["data_type"]["length"]
    return prop


def generate_field_settings(column: ColumnSchema) -> Document:
    """Collect the column settings a validator cannot express."""
    settings: Document = {}
    if column["auto_increment"]:
        settings["autoIncrement"] = True
    if column["default_value"] is not None:
        settings["default"] = column["default_value"]
    match column["data_type"]:
        case {"type": "string", "collation": str() as collation}:
            settings["collation"] = collation
        case {"type": "float", "precision": int() as precision, "scale": scale}:
            settings["precision"] = precision
            if scale is not None:
                settings["scale"] = scale
    return settings


def generate_indexes(table: TableSchema) -> list[Document]:
    """Generate single field index specs for unique and indexed columns."""
    indexes: list[Document] = []
    for column in table["columns"]:
        if column["primary_key"] or not (column["unique"] or column["index"]):
            continue
        field = stored_name(column)
        index: Document = {"key": {field: 1}, "name": f"{field}_1"}
        if column["unique"]:
            index["unique"] = True
        indexes.append(index)
    return indexes


def generate_references(
    table: TableSchema,
    tables: dict[str, TableSchema],
) -> list[Document]:
    """Describe the configured foreign keys of a table."""
    references: list[Document] = []
    for column in table["columns"]:
        join = column["foreign_key"]
        if join is None or join["target"] is None or join["target"]["column"] is None:
            continue
        target = tables[join["target"]["table"]]
        target_column = find_column(target, join["target"]["column"])
        if target_column is None:
            msg = f"Foreign key {column['name']} references a missing column"
            raise CompilerError(msg)
        references.append(
            {
                "field": stored_name(column),
                "collection": stored_name(target),
                "references": stored_name(target_column),
                "type": join["type"],
                "onDelete": join["on_delete"],
                "onUpdate": join["on_update"],
            },
        )
    return references


def generate_collection(table: TableSchema, tables: dict[str, TableSchema]) -> Document:
    """Generate the definition of one collection."""
    schema: Document = {"bsonType": "object"}
    if table["storage_name"]:
        schema["title"] = table["name"]
    if table["description"]:
        schema["description"] = table["description"]
    schema["required"] = [
        stored_name(column) for column in table["columns"] if not column["nullable"]
    ]
    schema["properties"] = {
        stored_name(column): generate_property(column) for column in table["columns"]
    }

    metadata: Document = {}
    primary_key = next((col for col in table["columns"] if col["primary_key"]), None)
    if primary_key is not None:
        metadata["primaryKey"] = stored_name(primary_key)
    fields = {
        stored_name(column): settings
        for column in table["columns"]
        if (settings := generate_field_settings(column))
    }
    if fields:
        metadata["fields"] = fields
    if references := generate_references(table, tables):
        metadata["references"] = references

    collection: Document = {
        "name": stored_name(table),
        "validator": {"$jsonSchema": schema},
    }
    if indexes := generate_indexes(table):
        collection["indexes"] = indexes
    if metadata:
        collection["erd"] = metadata
    return collection


def schema_to_mongodb(snapshot: Snapshot) -> str:
    """Generate MongoDB collection definitions for every table of a snapshot.

    Only configured joins are rendered; joins still waiting for configuration
    have no foreign key to express.
    """
    check_unique_names(snapshot)
    check_field_names(snapshot)
    tables = tables_by_id(snapshot)
    collections = [generate_collection(table, tables) for table in snapshot["tables"]]
    return dumps({"collections": collections}, indent=2) + "\n"
