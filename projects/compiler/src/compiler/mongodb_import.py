"""Parse MongoDB collection definitions back into a schema snapshot.

The definitions are checked against ``COLLECTIONS_FORMAT`` before anything is
built from them, so every later lookup can rely on the document's shape.
"""

from json import JSONDecodeError, loads
from logging import getLogger
from typing import Any

from jsonschema import Draft7Validator

from schema.defaults import make_default_column, new_id
from schema.errors import ValidationError
from schema.invariants import check_snapshot, normalize_column
from schema.types import (
    JOIN_TYPES,
    REFERENTIAL_ACTIONS,
    ColumnSchema,
    JoinType,
    Snapshot,
    TableSchema,
)

from compiler.references import ForeignKeyReference, resolve_references
from compiler.type_conversion import BSON_TYPES, bson_to_data_type

logger = getLogger(__name__)

type Document = dict[str, Any]

_NAME = {"type": "string", "minLength": 1}

COLLECTIONS_FORMAT: Document = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": ["collections"],
    "properties": {
        "collections": {"type": "array", "items": {"$ref": "#/definitions/collection"}},
    },
    "definitions": {
        "collection": {
            "type": "object",
            "required": ["name", "validator"],
            "properties": {
                "name": _NAME,
                "validator": {
                    "type": "object",
                    "required": ["$jsonSchema"],
                    "properties": {"$jsonSchema": {"$ref": "#/definitions/schema"}},
                },
                "indexes": {"type": "array", "items": {"$ref": "#/definitions/index"}},
                "erd": {"$ref": "#/definitions/metadata"},
            },
        },
        "schema": {
            "type": "object",
            "required": ["properties"],
            "properties": {
                "bsonType": {"const": "object"},
                "title": _NAME,
                "description": {"type": "string"},
                "required": {"type": "array", "items": {"type": "string"}, "uniqueItems": True},
                "properties": {
                    "type": "object",
                    "additionalProperties": {"$ref": "#/definitions/property"},
                },
            },
        },
        "property": {
            "type": "object",
            "required": ["bsonType"],
            "properties": {
                "bsonType": {
                    "anyOf": [
                        {"enum": list(BSON_TYPES)},
                        {
                            "type": "array",
                            "items": {"enum": [*BSON_TYPES, "null"]},
                            "minItems": 1,
                            "uniqueItems": True,
                        },
                    ],
                },
                "title": _NAME,
                "description": {"type": "string"},
                "maxLength": {"type": "integer", "minimum": 1},
            },
        },
        "index": {
            "type": "object",
            "required": ["key"],
            "properties": {
                "key": {
                    "type": "object",
                    "minProperties": 1,
                    "additionalProperties": {"enum": [1, -1]},
                },
                "name": {"type": "string"},
                "unique": {"type": "boolean"},
            },
        },
        "metadata": {
            "type": "object",
            "properties": {
                "primaryKey": _NAME,
                "fields": {
                    "type": "object",
                    "additionalProperties": {"$ref": "#/definitions/field"},
                },
                "references": {
                    "type": "array",
                    "items": {"$ref": "#/definitions/reference"},
                },
            },
        },
        "field": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "autoIncrement": {"type": "boolean"},
                "default": {"type": ["string", "number", "boolean", "null"]},
                "collation": {"type": ["string", "null"]},
                "precision": {"type": ["integer", "null"]},
                "scale": {"type": ["integer", "null"]},
            },
        },
        "reference": {
            "type": "object",
            "required": ["field", "collection", "references"],
            "properties": {
                "field": _NAME,
                "collection": _NAME,
                "references": _NAME,
                "type": {"enum": [t for t in JOIN_TYPES if t != "many-to-many"]},
                "onDelete": {"enum": list(REFERENTIAL_ACTIONS)},
                "onUpdate": {"enum": list(REFERENTIAL_ACTIONS)},
            },
        },
    },
}

FORMAT_VALIDATOR = Draft7Validator(COLLECTIONS_FORMAT)


def _reject_duplicates(pairs: list[tuple[str, Any]]) -> Document:
    """Build a JSON object, refusing keys that appear twice."""
    document: Document = {}
    for key, value in pairs:
        if key in document:
            msg = f"Duplicate property {key!r}"
            raise ValidationError(msg)
        document[key] = value
    return document


def load_definitions(source: str) -> Document:
    """Read collection definitions and check them against the format."""
    try:
        document = loads(source, object_pairs_hook=_reject_duplicates)
    except JSONDecodeError as e:
        msg = f"Line {e.lineno}: {e.msg}"
        raise ValidationError(msg) from e

    errors = sorted(
        FORMAT_VALIDATOR.iter_errors(document),
        key=lambda error: [str(p) for p in error.path],
    )
    if errors:
        messages = [
            f"{'.'.join(str(p) for p in error.path) or 'root'}: {error.message}"
            for error in errors
        ]
        raise ValidationError("; ".join(messages))
    return document


def _bson_type(collection: str, field: str, prop: Document) -> tuple[str, bool]:
    """Split a field's bsonType into its type and whether null is allowed."""
    declared = prop["bsonType"]
    types = declared if isinstance(declared, list) else [declared]
    kept = [t for t in types if t != "null"]
    if len(kept) != 1:
        msg = f"Collection {collection}: field {field} needs exactly one non-null bsonType"
        raise ValidationError(msg)
    return kept[0], len(kept) != len(types)


def _indexed_fields(collection: Document) -> tuple[set[str], set[str]]:
    """Return (indexed, unique) field names from single field indexes."""
    indexed: set[str] = set()
    unique: set[str] = set()
    for index in collection.get("indexes", []):
        if len(index["key"]) != 1:
            msg = f"Collection {collection['name']}: compound indexes are not supported"
            raise ValidationError(msg)
        (field,) = index["key"]
        if index.get("unique") is True:
            unique.add(field)
        else:
            indexed.add(field)
    return indexed, unique


def parse_field(
    table_id: str,
    collection: str,
    field: str,
    prop: Document,
    settings: Document,
) -> ColumnSchema:
    """Build a column from one validator property and its stored settings."""
    bson_type, nullable = _bson_type(collection, field, prop)
    try:
        data_type = bson_to_data_type(
            bson_type,
            max_length=prop.get("maxLength"),
            collation=settings.get("collation"),
            precision=settings.get("precision"),
            scale=settings.get("scale"),
        )
    except ValueError as e:
        msg = f"Collection {collection}: {e}"
        raise ValidationError(msg) from e

    name = prop.get("title", field)
    return make_default_column(
        table_id,
        name=name,
        storage_name=field if "title" in prop else "",
        data_type=data_type,
        nullable=nullable,
        auto_increment=settings.get("autoIncrement") is True,
        default_value=settings.get("default"),
        description=prop.get("description", ""),
    )


def parse_collection(
    collection: Document,
) -> tuple[TableSchema, list[ForeignKeyReference]]:
    """Build a table from one collection definition.

    Without a ``primaryKey`` in the metadata an ``_id`` field is the primary key.
    """
    table_id = new_id()
    name = collection["name"]
    schema = collection["validator"]["$jsonSchema"]
    metadata = collection.get("erd", {})
    fields = metadata.get("fields", {})
    properties: Document = schema["properties"]
    indexed, unique = _indexed_fields(collection)
    primary_key = metadata.get("primaryKey", "_id" if "_id" in properties else None)

    named = {
        *schema.get("required", []),
        *fields,
        *indexed,
        *unique,
        *([primary_key] if primary_key else []),
    }
    if unknown := named - properties.keys():
        msg = f"Collection {name}: unknown fields {', '.join(sorted(unknown))}"
        raise ValidationError(msg)

    columns: dict[str, ColumnSchema] = {}
    for field, prop in properties.items():
        column = parse_field(table_id, name, field, prop, fields.get(field, {}))
        column["primary_key"] = field == primary_key
        column["unique"] = field in unique
        column["index"] = field in indexed
        columns[field] = normalize_column(column)

    references: list[ForeignKeyReference] = []
    for reference in metadata.get("references", []):
        column = columns.get(reference["field"])
        if column is None:
            msg = f"Collection {name}: reference from unknown field {reference['field']}"
            raise ValidationError(msg)
        join_type: JoinType = reference.get("type") or (
            "one-to-one" if column["unique"] else "many-to-one"
        )
        references.append(
            ForeignKeyReference(
                table_id,
                column["id"],
                reference["collection"],
                reference["references"],
                reference.get("onDelete", "CASCADE"),
                reference.get("onUpdate", "CASCADE"),
                join_type,
                f"Collection {name}",
            ),
        )

    title = schema.get("title", name)
    table: TableSchema = {
        "id": table_id,
        "name": title,
        "storage_name": name if "title" in schema else "",
        "primary_key_column_id": columns[primary_key]["id"] if primary_key else None,
        "description": schema.get("description", ""),
        "columns": list(columns.values()),
        "joins": [],
    }
    return table, references


def mongodb_to_schema(source: str) -> Snapshot:
    """Parse MongoDB collection definitions into a snapshot with fresh ids.

    Raises ValidationError for malformed JSON, properties defined twice in one
    object, documents outside the collection format, unknown BSON types, and
    references to collections or fields that are not defined.
    """
    document = load_definitions(source)

    tables: list[TableSchema] = []
    references: list[ForeignKeyReference] = []
    for collection in document["collections"]:
        table, table_references = parse_collection(collection)
        tables.append(table)
        references.extend(table_references)

    names = [collection["name"] for collection in document["collections"]]
    if len(set(names)) != len(names):
        msg = "Two collections share the same name"
        raise ValidationError(msg)

    snapshot: Snapshot = {"tables": resolve_references(tables, references)}
    if violations := check_snapshot(snapshot):
        raise ValidationError("; ".join(violations))

    logger.debug("Parsed %d collections from source", len(snapshot["tables"]))
    return snapshot
