"""Metadata schema description: a closed set of field types.

A ``MetadataSchema`` is an ordered mapping of field name → field type. Field
order matters: filters are ANDed and columns are created in schema order.

    schema = {
        "domain": StringType(),
        "priority": OptionalType(NumberType()),
        "tags": OptionalType(ArrayType()),
    }

``schema_from_dict`` builds the same thing from the plain notation used in
``ragkit.yaml``::

    metadata:
      domain: string
      priority: number?
      tags: array?
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Union

from ragkit.errors import ConfigurationError


@dataclass(frozen=True)
class StringType:
    pass


@dataclass(frozen=True)
class NumberType:
    pass


@dataclass(frozen=True)
class BooleanType:
    pass


@dataclass(frozen=True)
class DateType:
    pass


@dataclass(frozen=True)
class ArrayType:
    """Array of strings, stored comma-joined."""


@dataclass(frozen=True)
class ObjectType:
    """Nested JSON object, stored as a JSON string."""


@dataclass(frozen=True)
class OptionalType:
    inner: FieldType


FieldType = Union[StringType, NumberType, BooleanType, DateType, ArrayType, ObjectType, OptionalType]

MetadataSchema = dict[str, FieldType]

_IDENTIFIER_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")

_TYPE_NAMES: dict[str, FieldType] = {
    "string": StringType(),
    "str": StringType(),
    "number": NumberType(),
    "float": NumberType(),
    "int": NumberType(),
    "boolean": BooleanType(),
    "bool": BooleanType(),
    "date": DateType(),
    "datetime": DateType(),
    "array": ArrayType(),
    "list": ArrayType(),
    "object": ObjectType(),
    "dict": ObjectType(),
}

# Core chunk columns; metadata fields may not shadow them.
RESERVED_FIELDS: frozenset[str] = frozenset(["chunk_id", "rowid"])

# SQLite keywords (sqlite.org/lang_keywords.html). Field names in this set
# must be double-quoted wherever they appear in SQL.
SQL_KEYWORDS: frozenset[str] = frozenset(
    """
    abort action add after all alter always analyze and as asc attach
    autoincrement before begin between by cascade case cast check collate
    column commit conflict constraint create cross current current_date
    current_time current_timestamp database default deferrable deferred
    delete desc detach distinct do drop each else end escape except exclude
    exclusive exists explain fail filter first following for foreign from
    full generated glob group groups having if ignore immediate in index
    indexed initially inner insert instead intersect into is isnull join key
    last left like limit match materialized natural no not nothing notnull
    null nulls of offset on or order others outer over partition plan pragma
    preceding primary query raise range recursive references regexp reindex
    release rename replace restrict returning right rollback row rows
    savepoint select set table temp temporary then ties to transaction
    trigger unbounded union unique update using vacuum values view virtual
    when where window with without
    """.split()
)


def unwrap(field_type: FieldType) -> FieldType:
    """Strip any OptionalType wrappers."""
    while isinstance(field_type, OptionalType):
        field_type = field_type.inner
    return field_type


def is_optional(field_type: FieldType) -> bool:
    return isinstance(field_type, OptionalType)


def storage_name(field: str) -> str:
    """Storage column for *field*: lower-cased, must be a plain identifier."""
    if not _IDENTIFIER_RE.fullmatch(field):
        raise ConfigurationError(
            f"Invalid metadata field name '{field}': use letters, digits and underscores."
        )
    return field.lower()


def quote_identifier(name: str) -> str:
    """Double-quote a validated column name for use in DDL and DML."""
    return f'"{storage_name(name)}"'


def column_type(field_type: FieldType) -> str:
    """SQLite column affinity for a field's encoded value."""
    match unwrap(field_type):
        case NumberType():
            return "REAL"
        case BooleanType() | DateType():
            return "INTEGER"
        case _:
            return "TEXT"


def validate_schema(schema: MetadataSchema) -> None:
    """Raise ConfigurationError on invalid, reserved, or colliding field names."""
    seen: dict[str, str] = {}
    for field in schema:
        name = storage_name(field)
        if name in RESERVED_FIELDS:
            raise ConfigurationError(f"Metadata field '{field}' is reserved.")
        if name in seen:
            raise ConfigurationError(
                f"Metadata fields '{seen[name]}' and '{field}' collide "
                "(storage names are case-insensitive)."
            )
        seen[name] = field


def parse_field_type(spec: str) -> FieldType:
    """Parse ``"string"``, ``"number?"``, ``"optional<array>"`` and friends."""
    text = spec.strip().lower()
    if text.endswith("?"):
        return OptionalType(parse_field_type(text[:-1]))
    if text.startswith("optional<") and text.endswith(">"):
        return OptionalType(parse_field_type(text[len("optional<"):-1]))
    if text.startswith("array<") and text.endswith(">"):
        if text[len("array<"):-1].strip() not in ("string", "str"):
            raise ConfigurationError(f"Only arrays of strings are supported: '{spec}'")
        return ArrayType()
    try:
        return _TYPE_NAMES[text]
    except KeyError:
        raise ConfigurationError(f"Unknown metadata field type '{spec}'") from None


def schema_from_dict(data: dict[str, Any]) -> MetadataSchema:
    """Build a validated schema from a ``{field: "type"}`` mapping."""
    schema: MetadataSchema = {}
    for field, spec in data.items():
        if not isinstance(spec, str):
            raise ConfigurationError(
                f"Metadata field '{field}' type must be a string, got {type(spec).__name__}"
            )
        schema[str(field)] = parse_field_type(spec)
    validate_schema(schema)
    return schema
