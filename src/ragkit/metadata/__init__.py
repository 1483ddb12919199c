"""Metadata schema, storage codec and SQL filter builder."""

from ragkit.metadata.codec import (
    SENTINEL_NUMBER,
    SENTINEL_STRING,
    deserialize_metadata,
    serialize_metadata,
)
from ragkit.metadata.filters import (
    QueryFilters,
    build_metadata_filter,
    build_metadata_where_clause,
    build_where_clause,
    escape_sql_string,
)
from ragkit.metadata.schema import (
    ArrayType,
    BooleanType,
    DateType,
    MetadataSchema,
    NumberType,
    ObjectType,
    OptionalType,
    StringType,
    schema_from_dict,
)

__all__ = [
    "ArrayType",
    "BooleanType",
    "DateType",
    "MetadataSchema",
    "NumberType",
    "ObjectType",
    "OptionalType",
    "QueryFilters",
    "SENTINEL_NUMBER",
    "SENTINEL_STRING",
    "StringType",
    "build_metadata_filter",
    "build_metadata_where_clause",
    "build_where_clause",
    "deserialize_metadata",
    "escape_sql_string",
    "schema_from_dict",
    "serialize_metadata",
]
