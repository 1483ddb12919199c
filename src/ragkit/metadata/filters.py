"""SQL WHERE clause construction for chunk queries.

Predicates reference two table aliases set up by the repository's search
query: ``chunks`` (core columns) and ``metadata`` (one column per schema
field, lower-cased). Every literal goes through ``escape_sql_string`` before
interpolation; column names are checked against the identifier pattern and
quoted when they collide with an SQL keyword.
"""

from __future__ import annotations

import json
import math
import numbers
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping

from ragkit.errors import QueryError
from ragkit.metadata.codec import datetime_to_millis
from ragkit.metadata.schema import (
    ArrayType,
    BooleanType,
    DateType,
    FieldType,
    MetadataSchema,
    NumberType,
    ObjectType,
    SQL_KEYWORDS,
    StringType,
    unwrap,
)

METADATA_ALIAS = "metadata"
RESOURCE_ID_COLUMN = "chunks.resource_id"
ALWAYS_FALSE = "1 = 0"

_IDENTIFIER_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


@dataclass
class QueryFilters:
    """Structured query filter.

    Attributes:
        resource_id: One id or a list of ids; an empty list matches nothing.
        metadata: Field → value map, typed by the metadata schema. For array
            fields the value is a substring to look for (or a list of them).
    """

    resource_id: str | list[str] | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


def escape_sql_string(value: str) -> str:
    """Double single quotes for use inside a SQL string literal."""
    return value.replace("'", "''")


def _column(key: str) -> str:
    if not _IDENTIFIER_RE.fullmatch(key):
        raise QueryError(f"Invalid metadata field name '{key}'")
    name = key.lower()
    if name in SQL_KEYWORDS:
        name = f'"{name}"'
    return f"{METADATA_ALIAS}.{name}"


def _contains(column: str, value: Any) -> str:
    if not isinstance(value, str):
        raise QueryError(f"Array filter on {column} expects a string, got {type(value).__name__}")
    if not value:
        raise QueryError(f"Array filter on {column} expects a non-empty string")
    return f"instr({column}, '{escape_sql_string(value)}') > 0"


def _number_literal(value: numbers.Real) -> str:
    # Plain Python reprs only; numpy scalars repr as "np.float64(1.5)".
    if isinstance(value, numbers.Integral):
        return str(int(value))
    return repr(float(value))


def build_metadata_filter(key: str, value: Any, field_type: FieldType) -> str:
    """Render one metadata predicate.

    Examples:
        >>> build_metadata_filter("domain", "security", StringType())
        "metadata.domain = 'security'"
        >>> build_metadata_filter("tags", "auth", ArrayType())
        "instr(metadata.tags, 'auth') > 0"
    """
    column = _column(key)

    match unwrap(field_type):
        case StringType():
            if not isinstance(value, str):
                raise QueryError(f"Filter on '{key}' expects a string, got {value!r}")
            return f"{column} = '{escape_sql_string(value)}'"
        case NumberType():
            if isinstance(value, bool) or not isinstance(value, numbers.Real):
                raise QueryError(f"Filter on '{key}' expects a number, got {value!r}")
            if not math.isfinite(value):
                raise QueryError(f"Filter on '{key}' must be finite, got {value!r}")
            return f"{column} = {_number_literal(value)}"
        case BooleanType():
            if not isinstance(value, bool):
                raise QueryError(f"Filter on '{key}' expects a boolean, got {value!r}")
            return f"{column} = {1 if value else 0}"
        case DateType():
            if not isinstance(value, datetime):
                raise QueryError(f"Filter on '{key}' expects a datetime, got {value!r}")
            return f"{column} = {datetime_to_millis(value)}"
        case ArrayType():
            if isinstance(value, (list, tuple)):
                if not value:
                    raise QueryError(f"Filter on '{key}' has an empty value list")
                return " AND ".join(_contains(column, v) for v in value)
            return _contains(column, value)
        case ObjectType():
            if not isinstance(value, dict):
                raise QueryError(f"Filter on '{key}' expects an object, got {value!r}")
            encoded = json.dumps(value, sort_keys=True)
            return f"{column} = '{escape_sql_string(encoded)}'"
        case other:
            raise QueryError(f"Unsupported field type {other!r} for '{key}'")


def build_metadata_where_clause(
    metadata_filters: Mapping[str, Any] | None,
    schema: MetadataSchema,
) -> str | None:
    """AND together metadata predicates in schema order.

    None values are skipped. Returns None when nothing is left to filter on.

    Raises:
        QueryError: A filter key is not declared in *schema*.
    """
    if not metadata_filters:
        return None

    unknown = [k for k in metadata_filters if k not in schema]
    if unknown:
        raise QueryError(
            f"Unknown metadata filter field(s): {', '.join(sorted(unknown))}. "
            f"Schema fields: {', '.join(schema) or '(none)'}"
        )

    conditions = [
        build_metadata_filter(key, metadata_filters[key], field_type)
        for key, field_type in schema.items()
        if metadata_filters.get(key) is not None
    ]
    return " AND ".join(conditions) if conditions else None


def build_resource_filter(resource_id: str | list[str]) -> str:
    """Membership predicate on ``chunks.resource_id``; ``[]`` matches nothing."""
    ids = [resource_id] if isinstance(resource_id, str) else list(resource_id)
    if not ids:
        return ALWAYS_FALSE
    if not all(isinstance(i, str) for i in ids):
        raise QueryError(f"resource_id filter expects strings, got {ids!r}")
    id_list = ", ".join(f"'{escape_sql_string(i)}'" for i in ids)
    return f"{RESOURCE_ID_COLUMN} IN ({id_list})"


def build_where_clause(
    filters: QueryFilters | Mapping[str, Any] | None,
    schema: MetadataSchema,
) -> str | None:
    """Combine the resource-id and metadata predicates.

    *filters* may be a ``QueryFilters`` or a mapping with optional
    ``resource_id`` and ``metadata`` keys. Returns None when there is nothing
    to filter on, so the caller can omit the WHERE clause entirely.
    """
    if filters is None:
        return None
    if isinstance(filters, QueryFilters):
        resource_id, metadata = filters.resource_id, filters.metadata
    else:
        extra = set(filters) - {"resource_id", "metadata"}
        if extra:
            raise QueryError(f"Unknown filter key(s): {', '.join(sorted(extra))}")
        resource_id, metadata = filters.get("resource_id"), filters.get("metadata")

    conditions: list[str] = []
    if resource_id is not None:
        conditions.append(build_resource_filter(resource_id))

    metadata_clause = build_metadata_where_clause(metadata, schema)
    if metadata_clause:
        conditions.append(metadata_clause)

    return " AND ".join(conditions) if conditions else None
