"""Schema-driven mapping between typed metadata and flat storage rows.

Encoding (value → column):

    string   str passthrough
    number   int/float passthrough
    boolean  1 / 0
    date     epoch milliseconds (int)
    array    comma-joined strings ("" for [])
    object   JSON string (sorted keys)

The columnar store has no null, so an absent optional field is written as its
type's sentinel (``SENTINEL_STRING`` for text columns, ``SENTINEL_NUMBER`` for
numeric ones) and decoded back to "field omitted". A genuine value equal to a
sentinel (an empty string, an empty list, a number equal to -1) is therefore
read back as absent. This is a known limitation, not something to paper over.
"""

from __future__ import annotations

import json
import math
from datetime import datetime, timezone
from typing import Any

from ragkit.errors import ValidationError
from ragkit.metadata.schema import (
    ArrayType,
    BooleanType,
    DateType,
    FieldType,
    MetadataSchema,
    NumberType,
    ObjectType,
    OptionalType,
    StringType,
    storage_name,
    unwrap,
)

SENTINEL_STRING = ""
SENTINEL_NUMBER = -1

ARRAY_DELIMITER = ","

StorageValue = str | int | float


def sentinel_for(field_type: FieldType) -> StorageValue:
    """Storage value that stands for "absent" in a column of this type."""
    match unwrap(field_type):
        case NumberType() | DateType() | BooleanType():
            return SENTINEL_NUMBER
        case _:
            return SENTINEL_STRING


# ---------------------------------------------------------------------------
# Serialize
# ---------------------------------------------------------------------------


def serialize_metadata(metadata: dict[str, Any], schema: MetadataSchema) -> dict[str, StorageValue]:
    """Encode *metadata* into a storage row keyed by lower-case field names.

    Keys not declared in *schema* are ignored.

    Raises:
        ValidationError: A required field is missing or a value has the wrong type.
    """
    row: dict[str, StorageValue] = {}
    for field, field_type in schema.items():
        column = storage_name(field)
        value = metadata.get(field)
        if value is None:
            if not isinstance(field_type, OptionalType):
                raise ValidationError(f"Missing required metadata field '{field}'")
            row[column] = sentinel_for(field_type)
            continue
        row[column] = encode_value(field, value, field_type)
    return row


def encode_value(field: str, value: Any, field_type: FieldType) -> StorageValue:
    """Encode a single non-None value for *field_type*."""
    match unwrap(field_type):
        case StringType():
            if not isinstance(value, str):
                raise _type_error(field, "string", value)
            return value
        case NumberType():
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise _type_error(field, "number", value)
            if isinstance(value, float) and not math.isfinite(value):
                raise ValidationError(f"Metadata field '{field}' must be finite, got {value}")
            return value
        case BooleanType():
            if not isinstance(value, bool):
                raise _type_error(field, "boolean", value)
            return 1 if value else 0
        case DateType():
            if not isinstance(value, datetime):
                raise _type_error(field, "datetime", value)
            return datetime_to_millis(value)
        case ArrayType():
            if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
                raise _type_error(field, "list of strings", value)
            if any(ARRAY_DELIMITER in v for v in value):
                raise ValidationError(
                    f"Metadata field '{field}' items may not contain '{ARRAY_DELIMITER}': {value!r}"
                )
            if any(v == "" for v in value):
                raise ValidationError(f"Metadata field '{field}' items may not be empty: {value!r}")
            return ARRAY_DELIMITER.join(value)
        case ObjectType():
            if not isinstance(value, dict):
                raise _type_error(field, "object", value)
            try:
                return json.dumps(value, sort_keys=True)
            except (TypeError, ValueError) as exc:
                raise ValidationError(f"Metadata field '{field}' is not JSON-serializable: {exc}") from exc
        case other:
            raise ValidationError(f"Unsupported field type {other!r} for '{field}'")


# ---------------------------------------------------------------------------
# Deserialize
# ---------------------------------------------------------------------------


def deserialize_metadata(row: dict[str, Any], schema: MetadataSchema) -> dict[str, Any]:
    """Decode a storage row back into typed metadata.

    Sentinels on optional fields (and missing columns) omit the key.
    """
    metadata: dict[str, Any] = {}
    for field, field_type in schema.items():
        raw = row.get(storage_name(field))
        if raw is None:
            if isinstance(field_type, OptionalType):
                continue
            raise ValidationError(f"Stored row is missing metadata column '{storage_name(field)}'")
        if isinstance(field_type, OptionalType) and raw == sentinel_for(field_type):
            continue
        metadata[field] = decode_value(raw, field_type)
    return metadata


def decode_value(raw: Any, field_type: FieldType) -> Any:
    match unwrap(field_type):
        case StringType():
            return str(raw)
        case NumberType():
            return raw if isinstance(raw, (int, float)) else float(raw)
        case BooleanType():
            return int(raw) == 1
        case DateType():
            return millis_to_datetime(int(raw))
        case ArrayType():
            return str(raw).split(ARRAY_DELIMITER) if raw != "" else []
        case ObjectType():
            return json.loads(raw)
        case other:
            raise ValidationError(f"Unsupported field type {other!r}")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def datetime_to_millis(value: datetime) -> int:
    """Epoch milliseconds; naive datetimes are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(round(value.timestamp() * 1000))


def millis_to_datetime(millis: int) -> datetime:
    return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)


def _type_error(field: str, expected: str, value: Any) -> ValidationError:
    return ValidationError(
        f"Metadata field '{field}' expects {expected}, got {type(value).__name__}: {value!r}"
    )
