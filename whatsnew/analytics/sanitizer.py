"""Property sanitizer.

Each raw value is checked against its property schema and either accepted
(possibly trimmed) or rejected outright.  Values are never coerced across
types: the string ``"42"`` is not a number, ``1`` is not a boolean.

A rejected value is reported as :data:`REJECTED`, never as ``None``, so
callers cannot confuse "no value" with a legitimately falsy one.
"""
from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any, Final

from whatsnew.analytics.taxonomy import (
    DEFAULT_TAXONOMY,
    BooleanSchema,
    NumberSchema,
    ObjectSchema,
    PropertySchema,
    StringSchema,
    Taxonomy,
)


class _Rejected:
    __slots__ = ()

    def __repr__(self) -> str:
        return "REJECTED"

    def __bool__(self) -> bool:
        return False


REJECTED: Final = _Rejected()


def sanitize_string(value: Any, allowed_values: tuple[str, ...] | None = None) -> Any:
    if not isinstance(value, str):
        return REJECTED

    normalized = value.strip()
    if not normalized:
        return REJECTED

    if allowed_values is not None and normalized not in allowed_values:
        return REJECTED

    return normalized


def sanitize_number(value: Any) -> Any:
    # bool is an int subclass
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return REJECTED
    if isinstance(value, float) and not math.isfinite(value):
        return REJECTED
    return value


def sanitize_boolean(value: Any) -> Any:
    if not isinstance(value, bool):
        return REJECTED
    return value


def sanitize_object(value: Any, schema: ObjectSchema) -> Any:
    """Sanitize each declared sub-field of *value*.

    Sub-fields that fail are dropped, undeclared ones are ignored.  The whole
    object is rejected when a required sub-field is missing afterwards.
    """
    if not isinstance(value, Mapping):
        return REJECTED

    sanitized: dict[str, Any] = {}
    for sub in schema.fields:
        if sub.name not in value:
            continue
        parsed = sanitize_with_schema(sub.schema, value[sub.name])
        if parsed is not REJECTED:
            sanitized[sub.name] = parsed

    for sub in schema.fields:
        if sub.required and sub.name not in sanitized:
            return REJECTED

    return sanitized


def sanitize_with_schema(schema: PropertySchema, value: Any) -> Any:
    """Dispatch *value* to the rule for its schema variant."""
    if isinstance(schema, StringSchema):
        return sanitize_string(value, schema.enum_values)
    if isinstance(schema, NumberSchema):
        return sanitize_number(value)
    if isinstance(schema, BooleanSchema):
        return sanitize_boolean(value)
    if isinstance(schema, ObjectSchema):
        return sanitize_object(value, schema)
    return REJECTED


def sanitize_value(key: str, raw_value: Any, taxonomy: Taxonomy = DEFAULT_TAXONOMY) -> Any:
    """Return the accepted value for property *key*, or :data:`REJECTED`.

    Unknown keys are always rejected.
    """
    schema = taxonomy.schema_for(key)
    if schema is None:
        return REJECTED
    return sanitize_with_schema(schema, raw_value)
