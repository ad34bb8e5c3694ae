"""Taxonomy export — the registry as plain, JSON-serializable data.

The browser tracker must enforce exactly the rules the server enforces.
Instead of a hand-maintained copy, pages embed ``export_taxonomy()`` and the
client runs the same algorithm over it.  ``load_taxonomy()`` rebuilds a
:class:`Taxonomy` from that data so the round trip can be checked here.

Export layout
-------------
event_names                     list of event name strings
property_schema                 {key: {"type": ..., "enum_values"?: [...],
                                       "properties"?: {sub: {"type", "required"?}}}}
event_property_allowlist        {event: [key, ...]}   (ordered)
event_required_properties       {event: [key, ...]}
events_requiring_post_identity  [event, ...]
forbidden_property_keys         [key, ...]
forbidden_property_key_pattern  regex source, matched case-insensitively
"""
from __future__ import annotations

import html
import json
import re
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

from whatsnew.analytics.taxonomy import (
    DEFAULT_TAXONOMY,
    BooleanSchema,
    NumberSchema,
    ObjectField,
    ObjectSchema,
    PropertySchema,
    StringSchema,
    Taxonomy,
    TaxonomyError,
    build_contracts,
)

DEFAULT_SCRIPT_ELEMENT_ID = "whats-new-analytics-taxonomy"

_REQUIRED_KEYS: frozenset[str] = frozenset({
    "event_names",
    "property_schema",
    "event_property_allowlist",
    "event_required_properties",
    "events_requiring_post_identity",
    "forbidden_property_keys",
    "forbidden_property_key_pattern",
})

# Characters that could end a <script> element or break a JS string literal.
_SCRIPT_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


def _export_schema(schema: PropertySchema) -> dict[str, Any]:
    exported: dict[str, Any] = {"type": schema.type}
    if isinstance(schema, StringSchema) and schema.enum_values is not None:
        exported["enum_values"] = list(schema.enum_values)
    elif isinstance(schema, ObjectSchema):
        properties: dict[str, Any] = {}
        for sub in schema.fields:
            entry: dict[str, Any] = {"type": sub.schema.type}
            if sub.required:
                entry["required"] = True
            properties[sub.name] = entry
        exported["properties"] = properties
    return exported


def export_taxonomy(taxonomy: Taxonomy = DEFAULT_TAXONOMY) -> dict[str, Any]:
    """Return *taxonomy* as a plain structure of dicts, lists and strings."""
    contracts = taxonomy.contracts.values()
    return {
        "event_names": [str(c.event) for c in contracts],
        "property_schema": {
            str(key): _export_schema(schema)
            for key, schema in taxonomy.property_schema.items()
        },
        "event_property_allowlist": {
            str(c.event): [str(key) for key in c.allowlist] for c in contracts
        },
        "event_required_properties": {
            str(c.event): [str(key) for key in c.allowlist if key in c.required]
            for c in contracts
        },
        "events_requiring_post_identity": [
            str(c.event) for c in contracts if c.requires_post_identity
        ],
        "forbidden_property_keys": sorted(taxonomy.forbidden_keys),
        "forbidden_property_key_pattern": taxonomy.forbidden_pattern.pattern,
    }


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def _expect(value: Any, kind: type | tuple[type, ...], where: str) -> Any:
    if not isinstance(value, kind):
        raise TaxonomyError(f"{where}: expected {getattr(kind, '__name__', kind)}, "
                            f"got {type(value).__name__}")
    return value


def _string_list(value: Any, where: str) -> list[str]:
    items = _expect(value, list, where)
    for item in items:
        _expect(item, str, where)
    return items


def _load_scalar_schema(type_name: Any, where: str) -> NumberSchema | BooleanSchema:
    if type_name == "number":
        return NumberSchema()
    if type_name == "boolean":
        return BooleanSchema()
    raise TaxonomyError(f"{where}: unsupported object field type {type_name!r}")


def _load_schema(key: str, data: Any) -> PropertySchema:
    where = f"property_schema.{key}"
    _expect(data, Mapping, where)
    type_name = data.get("type")

    if type_name == "string":
        enum_values = data.get("enum_values")
        if enum_values is None:
            return StringSchema()
        return StringSchema(enum_values=tuple(_string_list(enum_values, f"{where}.enum_values")))

    if type_name == "object":
        properties = _expect(data.get("properties"), Mapping, f"{where}.properties")
        fields = []
        for name, entry in properties.items():
            sub_where = f"{where}.properties.{name}"
            _expect(entry, Mapping, sub_where)
            required = _expect(entry.get("required", False), bool, f"{sub_where}.required")
            fields.append(
                ObjectField(
                    name=name,
                    schema=_load_scalar_schema(entry.get("type"), sub_where),
                    required=required,
                )
            )
        return ObjectSchema(fields=tuple(fields))

    if type_name in ("number", "boolean"):
        return _load_scalar_schema(type_name, where)

    raise TaxonomyError(f"{where}: unsupported type {type_name!r}")


def load_taxonomy(data: Any) -> Taxonomy:
    """Rebuild a :class:`Taxonomy` from :func:`export_taxonomy` output.

    Raises
    ------
    TaxonomyError
        If *data* is malformed or the rebuilt table breaks an invariant.
    """
    _expect(data, Mapping, "taxonomy")
    missing = _REQUIRED_KEYS - data.keys()
    if missing:
        raise TaxonomyError(f"taxonomy: missing required fields: {sorted(missing)}")

    event_names = _string_list(data["event_names"], "event_names")
    allowlist = _expect(data["event_property_allowlist"], Mapping, "event_property_allowlist")
    required = _expect(data["event_required_properties"], Mapping, "event_required_properties")

    if set(allowlist) != set(event_names):
        raise TaxonomyError("event_property_allowlist does not cover exactly event_names")

    ordered_allowlist = {
        name: _string_list(allowlist[name], f"event_property_allowlist.{name}")
        for name in event_names
    }
    required_lists = {
        name: _string_list(keys, f"event_required_properties.{name}")
        for name, keys in required.items()
    }

    schema_data = _expect(data["property_schema"], Mapping, "property_schema")
    property_schema = {key: _load_schema(key, entry) for key, entry in schema_data.items()}

    pattern_source = _expect(
        data["forbidden_property_key_pattern"], str, "forbidden_property_key_pattern"
    )
    try:
        pattern = re.compile(pattern_source, re.IGNORECASE)
    except re.error as exc:
        raise TaxonomyError(f"forbidden_property_key_pattern: {exc}") from exc

    return Taxonomy(
        property_schema=MappingProxyType(property_schema),
        contracts=MappingProxyType(
            build_contracts(
                ordered_allowlist,
                required_lists,
                _string_list(
                    data["events_requiring_post_identity"], "events_requiring_post_identity"
                ),
            )
        ),
        forbidden_keys=frozenset(
            key.strip().lower()
            for key in _string_list(data["forbidden_property_keys"], "forbidden_property_keys")
        ),
        forbidden_pattern=pattern,
    )


# ---------------------------------------------------------------------------
# Page embedding
# ---------------------------------------------------------------------------


def taxonomy_json(taxonomy: Taxonomy = DEFAULT_TAXONOMY) -> str:
    """Serialize the export as JSON safe to place inside a ``<script>`` element."""
    encoded = json.dumps(export_taxonomy(taxonomy), separators=(",", ":"), ensure_ascii=False)
    for char, replacement in _SCRIPT_ESCAPES.items():
        encoded = encoded.replace(char, replacement)
    return encoded


def taxonomy_script_tag(
    element_id: str = DEFAULT_SCRIPT_ELEMENT_ID,
    taxonomy: Taxonomy = DEFAULT_TAXONOMY,
) -> str:
    """Return a ``<script type="application/json">`` element carrying the taxonomy."""
    return (
        f'<script type="application/json" id="{html.escape(element_id, quote=True)}">'
        f"{taxonomy_json(taxonomy)}</script>"
    )
