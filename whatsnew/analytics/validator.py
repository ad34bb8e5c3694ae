"""Event validator.

``validate()`` reduces a caller-supplied property bag to the largest subset
the event's contract allows, then checks the event's mandatory fields.
It is a pure function: malformed input is rejected, never raised on.

Order of checks per allowlisted key
-----------------------------------
1. forbidden key          -> dropped, even if present and well-formed
2. absent from raw input  -> skipped
3. sanitizer rejects      -> dropped
4. otherwise              -> copied into the output bag

After the pass, a missing required key or (for post-identity events) a
missing ``post_id``/``slug`` drops the whole event.
"""
from __future__ import annotations

from collections.abc import Mapping
from typing import Any, NamedTuple

from whatsnew.analytics.sanitizer import REJECTED, sanitize_value
from whatsnew.analytics.taxonomy import (
    DEFAULT_TAXONOMY,
    EventContract,
    PropertyKey,
    Taxonomy,
)


class SanitizedEvent(NamedTuple):
    event_name: str
    properties: dict[str, Any]


def _has_post_identity(properties: Mapping[str, Any]) -> bool:
    for key in (PropertyKey.POST_ID, PropertyKey.SLUG):
        value = properties.get(key)
        if isinstance(value, str) and value:
            return True
    return False


def _has_required_properties(contract: EventContract, properties: Mapping[str, Any]) -> bool:
    if any(key not in properties for key in contract.required):
        return False
    if contract.requires_post_identity:
        return _has_post_identity(properties)
    return True


def sanitize_event(
    event_name: Any,
    raw_properties: Any,
    taxonomy: Taxonomy = DEFAULT_TAXONOMY,
) -> SanitizedEvent | None:
    """Return the canonical event name and sanitized properties, or ``None``."""
    contract = taxonomy.contract_for(event_name)
    if contract is None:
        return None

    source = raw_properties if isinstance(raw_properties, Mapping) else {}
    sanitized: dict[str, Any] = {}

    for key in contract.allowlist:
        if taxonomy.is_forbidden_key(key):
            continue
        if key not in source:
            continue
        value = sanitize_value(key, source[key], taxonomy)
        if value is not REJECTED:
            sanitized[str(key)] = value

    if not _has_required_properties(contract, sanitized):
        return None

    return SanitizedEvent(contract.event, sanitized)


def validate(
    event_name: Any,
    raw_properties: Any,
    taxonomy: Taxonomy = DEFAULT_TAXONOMY,
) -> dict[str, Any] | None:
    """Return the sanitized property bag for *event_name*, or ``None``."""
    result = sanitize_event(event_name, raw_properties, taxonomy)
    if result is None:
        return None
    return result.properties
