"""What's New analytics taxonomy.

The closed table of every telemetry event the What's New surface may emit,
the properties each event may carry, and the per-property type constraints.

Everything here is built once at import time and never mutated.  The same
table is exported as plain data (see ``whatsnew.analytics.export``) for the
browser-side tracker, so both enforcement sites read one source of truth.

Four schema variants
--------------------
StringSchema    non-empty trimmed text, optionally limited to enum values
NumberSchema    finite int/float (never bool, never numeric strings)
BooleanSchema   exactly ``True``/``False``
ObjectSchema    nested mapping of declared sub-fields, each number/boolean
"""
from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from types import MappingProxyType
from typing import ClassVar


class TaxonomyError(ValueError):
    """Raised when a taxonomy table breaks one of its authoring invariants."""


class EventName(StrEnum):
    OPEN_PANEL = "whats_new.open_panel"
    OPEN_FULL_PAGE = "whats_new.open_full_page"
    OPEN_POST = "whats_new.open_post"
    MARK_SEEN_SUCCESS = "whats_new.mark_seen_success"
    MARK_SEEN_FAILURE = "whats_new.mark_seen_failure"
    LOAD_MORE = "whats_new.load_more"


class PropertyKey(StrEnum):
    SURFACE = "surface"
    TENANT_ID = "tenant_id"
    USER_ID = "user_id"
    POST_ID = "post_id"
    SLUG = "slug"
    RESULT = "result"
    ERROR_CODE = "error_code"
    PAGINATION = "pagination"


ANALYTICS_SURFACES: tuple[str, ...] = ("panel", "page")
ANALYTICS_RESULTS: tuple[str, ...] = ("success", "failure")


# ---------------------------------------------------------------------------
# Schema variants
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class StringSchema:
    type: ClassVar[str] = "string"

    enum_values: tuple[str, ...] | None = None


@dataclass(frozen=True, slots=True)
class NumberSchema:
    type: ClassVar[str] = "number"


@dataclass(frozen=True, slots=True)
class BooleanSchema:
    type: ClassVar[str] = "boolean"


@dataclass(frozen=True, slots=True)
class ObjectField:
    """One declared sub-field of an :class:`ObjectSchema`."""

    name: str
    schema: NumberSchema | BooleanSchema
    required: bool = False


@dataclass(frozen=True, slots=True)
class ObjectSchema:
    type: ClassVar[str] = "object"

    fields: tuple[ObjectField, ...] = ()


PropertySchema = StringSchema | NumberSchema | BooleanSchema | ObjectSchema


@dataclass(frozen=True, slots=True)
class EventContract:
    """What a single event may carry and what it must carry."""

    event: str
    allowlist: tuple[str, ...]
    required: frozenset[str] = frozenset()
    requires_post_identity: bool = False


# ---------------------------------------------------------------------------
# The registry
# ---------------------------------------------------------------------------

PROPERTY_SCHEMA: Mapping[str, PropertySchema] = MappingProxyType({
    PropertyKey.SURFACE: StringSchema(enum_values=ANALYTICS_SURFACES),
    PropertyKey.TENANT_ID: StringSchema(),
    PropertyKey.USER_ID: StringSchema(),
    PropertyKey.POST_ID: StringSchema(),
    PropertyKey.SLUG: StringSchema(),
    PropertyKey.RESULT: StringSchema(enum_values=ANALYTICS_RESULTS),
    PropertyKey.ERROR_CODE: StringSchema(),
    PropertyKey.PAGINATION: ObjectSchema(
        fields=(
            ObjectField("limit", NumberSchema(), required=True),
            ObjectField("cursor_present", BooleanSchema(), required=True),
            ObjectField("page_index", NumberSchema()),
        )
    ),
})

_BASE_ALLOWLIST = (PropertyKey.SURFACE, PropertyKey.TENANT_ID, PropertyKey.USER_ID)

EVENT_PROPERTY_ALLOWLIST: Mapping[str, tuple[str, ...]] = MappingProxyType({
    EventName.OPEN_PANEL: _BASE_ALLOWLIST,
    EventName.OPEN_FULL_PAGE: _BASE_ALLOWLIST,
    EventName.OPEN_POST: (*_BASE_ALLOWLIST, PropertyKey.POST_ID, PropertyKey.SLUG),
    EventName.MARK_SEEN_SUCCESS: (*_BASE_ALLOWLIST, PropertyKey.RESULT),
    EventName.MARK_SEEN_FAILURE: (*_BASE_ALLOWLIST, PropertyKey.RESULT, PropertyKey.ERROR_CODE),
    EventName.LOAD_MORE: (*_BASE_ALLOWLIST, PropertyKey.PAGINATION),
})

EVENT_REQUIRED_PROPERTIES: Mapping[str, frozenset[str]] = MappingProxyType({
    EventName.OPEN_PANEL: frozenset({PropertyKey.SURFACE}),
    EventName.OPEN_FULL_PAGE: frozenset({PropertyKey.SURFACE}),
    EventName.OPEN_POST: frozenset({PropertyKey.SURFACE}),
    EventName.MARK_SEEN_SUCCESS: frozenset({PropertyKey.SURFACE, PropertyKey.RESULT}),
    EventName.MARK_SEEN_FAILURE: frozenset(
        {PropertyKey.SURFACE, PropertyKey.RESULT, PropertyKey.ERROR_CODE}
    ),
    EventName.LOAD_MORE: frozenset({PropertyKey.SURFACE, PropertyKey.PAGINATION}),
})

EVENTS_REQUIRING_POST_IDENTITY: frozenset[str] = frozenset({EventName.OPEN_POST})

# Exact keys, compared after trim + lowercase.
FORBIDDEN_PROPERTY_KEYS: tuple[str, ...] = (
    "title",
    "post_title",
    "body",
    "content",
    "body_markdown",
    "bodymarkdown",
    "markdown",
    "safe_html",
    "email",
    "user_email",
    "ip",
    "token",
    "authorization",
    "cookie",
    "set_cookie",
    "headers",
    "stack",
    "error_message",
    "message",
)

# Overlaps the exact list on purpose; both checks run.
FORBIDDEN_PROPERTY_KEY_PATTERN: re.Pattern[str] = re.compile(
    r"(title|body|content|markdown|safe_html|email|ip|token|authorization"
    r"|cookie|header|secret|password|stack|message)",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class Taxonomy:
    """An immutable, self-checked taxonomy table.

    ``DEFAULT_TAXONOMY`` is built from the module constants above.
    ``whatsnew.analytics.export.load_taxonomy`` rebuilds an equal table from
    exported data; both go through the same invariant checks.
    """

    property_schema: Mapping[str, PropertySchema]
    contracts: Mapping[str, EventContract]
    forbidden_keys: frozenset[str]
    forbidden_pattern: re.Pattern[str]

    def __post_init__(self) -> None:
        check_registry(self)

    @property
    def event_names(self) -> tuple[str, ...]:
        return tuple(self.contracts)

    def contract_for(self, event_name: object) -> EventContract | None:
        """Return the contract for *event_name*, or ``None`` if it is unknown."""
        if not isinstance(event_name, str):
            return None
        return self.contracts.get(event_name)

    def schema_for(self, key: str) -> PropertySchema | None:
        return self.property_schema.get(key)

    def is_forbidden_key(self, key: str) -> bool:
        """Return True if *key* must never be emitted.

        The key is trimmed and lowercased, then checked against the exact
        list and the pattern.
        """
        normalized = key.strip().lower()
        return normalized in self.forbidden_keys or bool(
            self.forbidden_pattern.search(normalized)
        )


def check_registry(taxonomy: Taxonomy) -> None:
    """Raise ``TaxonomyError`` if *taxonomy* breaks an authoring invariant.

    - every event has a non-empty allowlist without duplicates
    - ``required`` is a subset of ``allowlist``
    - every allowlisted key has a property schema
    - no allowlisted key is forbidden
    - post-identity events allow ``post_id`` or ``slug``
    """
    if not taxonomy.contracts:
        raise TaxonomyError("taxonomy defines no events")

    for name, contract in taxonomy.contracts.items():
        if contract.event != name:
            raise TaxonomyError(f"contract for {name!r} is registered as {contract.event!r}")

        allowed = set(contract.allowlist)
        if not allowed:
            raise TaxonomyError(f"{name}: allowlist is empty")
        if len(allowed) != len(contract.allowlist):
            raise TaxonomyError(f"{name}: allowlist contains duplicate keys")

        extra_required = contract.required - allowed
        if extra_required:
            raise TaxonomyError(
                f"{name}: required keys not in allowlist: {sorted(extra_required)}"
            )

        for key in contract.allowlist:
            if key not in taxonomy.property_schema:
                raise TaxonomyError(f"{name}: allowlisted key {key!r} has no schema")
            if taxonomy.is_forbidden_key(key):
                raise TaxonomyError(f"{name}: allowlisted key {key!r} is forbidden")

        if contract.requires_post_identity and not (
            allowed & {PropertyKey.POST_ID, PropertyKey.SLUG}
        ):
            raise TaxonomyError(f"{name}: requires post identity but allows neither post_id nor slug")


def build_contracts(
    allowlist: Mapping[str, Iterable[str]],
    required: Mapping[str, Iterable[str]],
    post_identity: Iterable[str],
) -> dict[str, EventContract]:
    """Combine the three per-event tables into :class:`EventContract` rows."""
    post_identity = frozenset(post_identity)
    unknown = (set(required) | post_identity) - set(allowlist)
    if unknown:
        raise TaxonomyError(f"rules reference unknown events: {sorted(unknown)}")

    return {
        name: EventContract(
            event=name,
            allowlist=tuple(keys),
            required=frozenset(required.get(name, ())),
            requires_post_identity=name in post_identity,
        )
        for name, keys in allowlist.items()
    }


DEFAULT_TAXONOMY = Taxonomy(
    property_schema=PROPERTY_SCHEMA,
    contracts=MappingProxyType(
        build_contracts(
            EVENT_PROPERTY_ALLOWLIST,
            EVENT_REQUIRED_PROPERTIES,
            EVENTS_REQUIRING_POST_IDENTITY,
        )
    ),
    forbidden_keys=frozenset(FORBIDDEN_PROPERTY_KEYS),
    forbidden_pattern=FORBIDDEN_PROPERTY_KEY_PATTERN,
)


def is_event_name(value: object) -> bool:
    """Return True if *value* is one of the known :class:`EventName` values."""
    return DEFAULT_TAXONOMY.contract_for(value) is not None


def parse_event_name(value: object) -> EventName | None:
    """Map an arbitrary runtime value into :class:`EventName`, or ``None``."""
    if not isinstance(value, str):
        return None
    try:
        return EventName(value)
    except ValueError:
        return None


def is_forbidden_property_key(key: str) -> bool:
    return DEFAULT_TAXONOMY.is_forbidden_key(key)


def get_contract(event_name: EventName) -> EventContract:
    """Return the contract for a known event; raises ``KeyError`` otherwise."""
    contract = DEFAULT_TAXONOMY.contract_for(event_name)
    if contract is None:
        raise KeyError(f"Unknown analytics event: {event_name!r}")
    return contract


def get_property_schema(key: PropertyKey) -> PropertySchema:
    try:
        return PROPERTY_SCHEMA[key]
    except KeyError:
        raise KeyError(f"Unknown analytics property: {key!r}")
