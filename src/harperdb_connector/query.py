"""Query builder: filter shapes to condition-based search commands.

The public ``select`` accepts four filter shapes. They are parsed once at the
API boundary into a tagged union and dispatched exhaustively:

    None                      -> Introspect     (describe_table, no rows)
    {"a": 1, "b": "x"}        -> AttributeMatch (equals per attribute, AND)
    ["foo", 42]               -> ValueScan      (contains per column x value, OR)
    [{"a": 1}, {"b": 2}]      -> AnyOf          (one AttributeMatch per mapping)

Null values are dropped from AttributeMatch and ValueScan: the server cannot
reliably match null equality, so a ``{"a": None}`` condition is never sent.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from harperdb_connector.contracts import (
    Combinator,
    Command,
    InvalidArgumentError,
    InvalidFilterError,
    MatchType,
    Operation,
    SearchCondition,
)

type Scalar = str | int | float | bool


@dataclass(frozen=True, slots=True)
class Introspect:
    """No filter: return the table description instead of rows."""


@dataclass(frozen=True, slots=True)
class AttributeMatch:
    """Exact match on every given attribute."""

    attributes: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "attributes", MappingProxyType(dict(self.attributes)))


@dataclass(frozen=True, slots=True)
class ValueScan:
    """Substring scan of every table attribute for every value."""

    values: tuple[Scalar | None, ...] = ()


@dataclass(frozen=True, slots=True)
class AnyOf:
    """Independent exact-match searches whose results are concatenated."""

    filters: tuple[AttributeMatch, ...] = ()


type Filter = Introspect | AttributeMatch | ValueScan | AnyOf


def _is_scalar(value: Any) -> bool:
    return value is None or isinstance(value, str | int | float | bool)


def parse_filter(raw: Any) -> Filter:
    """Parse a caller-supplied filter into its tagged form.

    Raises:
        InvalidFilterError: For bare scalars, strings, mixed sequences,
            nested sequences, or any other shape.
    """
    if raw is None:
        return Introspect()
    if isinstance(raw, Introspect | AttributeMatch | ValueScan | AnyOf):
        return raw
    if isinstance(raw, Mapping):
        return AttributeMatch(raw)
    if isinstance(raw, list | tuple):
        if not raw:
            return AnyOf()
        if all(isinstance(item, Mapping) for item in raw):
            return AnyOf(tuple(AttributeMatch(item) for item in raw))
        if all(_is_scalar(item) for item in raw):
            return ValueScan(tuple(raw))
    raise InvalidFilterError(raw)


def coerce_limit(limit: Any) -> int | None:
    """Coerce an optional result cap to int.

    Raises:
        InvalidArgumentError: If the value is not a non-negative integer.
    """
    if limit is None:
        return None
    if isinstance(limit, bool):
        raise InvalidArgumentError(f"Invalid search limit: {limit!r}")
    try:
        value = int(limit)
    except (TypeError, ValueError) as e:
        raise InvalidArgumentError(f"Invalid search limit: {limit!r}") from e
    if value < 0:
        raise InvalidArgumentError(f"Invalid search limit: {limit!r}")
    return value


def attribute_conditions(attributes: Mapping[str, Any]) -> list[SearchCondition]:
    """One equals condition per attribute with a non-null value."""
    return [
        SearchCondition(attribute=name, value=value, match_type=MatchType.EQUALS)
        for name, value in attributes.items()
        if value is not None
    ]


def value_scan_conditions(attribute_names: Iterable[str], values: Sequence[Scalar | None]) -> list[SearchCondition]:
    """One contains condition per (attribute, non-null value) pair."""
    return [
        SearchCondition(attribute=name, value=value, match_type=MatchType.CONTAINS)
        for name in attribute_names
        for value in values
        if value is not None
    ]


def table_attributes(description: Any) -> list[str]:
    """Attribute names listed in a describe_table response."""
    if not isinstance(description, Mapping):
        return []
    attributes = description.get("attributes")
    if not isinstance(attributes, list):
        return []
    names: list[str] = []
    for entry in attributes:
        if isinstance(entry, Mapping) and isinstance(entry.get("attribute"), str):
            names.append(entry["attribute"])
        elif isinstance(entry, str):
            names.append(entry)
    return names


def build_describe(namespace: str, table: str) -> Command:
    return Command.for_table(Operation.DESCRIBE_TABLE, namespace, table)


def build_conditions_search(
    namespace: str,
    table: str,
    conditions: Sequence[SearchCondition],
    combinator: Combinator,
    *,
    limit: Any = None,
) -> Command:
    """Build a ``search_by_conditions`` command.

    ``limit`` is only written when given; an explicit null limit is treated
    differently from an absent one by the server.
    """
    fields: dict[str, Any] = {
        "get_attributes": ["*"],
        "conditions": [condition.to_wire() for condition in conditions],
        "operator": str(combinator),
        "offset": 0,
    }
    cap = coerce_limit(limit)
    if cap is not None:
        fields["limit"] = cap
    return Command.for_table(Operation.SEARCH_BY_CONDITIONS, namespace, table, **fields)


def build_search(
    namespace: str,
    table: str,
    search_filter: Introspect | AttributeMatch | ValueScan,
    *,
    limit: Any = None,
    attribute_names: Iterable[str] = (),
) -> Command:
    """Build the single command for a non-fan-out filter.

    ValueScan needs the table's attribute names (from a prior describe).
    AnyOf is resolved by the caller as several AttributeMatch searches.
    """
    match search_filter:
        case Introspect():
            return build_describe(namespace, table)
        case AttributeMatch(attributes=attributes):
            return build_conditions_search(
                namespace, table, attribute_conditions(attributes), Combinator.AND, limit=limit
            )
        case ValueScan(values=values):
            return build_conditions_search(
                namespace, table, value_scan_conditions(attribute_names, values), Combinator.OR, limit=limit
            )
        case _:
            raise InvalidFilterError(search_filter)
