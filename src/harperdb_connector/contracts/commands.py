"""Command value objects sent to the operations endpoint."""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from harperdb_connector.contracts.enums import MatchType, NamespaceKey, Operation

_READ_STATEMENT_RE = re.compile(r"^\s*(select|search)\b", re.IGNORECASE)


def is_read_statement(statement: str) -> bool:
    """True when a raw SQL statement starts with SELECT or SEARCH."""
    return _READ_STATEMENT_RE.match(statement) is not None


@dataclass(frozen=True, slots=True)
class SearchCondition:
    """One attribute/value/match-type triple of a condition search."""

    attribute: str
    value: Any
    match_type: MatchType = MatchType.EQUALS

    def to_wire(self) -> dict[str, Any]:
        return {
            "search_attribute": self.attribute,
            "search_value": self.value,
            "search_type": str(self.match_type),
        }


@dataclass(frozen=True, slots=True)
class Command:
    """A single database operation.

    Commands are built fresh for every call and never modified after being
    sent. ``fields`` holds the operation-specific part of the payload
    (``records``, ``hash_values``, ``conditions``...) and is frozen on
    construction.

    Example:
        cmd = Command.for_table(Operation.INSERT, "dev", "dog", records=[{"name": "Harper"}])
        cmd.to_payload()
        # {"operation": "insert", "schema": "dev", "table": "dog", "records": [...]}
    """

    operation: Operation
    namespace: str | None = None
    table: str | None = None
    fields: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))

    @classmethod
    def for_table(cls, operation: Operation, namespace: str, table: str, **fields: Any) -> Command:
        return cls(operation=operation, namespace=namespace, table=table, fields=fields)

    @classmethod
    def for_namespace(cls, operation: Operation, namespace: str, **fields: Any) -> Command:
        return cls(operation=operation, namespace=namespace, fields=fields)

    @classmethod
    def sql(cls, statement: str) -> Command:
        return cls(operation=Operation.SQL, fields={"sql": statement})

    @property
    def is_read(self) -> bool:
        if self.operation is Operation.SQL:
            return is_read_statement(self.fields["sql"])
        return self.operation.is_read

    def to_payload(self, namespace_key: NamespaceKey = NamespaceKey.SCHEMA) -> dict[str, Any]:
        """Render the JSON body for this command.

        The namespace is written under ``namespace_key`` (``schema`` or
        ``database``); absent namespace/table are omitted, never sent as null.
        """
        payload: dict[str, Any] = {"operation": str(self.operation)}
        if self.namespace is not None:
            payload[str(namespace_key)] = self.namespace
        if self.table is not None:
            payload["table"] = self.table
        payload.update(self.fields)
        return payload
