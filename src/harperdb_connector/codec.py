"""Payload codec: argument normalization and JSON serialization.

Turns the loose argument shapes the public API accepts (one record or many,
one identifier or many, a SQL string or a command) into the uniform shapes
the wire protocol expects.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterable, Mapping
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Final

from harperdb_connector.contracts import Command, InvalidArgumentError, NamespaceKey
from harperdb_connector.contracts.commands import is_read_statement

# Server-managed attributes, e.g. __createdtime__ and __updatedtime__
SERVER_TIMESTAMP_RE = re.compile(r"^__\w*time__$", re.IGNORECASE)


class _Unserializable(Enum):
    """Sentinel returned by serialize() for payloads JSON cannot encode."""

    TOKEN = "unserializable"

    def __repr__(self) -> str:
        return "UNSERIALIZABLE"


UNSERIALIZABLE: Final = _Unserializable.TOKEN


def normalize_records(value: Any) -> list[Any]:
    """Wrap a single record or identifier into a list.

    Mappings become a one-element list, lists and tuples are copied, and a
    bare identifier (``str`` or ``int``) becomes a one-element list.

    Raises:
        InvalidArgumentError: For any other shape (sets, None, objects).
    """
    if isinstance(value, Mapping):
        return [value]
    if isinstance(value, list | tuple):
        return list(value)
    if isinstance(value, str | int) and not isinstance(value, bool):
        return [value]
    raise InvalidArgumentError(
        f"Expected a record, an identifier, or a list of them; got {type(value).__name__}"
    )


def strip_server_timestamps(records: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
    """Drop server-assigned timestamp attributes from outbound records.

    Returns new dicts; the caller's records are left untouched.
    """
    return [
        {key: value for key, value in record.items() if not SERVER_TIMESTAMP_RE.match(key)}
        for record in records
    ]


def trim_query(statement: str) -> str:
    """Collapse an indented multi-line SQL statement into a single line.

    Leading/trailing whitespace is removed from every line, blank lines are
    dropped, and the remaining lines are joined with single spaces.
    """
    lines = (line.strip() for line in statement.strip().splitlines())
    return " ".join(line for line in lines if line)


def _json_default(obj: Any) -> Any:
    if isinstance(obj, datetime):
        if obj.tzinfo is None:
            obj = obj.replace(tzinfo=UTC)
        return obj.astimezone(UTC).isoformat()
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, Decimal):
        if not obj.is_finite():
            raise ValueError(f"Cannot serialize non-finite Decimal: {obj}")
        return str(obj)
    if isinstance(obj, Mapping):
        return dict(obj)
    if isinstance(obj, tuple | set | frozenset):
        return list(obj)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def to_payload(query: str | Command | Mapping[str, Any], namespace_key: NamespaceKey = NamespaceKey.SCHEMA) -> dict[str, Any]:
    """Build the wire payload for a SQL string, a Command, or a raw mapping."""
    if isinstance(query, str):
        return {"operation": "sql", "sql": trim_query(query)}
    if isinstance(query, Command):
        return query.to_payload(namespace_key)
    return dict(query)


def serialize(query: str | Command | Mapping[str, Any], namespace_key: NamespaceKey = NamespaceKey.SCHEMA) -> str | _Unserializable:
    """Serialize a command or SQL string to JSON text.

    Cyclic structures, NaN/Infinity, and objects JSON cannot represent yield
    ``UNSERIALIZABLE`` instead of raising.
    """
    try:
        return json.dumps(
            to_payload(query, namespace_key),
            default=_json_default,
            allow_nan=False,
            ensure_ascii=False,
        )
    except (TypeError, ValueError, RecursionError):
        return UNSERIALIZABLE


def is_read_command(query: str | Command | Mapping[str, Any]) -> bool:
    """True for searches, describes, and SELECT/SEARCH statements."""
    if isinstance(query, str):
        return is_read_statement(query)
    if isinstance(query, Command):
        return query.is_read
    operation = query.get("operation")
    if not isinstance(operation, str):
        return False
    if operation == "sql":
        sql = query.get("sql")
        return isinstance(sql, str) and is_read_statement(sql)
    return operation.startswith(("search", "describe"))
