"""Shared contracts: enums, command value objects, and errors.

This package is a leaf module with no dependencies on the transport,
provisioning, or client layers.
"""

from harperdb_connector.contracts.commands import Command, SearchCondition
from harperdb_connector.contracts.enums import (
    Combinator,
    FailureKind,
    MatchType,
    NamespaceKey,
    Operation,
    StructureState,
)
from harperdb_connector.contracts.errors import (
    ConnectorError,
    EmptyBatchError,
    InvalidArgumentError,
    InvalidFilterError,
    MissingStructureError,
    ProtocolError,
    TransportError,
)

__all__ = [
    "Combinator",
    "Command",
    "ConnectorError",
    "EmptyBatchError",
    "FailureKind",
    "InvalidArgumentError",
    "InvalidFilterError",
    "MatchType",
    "MissingStructureError",
    "NamespaceKey",
    "Operation",
    "ProtocolError",
    "SearchCondition",
    "StructureState",
    "TransportError",
]
