"""
harperdb-connector: async record operations for HarperDB.

Mounts onto one namespace/table, lazily provisions them on the first
mutation, and builds condition searches from plain filter shapes.
"""

__version__ = "0.3.0"

from harperdb_connector.client import HarperDBClient, connect  # noqa: E402
from harperdb_connector.contracts import (  # noqa: E402
    Command,
    ConnectorError,
    EmptyBatchError,
    InvalidArgumentError,
    InvalidFilterError,
    MissingStructureError,
    ProtocolError,
    TransportError,
)
from harperdb_connector.pipeline import BatchPipeline  # noqa: E402
from harperdb_connector.transport import basic_auth_token  # noqa: E402

__all__ = [
    "BatchPipeline",
    "Command",
    "ConnectorError",
    "EmptyBatchError",
    "HarperDBClient",
    "InvalidArgumentError",
    "InvalidFilterError",
    "MissingStructureError",
    "ProtocolError",
    "TransportError",
    "__version__",
    "basic_auth_token",
    "connect",
]
