"""Provisioning state machine: execute commands, creating missing structures.

HarperDB is schema-on-write but will not create a namespace or table on
insert. The first mutation against a missing namespace/table fails with a
"does not exist" message; the provisioner then describes what is there,
creates what is missing, and retries the original command exactly once.

States per connection (namespace and table tracked independently):

    UNKNOWN --(any successful command)--> KNOWN
    UNKNOWN --(provisioning step ran)----> KNOWN

Reads never provision. A search against a missing table returns an empty
result instead.

There is no atomic "create if missing" on the server, so create calls may
race with other clients. Create failures are logged and ignored; the retry
of the original command reveals the true state.
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, NoReturn

import structlog

from harperdb_connector.codec import UNSERIALIZABLE, is_read_command, serialize, to_payload
from harperdb_connector.connection import ConnectionState
from harperdb_connector.contracts import (
    Command,
    FailureKind,
    MissingStructureError,
    NamespaceKey,
    Operation,
    ProtocolError,
    StructureState,
)
from harperdb_connector.transport import HarperTransport

logger = structlog.get_logger(__name__)

type Query = str | Command | Mapping[str, Any]

# "Schema 'dev' does not exist", "Table 'dev.dog' not exists", "unknown attribute 'x'"
MISSING_STRUCTURE_RE = re.compile(r"not exists?|unknown attribute", re.IGNORECASE)


def classify_failure(message: str) -> FailureKind:
    """Classify a server failure message."""
    if MISSING_STRUCTURE_RE.search(message):
        return FailureKind.MISSING_STRUCTURE
    return FailureKind.PROTOCOL


@dataclass(frozen=True, slots=True)
class CommandOutcome:
    """Result of one round trip, success or classified failure.

    Attributes:
        body: Parsed response body (None for failures)
        failure: FailureKind when the command failed, None on success
        message: Server message for failures
        status_code: HTTP status of the response
    """

    body: Any = None
    failure: FailureKind | None = None
    message: str | None = None
    status_code: int | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    def raise_error(self) -> NoReturn:
        message = self.message or "Unknown command failure"
        if self.failure is FailureKind.MISSING_STRUCTURE:
            raise MissingStructureError(message, status_code=self.status_code)
        raise ProtocolError(message, status_code=self.status_code)

    def unwrap(self) -> Any:
        if not self.ok:
            self.raise_error()
        return self.body


class Provisioner:
    """Executes commands for one connection, provisioning on demand.

    Provisioning is a critical section: concurrent calls on the same
    connection wait on a lock and re-check the states inside it, so one
    namespace/table is provisioned at most once per UNKNOWN period.

    Args:
        transport: Transport used for every round trip
        state: Connection state owned by the calling client
        namespace_key: Wire naming of the namespace (schema or database)
    """

    def __init__(
        self,
        transport: HarperTransport,
        state: ConnectionState,
        *,
        namespace_key: NamespaceKey = NamespaceKey.SCHEMA,
    ) -> None:
        self._transport = transport
        self._state = state
        self._namespace_key = namespace_key
        self._lock = asyncio.Lock()

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def namespace_key(self) -> NamespaceKey:
        return self._namespace_key

    async def send(self, query: Query) -> CommandOutcome:
        """One round trip without provisioning or retry.

        Raises:
            ProtocolError: If the payload cannot be serialized (nothing is sent).
            TransportError: On timeout or network failure.
        """
        body = serialize(query, self._namespace_key)
        if body is UNSERIALIZABLE:
            operation = to_payload(query, self._namespace_key).get("operation")
            raise ProtocolError(f"Could not serialize '{operation}' command payload to JSON (cyclic or non-JSON value)")

        response = await self._transport.send(body, timeout_ms=self._state.timeout_ms)
        message = response.error_message
        operation = _operation_name(query)
        if message is None:
            logger.debug(
                "harperdb_command",
                operation=operation,
                status_code=response.status_code,
                latency_ms=round(response.latency_ms, 2),
            )
            return CommandOutcome(body=response.body, status_code=response.status_code)

        kind = classify_failure(message)
        logger.debug(
            "harperdb_command_failed",
            operation=operation,
            status_code=response.status_code,
            failure=str(kind),
            message=message,
        )
        return CommandOutcome(failure=kind, message=message, status_code=response.status_code)

    async def request(self, query: Query) -> Any:
        """Send a command once and return its body, raising on failure."""
        return (await self.send(query)).unwrap()

    async def execute(self, query: Query) -> Any:
        """Run a command, provisioning a missing namespace/table for mutations.

        Returns:
            Response body, or ``[]`` for a read against a missing structure.

        Raises:
            ProtocolError: Server rejected the command (after the single
                retry, for provisioned mutations).
            TransportError: Timeout or network failure (never retried).
        """
        outcome = await self.send(query)
        if outcome.ok:
            self._state.mark_known()
            return outcome.body

        if outcome.failure is FailureKind.PROTOCOL:
            outcome.raise_error()

        if is_read_command(query):
            logger.info(
                "harperdb_read_missing_structure",
                namespace=self._state.namespace,
                table=self._state.table,
                message=outcome.message,
            )
            return []

        await self.provision()

        retry = await self.send(query)
        if retry.ok:
            self._state.mark_known()
            return retry.body
        retry.raise_error()

    async def provision(self) -> None:
        """Describe/create the namespace and table if not known to exist."""
        async with self._lock:
            namespace_description: dict[str, Any] | None = None
            if not self._state.namespace_known:
                namespace_description = await self._provision_namespace()
            if not self._state.table_known:
                await self._provision_table(namespace_description)

    def adopt_primary_key(self, table_description: Any) -> None:
        """Use the table's real hash attribute as the primary key."""
        if not isinstance(table_description, dict):
            return
        hash_attribute = table_description.get("hash_attribute")
        if not isinstance(hash_attribute, str) or not hash_attribute:
            return
        self._state.key_verified = True
        if hash_attribute != self._state.primary_key:
            logger.info(
                "harperdb_primary_key_adopted",
                table=self._state.table,
                configured=self._state.primary_key,
                hash_attribute=hash_attribute,
            )
            self._state.primary_key = hash_attribute

    async def _provision_namespace(self) -> dict[str, Any] | None:
        namespace = self._state.namespace
        described = await self.send(Command.for_namespace(self._namespace_key.describe_operation, namespace))
        description: dict[str, Any] | None = None
        if described.ok:
            if isinstance(described.body, dict):
                description = described.body
        else:
            logger.info("harperdb_creating_namespace", namespace=namespace, reason=described.message)
            created = await self.send(Command.for_namespace(self._namespace_key.create_operation, namespace))
            if not created.ok:
                logger.info("harperdb_create_namespace_ignored", namespace=namespace, message=created.message)
        self._state.namespace_state = StructureState.KNOWN
        return description

    async def _provision_table(self, namespace_description: dict[str, Any] | None) -> None:
        namespace, table = self._state.namespace, self._state.table
        table_description: dict[str, Any] | None = None
        if namespace_description is not None:
            entry = namespace_description.get(table)
            if isinstance(entry, dict):
                table_description = entry
        else:
            described = await self.send(Command.for_table(Operation.DESCRIBE_TABLE, namespace, table))
            if described.ok and isinstance(described.body, dict):
                table_description = described.body

        if table_description is None:
            logger.info(
                "harperdb_creating_table",
                namespace=namespace,
                table=table,
                hash_attribute=self._state.primary_key,
            )
            created = await self.send(
                Command.for_table(Operation.CREATE_TABLE, namespace, table, hash_attribute=self._state.primary_key)
            )
            if not created.ok:
                logger.info("harperdb_create_table_ignored", namespace=namespace, table=table, message=created.message)
        else:
            self.adopt_primary_key(table_description)
        self._state.table_state = StructureState.KNOWN


def _operation_name(query: Query) -> str:
    if isinstance(query, str):
        return str(Operation.SQL)
    if isinstance(query, Command):
        return str(query.operation)
    return str(query.get("operation", "unknown"))
