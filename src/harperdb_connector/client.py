"""Public record API for one mounted namespace/table.

Example:
    async with connect(url, token, "dev.dog") as db:
        await db.insert({"name": "Harper", "age": 5})
        dogs = await db.select({"name": "Harper"})
        await db.delete([dog["id"] for dog in dogs])

The first mutation against a namespace/table that does not exist yet
creates it (see provisioning.py). Reads never create anything: searching a
missing table returns ``[]``.
"""

from __future__ import annotations

from collections.abc import Mapping
from types import TracebackType
from typing import Any, Self

import httpx
import structlog

from harperdb_connector.codec import normalize_records, strip_server_timestamps
from harperdb_connector.connection import DEFAULT_PRIMARY_KEY, DEFAULT_TIMEOUT_MS, ConnectionState
from harperdb_connector.contracts import (
    Command,
    InvalidArgumentError,
    InvalidFilterError,
    NamespaceKey,
    Operation,
)
from harperdb_connector.core.config import ConnectorSettings
from harperdb_connector.pipeline import BatchPipeline
from harperdb_connector.provisioning import Provisioner, Query
from harperdb_connector.query import (
    AnyOf,
    AttributeMatch,
    Introspect,
    ValueScan,
    build_describe,
    build_search,
    coerce_limit,
    parse_filter,
    table_attributes,
)
from harperdb_connector.transport import HarperTransport

logger = structlog.get_logger(__name__)


class HarperDBClient:
    """Client mounted on one namespace and table.

    A client owns its connection state. Record operations are independent
    round trips and may run concurrently; ``mount()`` rebinds the state and
    must not run while other calls on the same client are in flight.

    Args:
        url: Operations API endpoint
        token: Basic auth token
        namespace: Namespace name, or ``"namespace.table"``
        table: Table name (omit when using the dotted form)
        primary_key: Primary key attribute, replaced by the table's real
            hash attribute once it is discovered
        timeout_ms: Per-request timeout
        namespace_key: ``schema`` or ``database`` wire naming
        max_concurrency: Cap on concurrent requests of one batch
        http_client: Optional shared httpx.AsyncClient
    """

    def __init__(
        self,
        url: str,
        token: str,
        namespace: str,
        table: str | None = None,
        *,
        primary_key: str = DEFAULT_PRIMARY_KEY,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        namespace_key: NamespaceKey = NamespaceKey.SCHEMA,
        max_concurrency: int | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        try:
            key = NamespaceKey(namespace_key)
        except ValueError as exc:
            raise InvalidArgumentError(f"Invalid namespace key: {namespace_key!r}") from exc
        self._state = ConnectionState(namespace, table, primary_key=primary_key, timeout_ms=timeout_ms)
        self._transport = HarperTransport(url, token, timeout_ms=timeout_ms, client=http_client)
        self._provisioner = Provisioner(self._transport, self._state, namespace_key=key)
        self._max_concurrency = max_concurrency

    @classmethod
    def from_settings(cls, settings: ConnectorSettings, *, http_client: httpx.AsyncClient | None = None) -> Self:
        return cls(
            settings.url,
            settings.token,
            settings.namespace,
            settings.table,
            primary_key=settings.primary_key,
            timeout_ms=settings.timeout_ms,
            namespace_key=settings.namespace_key,
            max_concurrency=settings.max_concurrency,
            http_client=http_client,
        )

    @property
    def url(self) -> str:
        return self._transport.url

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def namespace(self) -> str:
        return self._state.namespace

    @property
    def table(self) -> str:
        return self._state.table

    @property
    def primary_key(self) -> str:
        return self._state.primary_key

    @property
    def namespace_key(self) -> NamespaceKey:
        return self._provisioner.namespace_key

    @property
    def max_concurrency(self) -> int | None:
        return self._max_concurrency

    def __repr__(self) -> str:
        return f"{type(self).__name__}(url={self.url!r}, namespace={self.namespace!r}, table={self.table!r})"

    # -- lifecycle ---------------------------------------------------------

    async def aclose(self) -> None:
        await self._transport.aclose()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    def mount(self, namespace: str, table: str | None = None, *, primary_key: str | None = None) -> Self:
        """Rebind to another namespace/table (``"namespace.table"`` accepted).

        Forgets what was known about the previous namespace/table.
        """
        self._state.rebind(namespace, table, primary_key=primary_key)
        logger.debug("harperdb_mounted", namespace=self._state.namespace, table=self._state.table)
        return self

    def pipeline(self) -> BatchPipeline:
        """A fresh batch pipeline using this client's concurrency cap."""
        return BatchPipeline(max_concurrency=self._max_concurrency)

    # -- raw commands ------------------------------------------------------

    async def run(self, query: Query) -> Any:
        """Execute SQL text, a Command, or a raw command mapping.

        Mutations against a missing namespace/table provision it and retry.
        """
        _check_query(query)
        return await self._provisioner.execute(query)

    async def request(self, query: Query) -> Any:
        """Send one command as-is: no provisioning, no retry."""
        _check_query(query)
        return await self._provisioner.request(query)

    # -- writes ------------------------------------------------------------

    async def insert(self, records: Mapping[str, Any] | list[Mapping[str, Any]]) -> Any:
        return await self._provisioner.execute(self._write_command(Operation.INSERT, self._prepare_records(records)))

    async def update(self, records: Mapping[str, Any] | list[Mapping[str, Any]]) -> Any:
        """Update existing records; every record must carry the primary key."""
        rows = self._prepare_records(records)
        primary_key = await self._discover_primary_key()
        if any(row.get(primary_key) is None for row in rows):
            raise InvalidArgumentError(f"Every record passed to update() must contain the primary key '{primary_key}'")
        return await self._provisioner.execute(self._write_command(Operation.UPDATE, rows))

    async def upsert(
        self,
        records: Mapping[str, Any] | list[Mapping[str, Any]],
        *,
        probe_existing: bool = False,
    ) -> Any:
        """Insert or update records.

        Reconciliation is left to the server: a record carrying a primary
        key updates that row, a keyless record is inserted.

        With ``probe_existing=True`` every keyless record is first searched
        for by its attributes (concurrently). A single match lends its
        primary key to the outgoing record, whose own attributes win. No
        match or several matches leave the record keyless, so the server
        inserts it.
        """
        rows = self._prepare_records(records)
        if probe_existing:
            rows = await self._adopt_existing_keys(rows)
        return await self._provisioner.execute(self._write_command(Operation.UPSERT, rows))

    async def delete(self, identifiers: str | int | list[str | int]) -> Any:
        """Delete records by primary key value (never by record)."""
        hash_values = normalize_records(identifiers)
        if not hash_values:
            raise InvalidArgumentError("delete() needs at least one identifier")
        if any(isinstance(value, Mapping) or value is None for value in hash_values):
            raise InvalidArgumentError("delete() takes primary key values, not records")
        command = Command.for_table(Operation.DELETE, self.namespace, self.table, hash_values=hash_values)
        return await self._provisioner.execute(command)

    # -- reads -------------------------------------------------------------

    async def select(self, filter: Any = None, *, limit: Any = None) -> Any:
        """Search the table.

        Args:
            filter: None (returns the table description, not rows), a mapping
                of attribute values to match exactly, a list of values to
                find as substrings in any attribute, or a list of mappings
                searched independently and concatenated in order
            limit: Optional result cap per search

        Raises:
            InvalidFilterError: Unsupported filter shape (nothing is sent).
        """
        search_filter = parse_filter(filter)
        coerce_limit(limit)
        namespace, table = self.namespace, self.table

        match search_filter:
            case Introspect():
                description = await self._provisioner.execute(build_describe(namespace, table))
                self._provisioner.adopt_primary_key(description)
                return description
            case AttributeMatch():
                return await self._provisioner.execute(build_search(namespace, table, search_filter, limit=limit))
            case ValueScan():
                description = await self._provisioner.execute(build_describe(namespace, table))
                self._provisioner.adopt_primary_key(description)
                attribute_names = table_attributes(description)
                if not attribute_names:
                    return []
                command = build_search(namespace, table, search_filter, limit=limit, attribute_names=attribute_names)
                return await self._provisioner.execute(command)
            case AnyOf(filters=filters):
                pipeline = self.pipeline()
                for sub_filter in filters:
                    pipeline.enqueue(self.select, sub_filter, limit=limit)
                results = await pipeline.drain(allow_empty=True)
                return [row for rows in results for row in _as_rows(rows)]
            case _:
                raise InvalidFilterError(filter)

    async def search(self, filter: Any = None, *, limit: Any = None) -> Any:
        """Alias of select()."""
        return await self.select(filter, limit=limit)

    async def describe(self) -> Any:
        """Describe the mounted table (attributes, hash attribute, counts)."""
        return await self.select(None)

    async def uid(self, filter: Any) -> list[Any]:
        """Primary key values of every record matching ``filter``."""
        search_filter = parse_filter(filter)
        if isinstance(search_filter, Introspect):
            raise InvalidFilterError(filter)
        primary_key = await self._discover_primary_key()
        rows = await self.select(search_filter)
        return [row.get(primary_key) for row in _as_rows(rows) if isinstance(row, Mapping)]

    # -- helpers -----------------------------------------------------------

    def _prepare_records(self, records: Any) -> list[dict[str, Any]]:
        rows = normalize_records(records)
        if not rows:
            raise InvalidArgumentError("At least one record is required")
        if not all(isinstance(row, Mapping) for row in rows):
            raise InvalidArgumentError("Records must be mappings of attribute names to values")
        return strip_server_timestamps(rows)

    def _write_command(self, operation: Operation, rows: list[dict[str, Any]]) -> Command:
        return Command.for_table(operation, self.namespace, self.table, records=rows)

    async def _discover_primary_key(self) -> str:
        """Adopt the table's hash attribute before relying on the configured key."""
        if not self._state.key_verified:
            description = await self._provisioner.execute(build_describe(self.namespace, self.table))
            self._provisioner.adopt_primary_key(description)
        return self._state.primary_key

    async def _adopt_existing_keys(self, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        primary_key = await self._discover_primary_key()

        # records with nothing to match on are sent keyless
        keyless: list[int] = []
        pipeline = self.pipeline()
        for index, row in enumerate(rows):
            if row.get(primary_key) is not None:
                continue
            attributes = {k: v for k, v in row.items() if k != primary_key and v is not None}
            if attributes:
                keyless.append(index)
                pipeline.enqueue(self.select, AttributeMatch(attributes))
        if not keyless:
            return rows
        findings = await pipeline.drain()

        adopted = list(rows)
        matched = 0
        for index, matches in zip(keyless, findings, strict=True):
            candidates = [row for row in _as_rows(matches) if isinstance(row, Mapping)]
            if len(candidates) == 1 and candidates[0].get(primary_key) is not None:
                adopted[index] = {**rows[index], primary_key: candidates[0][primary_key]}
                matched += 1
        logger.debug("harperdb_upsert_probe", probed=len(keyless), matched=matched)
        return adopted


def _check_query(query: Any) -> None:
    if isinstance(query, str):
        if not query.strip():
            raise InvalidArgumentError("SQL statement must not be empty")
        return
    if isinstance(query, Command):
        return
    if isinstance(query, Mapping) and isinstance(query.get("operation"), str):
        return
    raise InvalidArgumentError("Query must be SQL text, a Command, or a mapping with an 'operation'")


def _as_rows(result: Any) -> list[Any]:
    if isinstance(result, list):
        return result
    return [result]


def connect(
    url: str | None = None,
    token: str | None = None,
    namespace: str | None = None,
    table: str | None = None,
    *,
    existing: HarperDBClient | None = None,
    **options: Any,
) -> HarperDBClient:
    """Get a client, reusing ``existing`` when no credentials are given.

    With both ``url`` and ``token`` a new client is built; a missing
    namespace/table is taken from ``existing``. Without credentials
    ``existing`` is returned (remounted when a namespace is given).

    Raises:
        InvalidArgumentError: No credentials and no existing client, or no
            namespace/table to mount.
    """
    if not (isinstance(url, str) and isinstance(token, str)):
        if existing is None:
            raise InvalidArgumentError("Invalid credentials!")
        if namespace is not None:
            existing.mount(namespace, table)
        return existing

    if namespace is None and existing is not None:
        namespace, table = existing.namespace, table or existing.table
    if namespace is None:
        raise InvalidArgumentError("Invalid namespace name!")
    return HarperDBClient(url, token, namespace, table, **options)
