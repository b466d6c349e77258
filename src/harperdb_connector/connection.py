"""Connection state: the namespace/table a client is mounted on."""

from __future__ import annotations

from dataclasses import dataclass

from harperdb_connector.contracts import InvalidArgumentError, StructureState

DEFAULT_PRIMARY_KEY = "id"
DEFAULT_TIMEOUT_MS = 15_000


def parse_target(namespace: str, table: str | None = None) -> tuple[str, str]:
    """Resolve a namespace/table pair.

    The table may be omitted when ``namespace`` is a dot-joined
    ``"namespace.table"`` string; it is split on the first dot.

    Raises:
        InvalidArgumentError: If either name is missing or blank.
    """
    if not isinstance(namespace, str) or not namespace.strip():
        raise InvalidArgumentError("Invalid namespace name!")
    if table is None:
        namespace, _, rest = namespace.partition(".")
        table = rest or None
    if not isinstance(table, str) or not table.strip():
        raise InvalidArgumentError("Invalid table name!")
    if not namespace.strip():
        raise InvalidArgumentError("Invalid namespace name!")
    return namespace.strip(), table.strip()


@dataclass
class ConnectionState:
    """Mutable binding of one client to a namespace and table.

    Owned by a single client. Only the provisioner (state transitions,
    primary key discovery) and ``rebind`` change it.
    """

    namespace: str
    table: str
    primary_key: str = DEFAULT_PRIMARY_KEY
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    namespace_state: StructureState = StructureState.UNKNOWN
    table_state: StructureState = StructureState.UNKNOWN
    key_verified: bool = False

    def __post_init__(self) -> None:
        self.namespace, self.table = parse_target(self.namespace, self.table)
        if not isinstance(self.primary_key, str) or not self.primary_key.strip():
            raise InvalidArgumentError("Invalid primary key!")
        if self.timeout_ms <= 0:
            raise InvalidArgumentError(f"timeout_ms must be positive, got {self.timeout_ms}")

    @property
    def namespace_known(self) -> bool:
        return self.namespace_state is StructureState.KNOWN

    @property
    def table_known(self) -> bool:
        return self.table_state is StructureState.KNOWN

    def mark_known(self) -> None:
        self.namespace_state = StructureState.KNOWN
        self.table_state = StructureState.KNOWN

    def rebind(self, namespace: str, table: str | None = None, *, primary_key: str | None = None) -> None:
        """Point at a different namespace/table and forget what was known."""
        self.namespace, self.table = parse_target(namespace, table)
        if primary_key is not None:
            if not primary_key.strip():
                raise InvalidArgumentError("Invalid primary key!")
            self.primary_key = primary_key
        self.namespace_state = StructureState.UNKNOWN
        self.table_state = StructureState.UNKNOWN
        self.key_verified = False
