"""Operation names, match types, and state markers shared across modules.

Values are the exact strings the HarperDB operations API expects on the
wire, so members can be placed into a payload without conversion.
"""

from enum import StrEnum


class Operation(StrEnum):
    """Command operations understood by the remote endpoint."""

    SQL = "sql"
    INSERT = "insert"
    UPDATE = "update"
    UPSERT = "upsert"
    DELETE = "delete"
    SEARCH_BY_CONDITIONS = "search_by_conditions"
    DESCRIBE_SCHEMA = "describe_schema"
    DESCRIBE_DATABASE = "describe_database"
    DESCRIBE_TABLE = "describe_table"
    CREATE_SCHEMA = "create_schema"
    CREATE_DATABASE = "create_database"
    CREATE_TABLE = "create_table"

    @property
    def is_read(self) -> bool:
        """True for operations that never change server state."""
        return self.value.startswith(("search", "describe"))


class NamespaceKey(StrEnum):
    """Payload key naming the namespace.

    Older servers call the namespace a schema; newer ones a database.
    The choice also selects the describe/create operation pair.
    """

    SCHEMA = "schema"
    DATABASE = "database"

    @property
    def describe_operation(self) -> Operation:
        if self is NamespaceKey.DATABASE:
            return Operation.DESCRIBE_DATABASE
        return Operation.DESCRIBE_SCHEMA

    @property
    def create_operation(self) -> Operation:
        if self is NamespaceKey.DATABASE:
            return Operation.CREATE_DATABASE
        return Operation.CREATE_SCHEMA


class MatchType(StrEnum):
    """Search condition match type (wire field ``search_type``)."""

    EQUALS = "equals"
    CONTAINS = "contains"


class Combinator(StrEnum):
    """How conditions of one search combine (wire field ``operator``)."""

    AND = "and"
    OR = "or"


class StructureState(StrEnum):
    """Whether a namespace or table is known to exist remotely."""

    UNKNOWN = "unknown"
    KNOWN = "known"


class FailureKind(StrEnum):
    """Classification of a failed command.

    MISSING_STRUCTURE failures are recoverable for mutations by provisioning
    the namespace/table and retrying. PROTOCOL failures are always fatal.
    """

    MISSING_STRUCTURE = "missing_structure"
    PROTOCOL = "protocol"
