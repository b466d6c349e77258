"""Exception hierarchy for the connector.

Every error carries the original server or transport message verbatim so
callers can log it without unwrapping. Errors raised for bad arguments are
always raised before any network call is made.
"""

from __future__ import annotations

from harperdb_connector.contracts.enums import FailureKind


class ConnectorError(Exception):
    """Base error for all connector errors."""


class InvalidArgumentError(ConnectorError, ValueError):
    """Raised for malformed credentials, names, records, or handlers."""


class InvalidFilterError(InvalidArgumentError):
    """Raised when a select/search filter has an unsupported shape."""

    def __init__(self, filter_value: object) -> None:
        self.filter_value = filter_value
        super().__init__(
            "Could not search records because the filter is malformed: expected None, "
            "a mapping of attributes, a list of scalar values, or a list of mappings; "
            f"got {type(filter_value).__name__}"
        )


class ProtocolError(ConnectorError):
    """A command was rejected by the server.

    Attributes:
        message: Server message, unchanged
        status_code: HTTP status of the response (None if the payload never left)
        kind: Classification used by the provisioning state machine
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        kind: FailureKind = FailureKind.PROTOCOL,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.kind = kind


class MissingStructureError(ProtocolError):
    """The server reported a namespace, table, or attribute does not exist."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message, status_code=status_code, kind=FailureKind.MISSING_STRUCTURE)


class TransportError(ConnectorError):
    """The request never produced a response (timeout, DNS, connection reset).

    The underlying httpx exception is chained as ``__cause__``.
    """

    def __init__(self, message: str, *, url: str, timed_out: bool = False) -> None:
        super().__init__(message)
        self.url = url
        self.timed_out = timed_out


class EmptyBatchError(ConnectorError):
    """Raised when a batch pipeline is drained with nothing queued."""

    def __init__(self) -> None:
        super().__init__("Missing request batch: drain() called with no queued operations")
