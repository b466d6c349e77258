"""Log output for applications embedding the connector, and for the CLI.

Library modules only emit events through ``structlog.get_logger(__name__)``.
``configure_logging`` decides where those events go: one stderr handler that
renders structlog events and stdlib records (httpx included) alike, so that
stdout carries nothing but command results.

Events logged inside ``target_context`` carry the namespace and table they
concern.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog
from structlog.stdlib import ProcessorFormatter

# httpx/httpcore log every connection at DEBUG
_HTTP_LOGGERS = ("httpx", "httpcore")

# keys ProcessorFormatter attaches to every event
_FORMATTER_KEYS = ("_record", "_from_structlog")


def _drop_formatter_keys(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    for key in _FORMATTER_KEYS:
        event_dict.pop(key, None)
    return event_dict


def _renderers(json_output: bool) -> list[Any]:
    if json_output:
        return [_drop_formatter_keys, structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return [_drop_formatter_keys, structlog.dev.ConsoleRenderer(colors=False)]


def configure_logging(*, json_output: bool = False, level: str = "INFO") -> None:
    """Route connector and HTTP client logs to stderr.

    Replaces the root logger's handlers, so calling it again switches the
    format or level.

    Args:
        json_output: One JSON object per line instead of console text
        level: Root log level name; the HTTP client loggers never go below WARNING

    Raises:
        ValueError: If ``level`` is not a logging level name.
    """
    levels = logging.getLevelNamesMapping()
    if level.upper() not in levels:
        raise ValueError(f"Unknown log level: {level!r}")
    log_level = levels[level.upper()]

    pre_chain: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    structlog.configure(
        processors=[*pre_chain, ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(ProcessorFormatter(processors=_renderers(json_output), foreign_pre_chain=pre_chain))
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(log_level)

    for name in _HTTP_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))


@contextmanager
def target_context(namespace: str, table: str) -> Iterator[None]:
    """Tag every event logged in this block with the mounted namespace and table."""
    with structlog.contextvars.bound_contextvars(namespace=namespace, table=table):
        yield
