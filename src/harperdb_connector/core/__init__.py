"""Core infrastructure: configuration and logging."""

from harperdb_connector.core.config import ConnectorSettings, load_settings, resolve_config
from harperdb_connector.core.logging import configure_logging, target_context

__all__ = [
    "ConnectorSettings",
    "configure_logging",
    "load_settings",
    "resolve_config",
    "target_context",
]
