# src/harperdb_connector/core/config.py
"""
Connection settings and loading.

Uses Pydantic for validation and Dynaconf for multi-source loading.
Settings are frozen (immutable) after construction.
"""

import os
import re
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from harperdb_connector.connection import DEFAULT_PRIMARY_KEY, DEFAULT_TIMEOUT_MS, parse_target
from harperdb_connector.contracts import NamespaceKey

ENV_PREFIX = "HARPERDB"

_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}")

# Dynaconf bookkeeping keys that must not reach the Pydantic model
_INTERNAL_KEYS = frozenset({"LOAD_DOTENV", "ENVIRONMENTS", "SETTINGS_FILES", "ENVVAR_PREFIX"})


class ConnectorSettings(BaseModel):
    """Settings for one HarperDB connection.

    Example YAML:
        url: https://db.example.com:9925
        token: ${HARPERDB_TOKEN}
        namespace: dev.dog          # or namespace: dev + table: dog
        primary_key: id
        timeout_ms: 15000
        namespace_key: schema       # "database" on newer servers
        max_concurrency: 8
    """

    model_config = {"frozen": True, "extra": "forbid"}

    url: str = Field(description="Operations API endpoint (http or https)")
    token: str = Field(min_length=1, description="Basic auth token sent verbatim")
    namespace: str = Field(description="Namespace (schema/database) name, or 'namespace.table'")
    table: str = Field(description="Table name")
    primary_key: str = Field(default=DEFAULT_PRIMARY_KEY, min_length=1, description="Primary key (hash) attribute")
    timeout_ms: int = Field(default=DEFAULT_TIMEOUT_MS, gt=0, description="Per-request timeout in milliseconds")
    namespace_key: NamespaceKey = Field(default=NamespaceKey.SCHEMA, description="Wire name of the namespace field")
    max_concurrency: int | None = Field(default=None, ge=1, description="Cap on concurrent batch requests")

    @model_validator(mode="before")
    @classmethod
    def _split_dotted_target(cls, data: Any) -> Any:
        """Accept ``namespace: "ns.table"`` without a separate table."""
        if isinstance(data, dict) and not data.get("table") and isinstance(data.get("namespace"), str):
            namespace, table = parse_target(data["namespace"])
            data = {**data, "namespace": namespace, "table": table}
        return data

    @field_validator("url")
    @classmethod
    def _validate_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"url must start with http:// or https://, got {v!r}")
        return v

    @field_validator("namespace", "table")
    @classmethod
    def _validate_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v.strip()


def _expand_env_vars(config: dict[str, Any]) -> dict[str, Any]:
    """Recursively expand ${VAR} and ${VAR:-default} patterns in config values."""

    def replacer(match: re.Match[str]) -> str:
        env_value = os.environ.get(match.group(1))
        if env_value is not None:
            return env_value
        if match.group(2) is not None:
            return match.group(2)
        return match.group(0)

    def _expand_value(value: Any) -> Any:
        if isinstance(value, str):
            return _ENV_VAR_PATTERN.sub(replacer, value)
        if isinstance(value, dict):
            return {k: _expand_value(v) for k, v in value.items()}
        if isinstance(value, list):
            return [_expand_value(item) for item in value]
        return value

    return {k: _expand_value(v) for k, v in config.items()}


def load_settings(config_path: Path | None = None) -> ConnectorSettings:
    """Load settings from an optional YAML file with environment overrides.

    Precedence:
    1. Environment variables (HARPERDB_*) - highest priority
    2. Config file
    3. Defaults from the Pydantic schema - lowest priority

    Args:
        config_path: Path to a YAML settings file, or None for env only

    Raises:
        ValidationError: If configuration fails Pydantic validation
        FileNotFoundError: If config_path is given but does not exist
    """
    from dynaconf import Dynaconf

    # Dynaconf silently accepts missing files
    if config_path is not None and not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    dynaconf_settings = Dynaconf(
        envvar_prefix=ENV_PREFIX,
        settings_files=[str(config_path)] if config_path is not None else [],
        environments=False,
        load_dotenv=False,
    )

    raw_config = {k.lower(): v for k, v in dynaconf_settings.as_dict().items() if k not in _INTERNAL_KEYS}
    raw_config = _expand_env_vars(raw_config)
    return ConnectorSettings(**raw_config)


def resolve_config(settings: ConnectorSettings) -> dict[str, Any]:
    """Settings as a JSON-safe dict with the token redacted, for display and logs."""
    config_dict = settings.model_dump(mode="json")
    config_dict["token"] = "***"
    return config_dict
