# src/harperdb_connector/cli.py
"""harperdb-connector Command Line Interface.

Thin wrapper over HarperDBClient for ad-hoc queries. Command results are
printed to stdout as JSON; logs go to stderr.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

import typer
from pydantic import ValidationError

from harperdb_connector import __version__
from harperdb_connector.client import HarperDBClient
from harperdb_connector.contracts import ConnectorError
from harperdb_connector.core.config import ConnectorSettings, load_settings, resolve_config
from harperdb_connector.core.logging import configure_logging, target_context

__all__ = ["app"]

app = typer.Typer(
    name="harperdb-connector",
    help="Run record operations against a HarperDB instance.",
    no_args_is_help=True,
)

_CONFIG_OPTION = typer.Option(
    None,
    "--config",
    "-c",
    help="Path to settings YAML (HARPERDB_* environment variables override it).",
)
_TARGET_OPTION = typer.Option(
    None,
    "--target",
    "-t",
    help="Override the mounted table as 'namespace.table'.",
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"harperdb-connector version {__version__}")
        raise typer.Exit()


def _load_dotenv(env_file: Path | None = None) -> bool:
    """Load environment variables from a .env file.

    Raises:
        typer.Exit: If an explicit env_file path doesn't exist.
    """
    from dotenv import load_dotenv

    if env_file is not None:
        if not env_file.exists():
            typer.secho(f"Error: .env file not found: {env_file}", fg=typer.colors.RED, err=True)
            raise typer.Exit(1)
        return load_dotenv(env_file, override=False)
    return load_dotenv(override=False)


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    no_dotenv: bool = typer.Option(False, "--no-dotenv", help="Skip loading .env file."),
    env_file: Path | None = typer.Option(None, "--env-file", help="Path to .env file (skips automatic search)."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
    json_logs: bool = typer.Option(False, "--json-logs", help="Output structured JSON logs."),
) -> None:
    """Run record operations against a HarperDB instance."""
    configure_logging(json_output=json_logs, level="DEBUG" if verbose else "WARNING")

    if not no_dotenv:
        _load_dotenv(env_file=env_file)
    elif env_file is not None:
        typer.secho("Warning: --env-file ignored because --no-dotenv is set.", fg=typer.colors.YELLOW, err=True)


def _settings(config: Path | None) -> ConnectorSettings:
    try:
        return load_settings(config)
    except FileNotFoundError:
        typer.echo(f"Error: Settings file not found: {config}", err=True)
        raise typer.Exit(1) from None
    except ValidationError as e:
        typer.echo("Configuration errors:", err=True)
        for error in e.errors():
            loc = ".".join(str(part) for part in error["loc"]) or "<root>"
            typer.echo(f"  - {loc}: {error['msg']}", err=True)
        raise typer.Exit(1) from None


def _execute(
    config: Path | None,
    target: str | None,
    operation: Callable[[HarperDBClient], Awaitable[Any]],
) -> None:
    settings = _settings(config)

    async def runner() -> Any:
        async with HarperDBClient.from_settings(settings) as client:
            if target is not None:
                client.mount(target)
            with target_context(client.namespace, client.table):
                return await operation(client)

    try:
        result = asyncio.run(runner())
    except ConnectorError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None
    typer.echo(json.dumps(result, indent=2, default=str))


def _parse_value(raw: str) -> Any:
    """JSON-decode a CLI value when possible ("5" -> 5, "true" -> True), else keep the text."""
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def _parse_where(pairs: list[str]) -> dict[str, Any]:
    attributes: dict[str, Any] = {}
    for pair in pairs:
        name, sep, value = pair.partition("=")
        if not sep or not name.strip():
            typer.echo(f"Error: --where expects attribute=value, got {pair!r}", err=True)
            raise typer.Exit(2)
        attributes[name.strip()] = _parse_value(value)
    return attributes


@app.command()
def sql(
    statement: str = typer.Argument(..., help="SQL statement to run."),
    config: Path | None = _CONFIG_OPTION,
    target: str | None = _TARGET_OPTION,
) -> None:
    """Run a SQL statement."""
    _execute(config, target, lambda client: client.run(statement))


@app.command()
def describe(
    config: Path | None = _CONFIG_OPTION,
    target: str | None = _TARGET_OPTION,
) -> None:
    """Describe the mounted table."""
    _execute(config, target, lambda client: client.describe())


@app.command()
def select(
    where: list[str] = typer.Option([], "--where", "-w", help="Exact match attribute=value (repeatable)."),
    value: list[str] = typer.Option([], "--value", help="Substring to find in any attribute (repeatable)."),
    limit: int | None = typer.Option(None, "--limit", "-n", min=0, help="Maximum number of records."),
    config: Path | None = _CONFIG_OPTION,
    target: str | None = _TARGET_OPTION,
) -> None:
    """Search records by exact attributes or by substring values."""
    if where and value:
        typer.echo("Error: use either --where or --value, not both", err=True)
        raise typer.Exit(2)
    if not where and not value:
        typer.echo("Error: give at least one --where or --value (use 'describe' for the table schema)", err=True)
        raise typer.Exit(2)
    search_filter: Any = _parse_where(where) if where else list(value)
    _execute(config, target, lambda client: client.select(search_filter, limit=limit))


@app.command("config")
def show_config(config: Path | None = _CONFIG_OPTION) -> None:
    """Show the resolved settings (token redacted)."""
    typer.echo(json.dumps(resolve_config(_settings(config)), indent=2))


if __name__ == "__main__":
    app()
