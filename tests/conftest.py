# tests/conftest.py
"""Shared test fixtures and helpers.

FakeHarper is an in-memory stand-in for the operations endpoint, mounted
with respx so the real httpx transport path is exercised end to end. It
implements just enough of the protocol (namespaces, tables, writes,
condition search) to drive the provisioning state machine through every
transition, and records each payload it receives in ``operations``.

Hypothesis Configuration:
- "ci" profile: Fast tests for CI (100 examples) - default
- "nightly" profile: Thorough tests (1000 examples)
- "debug" profile: Minimal tests with verbose output (10 examples)

Set profile via environment variable:
    HYPOTHESIS_PROFILE=nightly pytest tests/property/
"""

from __future__ import annotations

import json
import logging
import os
import uuid
from collections.abc import AsyncIterator, Iterator, Sequence
from dataclasses import dataclass, field
from typing import Any

import httpx
import pytest
import pytest_asyncio
import respx
import structlog
from hypothesis import Phase, Verbosity, settings

from harperdb_connector import HarperDBClient

BASE_URL = "https://harper.test:9925/"
TOKEN = "dXNlcjpzZWNyZXQ="  # user:secret


# =============================================================================
# Fake operations endpoint
# =============================================================================


@dataclass
class FakeTable:
    hash_attribute: str
    records: dict[Any, dict[str, Any]] = field(default_factory=dict)

    def describe(self, namespace: str, name: str) -> dict[str, Any]:
        attributes = {self.hash_attribute}
        for record in self.records.values():
            attributes.update(record)
        return {
            "name": name,
            "schema": namespace,
            "hash_attribute": self.hash_attribute,
            "attributes": [{"attribute": a} for a in sorted(attributes)],
            "record_count": len(self.records),
        }


class FakeHarper:
    """In-memory operations endpoint.

    Attributes:
        namespaces: namespace -> table name -> FakeTable
        operations: Every payload received, in order
        reject_creates: Make create_* fail as if another client won the race
    """

    def __init__(self) -> None:
        self.namespaces: dict[str, dict[str, FakeTable]] = {}
        self.operations: list[dict[str, Any]] = []
        self.reject_creates = False

    # -- helpers for tests -------------------------------------------------

    def add_table(self, namespace: str, table: str, *, hash_attribute: str = "id", records: Sequence[dict[str, Any]] = ()) -> FakeTable:
        fake = FakeTable(hash_attribute=hash_attribute)
        for record in records:
            fake.records[record[hash_attribute]] = dict(record)
        self.namespaces.setdefault(namespace, {})[table] = fake
        return fake

    def operation_names(self) -> list[str]:
        return [op["operation"] for op in self.operations]

    # -- dispatch ----------------------------------------------------------

    def handle(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        self.operations.append(payload)
        operation = payload.get("operation")
        handler = getattr(self, f"_op_{operation}", None)
        if handler is None:
            return _error(400, f"Operation '{operation}' is not supported")
        return handler(payload)

    def _namespace(self, payload: dict[str, Any]) -> str:
        return payload.get("schema") or payload.get("database")

    def _table(self, payload: dict[str, Any]) -> FakeTable | httpx.Response:
        namespace = self._namespace(payload)
        if namespace not in self.namespaces:
            return _error(404, f"database '{namespace}' does not exist")
        table = self.namespaces[namespace].get(payload["table"])
        if table is None:
            return _error(404, f"Table '{namespace}.{payload['table']}' does not exist")
        return table

    # -- structure operations ---------------------------------------------

    def _describe_namespace(self, payload: dict[str, Any]) -> httpx.Response:
        namespace = self._namespace(payload)
        if namespace not in self.namespaces:
            return _error(404, f"database '{namespace}' does not exist")
        return httpx.Response(
            200,
            json={name: table.describe(namespace, name) for name, table in self.namespaces[namespace].items()},
        )

    def _create_namespace(self, payload: dict[str, Any]) -> httpx.Response:
        namespace = self._namespace(payload)
        if self.reject_creates or namespace in self.namespaces:
            return _error(400, f"database '{namespace}' already exists")
        self.namespaces[namespace] = {}
        return httpx.Response(200, json={"message": f"database '{namespace}' successfully created"})

    _op_describe_schema = _describe_namespace
    _op_describe_database = _describe_namespace
    _op_create_schema = _create_namespace
    _op_create_database = _create_namespace

    def _op_describe_table(self, payload: dict[str, Any]) -> httpx.Response:
        table = self._table(payload)
        if isinstance(table, httpx.Response):
            return table
        return httpx.Response(200, json=table.describe(self._namespace(payload), payload["table"]))

    def _op_create_table(self, payload: dict[str, Any]) -> httpx.Response:
        namespace = self._namespace(payload)
        if self.reject_creates:
            return _error(400, f"Table '{payload['table']}' already exists in '{namespace}'")
        if namespace not in self.namespaces:
            return _error(404, f"database '{namespace}' does not exist")
        if payload["table"] in self.namespaces[namespace]:
            return _error(400, f"Table '{payload['table']}' already exists in '{namespace}'")
        self.namespaces[namespace][payload["table"]] = FakeTable(hash_attribute=payload["hash_attribute"])
        return httpx.Response(200, json={"message": f"table '{namespace}.{payload['table']}' successfully created."})

    # -- record operations -------------------------------------------------

    def _write(self, payload: dict[str, Any], *, allow_insert: bool, allow_update: bool) -> httpx.Response:
        table = self._table(payload)
        if isinstance(table, httpx.Response):
            return table
        written: list[Any] = []
        skipped: list[Any] = []
        for record in payload["records"]:
            key = record.get(table.hash_attribute)
            exists = key is not None and key in table.records
            if exists and allow_update:
                table.records[key].update(record)
                written.append(key)
            elif not exists and allow_insert:
                key = key if key is not None else str(uuid.uuid4())
                table.records[key] = {**record, table.hash_attribute: key}
                written.append(key)
            else:
                skipped.append(key)
        verb = {"insert": "inserted", "update": "updated", "upsert": "upserted"}[payload["operation"]]
        return httpx.Response(
            200,
            json={
                "message": f"{verb} {len(written)} of {len(payload['records'])} records",
                f"{verb}_hashes": written,
                "skipped_hashes": skipped,
            },
        )

    def _op_insert(self, payload: dict[str, Any]) -> httpx.Response:
        return self._write(payload, allow_insert=True, allow_update=False)

    def _op_update(self, payload: dict[str, Any]) -> httpx.Response:
        return self._write(payload, allow_insert=False, allow_update=True)

    def _op_upsert(self, payload: dict[str, Any]) -> httpx.Response:
        return self._write(payload, allow_insert=True, allow_update=True)

    def _op_delete(self, payload: dict[str, Any]) -> httpx.Response:
        table = self._table(payload)
        if isinstance(table, httpx.Response):
            return table
        deleted = [key for key in payload["hash_values"] if table.records.pop(key, None) is not None]
        return httpx.Response(200, json={"message": f"{len(deleted)} of {len(payload['hash_values'])} records successfully deleted", "deleted_hashes": deleted})

    def _op_search_by_conditions(self, payload: dict[str, Any]) -> httpx.Response:
        table = self._table(payload)
        if isinstance(table, httpx.Response):
            return table
        combine = all if payload.get("operator", "and") == "and" else any
        conditions = payload["conditions"]
        matches = [
            dict(record)
            for record in table.records.values()
            if not conditions or combine(_matches(record, condition) for condition in conditions)
        ]
        if "limit" in payload:
            matches = matches[: payload["limit"]]
        return httpx.Response(200, json=matches)

    def _op_sql(self, payload: dict[str, Any]) -> httpx.Response:
        return httpx.Response(200, json=[{"sql": payload["sql"]}])


def _matches(record: dict[str, Any], condition: dict[str, Any]) -> bool:
    value = record.get(condition["search_attribute"])
    if condition["search_type"] == "equals":
        return value == condition["search_value"]
    return value is not None and str(condition["search_value"]) in str(value)


def _error(status_code: int, message: str) -> httpx.Response:
    return httpx.Response(status_code, json={"error": message})


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def _restore_logging() -> Iterator[None]:
    """Undo configure_logging so later tests don't write to a closed capture stream."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers = handlers
    root.setLevel(level)
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


@pytest.fixture
def fake_harper() -> Iterator[FakeHarper]:
    """FakeHarper mounted at BASE_URL for the duration of the test."""
    server = FakeHarper()
    with respx.mock(assert_all_called=False) as router:
        router.post(BASE_URL).mock(side_effect=server.handle)
        yield server


@pytest_asyncio.fixture
async def client(fake_harper: FakeHarper) -> AsyncIterator[HarperDBClient]:
    """Client mounted on dev.dog against the fake endpoint."""
    db = HarperDBClient(BASE_URL, TOKEN, "dev", "dog")
    yield db
    await db.aclose()


# =============================================================================
# Hypothesis Configuration
# =============================================================================

settings.register_profile(
    "ci",
    max_examples=100,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.register_profile(
    "nightly",
    max_examples=1000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))
