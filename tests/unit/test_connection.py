"""Tests for target parsing and connection state."""

import pytest

from harperdb_connector.connection import DEFAULT_PRIMARY_KEY, DEFAULT_TIMEOUT_MS, ConnectionState, parse_target
from harperdb_connector.contracts import InvalidArgumentError, StructureState


class TestParseTarget:
    def test_separate_names(self) -> None:
        assert parse_target("dev", "dog") == ("dev", "dog")

    def test_dotted_name(self) -> None:
        assert parse_target("dev.dog") == ("dev", "dog")

    def test_splits_on_first_dot_only(self) -> None:
        assert parse_target("dev.dog.puppies") == ("dev", "dog.puppies")

    def test_names_are_stripped(self) -> None:
        assert parse_target(" dev ", " dog ") == ("dev", "dog")

    @pytest.mark.parametrize(
        ("namespace", "table", "message"),
        [
            ("", "dog", "Invalid namespace name!"),
            ("   ", "dog", "Invalid namespace name!"),
            (None, "dog", "Invalid namespace name!"),
            ("dev", None, "Invalid table name!"),
            ("dev.", None, "Invalid table name!"),
            ("dev", "  ", "Invalid table name!"),
            (".dog", None, "Invalid namespace name!"),
        ],
    )
    def test_invalid_names(self, namespace: object, table: object, message: str) -> None:
        with pytest.raises(InvalidArgumentError, match=message):
            parse_target(namespace, table)  # type: ignore[arg-type]


class TestConnectionState:
    def test_defaults(self) -> None:
        state = ConnectionState("dev", "dog")

        assert state.primary_key == DEFAULT_PRIMARY_KEY
        assert state.timeout_ms == DEFAULT_TIMEOUT_MS
        assert not state.namespace_known
        assert not state.table_known

    def test_dotted_namespace_without_table(self) -> None:
        state = ConnectionState("dev.dog", None)  # type: ignore[arg-type]

        assert (state.namespace, state.table) == ("dev", "dog")

    def test_mark_known(self) -> None:
        state = ConnectionState("dev", "dog")

        state.mark_known()

        assert state.namespace_state is StructureState.KNOWN
        assert state.table_state is StructureState.KNOWN

    def test_rebind_resets_states(self) -> None:
        state = ConnectionState("dev", "dog", primary_key="tag")
        state.mark_known()

        state.rebind("prod.cat")

        assert (state.namespace, state.table, state.primary_key) == ("prod", "cat", "tag")
        assert not state.namespace_known
        assert not state.table_known

    def test_rebind_rejects_blank_primary_key(self) -> None:
        state = ConnectionState("dev", "dog")

        with pytest.raises(InvalidArgumentError, match="Invalid primary key!"):
            state.rebind("prod", "cat", primary_key=" ")

    @pytest.mark.parametrize(("primary_key", "timeout_ms"), [("", 100), ("id", 0), ("id", -5)])
    def test_invalid_construction(self, primary_key: str, timeout_ms: int) -> None:
        with pytest.raises(InvalidArgumentError):
            ConnectionState("dev", "dog", primary_key=primary_key, timeout_ms=timeout_ms)
