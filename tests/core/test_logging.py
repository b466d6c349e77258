# tests/core/test_logging.py
"""Tests for structured logging configuration."""

import json
import logging

import pytest
import structlog

from harperdb_connector.core.logging import configure_logging, target_context


def _last_event(err: str) -> dict:
    return json.loads(err.strip().split("\n")[-1])


class TestConfigureLogging:
    def test_json_output_goes_to_stderr(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Structured events are JSON on stderr, leaving stdout for command output."""
        configure_logging(json_output=True)
        structlog.get_logger("harperdb_connector.provisioning").info("harperdb_command", operation="insert", status_code=200)

        captured = capsys.readouterr()
        assert captured.out == ""
        data = _last_event(captured.err)
        assert data["event"] == "harperdb_command"
        assert data["operation"] == "insert"
        assert data["level"] == "info"
        assert data["logger"] == "harperdb_connector.provisioning"
        assert "timestamp" in data
        assert "_record" not in data

    def test_console_output(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging(json_output=False)
        structlog.get_logger("test").warning("harperdb_request_timeout", timeout_s=1.5)

        err = capsys.readouterr().err
        assert "harperdb_request_timeout" in err
        assert not err.strip().startswith("{")

    def test_stdlib_loggers_share_json_format(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging(json_output=True)
        logging.getLogger("test.stdlib.module").warning("message from stdlib logger")

        data = _last_event(capsys.readouterr().err)
        assert data["event"] == "message from stdlib logger"
        assert data["level"] == "warning"

    def test_level_filters_events(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging(level="WARNING")
        structlog.get_logger("test").debug("hidden_event")

        assert "hidden_event" not in capsys.readouterr().err

    def test_unknown_level(self) -> None:
        with pytest.raises(ValueError, match="Unknown log level"):
            configure_logging(level="LOUD")

    def test_reconfiguring_keeps_one_handler(self) -> None:
        configure_logging()
        configure_logging(json_output=True)

        assert len(logging.getLogger().handlers) == 1

    def test_http_client_loggers_stay_at_warning(self) -> None:
        """httpx/httpcore connection chatter is kept out of DEBUG output."""
        configure_logging(level="DEBUG")

        assert logging.getLogger().level == logging.DEBUG
        for name in ("httpx", "httpcore"):
            assert logging.getLogger(name).getEffectiveLevel() >= logging.WARNING


class TestTargetContext:
    def test_events_carry_namespace_and_table(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging(json_output=True)

        with target_context("dev", "dog"):
            structlog.get_logger("test").warning("harperdb_creating_table")
        structlog.get_logger("test").warning("harperdb_request_failed")

        inside, outside = (json.loads(line) for line in capsys.readouterr().err.strip().split("\n")[-2:])
        assert (inside["namespace"], inside["table"]) == ("dev", "dog")
        assert "namespace" not in outside
