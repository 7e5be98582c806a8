"""Tests for logger.py - setup_logging() and JsonFormatter.

Strategy: Mock logging.basicConfig to verify setup_logging passes correct args,
since pytest's log capture plugin interferes with actual basicConfig calls.
"""

import json
import logging
import sys
from unittest.mock import patch

from tracker_sync.logger import JsonFormatter, setup_logging


def _record(msg="Hello %s", args=("world",), level=logging.INFO, exc_info=None):
    return logging.LogRecord(
        name="tracker_sync.sync.engine",
        level=level,
        pathname="engine.py",
        lineno=1,
        msg=msg,
        args=args,
        exc_info=exc_info,
    )


def _close(handlers):
    for h in handlers:
        if isinstance(h, logging.FileHandler):
            h.close()


# ---------------------------------------------------------------------------
# setup_logging tests
# ---------------------------------------------------------------------------


class TestSetupLogging:
    """Tests for setup_logging()."""

    @patch("tracker_sync.logger.logging.basicConfig")
    def test_cli_mode_logs_to_stderr(self, mock_basic):
        setup_logging(mode="cli")

        handlers = mock_basic.call_args[1]["handlers"]
        assert isinstance(handlers[0], logging.StreamHandler)
        assert handlers[0].stream is sys.stderr

    @patch("tracker_sync.logger.logging.basicConfig")
    def test_mcp_mode_logs_to_file_only(self, mock_basic, tmp_path):
        """stdio owns stdout, so MCP mode never adds a stream handler."""
        log_file = tmp_path / "mcp.log"
        setup_logging(mode="mcp", log_file=str(log_file))

        handlers = mock_basic.call_args[1]["handlers"]
        try:
            assert len(handlers) == 1
            assert isinstance(handlers[0], logging.FileHandler)
            assert handlers[0].baseFilename == str(log_file)
        finally:
            _close(handlers)

    @patch("tracker_sync.logger.logging.basicConfig")
    def test_mcp_mode_env_log_file(self, mock_basic, monkeypatch, tmp_path):
        log_file = tmp_path / "env.log"
        monkeypatch.setenv("LOG_FILE", str(log_file))
        setup_logging(mode="mcp")

        handlers = mock_basic.call_args[1]["handlers"]
        try:
            assert handlers[0].baseFilename == str(log_file)
        finally:
            _close(handlers)

    @patch("tracker_sync.logger.logging.basicConfig")
    def test_default_levels(self, mock_basic, monkeypatch, tmp_path):
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        setup_logging(mode="cli")
        assert mock_basic.call_args[1]["level"] == logging.INFO

        setup_logging(mode="mcp", log_file=str(tmp_path / "x.log"))
        kwargs = mock_basic.call_args[1]
        _close(kwargs["handlers"])
        assert kwargs["level"] == logging.WARNING

    @patch("tracker_sync.logger.logging.basicConfig")
    def test_env_log_level_honored(self, mock_basic, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "error")
        setup_logging(mode="cli")
        assert mock_basic.call_args[1]["level"] == logging.ERROR

    @patch("tracker_sync.logger.logging.basicConfig")
    def test_debug_beats_env(self, mock_basic, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "ERROR")
        setup_logging(mode="cli", debug=True)
        assert mock_basic.call_args[1]["level"] == logging.DEBUG

    @patch("tracker_sync.logger.logging.basicConfig")
    def test_cli_mode_with_log_file(self, mock_basic, tmp_path):
        setup_logging(mode="cli", log_file=str(tmp_path / "cli.log"))

        handlers = mock_basic.call_args[1]["handlers"]
        try:
            assert len(handlers) == 2
            assert isinstance(handlers[1], logging.FileHandler)
        finally:
            _close(handlers)

    @patch("tracker_sync.logger.logging.basicConfig")
    def test_json_format_uses_json_formatter(self, mock_basic):
        setup_logging(mode="cli", debug_format="json")
        handlers = mock_basic.call_args[1]["handlers"]
        assert isinstance(handlers[0].formatter, JsonFormatter)

    @patch("tracker_sync.logger.logging.basicConfig")
    def test_sqlalchemy_silenced(self, _mock_basic, monkeypatch):
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        setup_logging(mode="cli")
        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING


# ---------------------------------------------------------------------------
# JsonFormatter tests
# ---------------------------------------------------------------------------


class TestJsonFormatter:
    """Tests for JsonFormatter."""

    def test_basic_output(self):
        data = json.loads(JsonFormatter().format(_record()))
        assert data["level"] == "INFO"
        assert data["logger"] == "tracker_sync.sync.engine"
        assert data["msg"] == "Hello world"
        assert "ts" in data
        assert "job_id" not in data

    def test_context_fields_copied(self):
        record = _record("Started job", args=())
        record.job_id = "job-1"
        record.mapping_id = "map-9"
        data = json.loads(JsonFormatter().format(record))
        assert data["job_id"] == "job-1"
        assert data["mapping_id"] == "map-9"

    def test_includes_exception_on_one_line(self):
        try:
            raise ValueError("test error")
        except ValueError:
            exc_info = sys.exc_info()

        output = JsonFormatter().format(
            _record("boom", args=(), level=logging.ERROR, exc_info=exc_info)
        )

        assert "\n" not in output
        data = json.loads(output)
        assert "ValueError" in data["exc"]
