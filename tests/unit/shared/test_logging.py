"""Unit tests for logging configuration."""

from __future__ import annotations

import json
import logging

import structlog

from vdb_kind.shared.logging import configure_logging, get_logger, verbosity_level


class TestVerbosityLevel:
    def test_levels(self):
        assert verbosity_level(0) == logging.WARNING
        assert verbosity_level(1) == logging.INFO
        assert verbosity_level(2) == logging.DEBUG
        assert verbosity_level(5) == logging.DEBUG


class TestConfigureLogging:
    """Tests for configure_logging."""

    def teardown_method(self):
        structlog.reset_defaults()
        logging.getLogger().handlers.clear()

    def test_default_is_warning_on_stderr(self):
        configure_logging()

        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert root.handlers
        assert not any(isinstance(h, logging.FileHandler) for h in root.handlers)

    def test_verbose_count_sets_level(self):
        configure_logging(2)
        assert logging.getLogger().level == logging.DEBUG

    def test_log_file_gets_json_lines(self, tmp_path):
        """Test a log file receives one JSON object per event."""
        log_file = tmp_path / "vdb-kind.log"
        configure_logging(1, log_file=log_file)

        get_logger("vdb_kind.test").info("stage starting", stage="sizing")
        get_logger("vdb_kind.test").debug("hidden at -v")
        for handler in logging.getLogger().handlers:
            handler.flush()

        lines = log_file.read_text().strip().splitlines()
        assert len(lines) == 1
        record = json.loads(lines[0])
        assert record["event"] == "stage starting"
        assert record["stage"] == "sizing"
        assert record["level"] == "info"
        assert record["logger"] == "vdb_kind.test"
