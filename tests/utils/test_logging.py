"""Tests for logging setup."""

import json
import logging

import pytest

from kvlog.utils.logging import configure_logging, get_logger


class TestConfigureLogging:
    """Test configure_logging."""

    def test_unknown_level(self):
        with pytest.raises(ValueError, match="Unknown log level"):
            configure_logging(log_level="LOUD")

    def test_unknown_format(self):
        with pytest.raises(ValueError, match="Unknown log format"):
            configure_logging(log_format="xml")

    def test_json_lines_to_file(self, tmp_path):
        """Test that JSON output carries the event, fields and app name."""
        log_file = tmp_path / "kvlog.log"
        configure_logging(log_level="DEBUG", log_format="json", log_output=str(log_file))

        get_logger("kvlog.test").info("Store opened", keys=3)
        for handler in logging.getLogger().handlers:
            handler.flush()

        line = log_file.read_text().strip().splitlines()[-1]
        event = json.loads(line)
        assert event["event"] == "Store opened"
        assert event["keys"] == 3
        assert event["app"] == "kvlog"
        assert event["level"] == "info"

    def test_level_filters_debug(self, tmp_path):
        """Test that events below the configured level are dropped."""
        log_file = tmp_path / "kvlog.log"
        configure_logging(log_level="WARNING", log_format="json", log_output=str(log_file))

        get_logger("kvlog.test.filter").debug("hidden")
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert "hidden" not in log_file.read_text()

    def test_reconfigure_closes_log_file(self, tmp_path):
        """Test that replacing a file output closes the earlier file."""
        configure_logging(log_output=str(tmp_path / "first.log"))
        (first_handler,) = logging.getLogger().handlers
        assert isinstance(first_handler, logging.FileHandler)
        first_stream = first_handler.stream

        configure_logging(log_output="stderr")

        assert first_stream.closed
        assert first_handler not in logging.getLogger().handlers
        assert not any(
            isinstance(handler, logging.FileHandler)
            for handler in logging.getLogger().handlers
        )
