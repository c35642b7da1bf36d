"""Tests for lsirrig.logging structured logging setup."""

import json
import logging

import pytest
import structlog

from lsirrig.logging import configure_logging, get_logger


@pytest.fixture
def reset_logging():
    """Start from structlog defaults and restore them after each test."""
    structlog.reset_defaults()
    yield
    structlog.reset_defaults()
    lsirrig_logger = logging.getLogger("lsirrig")
    for handler in list(lsirrig_logger.handlers):
        handler.close()
        lsirrig_logger.removeHandler(handler)
    lsirrig_logger.setLevel(logging.NOTSET)


def _flush():
    for handler in logging.getLogger("lsirrig").handlers:
        handler.flush()


class TestConfigureLogging:
    """Events reach the configured destination with component context."""

    def test_json_to_file(self, tmp_path, reset_logging):
        log_file = tmp_path / "irrigation.log"
        configure_logging(level="INFO", format="json", output=str(log_file))

        log = get_logger("engine", run="test")
        log.info("engine_initialized", n_patches=3)
        log.debug("irrigation_step", n_active=1)
        _flush()

        lines = log_file.read_text().strip().splitlines()
        assert len(lines) == 1

        event = json.loads(lines[0])
        assert event["event"] == "engine_initialized"
        assert event["component"] == "engine"
        assert event["run"] == "test"
        assert event["n_patches"] == 3
        assert event["level"] == "info"
        assert event["logger"] == "lsirrig.engine"
        assert "timestamp" in event

    def test_debug_level(self, tmp_path, reset_logging):
        log_file = tmp_path / "debug.log"
        configure_logging(level="DEBUG", format="json", output=str(log_file))

        get_logger("engine").debug("irrigation_step", n_active=2)
        _flush()

        event = json.loads(log_file.read_text().strip())
        assert event["event"] == "irrigation_step"
        assert event["n_active"] == 2

    def test_console_format(self, tmp_path, reset_logging):
        log_file = tmp_path / "console.log"
        configure_logging(level="INFO", format="console", output=str(log_file))

        get_logger("state").info("restart_written", n_patches=5)
        _flush()

        text = log_file.read_text()
        assert "restart_written" in text
        assert "n_patches=5" in text

    def test_reconfigure_replaces_handler(self, tmp_path, reset_logging):
        first = tmp_path / "first.log"
        second = tmp_path / "second.log"

        configure_logging(output=str(first))
        configure_logging(output=str(second))
        get_logger("engine").info("irrigation_loop_complete")
        _flush()

        assert first.read_text() == ""
        assert "irrigation_loop_complete" in second.read_text()
        assert len(logging.getLogger("lsirrig").handlers) == 1

    def test_logger_used_before_configure(self, tmp_path, reset_logging):
        """A module-level logger used before configuration follows the new config."""
        log = get_logger("engine")
        log.debug("before_configure")

        log_file = tmp_path / "late.log"
        configure_logging(level="INFO", format="json", output=str(log_file))
        log.info("after_configure", n_patches=2)
        _flush()

        event = json.loads(log_file.read_text().strip())
        assert event["event"] == "after_configure"
        assert event["component"] == "engine"
