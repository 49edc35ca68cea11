"""Tests for structlog configuration."""

import json
import logging
from pathlib import Path
from unittest.mock import patch

import pytest
import structlog

from sysdash.config import Config
from sysdash.logging import configure


@pytest.fixture
def config(tmp_path: Path):
    """Config whose state directory lives under tmp_path."""
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    with patch.object(Config, "state_dir", new=tmp_path / "state"):
        yield Config()
    for handler in root.handlers:
        handler.close()
    root.handlers[:] = saved_handlers
    root.setLevel(saved_level)


def test_configure_creates_state_dir(config):
    configure(config)
    assert config.state_dir.is_dir()


def test_configure_installs_rotating_handler(config):
    handler = configure(config)

    assert isinstance(handler, logging.handlers.RotatingFileHandler)
    assert logging.getLogger().handlers == [handler]
    assert handler.maxBytes == config.logging.max_bytes
    assert handler.backupCount == config.logging.backup_count


def test_events_written_as_json_lines(config):
    handler = configure(config)

    structlog.get_logger("sysdash.test").info("tick_done", task="metrics", count=3)
    handler.flush()

    lines = config.log_path.read_text().splitlines()
    record = json.loads(lines[-1])
    assert record["event"] == "tick_done"
    assert record["task"] == "metrics"
    assert record["count"] == 3
    assert record["level"] == "info"
    assert "ts" in record


def test_level_filters_events(config):
    config.logging.level = "WARNING"
    handler = configure(config)

    log = structlog.get_logger("sysdash.test")
    log.info("hidden")
    log.warning("shown")
    handler.flush()

    events = [json.loads(line)["event"] for line in config.log_path.read_text().splitlines()]
    assert events == ["shown"]


def test_unknown_level_rejected(config):
    config.logging.level = "LOUD"
    with pytest.raises(ValueError, match="Unknown log level"):
        configure(config)
