"""Tests for logging configuration."""
import logging

import pytest

from voiceturn.cli import parse_args
from voiceturn.config import Config
from voiceturn.logging_config import get_log_level, set_log_level, setup_logger


@pytest.fixture
def restore_level():
    previous = get_log_level()
    yield
    set_log_level(previous)


class TestLogging:
    """Test the shared voiceturn log level."""

    def test_logger_writes_to_its_own_handler(self):
        logger = setup_logger("voiceturn.test.handler")

        assert logger.propagate is False
        assert len(logger.handlers) == 1
        # A second call does not stack handlers
        setup_logger("voiceturn.test.handler")
        assert len(logger.handlers) == 1

    def test_set_level_updates_existing_loggers(self, restore_level):
        logger = setup_logger("voiceturn.test.existing")

        set_log_level("debug")

        assert logger.level == logging.DEBUG
        assert logger.handlers[0].level == logging.DEBUG

    def test_new_loggers_use_shared_level(self, restore_level):
        set_log_level(logging.WARNING)

        logger = setup_logger("voiceturn.test.created_later")

        assert logger.level == logging.WARNING

    def test_other_loggers_untouched(self, restore_level):
        other = logging.getLogger("someone.else")
        other.setLevel(logging.ERROR)

        set_log_level("DEBUG")

        assert other.level == logging.ERROR

    def test_level_from_config(self, monkeypatch):
        monkeypatch.setenv("VOICETURN_LOGGING__LEVEL", "WARNING")
        assert Config().logging.level == "WARNING"

    def test_verbose_flag(self):
        assert parse_args(["-v"]).verbose is True
        assert parse_args([]).verbose is False
