"""
Unit Tests for Logging Setup
"""

import logging

import pytest

from binmerge.services.log_setup import LogFormatter, configure_from_settings, setup_logging
from binmerge.services.settings import LoggingSettings


@pytest.fixture
def restore_root_logger():
    """setup_logging replaces root handlers; put the originals back."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


class TestSetupLogging:

    def test_console_handler_and_level(self, restore_root_logger):
        root = setup_logging("debug")

        assert root is restore_root_logger
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, LogFormatter)
        assert logging.getLogger("PyQt6").level == logging.WARNING

    def test_unknown_level_defaults_to_info(self, restore_root_logger):
        assert setup_logging("chatty").level == logging.INFO

    def test_file_handler_writes_plain_lines(self, restore_root_logger, tmp_path):
        log_file = tmp_path / "logs" / "binmerge.log"

        root = setup_logging("INFO", log_file)
        logging.info("RecordMergeEngine - hello")
        for handler in root.handlers:
            handler.flush()

        text = log_file.read_text(encoding="utf-8")
        assert "INFO     RecordMergeEngine - hello" in text
        assert "\033[" not in text

    def test_configure_from_settings(self, restore_root_logger, tmp_path):
        log_file = tmp_path / "merge.log"

        root = configure_from_settings(LoggingSettings(level="WARNING", log_file=str(log_file)))

        assert root.level == logging.WARNING
        assert len(root.handlers) == 2
        assert log_file.exists()

    def test_empty_log_file_setting_means_console_only(self, restore_root_logger):
        root = configure_from_settings(LoggingSettings())
        assert len(root.handlers) == 1

    def test_repeated_setup_does_not_stack_handlers(self, restore_root_logger):
        setup_logging()
        root = setup_logging()
        assert len(root.handlers) == 1


class TestLogFormatter:

    def test_no_colors_without_tty(self):
        record = logging.LogRecord("binmerge", logging.ERROR, __file__, 1, "boom", None, None)
        formatted = LogFormatter(use_colors=False).format(record)
        assert formatted.endswith(" ERROR    boom")
