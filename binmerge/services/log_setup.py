"""
Logging configuration for binmerge front ends.

binmerge modules log through the root logger with a "ClassName - "
prefix, so the formatter shows level and message only.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

from binmerge.services.settings import LoggingSettings


class LogFormatter(logging.Formatter):
    """Formatter that colours the level column on a terminal."""

    LEVEL_COLORS = {
        logging.DEBUG: '\033[36m',     # Cyan
        logging.INFO: '\033[32m',      # Green
        logging.WARNING: '\033[33m',   # Yellow
        logging.ERROR: '\033[31m',     # Red
        logging.CRITICAL: '\033[35m',  # Magenta
    }
    RESET = '\033[0m'

    def __init__(self, use_colors: bool = True):
        super().__init__(fmt='%(asctime)s %(levelname)-8s %(message)s', datefmt='%H:%M:%S')
        self.use_colors = use_colors and sys.stderr.isatty()

    def formatMessage(self, record: logging.LogRecord) -> str:
        if not self.use_colors:
            return super().formatMessage(record)
        color = self.LEVEL_COLORS.get(record.levelno, '')
        level = f"{color}{record.levelname:<8}{self.RESET}"
        return f"{record.asctime} {level} {record.message}"


def setup_logging(level: str = "INFO", log_file: Optional[Path | str] = None) -> logging.Logger:
    """
    Route binmerge logging to stderr and, optionally, a file.

    Replaces any handlers already on the root logger, so calling it
    again reconfigures rather than duplicating output.

    Args:
        level: Level name; unknown names fall back to INFO
        log_file: File to append plain (uncoloured) lines to

    Returns:
        The root logger
    """
    numeric_level = getattr(logging, level.upper(), None)
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    root = logging.getLogger()
    root.setLevel(numeric_level)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(LogFormatter(use_colors=True))
    root.addHandler(console)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding='utf-8')
        file_handler.setFormatter(LogFormatter(use_colors=False))
        root.addHandler(file_handler)

    # Qt bindings log at DEBUG on import
    logging.getLogger('PyQt6').setLevel(logging.WARNING)

    return root


def configure_from_settings(settings: LoggingSettings) -> logging.Logger:
    """setup_logging() driven by the persisted logging settings."""
    return setup_logging(settings.level, settings.log_file or None)
