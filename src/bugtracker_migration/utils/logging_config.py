"""
Logging configuration for the migration tool.

All modules log through the ``bugtracker_migration`` logger. The console
handler prints plain messages; an optional rotating file handler keeps a
timestamped record of the run.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional, TextIO

LOGGER_NAME = 'bugtracker_migration'


def verbosity_to_level(verbosity: int) -> int:
    """Map the CLI verbosity counter to a logging level."""
    if verbosity <= 0:
        return logging.WARNING
    if verbosity == 1:
        return logging.INFO
    return logging.DEBUG


def setup_logger(log_level: str = 'INFO', log_file: Optional[str] = None,
                 stream: Optional[TextIO] = None) -> logging.Logger:
    """
    Configure and return the migration logger.

    Args:
        log_level: Level name or number for the console handler
        log_file: Optional path of a log file (rotated at 5 MB)
        stream: Console stream (defaults to stdout)

    Returns:
        The configured logger
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler(stream or sys.stdout)
    console.setLevel(log_level if isinstance(log_level, int) else log_level.upper())
    console.setFormatter(logging.Formatter('%(message)s'))
    logger.addHandler(console)

    if log_file:
        file_handler = RotatingFileHandler(log_file, maxBytes=5 * 1024 * 1024, backupCount=3, encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter('%(asctime)s - %(levelname)s - %(message)s'))
        logger.addHandler(file_handler)

    return logger


class MigrationLogger:
    """
    Thin wrapper around the migration logger.

    Adds a carriage-return progress line for long passes so the console
    is not flooded with one line per item.
    """

    def __init__(self, log_level: str = 'INFO', log_file: Optional[str] = None,
                 dry_run: bool = False, stream: Optional[TextIO] = None):
        self.dry_run = dry_run
        self.stream = stream or sys.stdout
        self.logger = setup_logger(log_level, log_file, self.stream)
        self.show_progress = self.logger.handlers[0].level <= logging.INFO

    def _prefix(self, message: str) -> str:
        return f"[DRY RUN] {message}" if self.dry_run else message

    def debug(self, message: str, *args, **kwargs) -> None:
        self.logger.debug(self._prefix(message), *args, **kwargs)

    def info(self, message: str, *args, **kwargs) -> None:
        self.logger.info(self._prefix(message), *args, **kwargs)

    def warning(self, message: str, *args, **kwargs) -> None:
        self.logger.warning(self._prefix(message), *args, **kwargs)

    def error(self, message: str, *args, **kwargs) -> None:
        self.logger.error(self._prefix(message), *args, **kwargs)

    def progress(self, label: str, percent: float) -> None:
        """Overwrite the current console line with a progress percentage."""
        if self.show_progress:
            self.stream.write(f"{label}...{percent:.2f}%\r")
            self.stream.flush()

    def progress_done(self, label: str) -> None:
        if self.show_progress:
            self.stream.write(f"{label}...Finished!\n")
            self.stream.flush()
