"""
Logging configuration for the CLI.
"""

import logging
import sys
from typing import Optional

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class _StderrHandler(logging.StreamHandler):
    """StreamHandler bound to whatever sys.stderr is at emit time.

    The CLI may be invoked repeatedly in one process with stderr swapped
    out in between (click's test runner does this).
    """

    @property
    def stream(self):
        return sys.stderr

    @stream.setter
    def stream(self, value):
        pass


def setup_logging(level: str = "WARNING", format_string: Optional[str] = None) -> logging.Logger:
    """
    Setup logging for the xcedectl package.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        format_string: Custom format string

    Returns:
        The package logger
    """
    logger = logging.getLogger("xcedectl")
    logger.setLevel(getattr(logging, level.upper()))

    # Clear existing handlers so repeated CLI invocations don't stack them
    for h in list(logger.handlers):
        logger.removeHandler(h)

    handler = _StderrHandler()
    handler.setFormatter(logging.Formatter(format_string or DEFAULT_FORMAT))
    logger.addHandler(handler)
    logger.propagate = False
    return logger
