"""
utils/logger.py
---------------
Logging setup shared by the bot, the scheduler and the CLI.
Every module calls `get_logger(__name__)`; the first call configures the
root logger from LOG_LEVEL, and the CLI may override it with `configure`.
"""

import logging
import sys

from config import LOG_LEVEL

_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
# httpx logs every request at INFO, apscheduler every job run.
_NOISY = ("httpx", "httpcore", "apscheduler")
_configured = False


def _level(name: str) -> int:
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO


def configure(level: str = LOG_LEVEL) -> None:
    """Install the stdout handler once and set the root level (unknown names mean INFO)."""
    global _configured
    root = logging.getLogger()
    if not _configured:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(_FORMAT, _DATE_FORMAT))
        root.addHandler(handler)
        for name in _NOISY:
            logging.getLogger(name).setLevel(logging.WARNING)
        _configured = True
    root.setLevel(_level(level))


def get_logger(name: str) -> logging.Logger:
    """Named logger; usually called with the module's ``__name__``."""
    if not _configured:
        configure()
    return logging.getLogger(name)
