"""Logging for ledger imports.

The importer and the SQL stores log through children of the ``ledger_import``
logger: batch start and finish at INFO, skipped duplicates at DEBUG and
rejected rows at WARNING. Nothing is printed until an entry point (the
``ledger-import`` CLI or a host application) calls :func:`configure_logging`;
before that the package logger only carries a ``NullHandler``.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

PACKAGE_LOGGER = "ledger_import"
LOG_LEVEL_ENV_VAR = "LEDGER_IMPORT_LOG_LEVEL"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# configure_logging recognizes its own handler by this name.
_CONSOLE_HANDLER = "ledger_import.console"


def resolve_level(level: int | str | None = None) -> int:
    """Turn ``level`` into a numeric logging level.

    ``None`` reads ``LEDGER_IMPORT_LOG_LEVEL``. Names are case-insensitive and
    numeric strings are accepted; anything unrecognized means ``INFO``.
    """

    if level is None:
        level = os.getenv(LOG_LEVEL_ENV_VAR) or logging.INFO
    if isinstance(level, int):
        return level
    text = level.strip().upper()
    if text.isdigit():
        return int(text)
    return logging.getLevelNamesMapping().get(text, logging.INFO)


def _console_handler(logger: logging.Logger) -> logging.Handler | None:
    return next((h for h in logger.handlers if h.get_name() == _CONSOLE_HANDLER), None)


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] = sys.stderr,
) -> logging.Logger:
    """Send ``ledger_import`` records to ``stream`` and return the package logger.

    Calling it again is a no-op: the first handler, level and format stay.
    Records do not propagate to the root logger, so a host that configured
    root logging does not see import lines twice.
    """

    logger = logging.getLogger(PACKAGE_LOGGER)
    if _console_handler(logger) is not None:
        return logger

    for h in [h for h in logger.handlers if isinstance(h, logging.NullHandler)]:
        logger.removeHandler(h)

    handler = logging.StreamHandler(stream)
    handler.set_name(_CONSOLE_HANDLER)
    handler.setFormatter(logging.Formatter(fmt or LOG_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(resolve_level(level))
    logger.propagate = False
    return logger


def get_logger(name: str) -> logging.Logger:
    pkg_logger = logging.getLogger(PACKAGE_LOGGER)
    if not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)


__all__ = [
    "PACKAGE_LOGGER",
    "LOG_LEVEL_ENV_VAR",
    "configure_logging",
    "get_logger",
    "resolve_level",
]
