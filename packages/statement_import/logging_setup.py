"""Logging configuration for the ``statement_import`` package.

Entry points (the CLI, a host application) call :func:`configure_logging` once;
library modules only ever call :func:`get_logger` with their ``__name__`` and
never attach handlers of their own. Until configuration happens the package
logger carries a ``NullHandler`` so embedding applications see no stray output.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

_PKG_LOGGER_NAME = "statement_import"
_LEVEL_ENV = "STATEMENT_IMPORT_LOG_LEVEL"
_DEFAULT_FMT = "%(asctime)s %(name)s %(levelname)s %(message)s"
_CONFIGURED = False


def _parse_level(level: int | str | None) -> int:
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        name = level.strip().upper()
        if name.isdigit():
            return int(name)
        numeric = getattr(logging, name, None)
        if isinstance(numeric, int):
            return numeric
    env_val = os.getenv(_LEVEL_ENV)
    if env_val and env_val != level:
        return _parse_level(env_val)
    return logging.INFO


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] = sys.stderr,
) -> None:
    """Attach a single ``StreamHandler`` to the package logger (idempotent).

    Parameters
    ----------
    level:
        ``int`` or level name. ``None`` falls back to ``STATEMENT_IMPORT_LOG_LEVEL``
        and then ``INFO``.
    fmt:
        Optional format string.
    stream:
        Destination stream, ``sys.stderr`` by default.
    """

    global _CONFIGURED
    if _CONFIGURED:
        return

    logger = logging.getLogger(_PKG_LOGGER_NAME)
    for h in list(logger.handlers):
        if isinstance(h, logging.NullHandler):
            logger.removeHandler(h)

    resolved = _parse_level(level)
    handler = logging.StreamHandler(stream)
    handler.setLevel(resolved)
    handler.setFormatter(logging.Formatter(fmt or _DEFAULT_FMT))

    logger.setLevel(resolved)
    logger.addHandler(handler)
    logger.propagate = False

    _CONFIGURED = True


def get_logger(name: str) -> logging.Logger:
    """Return ``logging.getLogger(name)``, keeping the package logger quiet until configured."""

    pkg_logger = logging.getLogger(_PKG_LOGGER_NAME)
    if not _CONFIGURED and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)


__all__ = ["configure_logging", "get_logger"]
