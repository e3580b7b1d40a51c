"""Logging utilities for nlcg.

Every module obtains its logger through :func:`get_logger`, so a single call to
:func:`set_log_level` or :func:`configure_logging` controls the verbosity of
the iterator, the line searches and the executor at once. Settings made by
:func:`configure_logging` also apply to loggers created afterwards.
"""

from __future__ import annotations

import logging
import sys
from typing import IO, Optional

PACKAGE = "nlcg"
_DEFAULT_FORMAT = "[%(levelname)s] %(name)s: %(message)s"

_settings = {
    "level": logging.WARNING,
    "format": _DEFAULT_FORMAT,
    "stream": None,
}

_loggers: dict[str, logging.Logger] = {}


def _coerce_level(level: int | str) -> int:
    if isinstance(level, str):
        return getattr(logging, level.upper(), logging.WARNING)
    return level


def _qualified(name: Optional[str]) -> str:
    if name is None or name == PACKAGE:
        return PACKAGE
    if name.startswith(PACKAGE + "."):
        return name
    return f"{PACKAGE}.{name}"


def _install_handler(logger: logging.Logger) -> None:
    """Replace the handlers of ``logger`` with one built from the current settings."""
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
    # Resolved at call time so a test harness that swaps sys.stderr is honoured.
    handler = logging.StreamHandler(_settings["stream"] or sys.stderr)
    handler.setLevel(_settings["level"])
    handler.setFormatter(logging.Formatter(_settings["format"]))
    logger.addHandler(handler)
    logger.setLevel(_settings["level"])
    logger.propagate = False


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return the cached logger for a module.

    Names outside the package namespace are moved into it, so
    ``get_logger("solver")`` and ``get_logger("nlcg.solver")`` are the same
    logger.

    Example:
        >>> from nlcg.logging import get_logger
        >>> logger = get_logger(__name__)
        >>> logger.debug("line search accepted alpha=%g", 0.5)
    """
    qualified = _qualified(name)
    logger = _loggers.get(qualified)
    if logger is None:
        logger = logging.getLogger(qualified)
        _install_handler(logger)
        _loggers[qualified] = logger
    return logger


def set_log_level(level: int | str) -> None:
    """Change the level of every nlcg logger, keeping handlers and format.

    Args:
        level: A ``logging`` level or its name, e.g. ``"DEBUG"``.
    """
    _settings["level"] = _coerce_level(level)
    for logger in _loggers.values():
        logger.setLevel(_settings["level"])
        for handler in logger.handlers:
            handler.setLevel(_settings["level"])


def configure_logging(
    level: int | str = logging.WARNING,
    format_string: Optional[str] = None,
    stream: Optional[IO[str]] = None,
) -> None:
    """Reconfigure level, format and destination of all nlcg logging.

    Args:
        level: Logging level (default: WARNING).
        format_string: Record format; None restores the default
            ``[LEVEL] name: message``.
        stream: Output stream; None means ``sys.stderr``.
    """
    _settings["level"] = _coerce_level(level)
    _settings["format"] = format_string or _DEFAULT_FORMAT
    _settings["stream"] = stream
    for logger in _loggers.values():
        _install_handler(logger)


__all__ = ["configure_logging", "get_logger", "set_log_level"]
