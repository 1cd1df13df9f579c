"""Logging utilities for mailforge.

Library modules log through ``logging.getLogger(__name__)`` and never install
handlers themselves. Applications call :func:`init_logging` once to attach
Rich/file handlers to the ``mailforge`` logger tree.

Examples:
    >>> from mailforge.logging import init_logging
    >>> log = init_logging(preset="dev")  # doctest: +SKIP
    >>> log.info("Composer ready")  # doctest: +SKIP
"""

from __future__ import annotations

import logging
from typing import Any

from mailforge.logging.manager import (
    LOGGING_LEVEL,
    SUCCESS_LEVEL,
    TRACE_LEVEL,
    LogManager,
)

_ROOT_NAME = "mailforge"
_root_logger: LogManager | None = None


def init_logging(*, preset: str | None = None, config: dict[str, Any] | None = None) -> LogManager:
    """Configure the ``mailforge`` logger tree and return the manager.

    Handlers built by the :class:`LogManager` are mirrored onto the standard
    ``mailforge`` logger so every ``mailforge.*`` module logger inherits them.
    """
    global _root_logger  # pylint: disable=global-statement

    manager = LogManager(name=_ROOT_NAME, preset=preset, config=config)
    std_logger = logging.getLogger(_ROOT_NAME)
    for handler in std_logger.handlers[:]:
        std_logger.removeHandler(handler)
    for handler in manager.handlers:
        std_logger.addHandler(handler)
    std_logger.setLevel(TRACE_LEVEL)
    std_logger.propagate = False

    _root_logger = manager
    return manager


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a logger in the ``mailforge`` namespace.

    ``None`` returns the manager created by :func:`init_logging` when there is
    one, else the standard ``mailforge`` logger.
    """
    if name is None:
        return _root_logger if _root_logger is not None else logging.getLogger(_ROOT_NAME)
    if name != _ROOT_NAME and not name.startswith(f"{_ROOT_NAME}."):
        name = f"{_ROOT_NAME}.{name}"
    return logging.getLogger(name)


__all__ = [
    "LOGGING_LEVEL",
    "SUCCESS_LEVEL",
    "TRACE_LEVEL",
    "LogManager",
    "get_logger",
    "init_logging",
]
