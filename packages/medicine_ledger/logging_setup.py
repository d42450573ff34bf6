"""Logging for ``medicine_ledger``.

Ledger modules log through ``get_logger("medicine_ledger.<module>")``: INFO
for each applied mutation, WARNING for clamped payments and capped history
sums, ERROR when a store write fails. Nothing is emitted until the CLI calls
``configure_logging`` at startup; ``-v``/``-vv`` pick the level through
``level_from_verbosity`` and ``MEDICINE_LEDGER_LOG_LEVEL`` applies otherwise.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

_PKG_LOGGER_NAME = "medicine_ledger"
_LEVEL_ENV = "MEDICINE_LEDGER_LOG_LEVEL"
_DEFAULT_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"
_CONFIGURED = False


def _parse_level(level: int | str | None) -> int:
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        # Numeric strings or standard level names (INFO/DEBUG/etc.).
        name = level.strip().upper()
        if name.isdigit():
            return int(name)
        numeric = getattr(logging, name, None)
        if isinstance(numeric, int):
            return numeric
        return logging.INFO
    env_val = os.getenv(_LEVEL_ENV)
    if env_val:
        return _parse_level(env_val)
    return logging.INFO


def level_from_verbosity(verbose: int) -> int | None:
    """``0`` defers to the environment, ``1`` is INFO, ``2`` or more is DEBUG."""

    if verbose <= 0:
        return None
    return logging.INFO if verbose == 1 else logging.DEBUG


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] | None = None,
) -> None:
    """Attach one stream handler to the ``medicine_ledger`` logger; later calls are no-ops.

    ``level`` falls back to ``MEDICINE_LEDGER_LOG_LEVEL`` and then INFO. The
    handler writes to ``stream`` or, by default, ``sys.stderr``.
    """

    global _CONFIGURED
    if _CONFIGURED:
        return

    logger = logging.getLogger(_PKG_LOGGER_NAME)
    for h in list(logger.handlers):
        if isinstance(h, logging.NullHandler):
            logger.removeHandler(h)

    resolved = _parse_level(level)
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(resolved)
    handler.setFormatter(logging.Formatter(fmt or _DEFAULT_FORMAT))

    logger.setLevel(resolved)
    logger.addHandler(handler)
    # Avoid double emission via the root logger.
    logger.propagate = False

    _CONFIGURED = True


def get_logger(name: str) -> logging.Logger:
    """Return a logger by name, silent until an application configures handlers."""

    pkg_logger = logging.getLogger(_PKG_LOGGER_NAME)
    if not _CONFIGURED and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)


__all__ = ["configure_logging", "get_logger", "level_from_verbosity"]
