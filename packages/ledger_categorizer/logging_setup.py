"""Logging for ``ledger_categorizer``.

Modules log through ``get_logger("ledger_categorizer.<module>")`` using
``area:event key=value`` messages (``store:loaded``, ``oracle:call_retry``).
Only the CLI calls :func:`configure_logging`; as a library the package stays
silent behind a ``NullHandler`` until a host application configures it.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

_PKG_LOGGER_NAME = "ledger_categorizer"
_LEVEL_ENV = "LEDGER_CATEGORIZER_LOG_LEVEL"
_CONFIGURED = False


def _parse_level(level: int | str | None) -> int:
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        # Numeric strings or standard level names (INFO/DEBUG/etc.)
        level = level.strip().upper()
        if level.isdigit():
            return int(level)
        numeric = getattr(logging, level, None)
        if isinstance(numeric, int):
            return numeric
    if level is None:
        env_val = os.getenv(_LEVEL_ENV)
        if env_val:
            return _parse_level(env_val)
    return logging.INFO


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] = sys.stderr,
) -> None:
    """Send package records to ``stream`` at ``level``; later calls are no-ops.

    ``level`` falls back to ``LEDGER_CATEGORIZER_LOG_LEVEL``, then INFO. Records
    stop propagating to the root logger once configured.
    """

    global _CONFIGURED
    if _CONFIGURED:
        return

    logger = logging.getLogger(_PKG_LOGGER_NAME)

    # Drop NullHandlers installed by get_logger() before configuration.
    for h in list(logger.handlers):
        if isinstance(h, logging.NullHandler):
            logger.removeHandler(h)

    resolved = _parse_level(level)
    handler = logging.StreamHandler(stream)
    handler.setLevel(resolved)
    handler.setFormatter(
        logging.Formatter(fmt or "%(asctime)s %(name)s %(levelname)s %(message)s")
    )

    logger.setLevel(resolved)
    logger.addHandler(handler)
    logger.propagate = False

    _CONFIGURED = True


def get_logger(name: str) -> logging.Logger:
    """Return ``logging.getLogger(name)``, keeping the package quiet until configured."""

    pkg_logger = logging.getLogger(_PKG_LOGGER_NAME)
    if not _CONFIGURED and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)
