"""Logging setup."""

from __future__ import annotations

import logging
import sys

# Third-party loggers that are noisy at DEBUG/INFO.
_QUIET_LOGGERS = ("matplotlib", "PIL", "asyncio")


def setup_logging(level: str = "INFO") -> None:
    """Configure the root logger with a compact one-line format.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR).
    """
    numeric = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric,
        format="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
        force=True,
    )
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric, logging.WARNING))
