"""
Logging setup shared by every rigcal module.

Usage:
    import rigcal.logger
    logger = rigcal.logger.get(__name__)
"""

from __future__ import annotations

import logging
import sys

ROOT_LOGGER_NAME = "rigcal"
DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_configured = False


def setup(level: int = logging.INFO, format_string: str = DEFAULT_FORMAT) -> logging.Logger:
    """
    Attach a stdout handler to the package root logger.

    Safe to call more than once; only the level is updated on later calls.
    """
    global _configured

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(level)

    if not _configured:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(format_string))
        root.addHandler(handler)
        _configured = True

    for handler in root.handlers:
        handler.setLevel(level)

    return root


def get(name: str) -> logging.Logger:
    """Get a logger under the rigcal hierarchy."""
    if not _configured:
        setup()

    if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
