"""
SDK logging setup.

Library modules only ever call ``logging.getLogger("prefactor_sdk.<area>")``;
applications opt in to output with :func:`setup_logging` or narrow the SDK's
own verbosity with :func:`configure_logging`.
"""

from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_LEVEL_ENV = "PREFACTOR_LOG_LEVEL"


def setup_logging(
    level: int = logging.INFO,
    log_file: str = "",
    debug: bool = False,
) -> logging.Logger:
    """
    Configure root logging for an application using the SDK.

    Args:
        level: Default log level.
        log_file: Optional log file path (terminal only when empty).
        debug: Force DEBUG level.

    Returns:
        The ``prefactor_sdk`` logger.
    """
    if debug:
        level = logging.DEBUG

    logging.basicConfig(level=level, format=LOG_FORMAT, force=True)

    # quiet HTTP client libraries
    for name in ("urllib3", "httpx", "httpcore"):
        logging.getLogger(name).setLevel(logging.WARNING)

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        fh = RotatingFileHandler(
            log_file, maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8"
        )
        fh.setFormatter(logging.Formatter(LOG_FORMAT))
        fh.setLevel(level)
        logging.getLogger().addHandler(fh)

    return logging.getLogger("prefactor_sdk")


def configure_logging(level: Optional[Union[int, str]] = None) -> logging.Logger:
    """Set the ``prefactor_sdk`` logger level.

    ``level`` may be an int or a level name; when omitted the value of
    ``PREFACTOR_LOG_LEVEL`` is used. Unknown names are ignored.
    """
    if level is None:
        level = os.getenv(LOG_LEVEL_ENV, "")
    sdk_logger = logging.getLogger("prefactor_sdk")
    if isinstance(level, str):
        name = level.strip().upper()
        if name == "WARN":
            name = "WARNING"
        resolved = logging.getLevelName(name) if name else None
        if isinstance(resolved, int):
            sdk_logger.setLevel(resolved)
    else:
        sdk_logger.setLevel(level)
    return sdk_logger
