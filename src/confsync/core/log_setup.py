"""Logging configuration for the confsync daemon and CLI."""

from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Chatty third-party loggers, quietened unless running verbose
_THIRD_PARTY_LOGGERS = (
    "httpx",
    "httpcore",
    "apscheduler",
    "uvicorn",
    "uvicorn.error",
    "uvicorn.access",
)


def setup_logging(verbose: bool = False) -> None:
    """Configure the confsync logger to write to stdout.

    Args:
        verbose: Log at DEBUG level (including third-party libraries) instead of INFO.
    """
    formatter = logging.Formatter(LOG_FORMAT)

    root_logger = logging.getLogger("confsync")
    root_logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    # Idempotent: repeated CLI invocations in one process must not stack handlers
    for handler in list(root_logger.handlers):
        if getattr(handler, "_confsync_handler", False):
            root_logger.removeHandler(handler)

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(formatter)
    stdout_handler._confsync_handler = True  # type: ignore[attr-defined]
    root_logger.addHandler(stdout_handler)

    for name in _THIRD_PARTY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if verbose else logging.WARNING)
