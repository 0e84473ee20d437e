"""Logging configuration for git-janitor."""

from __future__ import annotations

import logging
import sys

DEBUG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DEFAULT_FORMAT = "[%(name)s] %(levelname)s: %(message)s"


def setup_logging(verbose: bool = False, debug: bool = False) -> None:
    """Configure the root logger with a single stderr handler.

    Args:
        verbose: If True, show INFO level messages
        debug: If True, show DEBUG level messages with timestamps
    """
    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARNING

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Repeated CLI invocations in one process must not stack handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    if debug:
        handler.setFormatter(logging.Formatter(fmt=DEBUG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    else:
        handler.setFormatter(logging.Formatter(fmt=DEFAULT_FORMAT))
    root_logger.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the package prefix stripped from its name."""
    if name.startswith("git_janitor."):
        name = name[len("git_janitor.") :]
    return logging.getLogger(name)
