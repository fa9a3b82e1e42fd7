"""Logging setup for the Axon CLI.

All modules obtain loggers through :func:`get_logger` so that a single call
to :func:`setup_logging` controls verbosity for the whole package.
"""

from __future__ import annotations

import logging
import sys

ROOT_LOGGER_NAME = "axon"

DEFAULT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
DEFAULT_DATE_FORMAT = "%H:%M:%S"

# Third-party loggers that are noisy at INFO level
_NOISY_LOGGERS = ("paramiko", "urllib3", "docker")


def get_logger(name: str) -> logging.Logger:
    """Return a logger for the given module name.

    Args:
        name: Usually ``__name__`` of the calling module

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


def setup_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Configure logging for the ``axon`` package.

    Args:
        verbose: Emit DEBUG records, including third-party libraries
        quiet: Only emit WARNING and above
    """
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = logging.INFO

    root = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(DEFAULT_FORMAT, DEFAULT_DATE_FORMAT))
    root.addHandler(handler)
    root.setLevel(level)
    root.propagate = False

    third_party_level = logging.DEBUG if verbose else logging.WARNING
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(third_party_level)
