"""Logging setup for walletgraph.

Modules take a logger through ``get_logger(__name__)``; entry points (CLI,
API server) call ``configure_logging`` once at startup.
"""
import logging
import sys
from typing import Optional

_PACKAGE_LOGGER = "walletgraph"

# Chatty third-party loggers kept at WARNING unless verbose
_QUIET_LOGGERS = ["urllib3", "sqlalchemy.engine", "uvicorn.access"]


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def set_verbosity(verbose: bool = True) -> None:
    """Switch the package loggers between DEBUG and INFO."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.getLogger(_PACKAGE_LOGGER).setLevel(level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.INFO if verbose else logging.WARNING)


def configure_logging(verbose: bool = False, log_file: Optional[str] = None, level: Optional[str] = None) -> None:
    """Configure root handlers for the process.

    Args:
        verbose: Show DEBUG messages from walletgraph modules.
        log_file: Optional path; when given, logs go to both the file and stderr.
        level: Root level name (defaults to INFO).
    """
    handlers = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, (level or "INFO").upper(), logging.INFO),
        format="%(asctime)s %(levelname)s - %(name)s - %(message)s",
        handlers=handlers,
        force=True,
    )
    set_verbosity(verbose)
