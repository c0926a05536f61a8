"""Logging configuration for SQL-Migrate."""

import logging

from rich.console import Console
from rich.logging import RichHandler


def setup_logging(verbose: bool = False, console: Console | None = None) -> logging.Logger:
    """
    Route the package logger through rich.

    Args:
        verbose: Log DEBUG and above instead of WARNING and above
        console: Console to log to (defaults to stderr)

    Returns:
        The package logger
    """
    logger = logging.getLogger("sql_migrate")
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)

    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=verbose,
        markup=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logger.propagate = False

    return logger
