"""Utility functions for SQL-Migrate."""

import os
from pathlib import Path

import click


def expand_path(path: str | Path) -> Path:
    """
    Expand ~ and environment variables in a path.

    Args:
        path: Path string or Path

    Returns:
        Expanded Path (not resolved)
    """
    return Path(os.path.expandvars(os.path.expanduser(str(path))))


def ensure_dir(path: Path) -> Path:
    """
    Create a directory (and parents) if it does not exist.

    Args:
        path: Directory path

    Returns:
        The same path
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def prompt_confirm(message: str, default: bool = False) -> bool:
    """
    Ask the user a yes/no question.

    Args:
        message: Question to display
        default: Answer used when the user just presses Enter

    Returns:
        True if the user confirmed
    """
    return click.confirm(message, default=default)
