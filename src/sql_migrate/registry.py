"""Local migration definitions, ordered by title."""

import importlib.util
import logging
import re
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from .errors import LoadError

logger = logging.getLogger(__name__)

# An action receives the TransactionRunner. It succeeds by returning (None or
# an awaitable that resolves) and fails by raising.
Action = Callable[[Any], Any]

TITLE_PATTERN = re.compile(r"^(\d+)-(.+)$")
FILE_PATTERN = re.compile(r"^\d+-.+\.py$")


def parse_created_time(title: str) -> datetime:
    """
    Parse the creation time from a migration title.

    The title prefix is a millisecond Unix timestamp.

    Args:
        title: Migration title, e.g. "1474377231462-add-users"

    Returns:
        Creation time in UTC

    Raises:
        ValueError: If the title has no timestamp prefix
    """
    match = TITLE_PATTERN.match(title)
    if not match:
        raise ValueError(f"Title does not start with a timestamp: {title!r}")
    millis = int(match.group(1))
    seconds = datetime.fromtimestamp(millis // 1000, tz=timezone.utc)
    return seconds + timedelta(milliseconds=millis % 1000)


@dataclass(frozen=True)
class Migration:
    """A named schema change with inverse up/down actions."""

    title: str
    up: Action
    down: Action

    @property
    def created_time(self) -> datetime:
        return parse_created_time(self.title)


class Registry:
    """Read-only sequence of migrations sorted ascending by title."""

    def __init__(self, migrations: Iterable[Migration] = ()):
        self._migrations = tuple(sorted(migrations, key=lambda m: m.title))
        self._by_title = {m.title: m for m in self._migrations}

    @property
    def titles(self) -> list[str]:
        return [m.title for m in self._migrations]

    def get(self, title: str) -> Migration | None:
        return self._by_title.get(title)

    def __iter__(self) -> Iterator[Migration]:
        return iter(self._migrations)

    def __len__(self) -> int:
        return len(self._migrations)

    def __contains__(self, title: object) -> bool:
        return title in self._by_title

    def __getitem__(self, index: int) -> Migration:
        return self._migrations[index]


def build_registry(entries: Iterable[tuple[str, Action, Action]]) -> Registry:
    """
    Build a registry from (title, up, down) entries.

    Args:
        entries: Migration titles with their actions, in any order

    Returns:
        Registry sorted by title

    Raises:
        LoadError: If a title is malformed, has a timestamp outside the
            datetime range, or appears twice, or an action is not callable
    """
    migrations: dict[str, Migration] = {}

    for title, up, down in entries:
        if not TITLE_PATTERN.match(title):
            raise LoadError(f"Migration title must look like <timestamp>-<name>: {title!r}")
        try:
            parse_created_time(title)
        except (ValueError, OverflowError, OSError) as e:
            raise LoadError(f"Migration '{title}' has an out-of-range timestamp: {e}") from e
        if title in migrations:
            raise LoadError(f"Duplicate migration title: {title}")
        if not callable(up) or not callable(down):
            raise LoadError(f"Migration '{title}' must define callable up and down actions")
        migrations[title] = Migration(title=title, up=up, down=down)

    return Registry(migrations.values())


def discover_migration_files(source: Path) -> list[Path]:
    """
    List migration definition files in a directory.

    Only files named <timestamp>-<name>.py are returned.

    Args:
        source: Migrations directory

    Returns:
        Matching files sorted by name

    Raises:
        LoadError: If the directory does not exist
    """
    if not source.is_dir():
        raise LoadError(f"Migrations directory not found: {source}")

    files = []
    for path in source.iterdir():
        if path.is_file() and FILE_PATTERN.match(path.name):
            files.append(path)
        elif path.suffix == ".py" and not path.name.startswith("_"):
            logger.debug("Skipping %s: not a migration file", path.name)

    return sorted(files, key=lambda p: p.name)


def _load_module(path: Path) -> Any:
    module_name = "sql_migrate_migration_" + re.sub(r"\W", "_", path.stem)
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise LoadError(f"Cannot load migration file: {path}")

    module = importlib.util.module_from_spec(spec)
    try:
        spec.loader.exec_module(module)
    except Exception as e:
        raise LoadError(f"Failed to import migration '{path.stem}': {e}") from e
    return module


def load_registry(source: Path) -> Registry:
    """
    Load every migration definition from a directory.

    Each file named <timestamp>-<name>.py must define module-level ``up``
    and ``down`` functions. The file stem is the migration title.

    Args:
        source: Migrations directory

    Returns:
        Registry sorted by title

    Raises:
        LoadError: If the directory is missing or a definition is invalid
    """
    entries = []
    for path in discover_migration_files(source):
        module = _load_module(path)
        entries.append(
            (path.stem, getattr(module, "up", None), getattr(module, "down", None))
        )

    registry = build_registry(entries)
    logger.debug("Loaded %d migration(s) from %s", len(registry), source)
    return registry
