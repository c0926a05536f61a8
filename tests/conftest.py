"""Pytest configuration and shared fixtures for SQL-Migrate tests."""

from collections.abc import Callable
from pathlib import Path

import pytest

from sql_migrate.database import Database, TransactionRunner
from sql_migrate.engine import MigrationEngine
from sql_migrate.history import HistoryStore
from sql_migrate.registry import Registry, build_registry


class ActionRecorder:
    """Builds migrations whose actions record their calls and can be made to fail."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []
        self.failing: set[tuple[str, str]] = set()

    def _action(self, title: str, direction: str) -> Callable[[TransactionRunner], None]:
        def action(db: TransactionRunner) -> None:
            self.calls.append((title, direction))
            if (title, direction) in self.failing:
                raise RuntimeError(f"{title} {direction} failed")

        return action

    def entry(self, title: str) -> tuple[str, Callable, Callable]:
        return (title, self._action(title, "up"), self._action(title, "down"))

    def registry(self, *titles: str) -> Registry:
        return build_registry(self.entry(title) for title in titles)

    def titles(self, direction: str) -> list[str]:
        return [title for title, d in self.calls if d == direction]


@pytest.fixture
def database(tmp_path: Path) -> Database:
    """SQLite database file in a temporary directory."""
    return Database(tmp_path / "test.db")


@pytest.fixture
def runner(database: Database) -> TransactionRunner:
    return TransactionRunner(database)


@pytest.fixture
def store(database: Database) -> HistoryStore:
    return HistoryStore(database)


@pytest.fixture
def recorder() -> ActionRecorder:
    return ActionRecorder()


@pytest.fixture
def make_engine(
    database: Database, recorder: ActionRecorder
) -> Callable[..., MigrationEngine]:
    """Factory for initialized engines over recorder-backed migrations.

    Engines built by the same test share one database, so a second engine
    sees the history written by the first.
    """

    def factory(*titles: str, listeners: tuple = ()) -> MigrationEngine:
        engine = MigrationEngine(
            recorder.registry(*titles),
            HistoryStore(database),
            TransactionRunner(database),
            listeners,
        )
        engine.initialize()
        return engine

    return factory


@pytest.fixture
def migrations_dir(tmp_path: Path) -> Path:
    path = tmp_path / "migrations"
    (path / "sql").mkdir(parents=True)
    return path


@pytest.fixture
def write_sql_migration(migrations_dir: Path) -> Callable[[str, str, str], Path]:
    """Write a migration module with up/down SQL files.

    Returns:
        Function taking (title, up_sql, down_sql) and returning the module path
    """

    def writer(title: str, up_sql: str, down_sql: str) -> Path:
        (migrations_dir / "sql" / f"{title}-up.sql").write_text(up_sql)
        (migrations_dir / "sql" / f"{title}-down.sql").write_text(down_sql)
        module = migrations_dir / f"{title}.py"
        module.write_text(
            "from pathlib import Path\n"
            "\n"
            "SQL_DIR = Path(__file__).parent / 'sql'\n"
            "\n"
            "\n"
            "def up(db):\n"
            f"    db.run_file(SQL_DIR / '{title}-up.sql')\n"
            "\n"
            "\n"
            "def down(db):\n"
            f"    db.run_file(SQL_DIR / '{title}-down.sql')\n"
        )
        return module

    return writer
