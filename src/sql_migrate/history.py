"""Persistent history of applied migrations."""

import logging
import re
import sqlite3
from dataclasses import dataclass
from datetime import datetime

from .database import Database, TransactionRunner
from .errors import BootstrapError, HistoryStoreError, TransactionError

logger = logging.getLogger(__name__)

DEFAULT_TABLE = "migrations"

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass(frozen=True)
class HistoryEntry:
    """One applied migration as recorded in the history table."""

    id: int
    title: str
    created_time: datetime
    exec_time: datetime


def is_valid_table_name(name: str) -> bool:
    """Check that a table name is a plain SQL identifier."""
    return bool(IDENTIFIER_PATTERN.match(name))


def _already_exists(error: TransactionError) -> bool:
    return "already exists" in str(error.cause).lower()


class HistoryStore:
    """Reads and writes the migration history table."""

    def __init__(self, database: Database, table: str = DEFAULT_TABLE):
        """
        Initialize history store.

        Args:
            database: Database holding the history table
            table: History table name

        Raises:
            ValueError: If the table name is not a plain identifier
        """
        if not is_valid_table_name(table):
            raise ValueError(f"Invalid history table name: {table!r}")

        self.database = database
        self.table = table

    def bootstrap_statements(self) -> list[str]:
        """Return the statements that create the history table."""
        return [
            f"""
            CREATE TABLE {self.table} (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                title TEXT NOT NULL UNIQUE,
                created_time TEXT NOT NULL,
                exec_time TEXT NOT NULL
            )
            """
        ]

    def ensure_schema(self) -> None:
        """
        Create the history table if it does not exist.

        Safe to call on every start. A failure caused by the table already
        existing is ignored.

        Raises:
            BootstrapError: If creation fails for any other reason
        """
        runner = TransactionRunner(self.database)
        try:
            runner.run(self.bootstrap_statements())
            logger.info("Created history table '%s'", self.table)
        except TransactionError as e:
            if _already_exists(e):
                logger.debug("History table '%s' already exists", self.table)
                return
            raise BootstrapError(f"Failed to create history table '{self.table}': {e}") from e

    def table_exists(self) -> bool:
        """
        Check whether the history table has been created.

        Returns:
            True if the table exists
        """
        try:
            with self.database.connection() as conn:
                row = conn.execute(
                    "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?",
                    (self.table,),
                ).fetchone()
        except sqlite3.Error as e:
            raise HistoryStoreError(f"Failed to inspect database: {e}") from e
        return row is not None

    def load_all(self) -> list[str]:
        """
        Load every recorded title.

        Returns:
            Titles sorted ascending

        Raises:
            HistoryStoreError: If the table cannot be read
        """
        try:
            with self.database.connection() as conn:
                rows = conn.execute(f"SELECT title FROM {self.table}").fetchall()
        except sqlite3.Error as e:
            raise HistoryStoreError(f"Failed to load migration history: {e}") from e

        return sorted(row[0] for row in rows)

    def entries(self) -> list[HistoryEntry]:
        """
        Load every history row.

        Returns:
            Entries sorted ascending by title

        Raises:
            HistoryStoreError: If the table cannot be read
        """
        try:
            with self.database.connection() as conn:
                rows = conn.execute(
                    f"SELECT id, title, created_time, exec_time FROM {self.table}"
                ).fetchall()
        except sqlite3.Error as e:
            raise HistoryStoreError(f"Failed to load migration history: {e}") from e

        entries = [
            HistoryEntry(
                id=row[0],
                title=row[1],
                created_time=datetime.fromisoformat(row[2]),
                exec_time=datetime.fromisoformat(row[3]),
            )
            for row in rows
        ]
        return sorted(entries, key=lambda entry: entry.title)

    def append(self, title: str, created_time: datetime, exec_time: datetime) -> None:
        """
        Record a migration as applied.

        The row id is assigned by the database.

        Args:
            title: Migration title
            created_time: Creation time parsed from the title
            exec_time: Time the migration was applied

        Raises:
            HistoryStoreError: If the insert fails
        """
        try:
            with self.database.transaction() as conn:
                conn.execute(
                    f"INSERT INTO {self.table} (title, created_time, exec_time) VALUES (?, ?, ?)",
                    (title, created_time.isoformat(), exec_time.isoformat()),
                )
        except sqlite3.Error as e:
            raise HistoryStoreError(f"Failed to record migration '{title}': {e}") from e

        logger.debug("Recorded migration %s", title)

    def remove(self, title: str) -> None:
        """
        Delete the history row for a migration.

        Removing a title that is not recorded does nothing.

        Args:
            title: Migration title

        Raises:
            HistoryStoreError: If the delete fails
        """
        try:
            with self.database.transaction() as conn:
                cursor = conn.execute(f"DELETE FROM {self.table} WHERE title = ?", (title,))
                removed = cursor.rowcount
        except sqlite3.Error as e:
            raise HistoryStoreError(f"Failed to remove migration '{title}': {e}") from e

        if removed == 0:
            logger.debug("Migration %s was not recorded, nothing removed", title)
        else:
            logger.debug("Removed migration %s", title)
