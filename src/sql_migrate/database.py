"""Database connections and transactional statement execution."""

import logging
import sqlite3
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path

from .errors import TransactionError

logger = logging.getLogger(__name__)

# A line holding only this marker separates two statements in a SQL script.
DEFAULT_DELIMITER = "--;;"

MEMORY_DATABASE = ":memory:"


def split_statements(script: str, delimiter: str = DEFAULT_DELIMITER) -> list[str]:
    """
    Split a SQL script into statements.

    Statements are separated by lines containing only the delimiter
    (surrounding whitespace ignored). Blank chunks are dropped.

    Args:
        script: SQL script text
        delimiter: Statement separator marker

    Returns:
        List of statements in script order
    """
    statements = []
    current: list[str] = []

    for line in script.splitlines():
        if line.strip() == delimiter:
            statements.append("\n".join(current))
            current = []
        else:
            current.append(line)
    statements.append("\n".join(current))

    return [statement.strip() for statement in statements if statement.strip()]


class Database:
    """SQLite connection factory.

    Connections are opened in autocommit mode so that transactions are
    controlled explicitly with BEGIN/COMMIT/ROLLBACK, which makes DDL
    statements transactional as well.
    """

    def __init__(self, path: Path | str, timeout: float = 5.0):
        """
        Initialize database.

        Args:
            path: Database file path, or ":memory:"
            timeout: Seconds to wait for a locked database
        """
        self.path = path
        self.timeout = timeout
        # An in-memory database only lives as long as its connection,
        # so one connection is shared and never closed by connection().
        self._shared: sqlite3.Connection | None = None

    @property
    def in_memory(self) -> bool:
        return str(self.path) == MEMORY_DATABASE

    def connect(self) -> sqlite3.Connection:
        """
        Open a new connection.

        Returns:
            SQLite connection with explicit transaction control

        Raises:
            sqlite3.Error: If the database cannot be opened
        """
        if self.in_memory:
            if self._shared is None:
                self._shared = sqlite3.connect(
                    MEMORY_DATABASE, timeout=self.timeout, isolation_level=None
                )
            return self._shared

        return sqlite3.connect(str(self.path), timeout=self.timeout, isolation_level=None)

    def release(self, conn: sqlite3.Connection) -> None:
        """Close a connection obtained from connect()."""
        if not self.in_memory:
            conn.close()

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection and close it afterwards."""
        conn = self.connect()
        try:
            yield conn
        finally:
            self.release(conn)

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Yield a connection inside a transaction.

        Commits when the block exits normally, rolls back otherwise.
        """
        with self.connection() as conn:
            conn.execute("BEGIN")
            try:
                yield conn
            except BaseException:
                conn.rollback()
                raise
            conn.commit()

    def close(self) -> None:
        """Close the shared in-memory connection, if any."""
        if self._shared is not None:
            self._shared.close()
            self._shared = None


class TransactionRunner:
    """Runs statement sequences as single atomic units.

    This is the object handed to migration actions as ``db``.
    """

    def __init__(self, database: Database, delimiter: str = DEFAULT_DELIMITER):
        """
        Initialize transaction runner.

        Args:
            database: Database to run statements against
            delimiter: Statement separator used by run_script() and run_file()
        """
        self.database = database
        self.delimiter = delimiter

    def run(self, statements: Sequence[str]) -> None:
        """
        Execute statements in order inside one transaction.

        Commits if every statement succeeds. On the first failure the
        transaction is rolled back and no later statement is attempted.

        Args:
            statements: Statements to execute

        Raises:
            TransactionError: If connecting, any statement, or the commit fails
        """
        statements = list(statements)

        try:
            conn = self.database.connect()
        except sqlite3.Error as e:
            raise TransactionError(f"Could not connect to database: {e}", None, None, e) from e

        try:
            try:
                conn.execute("BEGIN")
            except sqlite3.Error as e:
                raise TransactionError(f"Could not begin transaction: {e}", None, None, e) from e

            for index, statement in enumerate(statements):
                logger.debug("Executing statement %d/%d", index + 1, len(statements))
                try:
                    conn.execute(statement)
                except sqlite3.Error as e:
                    raise TransactionError(
                        f"Statement {index + 1} failed: {e}", statement, index, e
                    ) from e
            try:
                conn.commit()
            except sqlite3.Error as e:
                raise TransactionError(f"Commit failed: {e}", None, None, e) from e
        except BaseException:
            if conn.in_transaction:
                conn.rollback()
            raise
        finally:
            self.database.release(conn)

    def run_script(self, script: str) -> None:
        """
        Split a script on the statement delimiter and run it as one transaction.

        Args:
            script: SQL script text
        """
        self.run(split_statements(script, self.delimiter))

    def run_file(self, path: Path | str) -> None:
        """
        Read a SQL file and run it as one transaction.

        Args:
            path: Path to the SQL file

        Raises:
            OSError: If the file cannot be read
            TransactionError: If execution fails
        """
        path = Path(path)
        logger.debug("Running SQL file %s", path)
        self.run_script(path.read_text(encoding="utf-8"))
