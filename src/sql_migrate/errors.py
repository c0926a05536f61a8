"""Exceptions raised by SQL-Migrate."""


class MigrationError(Exception):
    """Base class for every error reported by the migration engine."""

    pass


class ConfigError(MigrationError):
    """
    Raised when the configuration file cannot be used.

    This covers unreadable or malformed TOML, values rejected by validation
    and a requested environment that the file does not define.
    """

    pass


class LoadError(MigrationError):
    """
    Raised when local migration definitions cannot be loaded.

    This exception is raised for:
    - A missing migrations directory
    - A title that does not follow the <timestamp>-<slug> naming contract
    - Two definitions resolving to the same title
    - A definition that fails to import
    - A definition without callable up/down actions
    """

    pass


class BootstrapError(MigrationError):
    """Raised when creating the history table fails for a reason other than it existing."""

    pass


class HistoryStoreError(MigrationError):
    """Raised when reading or writing the history table fails."""

    pass


class NotFoundError(MigrationError):
    """Raised when a requested target title is not pending and not recorded in history."""

    pass


class AlreadyAppliedError(MigrationError):
    """Raised when the target of an up request is already recorded in history."""

    pass


class HistoryMismatchError(MigrationError):
    """
    Raised when a title recorded in history has no local migration.

    Usually means the migration file was deleted or renamed after it was
    applied. The batch is aborted before any migration runs.
    """

    pass


class EngineStateError(MigrationError):
    """Raised when a direction request is issued while the engine is not ready."""

    pass


class TransactionError(MigrationError):
    """
    Raised when a statement sequence fails and its transaction was rolled back.

    Attributes:
        statement: The failing statement, or None if the failure happened
            while acquiring the connection or committing
        index: Position of the failing statement in the sequence
        cause: The underlying driver error
    """

    def __init__(self, message: str, statement: str | None, index: int | None, cause: Exception):
        super().__init__(message)
        self.statement = statement
        self.index = index
        self.cause = cause


class ExecutionError(MigrationError):
    """
    Raised when a migration's up or down action fails.

    Attributes:
        title: Title of the failing migration
        direction: "up" or "down"
        cause: The exception raised by the action
    """

    def __init__(self, title: str, direction: str, cause: BaseException):
        super().__init__(f"Migration '{title}' failed ({direction}): {cause}")
        self.title = title
        self.direction = direction
        self.cause = cause
