"""SQL-Migrate: apply and revert timestamped schema migrations."""

__version__ = "0.1.0"

from .database import Database, TransactionRunner
from .engine import ALL, Direction, EngineEvent, EngineState, MigrationEngine, Phase, load
from .errors import (
    AlreadyAppliedError,
    BootstrapError,
    ConfigError,
    EngineStateError,
    ExecutionError,
    HistoryMismatchError,
    HistoryStoreError,
    LoadError,
    MigrationError,
    NotFoundError,
    TransactionError,
)
from .history import HistoryEntry, HistoryStore
from .registry import Migration, Registry, build_registry, load_registry

__all__ = [
    "ALL",
    "AlreadyAppliedError",
    "BootstrapError",
    "ConfigError",
    "Database",
    "Direction",
    "EngineEvent",
    "EngineState",
    "EngineStateError",
    "ExecutionError",
    "HistoryEntry",
    "HistoryMismatchError",
    "HistoryStore",
    "HistoryStoreError",
    "LoadError",
    "Migration",
    "MigrationEngine",
    "MigrationError",
    "NotFoundError",
    "Phase",
    "Registry",
    "TransactionError",
    "TransactionRunner",
    "build_registry",
    "load",
    "load_registry",
]
