"""Migration engine: reconciles local migrations with history and runs them.

The engine works in two steps for every request:

1. **Planning** (pure): ``plan_up()`` / ``plan_down()`` take the registry and
   an ``EngineState`` and return the exact migrations to run, in order.
2. **Execution**: migrations run one at a time. History is updated after
   each success; the batch stops at the first failure.

There is no rollback across migrations. Each migration's own statements are
atomic, and after a failure the history records exactly what completed.

The history table is assumed to have a single writer. Two engines migrating
the same database at once can both see a migration as pending.
"""

import asyncio
import inspect
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import StrEnum
from pathlib import Path
from typing import Any

from .config import Config
from .database import Database, TransactionRunner
from .errors import (
    AlreadyAppliedError,
    EngineStateError,
    ExecutionError,
    HistoryMismatchError,
    LoadError,
    MigrationError,
    NotFoundError,
)
from .history import HistoryStore
from .registry import Action, Migration, Registry, load_registry

logger = logging.getLogger(__name__)

# Down target meaning "revert everything".
ALL = "all"


class Phase(StrEnum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    RUNNING = "running"
    FAILED = "failed"


class Direction(StrEnum):
    UP = "up"
    DOWN = "down"


@dataclass(frozen=True)
class EngineState:
    """Engine phase plus the applied titles, sorted ascending."""

    phase: Phase = Phase.UNINITIALIZED
    history: tuple[str, ...] = ()

    def applied(self, title: str) -> "EngineState":
        return replace(self, history=tuple(sorted({*self.history, title})))

    def reverted(self, title: str) -> "EngineState":
        return replace(self, history=tuple(t for t in self.history if t != title))


@dataclass(frozen=True)
class EngineEvent:
    """Notification sent to engine listeners.

    ``kind`` is "ready", "migration" (a migration is about to run) or "error".
    """

    kind: str
    migration: Migration | None = None
    direction: Direction | None = None
    error: Exception | None = None


Listener = Callable[[EngineEvent], None]


def plan_up(registry: Registry, state: EngineState, target: str | None = None) -> list[Migration]:
    """
    Compute the migrations to apply, in ascending order.

    Args:
        registry: Local migrations
        state: Current engine state
        target: Last migration to apply, or None for all pending

    Returns:
        Pending migrations up to and including target

    Raises:
        AlreadyAppliedError: If target is already recorded in history
        NotFoundError: If target is neither pending nor recorded
    """
    applied = set(state.history)
    pending = [m for m in registry if m.title not in applied]

    if target is None:
        return pending

    for index, migration in enumerate(pending):
        if migration.title == target:
            return pending[: index + 1]

    if target in applied:
        raise AlreadyAppliedError(f"Migration '{target}' has already been applied")
    raise NotFoundError(f"Migration '{target}' does not exist")


def _resolve(registry: Registry, titles: Iterable[str]) -> list[Migration]:
    migrations = []
    for title in titles:
        migration = registry.get(title)
        if migration is None:
            raise HistoryMismatchError(
                f"Migration '{title}' is recorded in history but has no local file"
            )
        migrations.append(migration)
    return migrations


def plan_down(registry: Registry, state: EngineState, target: str | None = None) -> list[Migration]:
    """
    Compute the migrations to revert, in descending order.

    Args:
        registry: Local migrations
        state: Current engine state
        target: None to revert the most recent migration, ALL to revert
            everything, or a title to revert it and everything after it

    Returns:
        Applied migrations to revert, most recent first

    Raises:
        NotFoundError: If target is not recorded in history
        HistoryMismatchError: If a recorded title has no local migration
    """
    history = list(state.history)

    if target is None:
        titles = history[-1:]
    elif target == ALL:
        titles = history
    else:
        if target not in history:
            raise NotFoundError(f"Migration '{target}' has not been applied")
        titles = history[history.index(target) :]

    return list(reversed(_resolve(registry, titles)))


def invoke_action(action: Action, db: TransactionRunner) -> None:
    """
    Run a migration action to completion.

    Plain functions finish when they return. If the action returns an
    awaitable (e.g. it is ``async def``), it is awaited on a new event loop,
    so the engine must not be driven from inside a running event loop.

    Raises:
        RuntimeError: If an awaitable action is invoked while an event loop
            is already running in this thread
        Exception: Whatever the action raises
    """
    result = action(db)
    if not inspect.isawaitable(result):
        return

    try:
        asyncio.get_running_loop()
    except RuntimeError:
        asyncio.run(_wait(result))
        return

    if inspect.iscoroutine(result):
        result.close()
    raise RuntimeError(
        "Async migration actions cannot run inside a running event loop; "
        "call the engine from synchronous code"
    )


async def _wait(awaitable: Any) -> Any:
    return await awaitable


class MigrationEngine:
    """Applies and reverts migrations, keeping the history table in sync."""

    def __init__(
        self,
        registry: Registry,
        store: HistoryStore,
        runner: TransactionRunner,
        listeners: Iterable[Listener] = (),
    ):
        """
        Initialize migration engine.

        Args:
            registry: Local migrations
            store: History table access
            runner: Passed to every migration action
            listeners: Callbacks receiving EngineEvents
        """
        self.registry = registry
        self.store = store
        self.runner = runner
        self.state = EngineState()
        self._listeners: list[Listener] = list(listeners)

    @property
    def phase(self) -> Phase:
        return self.state.phase

    @property
    def history(self) -> list[str]:
        return list(self.state.history)

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        self._listeners.remove(listener)

    def _emit(self, event: EngineEvent) -> None:
        for listener in list(self._listeners):
            listener(event)

    def initialize(self) -> EngineState:
        """
        Create the history table if needed and load the history.

        Returns:
            The READY state

        Raises:
            BootstrapError: If the history table cannot be created
            HistoryStoreError: If the history cannot be read
        """
        if self.state.phase not in (Phase.UNINITIALIZED, Phase.FAILED):
            raise EngineStateError(f"Engine cannot initialize while {self.state.phase}")

        self.state = EngineState(Phase.INITIALIZING)
        try:
            self.store.ensure_schema()
            history = self.store.load_all()
        except MigrationError as e:
            self.state = EngineState(Phase.FAILED)
            logger.error("Engine initialization failed: %s", e)
            self._emit(EngineEvent("error", error=e))
            raise

        self.state = EngineState(Phase.READY, tuple(history))
        logger.debug("Engine ready with %d applied migration(s)", len(history))
        self._emit(EngineEvent("ready"))
        return self.state

    def up(self, target: str | None = None) -> list[Migration]:
        """
        Apply pending migrations up to and including target.

        Args:
            target: Title of the last migration to apply, or None for all

        Returns:
            Migrations that were applied, in order

        Raises:
            NotFoundError, AlreadyAppliedError: Before anything runs
            ExecutionError: If a migration fails; earlier ones stay applied
        """
        return self._request(Direction.UP, target)

    def down(self, target: str | None = None) -> list[Migration]:
        """
        Revert applied migrations.

        Args:
            target: None for the most recent, ALL for everything, or a
                title to revert it and every later one

        Returns:
            Migrations that were reverted, in order

        Raises:
            NotFoundError, HistoryMismatchError: Before anything runs
            ExecutionError: If a migration fails; earlier ones stay reverted
        """
        return self._request(Direction.DOWN, target)

    def _request(self, direction: Direction, target: str | None) -> list[Migration]:
        if self.state.phase != Phase.READY:
            raise EngineStateError(f"Engine is not ready (currently {self.state.phase})")

        try:
            if direction == Direction.UP:
                migrations = plan_up(self.registry, self.state, target)
            else:
                migrations = plan_down(self.registry, self.state, target)

            if not migrations:
                logger.info("Nothing to migrate %s", direction)
                return []

            return self._execute(direction, migrations)
        except MigrationError as e:
            self._emit(EngineEvent("error", direction=direction, error=e))
            raise

    def _execute(self, direction: Direction, migrations: list[Migration]) -> list[Migration]:
        created_times = {}
        if direction == Direction.UP:
            for migration in migrations:
                try:
                    created_times[migration.title] = migration.created_time
                except (ValueError, OverflowError, OSError) as e:
                    raise LoadError(
                        f"Migration '{migration.title}' has no usable timestamp: {e}"
                    ) from e

        state = replace(self.state, phase=Phase.RUNNING)
        self.state = state
        completed = []

        try:
            for migration in migrations:
                self._emit(EngineEvent("migration", migration=migration, direction=direction))
                logger.info("Running %s %s", direction, migration.title)

                action = migration.up if direction == Direction.UP else migration.down
                try:
                    invoke_action(action, self.runner)
                except Exception as e:
                    logger.error("Migration %s failed (%s): %s", migration.title, direction, e)
                    raise ExecutionError(migration.title, direction, e) from e

                if direction == Direction.UP:
                    self.store.append(
                        migration.title, created_times[migration.title], datetime.now(timezone.utc)
                    )
                    state = state.applied(migration.title)
                else:
                    self.store.remove(migration.title)
                    state = state.reverted(migration.title)
                completed.append(migration)
        finally:
            self.state = replace(state, phase=Phase.READY)

        return completed


def load(
    migrations_dir: Path,
    config: Config,
    listeners: Iterable[Listener] = (),
) -> MigrationEngine:
    """
    Build an initialized engine for a migrations directory.

    Args:
        migrations_dir: Directory holding migration definitions
        config: Database and history table settings
        listeners: Callbacks registered before initialization, so they
            receive the "ready" or "error" event

    Returns:
        Engine in the READY phase

    Raises:
        LoadError: If the migration definitions cannot be loaded
        BootstrapError: If the history table cannot be created
        HistoryStoreError: If the history cannot be read
    """
    listeners = list(listeners)
    try:
        registry = load_registry(migrations_dir)
    except MigrationError as e:
        for listener in listeners:
            listener(EngineEvent("error", error=e))
        raise

    database = Database(config.database, timeout=config.timeout)
    engine = MigrationEngine(
        registry,
        HistoryStore(database, config.history_table),
        TransactionRunner(database, config.statement_delimiter),
        listeners,
    )
    engine.initialize()
    return engine
