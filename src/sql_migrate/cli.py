"""CLI interface for SQL-Migrate."""

import json
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from . import __version__
from .config import Config, load_config
from .database import Database
from .engine import ALL, EngineEvent, MigrationEngine, load
from .errors import ConfigError, MigrationError
from .history import HistoryEntry, HistoryStore
from .logging_setup import setup_logging
from .scaffold import create_migration, prepare_structure
from .utils import prompt_confirm

console = Console()


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config",
    type=click.Path(exists=True, path_type=Path),
    help="Custom config file path",
)
@click.option("--env", "environment", help="Environment section of the config file to use")
@click.option("-v", "--verbose", is_flag=True, help="Show debug logging")
@click.pass_context
def cli(ctx: click.Context, config: Path | None, environment: str | None, verbose: bool) -> None:
    """SQL-Migrate: apply and revert timestamped database migrations."""
    ctx.ensure_object(dict)
    setup_logging(verbose)

    # Load configuration
    try:
        ctx.obj["config"] = load_config(config, environment)
    except (ConfigError, OSError) as e:
        console.print(f"[red]Error:[/red] Configuration: {e}")
        sys.exit(1)


def _print_event(event: EngineEvent) -> None:
    if event.kind == "migration" and event.migration is not None:
        console.print(
            f"  [bright_black]{event.direction:>4} :[/bright_black] "
            f"[cyan]{event.migration.title}[/cyan]"
        )


def _load_engine(config: Config) -> MigrationEngine:
    """Load migrations and history, exiting on failure."""
    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
            transient=True,
        ) as progress:
            task = progress.add_task("Loading migration history...", total=None)
            engine = load(config.migrations_dir, config, listeners=[_print_event])
            progress.update(task, completed=True)
    except MigrationError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    return engine


@cli.command()
@click.pass_context
def init(ctx: click.Context) -> None:
    """
    Create the migrations directory structure.

    Creates the migrations directory and its sql/ subdirectory if they do
    not exist yet.
    """
    config = ctx.obj["config"]

    try:
        sql_dir = prepare_structure(config.migrations_dir)
    except OSError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    console.print(f"[green]✓[/green] Migrations directory ready: {sql_dir.parent}")


@cli.command()
@click.argument("title")
@click.pass_context
def create(ctx: click.Context, title: str) -> None:
    """
    Create a new migration.

    Writes <timestamp>-<title>.py into the migrations directory along with
    empty up and down SQL files in its sql/ subdirectory. Separate multiple
    statements in a SQL file with a line containing only the configured
    delimiter (default: --;;).

    Examples:

        \b
        # Create a migration
        sql-migrate create "add users table"
    """
    config = ctx.obj["config"]

    try:
        path = create_migration(title, config.migrations_dir)
    except (ValueError, OSError) as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    console.print(f"  [bright_black]create :[/bright_black] [cyan]{path}[/cyan]")


@cli.command()
@click.argument("target", required=False)
@click.pass_context
def up(ctx: click.Context, target: str | None) -> None:
    """
    Apply pending migrations.

    Without TARGET every pending migration is applied. With TARGET, pending
    migrations up to and including TARGET are applied.

    Examples:

        \b
        # Apply everything
        sql-migrate up

        \b
        # Apply up to a specific migration
        sql-migrate up 1474377231462-add-users-table
    """
    engine = _load_engine(ctx.obj["config"])

    try:
        applied = engine.up(target)
    except MigrationError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    if not applied:
        console.print("Nothing to migrate.")
        return

    console.print(f"[green]✓[/green] Migration complete ({len(applied)} applied)")


@cli.command()
@click.argument("target", required=False)
@click.option("--all", "revert_all", is_flag=True, help="Revert every applied migration")
@click.option("--force", "-f", is_flag=True, help="Skip confirmation prompt for --all")
@click.pass_context
def down(ctx: click.Context, target: str | None, revert_all: bool, force: bool) -> None:
    """
    Revert applied migrations.

    Without TARGET only the most recent migration is reverted. With TARGET,
    TARGET and every migration applied after it are reverted. "all" (or
    --all) reverts everything.

    Examples:

        \b
        # Revert the last migration
        sql-migrate down

        \b
        # Revert back to (and including) a specific migration
        sql-migrate down 1474377231462-add-users-table

        \b
        # Revert everything
        sql-migrate down --all
    """
    if revert_all:
        if target is not None and target != ALL:
            console.print("[red]Error:[/red] --all cannot be combined with a target")
            sys.exit(1)
        target = ALL

    engine = _load_engine(ctx.obj["config"])

    if target == ALL and engine.history and not force:
        console.print(f"Reverting all {len(engine.history)} applied migration(s).")
        if not prompt_confirm("Proceed?", default=False):
            console.print("Cancelled.")
            return

    try:
        reverted = engine.down(target)
    except MigrationError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    if not reverted:
        console.print("Nothing to revert.")
        return

    console.print(f"[green]✓[/green] Migration complete ({len(reverted)} reverted)")


@cli.command()
@click.option(
    "--format",
    type=click.Choice(["table", "json"], case_sensitive=False),
    default="table",
    help="Output format: table (default) or json",
)
@click.pass_context
def history(ctx: click.Context, format: str) -> None:
    """
    Show applied migrations recorded in the database.

    Examples:

        \b
        sql-migrate history
        sql-migrate history --format json
    """
    config = ctx.obj["config"]
    store = HistoryStore(Database(config.database, timeout=config.timeout), config.history_table)

    try:
        if not store.table_exists():
            console.print(
                f"[yellow]Warning:[/yellow] History table '{config.history_table}' "
                "does not exist in the database."
            )
            return
        entries = store.entries()
    except MigrationError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    if not entries:
        console.print("No history to show.")
        return

    if format == "json":
        output = [
            {
                "id": entry.id,
                "title": entry.title,
                "created_time": entry.created_time.isoformat(),
                "exec_time": entry.exec_time.isoformat(),
            }
            for entry in entries
        ]
        print(json.dumps(output, indent=2))
    else:
        _display_history_table(entries)


@cli.command("list")
@click.pass_context
def list_migrations(ctx: click.Context) -> None:
    """
    List local migrations and whether each has been applied.

    Titles recorded in the history table without a local file are listed
    as missing.
    """
    engine = _load_engine(ctx.obj["config"])

    applied = set(engine.history)
    missing = [title for title in engine.history if title not in engine.registry]

    if not engine.registry and not missing:
        console.print("No migrations found.")
        return

    table = Table(title="Migrations")
    table.add_column("Migration", style="cyan")
    table.add_column("Status")

    for migration in engine.registry:
        if migration.title in applied:
            table.add_row(migration.title, "[green]✓ Applied[/green]")
        else:
            table.add_row(migration.title, "[yellow]Pending[/yellow]")

    for title in missing:
        table.add_row(title, "[red]✗ Missing local file[/red]")

    console.print(table)

    if missing:
        console.print(
            Panel(
                "[yellow]Warning:[/yellow] Some applied migrations have no local file.\n"
                "Reverting them will fail until the files are restored.",
                title="History Mismatch",
                border_style="yellow",
            )
        )


def _display_history_table(entries: list[HistoryEntry]) -> None:
    """Display history entries in a table."""
    table = Table(title="Migration History")
    table.add_column("ID", style="blue")
    table.add_column("Migration", style="cyan")
    table.add_column("Created", style="magenta")
    table.add_column("Executed", style="yellow")

    for entry in entries:
        table.add_row(
            str(entry.id),
            entry.title,
            entry.created_time.strftime("%Y-%m-%d %H:%M"),
            entry.exec_time.strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)


if __name__ == "__main__":
    cli()
