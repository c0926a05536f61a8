"""Creation of new migration files."""

import re
import time
from pathlib import Path

from .utils import ensure_dir

SQL_DIR_NAME = "sql"

MIGRATION_TEMPLATE = '''"""Migration {title}."""

from pathlib import Path

SQL_DIR = Path(__file__).parent / "{sql_dir}"


def up(db):
    """Apply this migration."""
    db.run_file(SQL_DIR / "{title}-up.sql")


def down(db):
    """Revert this migration."""
    db.run_file(SQL_DIR / "{title}-down.sql")
'''


def slugify(title: str) -> str:
    """
    Turn a free-form title into a file-name slug.

    Whitespace, quotes and plus signs become dashes.

    Args:
        title: Human-readable title

    Returns:
        Slug

    Raises:
        ValueError: If the title is empty or contains a path separator
    """
    title = title.strip()
    if not title:
        raise ValueError("Migration title must not be empty")
    if "/" in title or "\\" in title:
        raise ValueError(f"Migration title must not contain path separators: {title!r}")
    return re.sub(r"[\s+'\"]", "-", title)


def prepare_structure(migrations_dir: Path) -> Path:
    """
    Create the migrations directory and its SQL subdirectory.

    Args:
        migrations_dir: Migrations directory

    Returns:
        Path to the SQL subdirectory
    """
    return ensure_dir(migrations_dir / SQL_DIR_NAME)


def create_migration(title: str, migrations_dir: Path, now_ms: int | None = None) -> Path:
    """
    Create a migration module and its empty up/down SQL files.

    The migration title is ``<millisecond timestamp>-<slug>``.

    Args:
        title: Human-readable title
        migrations_dir: Migrations directory
        now_ms: Timestamp to use instead of the current time

    Returns:
        Path to the created migration module

    Raises:
        ValueError: If the title is invalid
        FileExistsError: If a migration with the same title exists
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)

    full_title = f"{now_ms}-{slugify(title)}"
    sql_dir = prepare_structure(migrations_dir)

    module_path = migrations_dir / f"{full_title}.py"
    with open(module_path, "x", encoding="utf-8") as f:
        f.write(MIGRATION_TEMPLATE.format(title=full_title, sql_dir=SQL_DIR_NAME))

    for direction in ("up", "down"):
        (sql_dir / f"{full_title}-{direction}.sql").touch()

    return module_path
