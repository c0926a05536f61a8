"""Tests for registry module."""

from datetime import datetime, timezone
from pathlib import Path

import pytest

from sql_migrate.errors import LoadError
from sql_migrate.registry import (
    build_registry,
    discover_migration_files,
    load_registry,
    parse_created_time,
)


def _noop(db: object) -> None:
    pass


def _write_module(directory: Path, name: str, body: str) -> Path:
    path = directory / name
    path.write_text(body)
    return path


MODULE = "def up(db):\n    pass\n\n\ndef down(db):\n    pass\n"


class TestParseCreatedTime:
    """Tests for parse_created_time function."""

    def test_millisecond_prefix(self) -> None:
        """Test parsing a millisecond timestamp prefix."""
        result = parse_created_time("1474377231462-noname")

        assert result == datetime(2016, 9, 20, 13, 13, 51, 462000, tzinfo=timezone.utc)

    def test_missing_prefix(self) -> None:
        """Test title without timestamp."""
        with pytest.raises(ValueError):
            parse_created_time("noname")


class TestBuildRegistry:
    """Tests for build_registry function."""

    def test_sorts_by_title(self) -> None:
        """Test that migrations are ordered ascending by title."""
        registry = build_registry(
            [("3000-c", _noop, _noop), ("1000-a", _noop, _noop), ("2000-b", _noop, _noop)]
        )

        assert registry.titles == ["1000-a", "2000-b", "3000-c"]

    def test_lookup(self) -> None:
        """Test membership and lookup by title."""
        registry = build_registry([("1000-a", _noop, _noop)])

        assert "1000-a" in registry
        assert "2000-b" not in registry
        assert registry.get("1000-a").title == "1000-a"
        assert registry.get("2000-b") is None
        assert len(registry) == 1

    def test_duplicate_title(self) -> None:
        """Test that duplicate titles raise LoadError."""
        with pytest.raises(LoadError, match="Duplicate"):
            build_registry([("1000-a", _noop, _noop), ("1000-a", _noop, _noop)])

    def test_malformed_title(self) -> None:
        """Test that titles without timestamp prefix raise LoadError."""
        with pytest.raises(LoadError):
            build_registry([("add-users", _noop, _noop)])

    def test_out_of_range_timestamp(self) -> None:
        """Test that a timestamp beyond the datetime range raises LoadError."""
        with pytest.raises(LoadError, match="out-of-range"):
            build_registry([("99999999999999999-x", _noop, _noop)])

    def test_non_callable_action(self) -> None:
        """Test that actions must be callable."""
        with pytest.raises(LoadError):
            build_registry([("1000-a", _noop, None)])

    def test_migration_created_time(self) -> None:
        """Test that a migration exposes its creation time."""
        registry = build_registry([("1000-a", _noop, _noop)])

        assert registry[0].created_time == datetime(1970, 1, 1, 0, 0, 1, tzinfo=timezone.utc)


class TestDiscoverMigrationFiles:
    """Tests for discover_migration_files function."""

    def test_filters_and_sorts(self, migrations_dir: Path) -> None:
        """Test that only <timestamp>-<name>.py files are returned, sorted."""
        _write_module(migrations_dir, "2000-b.py", MODULE)
        _write_module(migrations_dir, "1000-a.py", MODULE)
        _write_module(migrations_dir, "helpers.py", MODULE)
        _write_module(migrations_dir, "__init__.py", "")
        _write_module(migrations_dir, "3000-notes.txt", "")

        result = discover_migration_files(migrations_dir)

        assert [path.name for path in result] == ["1000-a.py", "2000-b.py"]

    def test_missing_directory(self, tmp_path: Path) -> None:
        """Test that a missing directory raises LoadError."""
        with pytest.raises(LoadError):
            discover_migration_files(tmp_path / "nope")


class TestLoadRegistry:
    """Tests for load_registry function."""

    def test_loads_modules(self, migrations_dir: Path) -> None:
        """Test that modules are loaded with their actions bound."""
        _write_module(
            migrations_dir,
            "1000-create-users.py",
            "calls = []\n\n\ndef up(db):\n    calls.append(db)\n\n\ndef down(db):\n    pass\n",
        )

        registry = load_registry(migrations_dir)

        assert registry.titles == ["1000-create-users"]
        migration = registry[0]
        migration.up("db")
        assert migration.up.__globals__["calls"] == ["db"]

    def test_empty_directory(self, migrations_dir: Path) -> None:
        """Test loading a directory without migrations."""
        assert len(load_registry(migrations_dir)) == 0

    def test_missing_down(self, migrations_dir: Path) -> None:
        """Test that a module without down raises LoadError."""
        _write_module(migrations_dir, "1000-a.py", "def up(db):\n    pass\n")

        with pytest.raises(LoadError):
            load_registry(migrations_dir)

    def test_import_error(self, migrations_dir: Path) -> None:
        """Test that a module failing to import raises LoadError."""
        _write_module(migrations_dir, "1000-a.py", "raise RuntimeError('broken')\n")

        with pytest.raises(LoadError, match="1000-a"):
            load_registry(migrations_dir)

    def test_syntax_error(self, migrations_dir: Path) -> None:
        """Test that a module with invalid syntax raises LoadError."""
        _write_module(migrations_dir, "1000-a.py", "def up(db:\n")

        with pytest.raises(LoadError):
            load_registry(migrations_dir)
