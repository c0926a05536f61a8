"""Tests for config module."""

from pathlib import Path

import pytest

from sql_migrate.config import Config, create_default_config, get_config_path, load_config
from sql_migrate.errors import ConfigError

CONFIG_TOML = """
[database]
path = "app.db"
timeout = 2.5

[migrations]
directory = "db/migrations"
table = "schema_history"
delimiter = "/"

[environments.test.database]
path = "test.db"

[environments.test.migrations]
table = "test_history"
"""


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("SQL_MIGRATE_CONFIG", raising=False)
    monkeypatch.delenv("SQL_MIGRATE_ENV", raising=False)


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "sql-migrate.toml"
    path.write_text(CONFIG_TOML)
    return path


class TestLoadConfig:
    """Tests for load_config function."""

    def test_reads_sections(self, config_file: Path) -> None:
        """Test that TOML sections map onto config fields."""
        config = load_config(config_file)

        assert config.database == Path("app.db")
        assert config.timeout == 2.5
        assert config.migrations_dir == Path("db/migrations")
        assert config.history_table == "schema_history"
        assert config.statement_delimiter == "/"

    def test_environment_overrides(self, config_file: Path) -> None:
        """Test that an environment section overrides the base sections."""
        config = load_config(config_file, environment="test")

        assert config.database == Path("test.db")
        assert config.history_table == "test_history"
        assert config.migrations_dir == Path("db/migrations")
        assert config.timeout == 2.5

    def test_environment_from_env_var(
        self, config_file: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test selecting the environment through SQL_MIGRATE_ENV."""
        monkeypatch.setenv("SQL_MIGRATE_ENV", "test")

        assert load_config(config_file).database == Path("test.db")

    def test_unknown_environment(self, config_file: Path) -> None:
        """Test that an undefined environment raises ConfigError."""
        with pytest.raises(ConfigError, match="production"):
            load_config(config_file, environment="production")

    def test_missing_sections_use_defaults(self, tmp_path: Path) -> None:
        """Test that an empty file yields default values."""
        path = tmp_path / "empty.toml"
        path.write_text("")

        config = load_config(path)

        assert config.history_table == "migrations"
        assert config.statement_delimiter == "--;;"
        assert config.migrations_dir == Path("migrations")

    def test_creates_default_file(self, tmp_path: Path) -> None:
        """Test that a missing config file is created with defaults."""
        path = tmp_path / "conf" / "sql-migrate.toml"

        config = load_config(path)

        assert path.exists()
        assert load_config(path) == config

    def test_invalid_toml(self, tmp_path: Path) -> None:
        """Test that malformed TOML raises ConfigError."""
        path = tmp_path / "bad.toml"
        path.write_text("[database\npath = ")

        with pytest.raises(ConfigError):
            load_config(path)

    def test_invalid_table_name(self, tmp_path: Path) -> None:
        """Test that an unsafe table name is rejected."""
        path = tmp_path / "bad.toml"
        path.write_text('[migrations]\ntable = "bad name"\n')

        with pytest.raises(ConfigError):
            load_config(path)

    def test_negative_timeout(self, tmp_path: Path) -> None:
        """Test that the timeout must not be negative."""
        path = tmp_path / "bad.toml"
        path.write_text("[database]\ntimeout = -1\n")

        with pytest.raises(ConfigError):
            load_config(path)

    def test_environment_without_file(self, tmp_path: Path) -> None:
        """Test that selecting an environment requires an existing file."""
        with pytest.raises(ConfigError):
            load_config(tmp_path / "missing.toml", environment="test")


class TestConfig:
    """Tests for Config model."""

    def test_expands_home(self) -> None:
        """Test that ~ is expanded in paths."""
        config = Config(database="~/app.db", migrations_dir="migrations")

        assert not str(config.database).startswith("~")

    def test_memory_database_kept(self) -> None:
        """Test that :memory: is not treated as a file path."""
        config = Config(database=":memory:", migrations_dir="migrations")

        assert str(config.database) == ":memory:"

    def test_blank_delimiter(self) -> None:
        """Test that a blank delimiter is rejected."""
        with pytest.raises(ValueError):
            Config(database="app.db", migrations_dir="m", statement_delimiter="  ")

    def test_save_round_trip(self, tmp_path: Path) -> None:
        """Test that a saved config loads back unchanged."""
        config = Config(
            database=tmp_path / "app.db",
            migrations_dir=tmp_path / "migrations",
            history_table="h",
            statement_delimiter="/",
            timeout=1.0,
        )
        path = tmp_path / "out.toml"

        config.save(path)

        assert load_config(path) == config


class TestGetConfigPath:
    """Tests for get_config_path function."""

    def test_default(self) -> None:
        assert get_config_path() == Path("sql-migrate.toml")

    def test_env_var(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.setenv("SQL_MIGRATE_CONFIG", str(tmp_path / "custom.toml"))

        assert get_config_path() == tmp_path / "custom.toml"


def test_create_default_config() -> None:
    """Test default configuration values."""
    config = create_default_config()

    assert config.database == Path("database.sqlite3")
    assert config.migrations_dir == Path("migrations")
