"""Configuration management for SQL-Migrate."""

import logging
import os
import tomllib
from pathlib import Path
from typing import Any

import tomli_w
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .database import DEFAULT_DELIMITER, MEMORY_DATABASE
from .errors import ConfigError
from .history import DEFAULT_TABLE, is_valid_table_name
from .utils import ensure_dir, expand_path

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "SQL_MIGRATE_CONFIG"
ENVIRONMENT_ENV_VAR = "SQL_MIGRATE_ENV"
DEFAULT_CONFIG_NAME = "sql-migrate.toml"


class Config(BaseModel):
    """Configuration for SQL-Migrate.

    Pydantic model that validates paths, the history table name and the
    statement delimiter.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    database: Path
    migrations_dir: Path
    history_table: str = DEFAULT_TABLE
    statement_delimiter: str = DEFAULT_DELIMITER
    timeout: float = Field(default=5.0, ge=0, description="Seconds to wait for a locked database")

    @field_validator("database", "migrations_dir", mode="before")
    @classmethod
    def expand_paths(cls, v: str | Path) -> Path:
        """Expand path strings with ~ and environment variables."""
        if str(v) == MEMORY_DATABASE:
            return Path(MEMORY_DATABASE)
        return expand_path(v)

    @field_validator("history_table")
    @classmethod
    def check_table_name(cls, v: str) -> str:
        if not is_valid_table_name(v):
            raise ValueError(f"history table must be a plain SQL identifier, got {v!r}")
        return v

    @field_validator("statement_delimiter")
    @classmethod
    def check_delimiter(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("statement delimiter must not be blank")
        return v.strip()

    def save(self, path: Path) -> None:
        """
        Save configuration to TOML file.

        Args:
            path: Path to save config file
        """
        ensure_dir(path.parent)

        data = {
            "database": {
                "path": str(self.database),
                "timeout": self.timeout,
            },
            "migrations": {
                "directory": str(self.migrations_dir),
                "table": self.history_table,
                "delimiter": self.statement_delimiter,
            },
        }

        with open(path, "wb") as f:
            tomli_w.dump(data, f)


def get_config_path() -> Path:
    """
    Get configuration file path.

    Priority:
    1. SQL_MIGRATE_CONFIG environment variable
    2. Default: ./sql-migrate.toml

    Returns:
        Path to config file
    """
    env_config = os.environ.get(CONFIG_ENV_VAR)
    if env_config:
        return expand_path(env_config)

    return Path(DEFAULT_CONFIG_NAME)


def create_default_config() -> Config:
    """
    Create default configuration.

    Returns:
        Config instance with default values
    """
    return Config(
        database="database.sqlite3",
        migrations_dir="migrations",
    )


def _flatten(data: dict[str, Any]) -> dict[str, Any]:
    database = data.get("database", {})
    migrations = data.get("migrations", {})

    flat_data = {
        "database": database.get("path", "database.sqlite3"),
        "timeout": database.get("timeout", 5.0),
        "migrations_dir": migrations.get("directory", "migrations"),
        "history_table": migrations.get("table", DEFAULT_TABLE),
        "statement_delimiter": migrations.get("delimiter", DEFAULT_DELIMITER),
    }
    return flat_data


def _apply_environment(data: dict[str, Any], environment: str) -> dict[str, Any]:
    environments = data.get("environments", {})
    if environment not in environments:
        known = ", ".join(sorted(environments)) or "none"
        raise ConfigError(f"Unknown environment '{environment}' (defined: {known})")

    merged = {}
    overrides = environments[environment]
    for section in ("database", "migrations"):
        merged[section] = {**data.get(section, {}), **overrides.get(section, {})}
    return merged


def load_config(config_path: Path | None = None, environment: str | None = None) -> Config:
    """
    Load configuration from TOML file using Pydantic validation.

    When an environment is selected (argument or SQL_MIGRATE_ENV), its
    ``[environments.<name>.*]`` tables override the base sections.

    Args:
        config_path: Optional custom config path
        environment: Optional environment name

    Returns:
        Config instance with validated values

    Raises:
        ConfigError: If the file cannot be parsed, validation fails, or the
            environment is not defined
    """
    if config_path is None:
        config_path = get_config_path()

    if environment is None:
        environment = os.environ.get(ENVIRONMENT_ENV_VAR) or None

    if config_path.exists():
        try:
            with open(config_path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid TOML in {config_path}: {e}") from e

        if environment:
            data = _apply_environment(data, environment)

        try:
            return Config.model_validate(_flatten(data))
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration in {config_path}: {e}") from e

    if environment:
        raise ConfigError(f"Environment '{environment}' requested but {config_path} does not exist")

    # No config file yet: write sql-migrate.toml with the defaults
    config = create_default_config()

    try:
        config.save(config_path)
    except OSError as e:
        # Read-only project directory; migrate with the defaults anyway
        logger.warning("Could not write %s, using default settings: %s", config_path, e)

    return config
