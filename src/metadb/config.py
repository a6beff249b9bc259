"""Configuration loading with environment variable substitution."""

import json
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from metadb.exceptions import ConfigError
from metadb.observability import LogLevel

ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)\}")


def substitute_env_vars(value: Any) -> Any:
    """Recursively substitute ${VAR_NAME} patterns with environment variables."""
    if isinstance(value, str):
        def replace(match: re.Match[str]) -> str:
            var_name = match.group(1)
            env_value = os.environ.get(var_name)
            if env_value is None:
                raise ValueError(f"Environment variable {var_name} is not set")
            return env_value

        return ENV_VAR_PATTERN.sub(replace, value)
    elif isinstance(value, dict):
        return {k: substitute_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [substitute_env_vars(v) for v in value]
    return value


class DatabaseConfig(BaseModel):
    """Database backend configuration."""

    backend: str = "sqlite"
    # Backend-specific settings
    path: str | None = None  # For SQLite


class SchedulerConfig(BaseModel):
    """Scheduler backend configuration."""

    backend: str = "apscheduler"
    timezone: str = "UTC"
    misfire_grace_time: int = 60


class StoreConfig(BaseModel):
    """Metadata table settings."""

    table_name: str = "__metadb"
    columns: dict[str, str] = Field(default_factory=dict)
    gc_schedule: str = "*/20 * * * *"
    monitor: bool = False

    @field_validator("gc_schedule")
    @classmethod
    def _check_schedule(cls, value: str) -> str:
        if len(value.split()) not in (5, 6):
            raise ValueError("gc_schedule must be a 5 or 6 field cron expression")
        return value


class LoggingConfig(BaseModel):
    """Logging settings."""

    level: LogLevel = LogLevel.INFO
    format: str = "json"  # json | text


class MetaDBConfig(BaseModel):
    """Main configuration for metadb."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_file(cls, path: str | Path) -> "MetaDBConfig":
        """Load configuration from a YAML or JSON file."""
        path = Path(path)
        with path.open() as f:
            if path.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            else:
                data = json.load(f)

        return cls.from_dict(data or {})

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MetaDBConfig":
        """Load configuration from a dictionary.

        Raises:
            ConfigError: If the data does not validate
        """
        data = substitute_env_vars(data)
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigError(str(e)) from e
