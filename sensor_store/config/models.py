"""
Pydantic models for storage configuration.

These models provide type-safe parsing and validation of the YAML configuration file.
They resolve the backing paths of every storage backend and apply per-test isolation.
"""

import os
from pathlib import Path
from typing import Optional, Union
import yaml
from pydantic import BaseModel, Field, field_validator, ConfigDict

from sensor_store.utils.exceptions import ConfigurationError

PROJECT_ROOT = Path(__file__).parent.parent.parent
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "config" / "default.yaml"
CONFIG_ENV_VAR = "SENSOR_STORE_CONFIG"


def _resolve(value: str) -> str:
    path = Path(value)
    if not path.is_absolute():
        # Resolve relative to project root (parent of the package)
        path = (PROJECT_ROOT / value).resolve()
    return str(path)


def _with_test_suffix(value: str, test_id: Optional[str]) -> str:
    """Suffix a file stem or directory name with the test id."""
    if not test_id:
        return value
    path = Path(value)
    return str(path.with_name(f"{path.stem}_test_{test_id}{path.suffix}"))


class AppInfo(BaseModel):
    """Basic application metadata."""
    name: str = Field("agricultural_sensor_store", description="Application name")
    version: str = Field("1.0.0", description="Application version")


class StorageSettings(BaseModel):
    """Backing paths and probe behaviour for the storage backends."""
    model_config = ConfigDict(extra='forbid')

    processed_data: str = Field("data/processed", description="Directory for flat-file JSON batches")
    analytical_engine_path: str = Field(
        "data/database/agricultural_data.duckdb", description="DuckDB database file"
    )
    relational_engine_path: str = Field(
        "data/database/agricultural_data.sqlite", description="SQLite database file"
    )
    probe_timeout_seconds: float = Field(10.0, gt=0, description="Bound on each backend probe")
    test_id: Optional[str] = Field(None, description="Isolation id appended to every backing path")

    @field_validator('processed_data', 'analytical_engine_path', 'relational_engine_path', mode='before')
    @classmethod
    def resolve_paths(cls, v):
        """Convert relative paths to absolute paths."""
        if isinstance(v, (str, Path)):
            return _resolve(str(v))
        return v

    @field_validator('test_id', mode='before')
    @classmethod
    def stringify_test_id(cls, v):
        if v is None or v == "":
            return None
        return str(v)

    @property
    def processed_data_path(self) -> Path:
        return Path(_with_test_suffix(self.processed_data, self.test_id))

    @property
    def duckdb_path(self) -> Path:
        return Path(_with_test_suffix(self.analytical_engine_path, self.test_id))

    @property
    def sqlite_path(self) -> Path:
        return Path(_with_test_suffix(self.relational_engine_path, self.test_id))

    def for_test(self, test_id: Union[str, int]) -> "StorageSettings":
        """Return a copy whose backing paths are isolated under ``test_id``."""
        return self.model_copy(update={"test_id": str(test_id)})


class LoggingSettings(BaseModel):
    """Logging configuration."""
    level: str = Field("INFO", description="Root log level")
    file: Optional[str] = Field(None, description="Optional log file path")

    @field_validator('level')
    @classmethod
    def check_level(cls, v):
        if v.upper() not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return v.upper()


class AppConfig(BaseModel):
    """Complete application configuration model."""
    model_config = ConfigDict(extra='forbid')

    app: AppInfo = Field(default_factory=AppInfo, description="Application metadata")
    storage: StorageSettings = Field(default_factory=StorageSettings, description="Storage settings")
    logging: LoggingSettings = Field(default_factory=LoggingSettings, description="Logging settings")

    @classmethod
    def from_yaml(cls, config_path: Union[str, Path]) -> "AppConfig":
        """Load configuration from YAML file."""
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, 'r') as f:
            config_data = yaml.safe_load(f) or {}

        try:
            return cls(**config_data)
        except ValueError as e:
            raise ConfigurationError(f"Invalid configuration in {config_path}: {e}") from e

    @classmethod
    def load(cls, config_path: Optional[Union[str, Path]] = None) -> "AppConfig":
        """
        Load configuration from an explicit path, ``$SENSOR_STORE_CONFIG``,
        or ``config/default.yaml``; fall back to built-in defaults when none exist.
        """
        if config_path is None:
            config_path = os.environ.get(CONFIG_ENV_VAR)
            if config_path is None:
                if not DEFAULT_CONFIG_PATH.exists():
                    return cls()
                config_path = DEFAULT_CONFIG_PATH
        return cls.from_yaml(config_path)
