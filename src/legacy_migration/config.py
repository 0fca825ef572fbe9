"""Configuration management for Legacy Bridge using Pydantic.

This module provides type-safe configuration models for the legacy document
store, the target database, import tuning and logging.
"""

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SourceConfig(BaseModel):
    """Configuration for the legacy MongoDB document store."""

    uri: str = Field(..., description="MongoDB connection URI of the legacy store")
    database: str | None = Field(
        default=None, description="Database name (defaults to the one in the URI)"
    )
    server_selection_timeout_ms: int = Field(
        default=10000, ge=100, le=120000, description="Server selection timeout in milliseconds"
    )
    socket_timeout_ms: int = Field(
        default=60000, ge=1000, le=600000, description="Socket timeout in milliseconds"
    )

    @field_validator("uri")
    @classmethod
    def validate_uri(cls, v: str) -> str:
        """Validate the MongoDB URI scheme."""
        if not v.startswith(("mongodb://", "mongodb+srv://")):
            raise ValueError("Source URI must start with mongodb:// or mongodb+srv://")
        return v


class StateConfig(BaseModel):
    """Target database configuration."""

    db_path: str = Field(
        default="./legacy_bridge.db",
        description="Target database URL or SQLite file path",
    )
    db_pool_size: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Number of connections to maintain in the pool (PostgreSQL only)",
    )
    db_max_overflow: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Maximum number of connections to create beyond pool_size (PostgreSQL only)",
    )
    db_pool_timeout: int = Field(
        default=30,
        ge=1,
        le=300,
        description="Timeout in seconds for getting a connection from the pool",
    )
    db_pool_recycle: int = Field(
        default=3600,
        ge=60,
        le=28800,
        description="Recycle connections after this many seconds",
    )

    @property
    def database_url(self) -> str:
        """Full SQLAlchemy URL for the target database."""
        if "://" in self.db_path:
            return self.db_path
        return f"sqlite:///{self.db_path}"


class ImportConfig(BaseModel):
    """Batch import tuning."""

    batch_size: int = Field(
        default=100, ge=1, le=1000, description="Records fetched per batch and per entity kind"
    )
    category_scan_page_size: int = Field(
        default=500,
        ge=50,
        le=5000,
        description="Page size used when scanning all items to build the category tree",
    )
    include_images: bool = Field(default=False, description="Import item images")
    validate_formulas: bool = Field(
        default=True, description="Report unresolved formula references as warnings"
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(
        default="WARNING",
        description="Console log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    file_level: str = Field(
        default="DEBUG",
        description="File log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    format: str = Field(default="json", description="Log format (json or console)")
    file: str | None = Field(default="logs/migration.log", description="Log file path")

    @field_validator("level", "file_level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Log level must be one of: {', '.join(valid_levels)}")
        return v_upper

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Validate log format."""
        valid_formats = ["json", "console"]
        v_lower = v.lower()
        if v_lower not in valid_formats:
            raise ValueError(f"Log format must be one of: {', '.join(valid_formats)}")
        return v_lower


class MigrationConfig(BaseSettings):
    """Main migration configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LEGACY_BRIDGE_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    source: SourceConfig = Field(..., description="Legacy document store configuration")
    state: StateConfig = Field(default_factory=StateConfig, description="Target database")
    imports: ImportConfig = Field(default_factory=ImportConfig, description="Import tuning")
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )


def load_config_from_yaml(config_path: str | Path) -> MigrationConfig:
    """Load configuration from YAML file.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        MigrationConfig: Loaded configuration

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config file is invalid
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path) as f:
        config_data = yaml.safe_load(f)

    if not config_data:
        raise ValueError(f"Empty configuration file: {config_path}")

    config_data = _expand_env_vars(config_data)

    return MigrationConfig(**config_data)


def _expand_env_vars(data):
    """Recursively expand ${VAR_NAME} references in config values.

    Args:
        data: Configuration value (dict, list or scalar)

    Returns:
        The value with environment variables substituted

    Raises:
        ValueError: If a referenced variable is not set
    """
    if isinstance(data, dict):
        return {k: _expand_env_vars(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    elif isinstance(data, str):
        if data.startswith("${") and data.endswith("}"):
            var_name = data[2:-1]
            env_value = os.environ.get(var_name)
            if env_value is None:
                raise ValueError(
                    f"Environment variable '{var_name}' not found. "
                    f"Please set it in your environment or .env file."
                )
            return env_value
        return data
    else:
        return data
