"""Configuration management for Legacy Sync using Pydantic.

This module provides type-safe configuration models for the legacy platform
connection, performance tuning, run state storage, sync behaviour and logging.
"""

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


class LegacyPlatformConfig(BaseModel):
    """Connection settings for the legacy platform data API."""

    url: str = Field(
        ..., description="Base URL of the data API (e.g. https://app.example.com/api/1.1)"
    )
    token: str = Field(..., description="API bearer token")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")
    timeout: int = Field(default=30, ge=1, le=600, description="API request timeout in seconds")

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate and normalize URL."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("URL must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("token")
    @classmethod
    def validate_token(cls, v: str) -> str:
        """Validate token is not empty."""
        if not v or v.strip() == "":
            raise ValueError("Token cannot be empty")
        return v


class PerformanceConfig(BaseModel):
    """Performance tuning configuration."""

    page_size: int = Field(
        default=100, ge=1, le=100, description="Records per list page (legacy API maximum is 100)"
    )
    rate_limit: float = Field(
        default=2.0,
        ge=0,
        le=50,
        description="Requests per second against the legacy API (0 disables limiting)",
    )
    max_concurrent: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Worker pool size for upserting records of one entity type",
    )
    retry_attempts: int = Field(
        default=3, ge=1, le=10, description="Total attempts for a retryable request"
    )
    retry_backoff_min: float = Field(
        default=2, ge=0, le=60, description="Minimum backoff time in seconds for retries"
    )
    retry_backoff_max: float = Field(
        default=8, ge=0, le=300, description="Maximum backoff time in seconds for retries"
    )
    http_max_connections: int = Field(
        default=20, ge=1, le=200, description="Maximum number of connections in the pool"
    )
    http_max_keepalive_connections: int = Field(
        default=10, ge=1, le=100, description="Maximum number of keepalive connections"
    )


class StateConfig(BaseModel):
    """Relational store configuration.

    The same database holds the entity tables, identifier mappings, the
    sync watermark and run history.
    """

    db_path: str = Field(
        default="./legacy_sync.db",
        description="SQLite file path or a full SQLAlchemy database URL",
    )
    db_pool_size: int = Field(
        default=5, ge=1, le=50, description="Connections kept in the pool (PostgreSQL only)"
    )
    db_max_overflow: int = Field(
        default=10,
        ge=0,
        le=100,
        description="Connections allowed beyond pool_size (PostgreSQL only)",
    )
    db_pool_timeout: int = Field(
        default=30, ge=1, le=300, description="Timeout in seconds for getting a pooled connection"
    )
    db_pool_recycle: int = Field(
        default=3600, ge=60, le=28800, description="Recycle connections after this many seconds"
    )

    @property
    def database_url(self) -> str:
        """Database URL derived from ``db_path``."""
        if "://" in self.db_path:
            return self.db_path
        return f"sqlite:///{self.db_path}"


class SyncBehaviorConfig(BaseModel):
    """Sync run behaviour."""

    tenant_scope: str = Field(
        default="default", description="Scope key for the run lock and the watermark"
    )
    incremental_fallback_days: int = Field(
        default=7,
        ge=1,
        le=365,
        description="Lookback window for an incremental run when no watermark exists",
    )
    include_soft_deleted: bool = Field(
        default=True,
        description="Sync soft-deleted legacy records so deletion state propagates",
    )
    modified_field: str = Field(
        default="Modified Date", description="Legacy field used for change detection"
    )
    deleted_field: str = Field(default="deletedAt", description="Legacy soft-delete field")
    max_reported_errors: int = Field(
        default=50, ge=1, le=10000, description="Maximum error lines kept in a run report"
    )
    report_dir: str | None = Field(
        default="reports", description="Directory for run reports (None disables writing)"
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="WARNING", description="Console log level")
    file_level: str = Field(default="DEBUG", description="File log level")
    format: str = Field(default="json", description="File log format (json or console)")
    file: str | None = Field(default="logs/legacy_sync.log", description="Log file path")
    log_payloads: bool = Field(
        default=False,
        description="Log request/response payloads at DEBUG level (secrets are redacted)",
    )
    max_payload_size: int = Field(
        default=10000, ge=100, le=1000000, description="Maximum logged payload size in characters"
    )

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
        v_lower = v.lower()
        if v_lower not in ("json", "console"):
            raise ValueError("Log format must be one of: json, console")
        return v_lower


class SyncSettings(BaseSettings):
    """Top-level Legacy Sync configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LEGACY_SYNC_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    legacy: LegacyPlatformConfig = Field(..., description="Legacy platform connection")
    performance: PerformanceConfig = Field(
        default_factory=PerformanceConfig, description="Performance configuration"
    )
    state: StateConfig = Field(default_factory=StateConfig, description="State configuration")
    sync: SyncBehaviorConfig = Field(
        default_factory=SyncBehaviorConfig, description="Sync behaviour"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )


def load_config_from_yaml(config_path: str | Path) -> SyncSettings:
    """Load configuration from YAML file.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        SyncSettings: Loaded configuration

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config file is empty or references an unset variable
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path) as f:
        config_data = yaml.safe_load(f)

    if not config_data:
        raise ValueError(f"Empty configuration file: {config_path}")

    return SyncSettings(**_expand_env_vars(config_data))


def _expand_env_vars(data: Any) -> Any:
    """Recursively expand ``${VAR_NAME}`` references from the environment."""
    if isinstance(data, dict):
        return {k: _expand_env_vars(v) for k, v in data.items()}
    if isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    if isinstance(data, str):
        return _ENV_VAR_PATTERN.sub(_env_value, data)
    return data


def _env_value(match: re.Match[str]) -> str:
    var_name = match.group(1)
    env_value = os.environ.get(var_name)
    if env_value is None:
        raise ValueError(
            f"Environment variable '{var_name}' not found. "
            f"Please set it in your environment or .env file."
        )
    return env_value


def save_config_to_yaml(config: SyncSettings, output_path: str | Path) -> None:
    """Save configuration to YAML file with the API token masked."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    config_dict = config.model_dump()
    config_dict["legacy"]["token"] = "${LEGACY_SYNC_TOKEN}"

    with open(output_path, "w") as f:
        yaml.dump(config_dict, f, default_flow_style=False, sort_keys=False)
