"""
EPLM Configuration Management

Provides centralized configuration management with validation and environment support.
"""

import os
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Logging level")
    file_path: Optional[str] = Field(default=None, description="Log file path")
    max_file_size: int = Field(
        default=10_000_000, description="Max log file size in bytes"
    )
    backup_count: int = Field(default=5, description="Number of backup log files")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v.upper()


class PathsConfig(BaseModel):
    """
    Filesystem layout owned by the lifecycle manager.

    Every directory defaults to a location under ``root_dir`` and may be
    overridden individually.
    """

    root_dir: Path = Field(default=Path("."), description="Host project root")
    extensions_dir: Optional[Path] = Field(
        default=None, description="Live extension directories"
    )
    temp_dir: Optional[Path] = Field(
        default=None, description="Download cache and scratch root"
    )
    templates_dir: Optional[Path] = Field(
        default=None, description="Starter template archives"
    )
    public_web_dir: Optional[Path] = Field(
        default=None, description="Shared public directory for extension web assets"
    )
    config_file: Optional[Path] = Field(
        default=None, description="extensions.json listing enabled extensions"
    )

    @model_validator(mode="after")
    def fill_derived_paths(self) -> "PathsConfig":
        root = self.root_dir
        if self.extensions_dir is None:
            self.extensions_dir = root / "extensions"
        if self.temp_dir is None:
            self.temp_dir = root / "storage" / "temp"
        if self.templates_dir is None:
            self.templates_dir = root / "templates"
        if self.public_web_dir is None:
            self.public_web_dir = root / "public" / "web" / "extensions"
        if self.config_file is None:
            self.config_file = self.extensions_dir / "extensions.json"
        return self


class RegistryConfig(BaseModel):
    """Remote extension registry configuration."""

    base_url: str = Field(
        default="http://localhost:4090/market", description="Registry base URL"
    )
    api_key: Optional[str] = Field(default=None, description="Platform API key")
    domain: Optional[str] = Field(
        default=None, description="Host domain reported to the registry"
    )
    timeout: float = Field(default=30.0, description="Request timeout in seconds")
    max_retries: int = Field(default=2, description="Retries for transient failures")
    retry_delay: float = Field(default=1.0, description="Delay between retries")

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"Invalid timeout: {v}. Must be positive")
        return v

    @field_validator("max_retries")
    @classmethod
    def validate_retries(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"Invalid max_retries: {v}. Must not be negative")
        return v


class ReloadConfig(BaseModel):
    """Host process reload configuration."""

    debounce_ms: int = Field(default=3000, description="Reload debounce window")
    app_name: str = Field(
        default="buildingai-api", description="Process manager application name"
    )
    pm2_binary: str = Field(default="pm2", description="PM2 executable")

    @field_validator("debounce_ms")
    @classmethod
    def validate_debounce(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"Invalid debounce_ms: {v}. Must be positive")
        return v


class CommandsConfig(BaseModel):
    """External tooling invoked during lifecycle operations."""

    install_dependencies: str = Field(
        default="pnpm install", description="Run in the host root after changes"
    )
    build_extension: str = Field(
        default="pnpm build:publish", description="Run in a scaffolded extension"
    )
    timeout: float = Field(default=600.0, description="Command timeout in seconds")


class DatabaseConfig(BaseModel):
    """Database configuration."""

    records_path: str = Field(
        default="./storage/eplm.db", description="SQLite file for extension records"
    )
    schema_dsn: Optional[str] = Field(
        default=None, description="PostgreSQL DSN holding per-extension schemas"
    )


class EPLMConfig(BaseSettings):
    """Main EPLM configuration."""

    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    registry: RegistryConfig = Field(default_factory=RegistryConfig)
    reload: ReloadConfig = Field(default_factory=ReloadConfig)
    commands: CommandsConfig = Field(default_factory=CommandsConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)

    template_name: str = Field(
        default="buildingai-extension-starter.zip",
        description="Starter template archive used by scaffolding",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def template_path(self) -> Path:
        return self.paths.templates_dir / self.template_name


# Global configuration instance
_config: Optional[EPLMConfig] = None


def get_config() -> EPLMConfig:
    """
    Get the global configuration instance.

    Returns:
        The global EPLMConfig instance
    """
    global _config
    if _config is None:
        _config = load_config()
    return _config


def load_config(config_file: Optional[Path] = None) -> EPLMConfig:
    """
    Load configuration from file and environment variables.

    Args:
        config_file: Optional path to a dotenv file

    Returns:
        Loaded configuration instance

    Raises:
        ConfigurationError: If a setting fails validation
    """
    try:
        if config_file and config_file.exists():
            return EPLMConfig(_env_file=config_file)
        return EPLMConfig()
    except ValidationError as e:
        raise ConfigurationError(
            "Invalid configuration",
            {"env_file": str(config_file) if config_file else None, "errors": e.errors()},
        ) from e


def reload_config(config_file: Optional[Path] = None) -> EPLMConfig:
    """
    Reload the global configuration.

    Args:
        config_file: Optional path to a dotenv file

    Returns:
        Reloaded configuration instance
    """
    global _config
    _config = load_config(config_file)
    return _config


def update_config(**kwargs: Any) -> None:
    """
    Update configuration values at runtime.

    Args:
        **kwargs: Configuration values to update
    """
    global _config
    if _config is None:
        _config = load_config()

    for key, value in kwargs.items():
        if hasattr(_config, key):
            setattr(_config, key, value)
        else:
            raise ConfigurationError(f"Unknown configuration key: {key}", {"key": key})


def ensure_directories(config: Optional[EPLMConfig] = None) -> None:
    """
    Create the directories the lifecycle manager writes into.

    Args:
        config: Configuration to use (global configuration if None)
    """
    config = config or get_config()
    for path in (
        config.paths.extensions_dir,
        config.paths.temp_dir,
        config.paths.public_web_dir,
    ):
        os.makedirs(path, exist_ok=True)
