"""Settings configuration for quota-cockpit."""

import contextlib
import os
import tomllib
from pathlib import Path
from typing import Any, Literal

import orjson
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from quota_cockpit.config.discovery import find_toml_config_file, get_cockpit_data_dir
from quota_cockpit.exceptions import ConfigurationError

from .cloudcode import CloudCodeSettings
from .oauth import OAuthSettings
from .trigger import TriggerSettings


__all__ = [
    "Settings",
    "StorageSettings",
    "LoggingSettings",
    "get_settings",
]


class StorageSettings(BaseSettings):
    """Where credentials, watermarks and trigger history are persisted."""

    model_config = SettingsConfigDict(
        env_prefix="STORAGE__",
        case_sensitive=False,
        extra="ignore",
    )

    state_file: Path = Field(
        default_factory=lambda: get_cockpit_data_dir() / "state.json",
        description="JSON document holding all persisted state",
    )

    ide_state_db: Path | None = Field(
        default=None,
        description="Override for the IDE's state.vscdb used by local import",
    )


class LoggingSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="LOGGING__",
        case_sensitive=False,
        extra="ignore",
    )

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="WARNING",
        description="Log level",
    )

    json_logs: bool = Field(
        default=False,
        description="Render log lines as JSON instead of console output",
    )

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.upper()
        return v


def _coerce_settings(value: Any, settings_class: type) -> Any:
    """Coerce value to settings class instance.

    Handles: None → default, dict → instance, passthrough existing instances.
    """
    if value is None:
        return settings_class()
    if isinstance(value, settings_class):
        return value
    if isinstance(value, dict):
        return settings_class(**value)
    if hasattr(value, "model_dump"):
        return settings_class(**value.model_dump())
    return value


class Settings(BaseSettings):
    """
    Configuration settings for quota-cockpit.

    Settings are loaded from environment variables, .env files, and TOML configuration files.
    Environment variables take precedence over .env file values.
    TOML configuration files are loaded in the following order:
    1. .quota_cockpit.toml in current directory
    2. quota_cockpit.toml in current directory
    3. config.toml in user config directory/quota_cockpit/ (platform-specific)
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )

    oauth: OAuthSettings = Field(
        default_factory=OAuthSettings,
        description="Identity provider configuration",
    )

    cloudcode: CloudCodeSettings = Field(
        default_factory=CloudCodeSettings,
        description="Cloud Code API client configuration",
    )

    trigger: TriggerSettings = Field(
        default_factory=TriggerSettings,
        description="Wake-up trigger configuration",
    )

    storage: StorageSettings = Field(
        default_factory=StorageSettings,
        description="State persistence configuration",
    )

    logging: LoggingSettings = Field(
        default_factory=LoggingSettings,
        description="Logging configuration",
    )

    @field_validator("oauth", mode="before")
    @classmethod
    def validate_oauth(cls, v: Any) -> Any:
        return _coerce_settings(v, OAuthSettings)

    @field_validator("cloudcode", mode="before")
    @classmethod
    def validate_cloudcode(cls, v: Any) -> Any:
        return _coerce_settings(v, CloudCodeSettings)

    @field_validator("trigger", mode="before")
    @classmethod
    def validate_trigger(cls, v: Any) -> Any:
        return _coerce_settings(v, TriggerSettings)

    @field_validator("storage", mode="before")
    @classmethod
    def validate_storage(cls, v: Any) -> Any:
        return _coerce_settings(v, StorageSettings)

    @field_validator("logging", mode="before")
    @classmethod
    def validate_logging(cls, v: Any) -> Any:
        return _coerce_settings(v, LoggingSettings)

    @classmethod
    def load_toml_config(cls, toml_path: Path) -> dict[str, Any]:
        """Load configuration from a TOML file.

        Raises:
            ValueError: If the TOML file is invalid or cannot be read
        """
        try:
            with toml_path.open("rb") as f:
                return tomllib.load(f)
        except OSError as e:
            raise ValueError(f"Cannot read TOML config file {toml_path}: {e}") from e
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Invalid TOML syntax in {toml_path}: {e}") from e

    @classmethod
    def from_config(
        cls, config_path: Path | str | None = None, **kwargs: Any
    ) -> "Settings":
        """Create Settings instance from configuration file.

        Args:
            config_path: Path to configuration file. Can be:
                - None: Auto-discover config file or use CONFIG_FILE env var
                - Path or str: Use this specific config file
            **kwargs: Additional keyword arguments to override config values
        """
        if config_path is None:
            config_path_env = os.environ.get("CONFIG_FILE")
            if config_path_env:
                config_path = Path(config_path_env)

        if isinstance(config_path, str):
            config_path = Path(config_path)

        if config_path is None:
            config_path = find_toml_config_file()

        config_data: dict[str, Any] = {}
        if config_path and config_path.exists():
            if config_path.suffix.lower() != ".toml":
                raise ValueError(
                    f"Unsupported config file format: {config_path.suffix}. "
                    "Only TOML (.toml) files are supported."
                )
            config_data = cls.load_toml_config(config_path)

        # kwargs take precedence over file values
        merged_config = {**config_data, **kwargs}
        return cls(**merged_config)


def get_settings(config_path: Path | str | None = None) -> Settings:
    """Get a settings instance with configuration file support.

    Args:
        config_path: Optional path to configuration file. If None, uses CONFIG_FILE env var
                    or auto-discovers config file.

    Raises:
        ConfigurationError: If the configuration cannot be loaded or validated
    """
    try:
        overrides: dict[str, Any] = {}
        overrides_json = os.environ.get("QUOTA_COCKPIT_CONFIG_OVERRIDES")
        if overrides_json:
            with contextlib.suppress(ValueError):
                overrides = orjson.loads(overrides_json)

        return Settings.from_config(config_path=config_path, **overrides)
    except (OSError, ValueError) as e:
        raise ConfigurationError(f"Configuration error: {e}") from e
