"""Configuration settings for eventseries."""

import logging
import os
from pathlib import Path
from typing import Any, Literal, Optional

import yaml
from pydantic import Field, PrivateAttr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PREFIX = "EVENTSERIES_"

LOG_LEVELS = ("DEBUG", "VERBOSE", "INFO", "WARNING", "ERROR", "CRITICAL")

# Top-level YAML keys copied onto settings fields
YAML_SETTINGS = (
    "database_file",
    "max_occurrences",
    "default_window_days",
    "materialization_mode",
    "log_level",
    "log_file",
    "log_colors",
)

# Keys of the optional ``logging:`` YAML section and the fields they set
YAML_LOGGING_SETTINGS = {"level": "log_level", "file": "log_file", "colors": "log_colors"}


class EventSeriesSettings(BaseSettings):
    """Engine settings with environment variable and YAML support.

    Priority: explicit arguments > environment > YAML file > defaults.
    """

    # Private attributes
    _explicit_args: set = PrivateAttr(default_factory=set)
    _env_vars_set: set = PrivateAttr(default_factory=set)

    # Paths
    config_dir: Path = Field(
        default_factory=lambda: Path.home() / ".config" / "eventseries",
        description="Directory searched for config.yaml",
    )
    config_file: Optional[Path] = Field(
        default=None, description="Explicit YAML config file; overrides the search"
    )
    database_file: Path = Field(
        default_factory=lambda: Path.home() / ".local" / "share" / "eventseries" / "events.db",
        description="SQLite database file, or ':memory:'",
    )

    # Generation
    max_occurrences: int = Field(
        default=1000, ge=1, description="Safety cap on occurrences produced by one generation"
    )
    default_window_days: int = Field(
        default=365, ge=1, description="Window length used when no window end is given"
    )
    materialization_mode: Literal["atomic", "best_effort"] = Field(
        default="atomic",
        description="atomic: all-or-nothing batch; best_effort: keep instances that succeeded",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: Optional[str] = Field(default=None, description="Log file path")
    log_colors: bool = Field(default=True, description="Colored console output on a TTY")

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_assignment=True,
    )

    def __init__(self, **kwargs: Any) -> None:
        # Tests pass _skip_yaml to keep a developer's config file out of the picture
        skip_yaml = kwargs.pop("_skip_yaml", False)

        # Track which environment variables are set before calling parent
        env_vars_set = {
            key[len(ENV_PREFIX) :].lower()
            for key in os.environ
            if key.upper().startswith(ENV_PREFIX)
        }

        super().__init__(**kwargs)

        self._explicit_args = set(kwargs.keys())
        self._env_vars_set = env_vars_set

        if not skip_yaml:
            self._load_yaml_config()

    @field_validator("config_dir", "config_file", "database_file")
    @classmethod
    def expand_user(cls, value: Optional[Path]) -> Optional[Path]:
        """Expand ``~`` in configured paths."""
        if value is None or str(value) == ":memory:":
            return value
        return value.expanduser()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Normalize and check the logging level name."""
        level = value.strip().upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {LOG_LEVELS}, got {value!r}")
        return level

    def _find_config_file(self) -> Optional[Path]:
        """Find config file, checking the explicit path, the project directory, then user home."""
        if self.config_file is not None:
            return self.config_file if self.config_file.exists() else None

        # Check project root directory first (go up from eventseries/config to project root)
        project_root = Path(__file__).parent.parent.parent
        project_config = project_root / "config" / "config.yaml"
        if project_config.exists():
            return project_config

        # Fall back to user home directory
        user_config = self.config_dir / "config.yaml"
        if user_config.exists():
            return user_config

        return None

    def _is_overridden(self, setting: str) -> bool:
        return setting in self._explicit_args or setting in self._env_vars_set

    def _load_basic_settings(self, config_data: dict) -> None:
        """Load top-level settings from YAML data."""
        for setting in YAML_SETTINGS:
            if setting in config_data and not self._is_overridden(setting):
                setattr(self, setting, config_data[setting])

    def _load_logging_config(self, config_data: dict) -> None:
        """Load the ``logging:`` section from YAML data."""
        logging_config = config_data.get("logging")
        if not isinstance(logging_config, dict):
            return

        for key, setting in YAML_LOGGING_SETTINGS.items():
            if key in logging_config and not self._is_overridden(setting):
                setattr(self, setting, logging_config[key])

    def _load_yaml_config(self) -> None:
        """Load configuration from YAML file if it exists."""
        config_file = self._find_config_file()
        if not config_file:
            return

        try:
            with config_file.open() as f:
                config_data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            # Don't fail if YAML loading fails, just continue with defaults/env vars
            logging.warning(f"Could not load YAML config from {config_file}: {e}")
            return

        if not config_data:
            return
        if not isinstance(config_data, dict):
            logging.warning(f"Ignoring YAML config {config_file}: top level is not a mapping")
            return

        self._load_basic_settings(config_data)
        self._load_logging_config(config_data)


# Global settings management
_settings_instance: Optional[EventSeriesSettings] = None


def get_settings() -> EventSeriesSettings:
    """Get the global settings instance, creating it lazily if needed.

    Returns:
        EventSeriesSettings: The global settings instance
    """
    # Module-level variable accessed without the global keyword
    if globals()["_settings_instance"] is None:
        globals()["_settings_instance"] = EventSeriesSettings()
    return globals()["_settings_instance"]


def reset_settings() -> None:
    """Reset the global settings instance (primarily for testing)."""
    globals()["_settings_instance"] = None
