"""
Configuration management using Pydantic models loaded from YAML.
"""

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator


class SlotsConfig(BaseModel):
    """Settings for slot enumeration and the booking window."""
    granularity_minutes: int = 15
    min_advance_minutes: int = 0
    max_days_in_future: int = 90

    @field_validator("granularity_minutes", "max_days_in_future")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        """Ensure the value is positive."""
        if value <= 0:
            raise ValueError("value must be greater than zero")
        return value

    @field_validator("min_advance_minutes")
    @classmethod
    def validate_advance(cls, value: int) -> int:
        if value < 0:
            raise ValueError("min_advance_minutes must not be negative")
        return value


class ReservationConfig(BaseModel):
    """Retry policy for commit-time concurrency conflicts."""
    max_attempts: int = 3
    backoff_seconds: float = 0.05

    @field_validator("max_attempts")
    @classmethod
    def validate_attempts(cls, value: int) -> int:
        """Validate attempts is between 1 and 10."""
        if not 1 <= value <= 10:
            raise ValueError(f"max_attempts must be between 1 and 10, got {value}")
        return value

    @field_validator("backoff_seconds")
    @classmethod
    def validate_backoff(cls, value: float) -> float:
        if value < 0:
            raise ValueError("backoff_seconds must not be negative")
        return value


class AppConfig(BaseModel):
    """Application configuration."""
    database_url: str = "sqlite:///bookingengine.db"
    log_level: str = "INFO"
    slots: SlotsConfig = Field(default_factory=SlotsConfig)
    reservation: ReservationConfig = Field(default_factory=ReservationConfig)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Ensure the level is one the logging module knows."""
        level = value.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {value}")
        return level

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to the YAML config file

        Returns:
            AppConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Please create a config.yaml file. See config.example.yaml for reference."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Config file must contain a mapping at the root level.")

        return cls(**data)

    @classmethod
    def load_or_default(cls, config_path: Path | None = None) -> "AppConfig":
        """Load the given or default config file, falling back to defaults if absent."""
        path = config_path or get_default_config_path()
        if config_path is None and not path.exists():
            return cls()
        return cls.load_from_yaml(path)


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for config.yaml in current directory
    current_dir = Path.cwd()
    config_path = current_dir / "config.yaml"

    if not config_path.exists():
        # Try in the project root (parent of the package)
        project_root = Path(__file__).parent.parent
        config_path = project_root / "config.yaml"

    return config_path
