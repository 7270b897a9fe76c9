"""
Configuration management for the item store.

Loads configuration from YAML with ZERO defaults.
Every value must be explicitly specified or startup fails.
"""

from __future__ import annotations

import os
import re
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError


class ServiceConfig(BaseModel):
    """Service identity configuration."""

    model_config = ConfigDict(extra="forbid")

    name: str
    version: str


class StoreConfig(BaseModel):
    """Store location and expiry behaviour."""

    model_config = ConfigDict(extra="forbid")

    path: str
    auto_cleanup: bool
    sweep_interval_seconds: float = Field(gt=0)
    reconcile_on_open: bool
    default_ttl_seconds: int = Field(gt=0)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    model_config = ConfigDict(extra="forbid")

    level: str
    format: Literal["json", "text"]


class Settings(BaseModel):
    """
    Root configuration container.

    All fields are REQUIRED. No defaults exist.
    Missing fields cause immediate startup failure.

    Usage:
        from item_store.config import get_settings
        settings = get_settings()
    """

    model_config = ConfigDict(extra="forbid")

    service: ServiceConfig
    store: StoreConfig
    logging: LoggingConfig


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing."""

    pass


def load_yaml_config(config_path: Path) -> dict[str, Any]:
    """
    Load and parse YAML configuration file.

    Args:
        config_path: Path to config.yaml

    Returns:
        Parsed configuration dictionary

    Raises:
        ConfigurationError: If file is missing, empty, or invalid
    """
    if not config_path.exists():
        raise ConfigurationError(
            f"Configuration file not found: {config_path}\n"
            f"Expected location: {config_path.absolute()}\n"
            f"Create the file or set CONFIG_PATH environment variable."
        )

    try:
        with config_path.open() as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

    if config is None:
        raise ConfigurationError(
            f"Configuration file is empty: {config_path}\n"
            f"All configuration values must be explicitly specified."
        )

    if not isinstance(config, dict):
        raise ConfigurationError(
            f"Configuration must be a YAML mapping, got {type(config).__name__}"
        )

    return config


def get_config_path() -> Path:
    """
    Determine configuration file path.

    Uses CONFIG_PATH environment variable if set, otherwise defaults
    to ./config.yaml relative to working directory.
    """
    config_path_str = os.environ.get("CONFIG_PATH")
    if config_path_str is None:
        config_path_str = "config.yaml"
    return Path(config_path_str)


@lru_cache
def get_settings() -> Settings:
    """
    Load and validate configuration.

    Cached to ensure a single instance per process.

    Raises:
        ConfigurationError: Config file missing, invalid, or failing validation
    """
    config_path = get_config_path()
    yaml_config = load_yaml_config(config_path)

    try:
        return Settings(**yaml_config)
    except ValidationError as e:
        raise ConfigurationError(
            f"Configuration validation failed: {e}\n"
            f"All configuration values must be explicitly specified.\n"
            f"No default values are allowed."
        ) from e


def clear_settings_cache() -> None:
    """Clear the settings cache. Used in testing."""
    get_settings.cache_clear()


# Keywords that indicate sensitive data (case-insensitive)
SENSITIVE_KEYWORDS: frozenset[str] = frozenset(
    {
        "key",
        "secret",
        "pass",
        "password",
        "token",
        "credential",
        "auth",
        "private",
    }
)

_SENSITIVE_PATTERN = re.compile(
    r"(" + "|".join(re.escape(kw) for kw in SENSITIVE_KEYWORDS) + r")",
    re.IGNORECASE,
)

REDACTION_MARKER: str = "[REDACTED]"


def is_sensitive_key(key: str) -> bool:
    """Check if a configuration key contains sensitive keywords."""
    return bool(_SENSITIVE_PATTERN.search(key))


def redact_sensitive_values(
    data: dict[str, Any],
    redaction_marker: str,
) -> dict[str, Any]:
    """
    Recursively redact sensitive values from configuration.

    Args:
        data: Configuration dictionary
        redaction_marker: String to replace sensitive values

    Returns:
        New dictionary with sensitive values redacted
    """
    result: dict[str, Any] = {}

    for key, value in data.items():
        if is_sensitive_key(key):
            result[key] = redaction_marker
        elif isinstance(value, dict):
            result[key] = redact_sensitive_values(value, redaction_marker)
        elif isinstance(value, list):
            result[key] = [
                redact_sensitive_values(item, redaction_marker) if isinstance(item, dict) else item
                for item in value
            ]
        else:
            result[key] = value

    return result


def get_safe_config() -> dict[str, Any]:
    """
    Get configuration with sensitive values redacted.

    Returns:
        Configuration dictionary safe for logging and display
    """
    settings = get_settings()
    raw_config = settings.model_dump()
    return redact_sensitive_values(raw_config, REDACTION_MARKER)
