# kbflow/core/config.py
"""
Centralized configuration file loading for kbflow.

This module provides a SINGLE way to read configuration files. The schema
lives in kbflow.config.schema; layering (defaults + user overrides) lives in
kbflow.config.loader. All low-level reading and validation happens here.

Usage:
    from kbflow.core.config import load_yaml, validate_config, ConfigError

    data = load_yaml("config.yaml")
    config = validate_config(data, KbflowConfig, path)
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional, Type, TypeVar, Union

import yaml

from kbflow.logging.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


# =============================================================================
# Errors
# =============================================================================


class ConfigError(Exception):
    """Base error for configuration issues."""

    def __init__(self, message: str, path: Optional[Path] = None):
        self.path = path
        if path:
            message = f"{message} (file: {path})"
        super().__init__(message)


class ConfigNotFoundError(ConfigError):
    """Raised when a config file doesn't exist."""

    pass


class ConfigParseError(ConfigError):
    """Raised when YAML parsing fails."""

    pass


class ConfigValidationError(ConfigError):
    """Raised when config doesn't match schema."""

    pass


# =============================================================================
# Loading
# =============================================================================


def load_yaml(path: Union[str, Path]) -> Dict[str, Any]:
    """
    Load a YAML file and return as dictionary.

    Raises:
        ConfigNotFoundError: If file doesn't exist
        ConfigParseError: If YAML is invalid or the root is not a mapping
    """
    p = Path(path)

    if not p.exists():
        raise ConfigNotFoundError("Config file not found", path=p)

    if p.is_dir():
        raise ConfigError("Config path is a directory, not a file", path=p)

    try:
        with p.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigParseError(f"Invalid YAML syntax: {e}", path=p) from e
    except OSError as e:
        raise ConfigParseError(f"Failed to read config: {e}", path=p) from e

    if not isinstance(data, dict):
        raise ConfigParseError("Config root must be a mapping (dict)", path=p)

    logger.debug(f"Loaded config from {p}")
    return data


def validate_config(
    data: Dict[str, Any],
    schema: Type[T],
    path: Optional[Path] = None,
) -> T:
    """Validate config data against a Pydantic schema."""
    try:
        return schema.model_validate(data)
    except Exception as e:
        raise ConfigValidationError(f"Config validation failed: {e}", path=path) from e


def save_config(data: Dict[str, Any], path: Union[str, Path]) -> Path:
    """Write a config mapping to a YAML file, creating parent directories."""
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with p.open("w", encoding="utf-8") as f:
        yaml.safe_dump(data, f, sort_keys=False)
    logger.debug(f"Saved config to {p}")
    return p


__all__ = [
    "ConfigError",
    "ConfigNotFoundError",
    "ConfigParseError",
    "ConfigValidationError",
    "load_yaml",
    "validate_config",
    "save_config",
]
