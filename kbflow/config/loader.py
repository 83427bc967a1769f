# kbflow/config/loader.py
"""
Layered configuration loading.

Merge strategy:
    1. Package defaults (kbflow/config/default.yaml) - always loaded
    2. User config (.kbflow/config.yaml, or an explicit path) - overrides defaults

The result is a validated KbflowConfig where every value exists.

Usage:
    from kbflow.config import load_config

    config = load_config()
    config.scheduler.max_workload  # bytes, always present
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional, Union

from kbflow.config.schema import KbflowConfig
from kbflow.core.config import ConfigNotFoundError, load_yaml, validate_config
from kbflow.core.paths import KbPaths
from kbflow.logging.logger import get_logger

logger = get_logger(__name__)

DEFAULTS_PATH = Path(__file__).parent / "default.yaml"


def deep_merge(base: dict, override: dict) -> dict:
    """
    Deep merge two dictionaries.

    Values from `override` take precedence over `base`.
    Nested dicts are merged recursively; lists are replaced entirely.

    Examples:
        >>> deep_merge({"a": 1, "b": {"c": 2, "d": 3}}, {"b": {"c": 10}})
        {'a': 1, 'b': {'c': 10, 'd': 3}}
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def load_defaults() -> dict[str, Any]:
    """Load the package default config as a raw dict."""
    return load_yaml(DEFAULTS_PATH)


def load_config(path: Optional[Union[str, Path]] = None) -> KbflowConfig:
    """
    Load the complete configuration.

    Args:
        path: Explicit user config file. It must exist when given.
              If None, {workspace}/config.yaml is used when present.

    Raises:
        ConfigNotFoundError: If an explicit path doesn't exist
        ConfigParseError: If a YAML file is invalid
        ConfigValidationError: If the merged config doesn't match the schema
    """
    data = load_defaults()

    if path is not None:
        user_path = Path(path)
        if not user_path.exists():
            raise ConfigNotFoundError("Config file not found", path=user_path)
    else:
        user_path = KbPaths.config()

    if user_path.exists():
        data = deep_merge(data, load_yaml(user_path))
        logger.debug(f"Merged user config from {user_path}")
        return validate_config(data, KbflowConfig, user_path)

    logger.debug("Using package defaults only")
    return validate_config(data, KbflowConfig, DEFAULTS_PATH)


__all__ = ["DEFAULTS_PATH", "deep_merge", "load_defaults", "load_config"]
