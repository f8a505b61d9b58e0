"""Configuration management utilities."""

import logging
import re
from pathlib import Path
from typing import Any, Dict

import yaml

logger = logging.getLogger(__name__)

_CAMEL_BOUNDARY = re.compile(r'(?<=[a-z0-9])([A-Z])')


def load_config(config_path) -> Dict[str, Any]:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to YAML configuration file (str or Path)

    Returns:
        Dictionary containing configuration

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If config file is malformed
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    logger.info(f"Loading configuration from {config_path}")

    with open(config_path, 'r') as f:
        config = yaml.safe_load(f) or {}

    logger.debug(f"Loaded config keys: {list(config.keys())}")

    return config


def camel_to_snake(key: str) -> str:
    """Convert 'maxTimeDrift' to 'max_time_drift'; snake_case passes through."""
    if not isinstance(key, str):
        return key
    return _CAMEL_BOUNDARY.sub(r'_\1', key).lower()


def normalize_keys(data: Dict[str, Any], depth: int = 1) -> Dict[str, Any]:
    """
    Convert camelCase keys to snake_case.

    Example:
        normalize_keys({'synchronization': {'maxTimeDrift': 500}}, depth=2)
        -> {'synchronization': {'max_time_drift': 500}}

    Args:
        data: Mapping to convert
        depth: Number of nesting levels to convert (1 = top level only)

    Returns:
        New dictionary with converted keys
    """
    result = {}
    for key, value in data.items():
        if depth > 1 and isinstance(value, dict):
            value = normalize_keys(value, depth - 1)
        result[camel_to_snake(key)] = value
    return result
