"""Shared utilities for the emotion fusion engine."""

from .config_loader import load_config, normalize_keys

__all__ = [
    'load_config',
    'normalize_keys',
]
