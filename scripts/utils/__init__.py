# Seed Pipeline Utilities
"""Common utilities for the seed alignment pipeline."""

from .config_parser import load_config, get_nested, validate_config, seed_options_from_config

__all__ = ["load_config", "get_nested", "validate_config", "seed_options_from_config"]
