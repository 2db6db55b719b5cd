#!/usr/bin/env python3
"""
Seed Pipeline Configuration Parser

Parses YAML configuration files and exports values as environment variables
or shell-compatible format for use by bash wrappers around the stage scripts.

Usage:
    # Get single value
    python config_parser.py config.yaml --get seed.overhang

    # Export all as shell variables
    python config_parser.py config.yaml --export

    # Validate configuration
    python config_parser.py config.yaml --validate

    # As Python module
    from utils.config_parser import load_config, seed_options_from_config
    config = load_config("config.yaml")
    options = seed_options_from_config(config)
"""

import argparse
import json
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from seedpipe.seed import DEFAULT_MIN_SEGMENT_LENGTH, DEFAULT_OVERHANG, SeedOptions

DEFAULT_MIN_BITSCORE = 200.0
WORK_DIR_ENV = "SEED_WORK_DIR"

SEED_FLAGS = ("all_segments", "ungapped_only", "skip_start_stop_check")


def load_config(config_path: str) -> Dict[str, Any]:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Dictionary containing configuration values

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML parsing fails
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(path, 'r') as f:
        config = yaml.safe_load(f)

    if config is None:
        return {}

    return config


def get_nested(config: Dict[str, Any], key_path: str, default: Any = None) -> Any:
    """
    Get a nested value from config using dot notation.

    Args:
        config: Configuration dictionary
        key_path: Dot-separated path (e.g., "seed.overhang")
        default: Default value if key not found

    Returns:
        Value at the specified path, or default if not found

    Examples:
        >>> config = {"seed": {"overhang": 100}}
        >>> get_nested(config, "seed.overhang")
        100
        >>> get_nested(config, "seed.missing", "default")
        'default'
    """
    keys = key_path.split('.')
    value = config

    for key in keys:
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return default

    return value


def flatten_config(config: Dict[str, Any], prefix: str = "") -> Dict[str, str]:
    """
    Flatten nested config into flat dictionary with dot-notation keys.

    Examples:
        >>> flatten_config({"seed": {"ungapped_only": False}})
        {'seed.ungapped_only': 'false'}
    """
    flat = {}

    for key, value in config.items():
        full_key = f"{prefix}.{key}" if prefix else key

        if isinstance(value, dict):
            flat.update(flatten_config(value, full_key))
        else:
            # Shell-style booleans and empty strings for null
            if value is None:
                flat[full_key] = ""
            elif isinstance(value, bool):
                flat[full_key] = "true" if value else "false"
            else:
                flat[full_key] = str(value)

    return flat


def to_shell_var_name(key_path: str) -> str:
    """
    Convert dot-notation key to shell variable name.

    Examples:
        >>> to_shell_var_name("seed.min_segment_length")
        'SEEDPIPE_SEED_MIN_SEGMENT_LENGTH'
        >>> to_shell_var_name("paths.work_dir")
        'SEEDPIPE_PATHS_WORK_DIR'
    """
    return "SEEDPIPE_" + key_path.upper().replace(".", "_").replace("-", "_")


def export_as_shell(config: Dict[str, Any]) -> str:
    """Export config as ``export NAME='value'`` lines, sorted by key."""
    flat = flatten_config(config)
    lines = []

    for key, value in sorted(flat.items()):
        var_name = to_shell_var_name(key)
        escaped_value = str(value).replace("'", "'\"'\"'")
        lines.append(f"export {var_name}='{escaped_value}'")

    return "\n".join(lines)


def _check_int(config: Dict[str, Any], key_path: str, default: int, minimum: int,
               errors: List[str]) -> None:
    value = get_nested(config, key_path, default)
    if isinstance(value, bool):
        errors.append(f"{key_path} must be an integer, got {value}")
        return
    try:
        if int(value) < minimum:
            errors.append(f"{key_path} must be >= {minimum}, got {value}")
    except (ValueError, TypeError):
        errors.append(f"{key_path} must be an integer, got {value}")


def validate_config(config: Dict[str, Any]) -> Tuple[bool, List[str]]:
    """
    Validate configuration values.

    Args:
        config: Configuration dictionary

    Returns:
        Tuple of (is_valid, list of error messages)
    """
    errors: List[str] = []

    _check_int(config, "seed.overhang", DEFAULT_OVERHANG, 1, errors)
    _check_int(config, "seed.min_segment_length", DEFAULT_MIN_SEGMENT_LENGTH, 1, errors)
    _check_int(config, "resources.threads", 1, 1, errors)

    for flag in SEED_FLAGS:
        value = get_nested(config, f"seed.{flag}", False)
        if not isinstance(value, bool):
            errors.append(f"seed.{flag} must be true or false, got {value}")

    min_bitscore = get_nested(config, "blastn.min_bitscore", DEFAULT_MIN_BITSCORE)
    try:
        if float(min_bitscore) < 0:
            errors.append(f"blastn.min_bitscore must be >= 0, got {min_bitscore}")
    except (ValueError, TypeError):
        errors.append(f"blastn.min_bitscore must be a number, got {min_bitscore}")

    work_dir = get_nested(config, "paths.work_dir") or os.environ.get(WORK_DIR_ENV)
    if not work_dir or work_dir == "/path/to/your/seed_project":
        errors.append(f"Missing or placeholder: Working directory (paths.work_dir or ${WORK_DIR_ENV})")

    return len(errors) == 0, errors


def seed_options_from_config(config: Dict[str, Any]) -> SeedOptions:
    """
    Build SeedOptions from the ``seed`` section, falling back to defaults.

    Examples:
        >>> seed_options_from_config({"seed": {"overhang": 50}}).terminal_floor
        60.0
    """
    return SeedOptions(
        overhang=int(get_nested(config, "seed.overhang", DEFAULT_OVERHANG)),
        min_segment_length=int(get_nested(config, "seed.min_segment_length",
                                          DEFAULT_MIN_SEGMENT_LENGTH)),
        all_segments=bool(get_nested(config, "seed.all_segments", False)),
        ungapped_only=bool(get_nested(config, "seed.ungapped_only", False)),
        skip_start_stop_check=bool(get_nested(config, "seed.skip_start_stop_check", False)),
    )


def work_dir_from_config(config: Dict[str, Any]) -> Optional[Path]:
    """``paths.work_dir``, else ``$SEED_WORK_DIR``, else None."""
    value = get_nested(config, "paths.work_dir") or os.environ.get(WORK_DIR_ENV)
    return Path(value) if value else None


def print_config_summary(config: Dict[str, Any]) -> None:
    """Print a human-readable config summary."""
    print("=" * 60)
    print("Seed Pipeline Configuration Summary")
    print("=" * 60)

    sections = [
        ("Paths", [
            ("paths.work_dir", "Work Directory"),
            ("paths.results_dir", "Results Directory"),
        ]),
        ("Seed", [
            ("seed.overhang", "Overhang"),
            ("seed.min_segment_length", "Min Segment Length"),
            ("seed.all_segments", "Keep All Segments"),
            ("seed.ungapped_only", "Ungapped Only"),
            ("seed.skip_start_stop_check", "Skip Start/Stop Check"),
        ]),
        ("blastn", [
            ("blastn.min_bitscore", "Min Bitscore"),
        ]),
        ("Resources", [
            ("resources.threads", "Threads"),
        ]),
    ]

    for section_name, fields in sections:
        print(f"\n{section_name}:")
        for key_path, label in fields:
            value = get_nested(config, key_path, "not set")
            print(f"  {label}: {value}")

    print("\n" + "=" * 60)


def main():
    parser = argparse.ArgumentParser(
        description="Seed Pipeline Configuration Parser",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )

    parser.add_argument(
        "config",
        help="Path to YAML configuration file"
    )

    parser.add_argument(
        "--get",
        metavar="KEY",
        help="Get single value using dot notation (e.g., seed.overhang)"
    )

    parser.add_argument(
        "--export",
        action="store_true",
        help="Export all config as shell variable assignments"
    )

    parser.add_argument(
        "--validate",
        action="store_true",
        help="Validate configuration and report errors"
    )

    parser.add_argument(
        "--summary",
        action="store_true",
        help="Print configuration summary"
    )

    parser.add_argument(
        "--json",
        action="store_true",
        help="Output as JSON (for --get with complex values)"
    )

    args = parser.parse_args()

    try:
        config = load_config(args.config)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except yaml.YAMLError as e:
        print(f"Error parsing YAML: {e}", file=sys.stderr)
        sys.exit(1)

    if args.get:
        value = get_nested(config, args.get)
        if value is None:
            print(f"Key not found: {args.get}", file=sys.stderr)
            sys.exit(1)
        if args.json:
            print(json.dumps(value))
        else:
            print(value)

    elif args.export:
        print(export_as_shell(config))

    elif args.validate:
        is_valid, errors = validate_config(config)
        if is_valid:
            print("Configuration is valid!")
            sys.exit(0)
        else:
            print("Configuration errors:", file=sys.stderr)
            for error in errors:
                print(f"  - {error}", file=sys.stderr)
            sys.exit(1)

    else:
        print_config_summary(config)


if __name__ == "__main__":
    main()
