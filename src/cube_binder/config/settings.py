"""
Configuration loading for the cube binder.

This module provides utilities for loading and validating configuration
settings from files and environment variables.
"""

import logging
import os
from pathlib import Path

from .models import BinderConfig

logger = logging.getLogger(__name__)

ENV_VARS = {
    "CUBE_BINDER_BLOB_ROOT": "paths.blob_root",
    "CUBE_BINDER_CUBE_ROOT": "paths.cube_root",
    "CUBE_BINDER_TEMP_DIR": "paths.temp_dir",
    "CUBE_BINDER_TAXONOMY_DIR": "paths.taxonomy_dir",
    "CUBE_BINDER_LANGUAGES": "languages.supported",
    "CUBE_BINDER_PREVIEW_SAMPLE_SIZE": "validation.preview_sample_size",
    "CUBE_BINDER_MISMATCH_SAMPLE_LIMIT": "validation.mismatch_sample_limit",
    "CUBE_BINDER_STORAGE_TIMEOUT": "validation.storage_timeout_seconds",
    "CUBE_BINDER_TAXONOMY_TIMEOUT": "validation.taxonomy_timeout_seconds",
    "CUBE_BINDER_DATABASE_URL": "database.url",
    "CUBE_BINDER_ECHO_SQL": "database.echo_sql",
    "CUBE_BINDER_LOG_LEVEL": "logging.level",
}


def load_config(
    config_path: str | Path | None = None, config_name: str = "cube_binder.json"
) -> BinderConfig:
    """
    Load configuration from file with path resolution.

    Args:
        config_path: Explicit path to config file or directory containing config
        config_name: Name of config file (default: "cube_binder.json")

    Returns:
        BinderConfig: Loaded and validated configuration

    Raises:
        FileNotFoundError: If no configuration file is found
        ValueError: If configuration is invalid
    """
    if config_path is None:
        search_paths = [
            Path.cwd() / config_name,
            Path.cwd() / "config" / config_name,
        ]

        for path in search_paths:
            if path.exists():
                config_path = path
                break
        else:
            raise FileNotFoundError(
                f"Configuration file '{config_name}' not found in any of: "
                f"{[str(p) for p in search_paths]}"
            )

    config_path = Path(config_path)

    if config_path.is_dir():
        config_path = config_path / config_name

    return BinderConfig.from_file(config_path)


def _env_value(dotted: str, raw: str):
    if dotted == "languages.supported":
        return [part for part in raw.split(",") if part.strip()]
    if dotted == "database.echo_sql":
        return raw.strip().lower() in {"1", "true", "yes", "on"}
    return raw


def get_config_from_env() -> BinderConfig | None:
    """
    Try to load configuration from environment variables.

    Returns:
        BinderConfig if environment variables are set, None otherwise
    """
    config_file_env = os.getenv("CUBE_BINDER_CONFIG_FILE")
    if config_file_env:
        return load_config(config_file_env)

    env_values = {key: os.getenv(key) for key in ENV_VARS}
    if not any(env_values.values()):
        return None

    config_data: dict[str, dict] = {}
    for env_key, dotted in ENV_VARS.items():
        raw = env_values[env_key]
        if raw is None or raw == "":
            continue
        section, field = dotted.split(".", 1)
        config_data.setdefault(section, {})[field] = _env_value(dotted, raw)

    try:
        return BinderConfig(**config_data)
    except (ValueError, TypeError) as e:
        raise ValueError(f"Invalid environment variable configuration: {e}")


def load_config_with_fallback(config_path: str | Path | None = None) -> BinderConfig:
    """
    Load configuration with fallback to environment variables and defaults.

    Priority order:
    1. Explicit config file path
    2. Environment variable CUBE_BINDER_CONFIG_FILE
    3. Individual CUBE_BINDER_* environment variables
    4. Default locations (cube_binder.json, config/cube_binder.json)
    5. Built-in defaults
    """
    if config_path:
        try:
            return load_config(config_path)
        except FileNotFoundError:
            logger.warning(f"Config file {config_path} not found, falling back")

    env_config = get_config_from_env()
    if env_config:
        return env_config

    try:
        return load_config()
    except FileNotFoundError:
        logger.info("No configuration file found, using built-in defaults")

    return BinderConfig()
