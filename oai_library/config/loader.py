"""Configuration loading for the oaid daemon.

This module handles loading repository configuration from YAML files
and environment variables.

Contract:
- Inputs: Config file paths, environment variables
- Outputs: OaiSettings objects
- Side Effects: Creates default config file if missing
"""

import logging
import os
from pathlib import Path

import yaml

from ..storage.paths import get_config_dir
from .settings import OaiSettings

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = """# oaid repository configuration
# Environment variables prefixed with OAID_ override these values
# (e.g. OAID_PORT=9000, OAID_SUPPORT_SETS=false)

# Server settings
host: "127.0.0.1"
port: 8430
log_level: "info"
workers: 1

# Identify
repository_name: "OAI-PMH Repository"
repository_email: "admin@example.org"
repository_path: "/oai/request"

# Seconds until a resumption token expires
expiration: 3600

# Expose configured views as OAI sets
support_sets: true

# Datestamp granularity: "YYYY-MM-DD" or "YYYY-MM-DDThh:mm:ssZ"
granularity: "YYYY-MM-DD"

# Page size used when no set defines a page limit
default_page_size: 100

# metadataPrefix -> mapping plugin id (dublin_core, mods); empty value disables a prefix
metadata_map_plugins:
  oai_dc: dublin_core

# Views exposed as sets
# sets:
#   - set_id: "articles"
#     label: "Published articles"
#     display_reference: "articles:default"
#     page_limit: 50

# YAML file with the bundled content repository (entities and views)
# content_path: "./content.yaml"

# "liberal": rebuild all sets on any content change
# "conservative": only remove records when content is deleted
cache_technique: "liberal"

# Remove memberships for items that dropped out of a set's source query
reconcile_memberships: false

# Background synchronization
scheduler_enabled: true
sync_interval: "1h"
queue_poll_seconds: 5
"""


def get_config_path() -> Path:
    """Get path to config file.

    Returns:
        Path to oaid.yaml in config directory

    Example:
        >>> config_path = get_config_path()
        >>> assert config_path.name == "oaid.yaml"
    """
    return get_config_dir() / "oaid.yaml"


def create_default_config(config_path: Path | None = None) -> Path:
    """Create default config file if it doesn't exist.

    Args:
        config_path: Optional target path (default: oaid.yaml in config dir)

    Returns:
        Path of the config file
    """
    if config_path is None:
        config_path = get_config_path()

    if config_path.exists():
        logger.debug(f"Config file already exists: {config_path}")
        return config_path

    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(DEFAULT_CONFIG, encoding="utf-8")
    logger.info(f"Created default config: {config_path}")
    return config_path


def read_yaml_settings(config_path: Path) -> dict:
    """Read raw settings from a YAML file.

    Args:
        config_path: YAML file to read

    Returns:
        Settings dictionary (empty if the file is missing)

    Raises:
        ValueError: If the file is not valid YAML or not a mapping
    """
    if not config_path.exists():
        return {}

    try:
        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in configuration file {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ValueError(f"Configuration file {config_path} must contain a mapping")
    return data


def load_config(config_path: Path | None = None) -> OaiSettings:
    """Load repository configuration from YAML and environment.

    Environment variables take precedence over YAML settings.
    Variables should be prefixed with OAID_ (e.g., OAID_PORT).

    Args:
        config_path: Optional config file path (default: oaid.yaml in config dir)

    Returns:
        Validated settings

    Example:
        >>> settings = load_config()
        >>> assert isinstance(settings, OaiSettings)
        >>> assert settings.port > 0
    """
    if config_path is None:
        config_path = get_config_path()
        create_default_config(config_path)

    yaml_settings = {}
    try:
        yaml_settings = read_yaml_settings(config_path)
        logger.debug(f"Loaded config from {config_path}")
    except ValueError as e:
        logger.warning(f"Failed to load config from {config_path}: {e}")
        logger.info("Using default settings and environment variables")

    # Only pass YAML values that don't have corresponding env vars
    filtered_yaml = {}
    for key, value in yaml_settings.items():
        env_key = f"OAID_{key.upper()}"
        if env_key not in os.environ:
            filtered_yaml[key] = value

    settings = OaiSettings(**filtered_yaml)

    logger.info(
        f"Configuration loaded: host={settings.host}, port={settings.port}, "
        f"path={settings.repository_path}, sets={len(settings.sets)}"
    )

    return settings
