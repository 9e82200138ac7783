"""Path resolution for oaid storage locations.

This module provides path resolution based on the OAID_HOME environment variable,
following an XDG-like directory structure within that root.

Contract:
- Inputs: Environment variables (OAID_HOME, OAID_CONFIG_DIR, OAID_STATE_DIR, OAID_LOG_DIR)
- Outputs: Resolved Path objects
- Side Effects: Creates directories if they don't exist
"""

import os
from pathlib import Path


def get_home_dir() -> Path:
    """Get OAID_HOME from environment.

    Returns:
        Path to root directory (default: .oaid)
    """
    root = os.environ.get("OAID_HOME", ".oaid")
    return Path(root).resolve()


def _resolve_dir(default: Path, env_var: str) -> Path:
    directory = default

    env_override: str | None = os.environ.get(env_var)
    if env_override is not None:
        directory = Path(env_override).resolve()

    directory.mkdir(parents=True, exist_ok=True)
    return directory


def get_config_dir() -> Path:
    """Get configuration directory.

    Returns:
        Path to config directory ($OAID_HOME/config)
    """
    return _resolve_dir(get_home_dir() / "config", "OAID_CONFIG_DIR")


def get_state_dir() -> Path:
    """Get state directory.

    Holds the cache database and any other state the daemon persists.

    Returns:
        Path to state directory ($OAID_HOME/state)

    Example:
        >>> state_dir = get_state_dir()
        >>> assert state_dir.name == "state" or "OAID_STATE_DIR" in os.environ
    """
    return _resolve_dir(get_home_dir() / "state", "OAID_STATE_DIR")


def get_log_dir() -> Path:
    """Get log directory.

    Returns:
        Path to log directory ($OAID_HOME/logs)
    """
    return _resolve_dir(get_home_dir() / "logs", "OAID_LOG_DIR")
