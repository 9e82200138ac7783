"""Configuration for the oaid repository endpoint."""

from .loader import create_default_config
from .loader import get_config_path
from .loader import load_config
from .settings import DAY_GRANULARITY
from .settings import SECOND_GRANULARITY
from .settings import OaiSettings
from .settings import SetSourceConfig

__all__ = [
    "OaiSettings",
    "SetSourceConfig",
    "DAY_GRANULARITY",
    "SECOND_GRANULARITY",
    "load_config",
    "get_config_path",
    "create_default_config",
]
