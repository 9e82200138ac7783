"""Services for the oaid daemon."""

from .repository import RepositoryServices
from .repository import build_services
from .sync_scheduler import SyncScheduler
from .sync_scheduler import parse_interval

__all__ = [
    "RepositoryServices",
    "build_services",
    "SyncScheduler",
    "parse_interval",
]
