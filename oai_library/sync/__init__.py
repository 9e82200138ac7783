"""Cache synchronization: task schema, task queue and synchronizer."""

from .models import PageResult
from .models import RebuildSummary
from .models import SyncTask
from .queue import InMemoryTaskQueue
from .queue import TaskQueue
from .synchronizer import CacheSynchronizer
from .synchronizer import UnknownSetError

__all__ = [
    "SyncTask",
    "PageResult",
    "RebuildSummary",
    "TaskQueue",
    "InMemoryTaskQueue",
    "CacheSynchronizer",
    "UnknownSetError",
]
