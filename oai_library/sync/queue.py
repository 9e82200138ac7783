"""Task queue interface and the in-process implementation."""

import logging
import queue
from typing import Protocol
from typing import runtime_checkable

from .models import SyncTask

logger = logging.getLogger(__name__)


@runtime_checkable
class TaskQueue(Protocol):
    """Transport for synchronization tasks."""

    def enqueue(self, task: SyncTask) -> None: ...

    def consume(self) -> SyncTask | None:
        """Take the next task, or None when the queue is empty."""
        ...

    def size(self) -> int: ...


class InMemoryTaskQueue:
    """FIFO queue shared by the threads of one process."""

    def __init__(self) -> None:
        self._queue: queue.Queue[SyncTask] = queue.Queue()

    def enqueue(self, task: SyncTask) -> None:
        self._queue.put(task)
        logger.debug(f"Enqueued sync task for set {task.set_id} at offset {task.page_offset}")

    def consume(self) -> SyncTask | None:
        try:
            return self._queue.get_nowait()
        except queue.Empty:
            return None

    def size(self) -> int:
        return self._queue.qsize()
