"""Background cache synchronization for oaid.

Runs two APScheduler jobs:
- a periodic full sweep that enqueues first-page tasks for every set
- a frequent queue drain that processes pending tasks

Both run the synchronous library code in a worker thread so the event loop
keeps serving harvesters.
"""

import asyncio
import logging
import re

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from oai_library.sync import CacheSynchronizer

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "oai-cache-sweep"
DRAIN_JOB_ID = "oai-queue-drain"


def parse_interval(interval_str: str) -> int:
    """Convert interval notation to seconds.

    Args:
        interval_str: Duration string (e.g., "30m", "2h", "1d")

    Returns:
        Total seconds

    Example:
        >>> parse_interval("30m")
        1800
    """
    match = re.match(r"^(\d+)([smhd])$", interval_str)
    if not match:
        raise ValueError(f"Invalid interval format: {interval_str}")

    value = int(match.group(1))
    unit = match.group(2)
    return value * {"s": 1, "m": 60, "h": 3600, "d": 86400}[unit]


class SyncScheduler:
    """Schedules cache sweeps and queue draining."""

    def __init__(self, synchronizer: CacheSynchronizer, sync_interval: str, poll_seconds: int) -> None:
        """Initialize sync scheduler.

        Args:
            synchronizer: Synchronizer whose queue is drained
            sync_interval: Full sweep interval (e.g., "1h")
            poll_seconds: Queue drain interval in seconds
        """
        self.synchronizer = synchronizer
        self.sweep_seconds = parse_interval(sync_interval)
        self.poll_seconds = poll_seconds
        self.scheduler = AsyncIOScheduler(timezone="UTC")
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the scheduler. Idempotent."""
        if self._running:
            logger.warning("Sync scheduler already running")
            return

        self.scheduler.add_job(
            func=self.sweep,
            trigger=IntervalTrigger(seconds=self.sweep_seconds, timezone="UTC"),
            id=SWEEP_JOB_ID,
            name="OAI cache sweep",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.add_job(
            func=self.drain,
            trigger=IntervalTrigger(seconds=self.poll_seconds, timezone="UTC"),
            id=DRAIN_JOB_ID,
            name="OAI queue drain",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        self._running = True
        logger.info(f"Sync scheduler started: sweep every {self.sweep_seconds}s, drain every {self.poll_seconds}s")

    async def stop(self) -> None:
        """Stop the scheduler, letting running jobs complete."""
        if not self._running:
            logger.warning("Sync scheduler not running")
            return

        self.scheduler.shutdown(wait=True)
        self._running = False
        logger.info("Sync scheduler stopped")

    async def sweep(self) -> None:
        try:
            await asyncio.to_thread(self.synchronizer.rebuild_all, False)
        except Exception as e:
            logger.error(f"Scheduled cache sweep failed: {e}", exc_info=True)

    async def drain(self) -> None:
        try:
            processed = await asyncio.to_thread(self.synchronizer.drain)
        except Exception as e:
            logger.error(f"Queue drain failed: {e}", exc_info=True)
            return
        if processed:
            logger.info(f"Processed {processed} sync tasks")
