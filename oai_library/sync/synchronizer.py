"""Cache synchronizer.

Keeps the Record, Set and Membership relations consistent with the set
source. Work is split into page-sized tasks that are either run inline
(cold start, ``wait`` rebuilds) or pushed through a task queue and drained
by a background worker.

Contract:
- Inputs: SyncTask values, content-change events
- Outputs: Upserted/retired rows in the cache store
- Side Effects: Enqueues follow-up page tasks
"""

import logging
import threading
import uuid
from collections import deque
from collections.abc import Callable
from datetime import UTC
from datetime import datetime

from ..cache.models import CachedRecord
from ..cache.models import CachedSet
from ..cache.store import CacheStore
from ..config.settings import OaiSettings
from ..config.settings import SetSourceConfig
from ..content.interfaces import EntityStore
from ..content.interfaces import SetSource
from .models import PageResult
from .models import RebuildSummary
from .models import SyncTask
from .queue import TaskQueue

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3


class UnknownSetError(LookupError):
    """No set source is configured under the given set id."""


def _utcnow() -> datetime:
    return datetime.now(UTC)


class CacheSynchronizer:
    """Processes synchronization tasks against the cache store.

    Tasks for different sets may run concurrently; tasks for the same set
    are serialized by a per-set lock. Each first page starts a new run of
    its set; follow-up pages of an older run are skipped, so only the
    latest run reconciles memberships.
    """

    def __init__(
        self,
        store: CacheStore,
        set_source: SetSource,
        entity_store: EntityStore,
        settings: OaiSettings,
        task_queue: TaskQueue | None = None,
        clock: Callable[[], datetime] = _utcnow,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        self.store = store
        self.set_source = set_source
        self.entity_store = entity_store
        self.settings = settings
        self.task_queue = task_queue
        self.clock = clock
        self.max_attempts = max_attempts

        self._prime_lock = threading.Lock()
        self._locks_guard = threading.Lock()
        self._set_locks: dict[str, threading.Lock] = {}
        # Latest run per set, only touched under that set's lock
        self._current_runs: dict[str, str] = {}

    def _lock_for(self, set_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._set_locks.get(set_id)
            if lock is None:
                lock = self._set_locks[set_id] = threading.Lock()
            return lock

    # --- Task construction ---

    @staticmethod
    def first_task(set_config: SetSourceConfig) -> SyncTask:
        """Build the first-page task of a new run for a configured set."""
        return SyncTask(
            set_id=set_config.set_id,
            set_entity_type=set_config.entity_type,
            set_label=set_config.label,
            display_reference=set_config.display_reference,
            page_offset=0,
            page_limit=set_config.page_limit,
            source_arguments=list(set_config.arguments),
        )

    # --- Processing ---

    def process(self, task: SyncTask) -> PageResult:
        """Process one page of a set.

        Args:
            task: Page to index

        Returns:
            Page outcome, including follow-up tasks when this was the first page

        Raises:
            Exception: Set source or entity store failures propagate so the
                task can be retried
        """
        with self._lock_for(task.set_id):
            return self._process_locked(task)

    def _process_locked(self, task: SyncTask) -> PageResult:
        current_run = self._current_runs.get(task.set_id)
        if not task.is_first_page and current_run is not None and task.run_id != current_run:
            logger.debug(
                f"Skipping page at offset {task.page_offset} of set {task.set_id}: "
                f"run {task.run_id} superseded by {current_run}"
            )
            return PageResult(set_id=task.set_id, page_offset=task.page_offset, total=task.total, superseded=True)

        page = self.set_source.fetch_page(
            task.display_reference,
            task.page_offset,
            task.page_limit,
            task.source_arguments,
        )
        total = page.total if task.is_first_page else task.total
        run_id = task.run_id or uuid.uuid4().hex
        if task.is_first_page:
            self._current_runs[task.set_id] = run_id
        result = PageResult(set_id=task.set_id, page_offset=task.page_offset, total=total)

        if total == 0:
            result.retired = self.store.remove_set(task.set_id)
            logger.info(f"Set {task.set_id} has no members, retired from cache")
            return result

        self.store.upsert_set(
            CachedSet(
                set_id=task.set_id,
                label=task.set_label,
                pager_limit=task.page_limit,
                display_reference=task.display_reference,
                entity_type=task.set_entity_type,
            )
        )

        stamp = run_id if self.settings.reconcile_memberships else None
        synced_at = self.clock()
        for member_id in page.member_ids:
            entity = self.entity_store.load(page.entity_type, member_id)
            if entity is None:
                logger.debug(f"Skipping {page.entity_type}/{member_id} in set {task.set_id}: not found")
                result.skipped += 1
                continue

            changed = entity.changed or synced_at
            created = entity.created or changed
            record = CachedRecord(
                entity_type=page.entity_type,
                entity_id=str(member_id),
                created_at=created,
                changed_at=changed,
            )
            self.store.index_member(record, task.set_id, run_id=stamp)
            result.indexed += 1

        if task.is_first_page:
            result.follow_ups = [
                task.model_copy(update={"page_offset": offset, "total": total, "run_id": run_id, "attempts": 0})
                for offset in range(task.page_offset + task.page_limit, total, task.page_limit)
            ]

        is_final_page = task.page_offset + task.page_limit >= total
        if is_final_page and self.settings.reconcile_memberships:
            result.stale_removed = self.store.delete_stale_memberships(task.set_id, run_id)
            if result.stale_removed:
                logger.info(f"Removed {result.stale_removed} stale memberships from set {task.set_id}")
                self.store.prune_empty_sets()

        logger.debug(
            f"Indexed set {task.set_id} page at offset {task.page_offset}: "
            f"{result.indexed} indexed, {result.skipped} skipped, total {total}"
        )
        return result

    def run(self, task: SyncTask) -> list[PageResult]:
        """Process a task and all of its follow-up pages inline."""
        results = []
        pending = deque([task])
        while pending:
            result = self.process(pending.popleft())
            pending.extend(result.follow_ups)
            results.append(result)
        return results

    def dispatch(self, task: SyncTask) -> None:
        """Send a task to the queue, or run it inline when no queue is configured."""
        if self.task_queue is None:
            self.run(task)
        else:
            self.task_queue.enqueue(task)

    # --- Queue worker ---

    def drain(self, max_tasks: int | None = None) -> int:
        """Consume and process queued tasks until the queue is empty.

        Failed tasks are re-enqueued until they reach ``max_attempts``.

        Args:
            max_tasks: Stop after this many tasks (default: no bound)

        Returns:
            Number of tasks consumed
        """
        if self.task_queue is None:
            return 0

        consumed = 0
        while max_tasks is None or consumed < max_tasks:
            task = self.task_queue.consume()
            if task is None:
                break
            consumed += 1
            try:
                result = self.process(task)
            except Exception as e:
                attempts = task.attempts + 1
                if attempts < self.max_attempts:
                    logger.warning(
                        f"Sync task for set {task.set_id} at offset {task.page_offset} failed "
                        f"(attempt {attempts}/{self.max_attempts}): {e}"
                    )
                    self.task_queue.enqueue(task.model_copy(update={"attempts": attempts}))
                else:
                    logger.error(
                        f"Dropping sync task for set {task.set_id} at offset {task.page_offset} "
                        f"after {attempts} attempts: {e}",
                        exc_info=True,
                    )
                continue
            for follow_up in result.follow_ups:
                self.task_queue.enqueue(follow_up)
        return consumed

    # --- Rebuilds ---

    def rebuild_all(self, wait: bool = False) -> RebuildSummary:
        """Re-index every configured set.

        Sets whose display reference is no longer configured are retired first.

        Args:
            wait: Run all pages inline instead of enqueueing them

        Returns:
            Summary of the sweep
        """
        configured = {s.display_reference for s in self.settings.sets}
        summary = RebuildSummary(queued=not wait and self.task_queue is not None)
        summary.retired = self.store.remove_sets_not_in(configured)
        for set_id in summary.retired:
            logger.info(f"Retired set {set_id}: view no longer configured")

        for set_config in self.settings.sets:
            self._rebuild(set_config, wait, summary)

        logger.info(
            f"Cache rebuild {'queued' if summary.queued else 'complete'}: "
            f"{len(summary.sets)} sets, {len(summary.failed)} failed, {len(summary.retired)} retired"
        )
        return summary

    def rebuild_set(self, set_id: str, wait: bool = False) -> RebuildSummary:
        """Re-index one configured set.

        Raises:
            UnknownSetError: If no set source is configured with ``set_id``
        """
        set_config = self.settings.get_set_source(set_id)
        if set_config is None:
            raise UnknownSetError(set_id)

        summary = RebuildSummary(queued=not wait and self.task_queue is not None)
        self._rebuild(set_config, wait, summary)
        return summary

    def _rebuild(self, set_config: SetSourceConfig, wait: bool, summary: RebuildSummary) -> None:
        task = self.first_task(set_config)
        summary.sets.append(set_config.set_id)
        if not wait and self.task_queue is not None:
            self.task_queue.enqueue(task)
            return
        try:
            self.run(task)
        except Exception as e:
            logger.error(f"Rebuild of set {set_config.set_id} failed: {e}", exc_info=True)
            summary.failed[set_config.set_id] = str(e)

    def ensure_primed(self) -> bool:
        """Run a blocking full rebuild if the cache holds no records.

        Only one caller rebuilds; concurrent callers wait on the lock and
        then see the primed cache.

        Returns:
            True if this call performed the rebuild
        """
        if self.store.count_records() > 0:
            return False
        with self._prime_lock:
            if self.store.count_records() > 0:
                return False
            logger.info("Cache is empty, running synchronous rebuild")
            self.rebuild_all(wait=True)
            return True

    # --- Content-change events ---

    def on_entity_changed(self, entity_type: str, entity_id: str) -> bool:
        """React to a created or updated entity.

        Returns:
            True if a sweep was triggered
        """
        if self.settings.cache_technique == "liberal":
            logger.info(f"{entity_type}/{entity_id} changed, re-sweeping all sets")
            for set_config in self.settings.sets:
                self.dispatch(self.first_task(set_config))
            return True
        logger.debug(f"{entity_type}/{entity_id} changed, waiting for next sweep (conservative)")
        return False

    def on_entity_deleted(self, entity_type: str, entity_id: str) -> bool:
        """Remove a deleted entity's record and memberships, then retire empty sets.

        Returns:
            True if a cached record was removed
        """
        removed = self.store.remove_record(entity_type, entity_id)
        retired = self.store.prune_empty_sets()
        if removed:
            logger.info(f"Removed {entity_type}/{entity_id} from cache")
        for set_id in retired:
            logger.info(f"Retired set {set_id}: no members left")
        return removed
