"""Wiring of the library services used by the daemon and the CLI."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from oai_library.cache import CacheStore
from oai_library.config import OaiSettings
from oai_library.content import InMemoryContentRepository
from oai_library.content import load_content_repository
from oai_library.metadata import MetadataMapRegistry
from oai_library.protocol import ProtocolEngine
from oai_library.storage import get_state_dir
from oai_library.sync import CacheSynchronizer
from oai_library.sync import InMemoryTaskQueue

logger = logging.getLogger(__name__)

DATABASE_FILENAME = "oai_cache.sqlite3"


@dataclass
class RepositoryServices:
    """Everything a running repository needs, built from one settings object."""

    settings: OaiSettings
    store: CacheStore
    content: InMemoryContentRepository
    registry: MetadataMapRegistry
    task_queue: InMemoryTaskQueue
    synchronizer: CacheSynchronizer
    engine: ProtocolEngine

    def close(self) -> None:
        self.store.close()


def build_services(
    settings: OaiSettings,
    content: InMemoryContentRepository | None = None,
    clock: Callable[[], datetime] | None = None,
) -> RepositoryServices:
    """Build the cache store, content repository, synchronizer and protocol engine.

    Args:
        settings: Repository settings
        content: Content repository (default: loaded from ``content_path``, or empty)
        clock: Time source shared by the synchronizer and the engine

    Returns:
        Wired services
    """
    database_path = settings.database_path or str(get_state_dir() / DATABASE_FILENAME)
    store = CacheStore(database_path)

    if content is None:
        if settings.content_path:
            content = load_content_repository(settings.content_path)
        else:
            logger.warning("No content_path configured, serving an empty repository")
            content = InMemoryContentRepository()

    registry = MetadataMapRegistry.from_settings(settings)
    task_queue = InMemoryTaskQueue()

    clock_kwargs = {"clock": clock} if clock is not None else {}
    synchronizer = CacheSynchronizer(
        store=store,
        set_source=content,
        entity_store=content,
        settings=settings,
        task_queue=task_queue,
        **clock_kwargs,
    )
    engine = ProtocolEngine(
        store=store,
        registry=registry,
        entity_store=content,
        settings=settings,
        synchronizer=synchronizer,
        **clock_kwargs,
    )

    return RepositoryServices(
        settings=settings,
        store=store,
        content=content,
        registry=registry,
        task_queue=task_queue,
        synchronizer=synchronizer,
        engine=engine,
    )
