"""Main FastAPI application for the oaid daemon.

This module creates and configures the FastAPI application that exposes
the oai_library protocol engine as an OAI-PMH endpoint, plus a small
management API for cache status and rebuilds.
"""

import logging
from collections.abc import Callable
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI

from oai_library import __version__
from oai_library.config import OaiSettings
from oai_library.config import load_config
from oai_library.content import InMemoryContentRepository

from .routers import cache_router
from .routers import create_oai_router
from .routers import status_router
from .services import SyncScheduler
from .services import build_services

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager.

    Starts background synchronization on startup and releases the cache
    store on shutdown.

    Args:
        app: FastAPI application instance
    """
    services = app.state.services
    settings = services.settings
    logger.info(f"Starting oaid on {settings.host}:{settings.port}, endpoint {settings.repository_path}")

    scheduler = None
    if settings.scheduler_enabled:
        try:
            scheduler = SyncScheduler(
                synchronizer=services.synchronizer,
                sync_interval=settings.sync_interval,
                poll_seconds=settings.queue_poll_seconds,
            )
            await scheduler.start()
            app.state.sync_scheduler = scheduler
        except Exception as e:
            logger.error(f"Failed to start sync scheduler: {e}")
            # Requests still prime the cache inline
            scheduler = None

    yield

    logger.info("Shutting down oaid")
    if scheduler is not None:
        try:
            await scheduler.stop()
        except Exception as e:
            logger.error(f"Failed to stop sync scheduler: {e}")
    services.close()


def create_app(
    settings: OaiSettings | None = None,
    content: InMemoryContentRepository | None = None,
    clock: Callable[[], datetime] | None = None,
) -> FastAPI:
    """Create the oaid application.

    Args:
        settings: Repository settings (default: loaded from oaid.yaml and environment)
        content: Content repository (default: loaded from ``content_path``)
        clock: Time source for tests

    Returns:
        Configured FastAPI application

    Example:
        >>> app = create_app(OaiSettings(database_path=":memory:", scheduler_enabled=False))
        >>> app.state.services.settings.repository_path
        '/oai/request'
    """
    if settings is None:
        settings = load_config()
    logging.getLogger().setLevel(settings.log_level.upper())

    app = FastAPI(
        title="oaid",
        description="OAI-PMH 2.0 repository endpoint backed by a synchronized cache",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.services = build_services(settings, content=content, clock=clock)

    app.include_router(create_oai_router(settings.repository_path))
    app.include_router(status_router)
    app.include_router(cache_router)

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint.

        Returns:
            Welcome message with API information
        """
        return {
            "name": "oaid",
            "version": __version__,
            "description": "OAI-PMH repository endpoint",
            "oai": settings.repository_path,
            "docs": "/docs",
            "openapi": "/openapi.json",
        }

    return app
