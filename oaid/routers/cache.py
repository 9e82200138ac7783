"""Thin HTTP wrapper around oai_library.sync and the cache store.

Architecture: This router contains ONLY HTTP handling.
All business logic is in oai_library.
"""

import asyncio
import logging
from typing import Annotated

from fastapi import APIRouter
from fastapi import Depends
from fastapi import HTTPException
from fastapi import Query

from oai_library.sync import UnknownSetError

from ..dependencies import get_services
from ..models import CacheStatusResponse
from ..models import EntityEventResponse
from ..models import RebuildResponse
from ..services import RepositoryServices

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/cache", tags=["cache"])


# =============================================================================
# Status Endpoints
# =============================================================================


@router.get("/status", response_model=CacheStatusResponse)
async def get_cache_status(
    services: Annotated[RepositoryServices, Depends(get_services)],
) -> CacheStatusResponse:
    """Get row counts of the cache store and the pending queue size."""
    try:
        counts = services.store.counts()
    except Exception as exc:
        logger.error(f"Failed to get cache status: {exc}")
        raise HTTPException(status_code=500, detail="Internal server error") from exc

    return CacheStatusResponse(
        records=counts.records,
        sets=counts.sets,
        memberships=counts.memberships,
        resumption_tokens=counts.tokens,
        earliest_datestamp=counts.earliest_created,
        pending_tasks=services.task_queue.size(),
        cache_technique=services.settings.cache_technique,
    )


# =============================================================================
# Rebuild Endpoints
# =============================================================================


@router.post("/rebuild", response_model=RebuildResponse)
async def rebuild_cache(
    services: Annotated[RepositoryServices, Depends(get_services)],
    wait: Annotated[bool, Query(description="Run inline instead of queueing")] = False,
) -> RebuildResponse:
    """Re-index every configured set."""
    try:
        summary = await asyncio.to_thread(services.synchronizer.rebuild_all, wait)
    except Exception as exc:
        logger.error(f"Failed to rebuild cache: {exc}")
        raise HTTPException(status_code=500, detail="Internal server error") from exc
    return RebuildResponse.from_summary(summary)


@router.post("/sets/{set_id}/rebuild", response_model=RebuildResponse)
async def rebuild_set(
    set_id: str,
    services: Annotated[RepositoryServices, Depends(get_services)],
    wait: Annotated[bool, Query(description="Run inline instead of queueing")] = False,
) -> RebuildResponse:
    """Re-index one configured set."""
    try:
        summary = await asyncio.to_thread(services.synchronizer.rebuild_set, set_id, wait)
    except UnknownSetError as exc:
        raise HTTPException(status_code=404, detail=f"Set not configured: {set_id}") from exc
    except Exception as exc:
        logger.error(f"Failed to rebuild set {set_id}: {exc}")
        raise HTTPException(status_code=500, detail="Internal server error") from exc
    return RebuildResponse.from_summary(summary)


# =============================================================================
# Content-change Events
# =============================================================================


@router.post("/entities/{entity_type}/{entity_id}/changed", response_model=EntityEventResponse)
async def entity_changed(
    entity_type: str,
    entity_id: str,
    services: Annotated[RepositoryServices, Depends(get_services)],
) -> EntityEventResponse:
    """Notify the cache that an entity was created or updated."""
    try:
        applied = await asyncio.to_thread(services.synchronizer.on_entity_changed, entity_type, entity_id)
    except Exception as exc:
        logger.error(f"Failed to handle change of {entity_type}/{entity_id}: {exc}")
        raise HTTPException(status_code=500, detail="Internal server error") from exc
    return EntityEventResponse(entity_type=entity_type, entity_id=entity_id, event="changed", applied=applied)


@router.delete("/entities/{entity_type}/{entity_id}", response_model=EntityEventResponse)
async def entity_deleted(
    entity_type: str,
    entity_id: str,
    services: Annotated[RepositoryServices, Depends(get_services)],
) -> EntityEventResponse:
    """Notify the cache that an entity was deleted."""
    try:
        applied = await asyncio.to_thread(services.synchronizer.on_entity_deleted, entity_type, entity_id)
    except Exception as exc:
        logger.error(f"Failed to handle deletion of {entity_type}/{entity_id}: {exc}")
        raise HTTPException(status_code=500, detail="Internal server error") from exc
    return EntityEventResponse(entity_type=entity_type, entity_id=entity_id, event="deleted", applied=applied)
