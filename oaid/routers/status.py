"""Status router for oaid API.

Provides health check and status information.
"""

import logging
import time
from typing import Annotated

from fastapi import APIRouter
from fastapi import Depends

from oai_library import __version__

from ..dependencies import get_services
from ..models import StatusResponse
from ..services import RepositoryServices

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["status"])

# Track daemon start time for uptime calculation
_start_time = time.time()


@router.get("/status", response_model=StatusResponse)
async def get_status(
    services: Annotated[RepositoryServices, Depends(get_services)],
) -> StatusResponse:
    """Get daemon status.

    Returns:
        Daemon status information including version, uptime, and cache size
    """
    uptime = time.time() - _start_time
    counts = services.store.counts()

    return StatusResponse(
        status="running",
        version=__version__,
        uptime_seconds=uptime,
        repository_name=services.settings.repository_name,
        repository_path=services.settings.repository_path,
        records=counts.records,
        sets=counts.sets,
    )


@router.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint.

    Returns:
        Simple health status
    """
    return {"status": "healthy"}
