"""OAI-PMH endpoint.

Architecture: This router contains ONLY HTTP handling.
All protocol logic is in oai_library.protocol.
"""

import asyncio
import logging
from typing import Annotated
from urllib.parse import parse_qs

from fastapi import APIRouter
from fastapi import Depends
from fastapi import HTTPException
from fastapi import Request
from fastapi import Response

from oai_library.cache import CacheStoreUnavailable
from oai_library.protocol import XML_MEDIA_TYPE
from oai_library.protocol import OaiRequest
from oai_library.protocol import ProtocolEngine

from ..dependencies import get_engine

logger = logging.getLogger(__name__)

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


async def _collect_params(request: Request) -> dict[str, list[str]]:
    params = parse_qs(request.url.query, keep_blank_values=True)
    if request.method == "POST":
        content_type = request.headers.get("content-type", "")
        if content_type.split(";", 1)[0].strip().lower() == FORM_CONTENT_TYPE:
            body = (await request.body()).decode("utf-8", errors="replace")
            for name, values in parse_qs(body, keep_blank_values=True).items():
                params.setdefault(name, []).extend(values)
    return params


def create_oai_router(repository_path: str) -> APIRouter:
    """Create the router serving the OAI-PMH endpoint.

    Args:
        repository_path: Normalized endpoint path (e.g. "/oai/request")

    Returns:
        Router answering GET and POST on ``repository_path``
    """
    router = APIRouter(tags=["oai-pmh"])

    @router.api_route(repository_path, methods=["GET", "POST"], response_class=Response)
    async def oai_endpoint(
        request: Request,
        engine: Annotated[ProtocolEngine, Depends(get_engine)],
    ) -> Response:
        """Answer an OAI-PMH request (always 200 unless the cache store is down)."""
        http_host = request.headers.get("host") or request.url.netloc
        oai_request = OaiRequest(
            params=await _collect_params(request),
            host=http_host,
            base_url=f"{request.url.scheme}://{http_host}{repository_path}",
        )
        try:
            body, status_code = await asyncio.to_thread(engine.handle, oai_request)
        except CacheStoreUnavailable as exc:
            logger.error(f"Cache store unavailable: {exc}", exc_info=True)
            raise HTTPException(status_code=503, detail="Cache store unavailable") from exc

        return Response(content=body, status_code=status_code, media_type=XML_MEDIA_TYPE)

    return router
