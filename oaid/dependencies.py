"""Shared dependency factories for FastAPI endpoints.

Services are built once by the app factory and kept on ``app.state``;
these factories hand them to the routers.
"""

from fastapi import Request

from oai_library.protocol import ProtocolEngine

from .services import RepositoryServices


def get_services(request: Request) -> RepositoryServices:
    return request.app.state.services


def get_engine(request: Request) -> ProtocolEngine:
    """Get the protocol engine.

    Returns:
        ProtocolEngine bound to the app's cache store
    """
    return get_services(request).engine