"""API models for the oaid daemon."""

from .base import CamelCaseModel
from .responses import CacheStatusResponse
from .responses import EntityEventResponse
from .responses import RebuildResponse
from .responses import StatusResponse

__all__ = [
    "CamelCaseModel",
    "StatusResponse",
    "CacheStatusResponse",
    "RebuildResponse",
    "EntityEventResponse",
]
