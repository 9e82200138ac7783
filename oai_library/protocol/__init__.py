"""OAI-PMH protocol engine.

This module answers harvester requests from the cache store:
- Verb and argument validation with the OAI-PMH error taxonomy
- Identifier and datestamp handling
- Pagination with resumption tokens
- XML envelope assembly
"""

from .engine import VERBS
from .engine import OaiRequest
from .engine import ProtocolEngine
from .envelope import OAI_NAMESPACE
from .envelope import XML_MEDIA_TYPE
from .errors import OaiError
from .errors import OaiErrorCode
from .identifiers import build_identifier
from .identifiers import parse_identifier
from .identifiers import request_host
from .pagination import ListingPage
from .pagination import ListingState
from .pagination import Paginator

__all__ = [
    "VERBS",
    "OaiRequest",
    "ProtocolEngine",
    "OAI_NAMESPACE",
    "XML_MEDIA_TYPE",
    "OaiError",
    "OaiErrorCode",
    "build_identifier",
    "parse_identifier",
    "request_host",
    "ListingPage",
    "ListingState",
    "Paginator",
]
