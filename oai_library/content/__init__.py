"""Content repository collaborators.

Protocols for the entity store and set source, plus an in-memory
implementation that can be loaded from YAML.
"""

from .interfaces import Entity
from .interfaces import EntityStore
from .interfaces import SetPage
from .interfaces import SetSource
from .interfaces import SetSourceError
from .memory import ContentEntity
from .memory import ContentView
from .memory import InMemoryContentRepository
from .memory import load_content_repository
from .memory import parse_timestamp

__all__ = [
    "Entity",
    "EntityStore",
    "SetPage",
    "SetSource",
    "SetSourceError",
    "ContentEntity",
    "ContentView",
    "InMemoryContentRepository",
    "load_content_repository",
    "parse_timestamp",
]
