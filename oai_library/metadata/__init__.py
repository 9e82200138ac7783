"""Metadata mapping registry and bundled format plugins."""

from .dublin_core import DublinCorePlugin
from .mods import ModsPlugin
from .registry import MetadataFormat
from .registry import MetadataMapPlugin
from .registry import MetadataMapRegistry
from .registry import WrapperEnvelope

__all__ = [
    "MetadataFormat",
    "MetadataMapPlugin",
    "MetadataMapRegistry",
    "WrapperEnvelope",
    "DublinCorePlugin",
    "ModsPlugin",
]
