"""Metadata mapping registry.

Binds metadataPrefix values to mapping plugins. A plugin describes its
format, declares the wrapper element placed under ``<metadata>``, and
transforms an entity into a serialized XML fragment.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from dataclasses import field
from dataclasses import replace
from typing import Protocol
from typing import runtime_checkable

from ..config.settings import OaiSettings
from ..content.interfaces import Entity

logger = logging.getLogger(__name__)

XSI_NAMESPACE = "http://www.w3.org/2001/XMLSchema-instance"


@dataclass(frozen=True)
class MetadataFormat:
    """A format as listed by ListMetadataFormats."""

    prefix: str
    schema_url: str
    namespace_url: str


@dataclass(frozen=True)
class WrapperEnvelope:
    """Root element of a metadata fragment.

    Attributes:
        tag: Qualified tag name (e.g. "oai_dc:dc")
        namespaces: Namespace prefix to URI declarations
        attributes: Qualified attribute name to value (e.g. xsi:schemaLocation)
    """

    tag: str
    namespaces: dict[str, str] = field(default_factory=dict)
    attributes: dict[str, str] = field(default_factory=dict)


@runtime_checkable
class MetadataMapPlugin(Protocol):
    """Maps a canonical entity to one metadata format."""

    plugin_id: str

    def describe_format(self) -> MetadataFormat: ...

    def wrapper_envelope(self) -> WrapperEnvelope: ...

    def transform(self, entity: Entity) -> str:
        """Serialize the entity's metadata as the wrapper's child elements.

        Returns an empty string when nothing can be mapped.
        """
        ...


PluginFactory = Callable[[OaiSettings], MetadataMapPlugin]


def _builtin_catalogue() -> dict[str, PluginFactory]:
    from .dublin_core import DublinCorePlugin
    from .mods import ModsPlugin

    return {
        DublinCorePlugin.plugin_id: lambda settings: DublinCorePlugin(),
        ModsPlugin.plugin_id: lambda settings: ModsPlugin(field_map=settings.mods_field_map),
    }


class MetadataMapRegistry:
    """Resolves metadata prefixes to plugins at request time."""

    def __init__(self, plugins: dict[str, MetadataMapPlugin] | None = None) -> None:
        self._plugins: dict[str, MetadataMapPlugin] = dict(plugins or {})

    @classmethod
    def from_settings(
        cls,
        settings: OaiSettings,
        catalogue: dict[str, PluginFactory] | None = None,
    ) -> "MetadataMapRegistry":
        """Build a registry from ``metadata_map_plugins``.

        Args:
            settings: Repository settings
            catalogue: Plugin id to factory (default: bundled plugins)

        Returns:
            Registry with one plugin per enabled prefix

        Raises:
            ValueError: If a prefix references an unknown plugin id
        """
        catalogue = catalogue if catalogue is not None else _builtin_catalogue()
        plugins: dict[str, MetadataMapPlugin] = {}
        for prefix in settings.enabled_metadata_prefixes():
            plugin_id = settings.metadata_map_plugins[prefix]
            factory = catalogue.get(plugin_id)
            if factory is None:
                raise ValueError(f"Unknown metadata map plugin '{plugin_id}' for prefix '{prefix}'")
            plugins[prefix] = factory(settings)
            logger.debug(f"Bound metadata prefix {prefix} to plugin {plugin_id}")
        return cls(plugins)

    def register(self, prefix: str, plugin: MetadataMapPlugin) -> None:
        self._plugins[prefix] = plugin

    def get(self, prefix: str | None) -> MetadataMapPlugin | None:
        if not prefix:
            return None
        return self._plugins.get(prefix)

    def prefixes(self) -> list[str]:
        return list(self._plugins)

    def formats(self) -> list[MetadataFormat]:
        """Formats of all bound plugins, reported under their bound prefix."""
        return [replace(plugin.describe_format(), prefix=prefix) for prefix, plugin in self._plugins.items()]

    def __contains__(self, prefix: object) -> bool:
        return prefix in self._plugins
