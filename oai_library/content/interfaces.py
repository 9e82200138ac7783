"""Interfaces of the content repository consumed by the cache and the protocol.

The entity store and set source are external collaborators: the synchronizer
and protocol engine only depend on these protocols, so any repository
(database, search index, remote API) can be plugged in.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol
from typing import runtime_checkable


class SetSourceError(Exception):
    """The set source could not enumerate a view."""


@runtime_checkable
class Entity(Protocol):
    """A canonical content item that can be exposed as an OAI record."""

    @property
    def entity_type(self) -> str: ...

    @property
    def entity_id(self) -> str: ...

    @property
    def changed(self) -> datetime | None:
        """Native modification timestamp, if the entity has one."""
        ...

    @property
    def created(self) -> datetime | None:
        """Native creation timestamp, if the entity has one."""
        ...

    @property
    def fields(self) -> dict[str, list[str]]:
        """Field name to values, consumed by metadata mapping plugins."""
        ...

    def is_visible(self) -> bool:
        """Whether the entity may be shown to anonymous harvesters."""
        ...


@runtime_checkable
class EntityStore(Protocol):
    """Loads canonical entities by key."""

    def load(self, entity_type: str, entity_id: str) -> Entity | None:
        """Load an entity.

        Args:
            entity_type: Entity type (e.g. "node")
            entity_id: Entity id within the type

        Returns:
            The entity, or None if it does not exist
        """
        ...


@dataclass
class SetPage:
    """One page of a set source query.

    Attributes:
        member_ids: Ordered ids of the entities on this page
        total: Total number of members across all pages
        entity_type: Entity type of the members
    """

    member_ids: list[str]
    total: int
    entity_type: str


@runtime_checkable
class SetSource(Protocol):
    """Enumerates which content belongs to a configured view."""

    def fetch_page(self, display_reference: str, offset: int, limit: int, arguments: list[str]) -> SetPage:
        """Fetch one window of a view's members.

        Args:
            display_reference: Opaque reference of the view/display
            offset: Members to skip
            limit: Maximum members to return
            arguments: Contextual arguments passed to the view

        Returns:
            The page of member ids and the total member count

        Raises:
            SetSourceError: If the view cannot be executed
        """
        ...
