"""In-memory content repository.

Implements EntityStore and SetSource over plain Python objects, optionally
loaded from a YAML file. The daemon uses it when ``content_path`` is
configured; tests use it directly.

YAML layout:

    entities:
      - type: node
        id: "42"
        created: 2024-01-01T00:00:00Z
        changed: 2024-02-01T12:00:00Z
        published: true
        fields:
          type: article
          title: ["A title"]
    views:
      - display_reference: "articles:default"
        entity_type: node
        filters: {type: article}
        argument_field: subject
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from dataclasses import field
from datetime import UTC
from datetime import date
from datetime import datetime
from pathlib import Path

import yaml

from .interfaces import SetPage
from .interfaces import SetSourceError

logger = logging.getLogger(__name__)


def parse_timestamp(value) -> datetime | None:
    """Coerce a YAML timestamp (datetime, date, epoch seconds or ISO string) to aware UTC."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=UTC) if value.tzinfo is None else value.astimezone(UTC)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=UTC)
    if isinstance(value, int | float):
        return datetime.fromtimestamp(value, tz=UTC)
    if isinstance(value, str):
        return parse_timestamp(datetime.fromisoformat(value.replace("Z", "+00:00")))
    raise ValueError(f"Unsupported timestamp value: {value!r}")


def _normalize_fields(raw: dict | None) -> dict[str, list[str]]:
    normalized: dict[str, list[str]] = {}
    for name, value in (raw or {}).items():
        if value is None:
            normalized[name] = []
        elif isinstance(value, list):
            normalized[name] = [str(v) for v in value if v is not None]
        else:
            normalized[name] = [str(value)]
    return normalized


@dataclass
class ContentEntity:
    """A content item held by the in-memory repository."""

    entity_type: str
    entity_id: str
    fields: dict[str, list[str]] = field(default_factory=dict)
    created: datetime | None = None
    changed: datetime | None = None
    published: bool = True

    def is_visible(self) -> bool:
        return self.published

    @classmethod
    def from_dict(cls, data: dict) -> "ContentEntity":
        return cls(
            entity_type=str(data["type"]),
            entity_id=str(data["id"]),
            fields=_normalize_fields(data.get("fields")),
            created=parse_timestamp(data.get("created")),
            changed=parse_timestamp(data.get("changed")),
            published=bool(data.get("published", True)),
        )


@dataclass
class ContentView:
    """A query over entities of one type, exposed as a set.

    Attributes:
        display_reference: Reference used by set configuration
        entity_type: Type of the member entities
        filters: Field values every member must carry
        argument_field: Field matched against the first view argument
        published_only: Only list visible entities
    """

    display_reference: str
    entity_type: str
    filters: dict[str, str] = field(default_factory=dict)
    argument_field: str | None = None
    published_only: bool = True

    @classmethod
    def from_dict(cls, data: dict) -> "ContentView":
        return cls(
            display_reference=str(data["display_reference"]),
            entity_type=str(data["entity_type"]),
            filters={str(k): str(v) for k, v in (data.get("filters") or {}).items()},
            argument_field=data.get("argument_field"),
            published_only=bool(data.get("published_only", True)),
        )

    def matches(self, entity: ContentEntity, arguments: list[str]) -> bool:
        if entity.entity_type != self.entity_type:
            return False
        if self.published_only and not entity.is_visible():
            return False
        for name, expected in self.filters.items():
            if expected not in entity.fields.get(name, []):
                return False
        if self.argument_field and arguments:
            if arguments[0] not in entity.fields.get(self.argument_field, []):
                return False
        return True


def _id_sort_key(entity_id: str) -> tuple:
    return (0, int(entity_id), "") if entity_id.isdigit() else (1, 0, entity_id)


class InMemoryContentRepository:
    """Entity store and set source backed by dictionaries.

    Thread-safe: the synchronizer and request handlers may read while
    content-change events write.
    """

    def __init__(self, entities: list[ContentEntity] | None = None, views: list[ContentView] | None = None) -> None:
        self._lock = threading.Lock()
        self._entities: dict[tuple[str, str], ContentEntity] = {}
        self._views: dict[str, ContentView] = {}
        for entity in entities or []:
            self.put(entity)
        for view in views or []:
            self.add_view(view)

    # EntityStore

    def load(self, entity_type: str, entity_id: str) -> ContentEntity | None:
        with self._lock:
            return self._entities.get((entity_type, str(entity_id)))

    def put(self, entity: ContentEntity) -> None:
        with self._lock:
            self._entities[(entity.entity_type, entity.entity_id)] = entity

    def delete(self, entity_type: str, entity_id: str) -> bool:
        with self._lock:
            return self._entities.pop((entity_type, str(entity_id)), None) is not None

    # SetSource

    def add_view(self, view: ContentView) -> None:
        with self._lock:
            self._views[view.display_reference] = view

    def fetch_page(self, display_reference: str, offset: int, limit: int, arguments: list[str]) -> SetPage:
        with self._lock:
            view = self._views.get(display_reference)
            if view is None:
                raise SetSourceError(f"Unknown view: {display_reference}")
            members = sorted(
                (e.entity_id for e in self._entities.values() if view.matches(e, arguments)),
                key=_id_sort_key,
            )

        page = members[offset : offset + limit] if limit > 0 else members[offset:]
        logger.debug(f"View {display_reference}: {len(page)} of {len(members)} members at offset {offset}")
        return SetPage(member_ids=page, total=len(members), entity_type=view.entity_type)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entities)


def load_content_repository(content_path: Path | str) -> InMemoryContentRepository:
    """Load a content repository from a YAML file.

    Args:
        content_path: YAML file with ``entities`` and ``views`` lists

    Returns:
        Populated repository

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file is not valid YAML or has an invalid layout
    """
    path = Path(content_path)
    if not path.exists():
        raise FileNotFoundError(f"Content file not found: {path}")

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in content file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ValueError(f"Content file {path} must contain a mapping")

    try:
        entities = [ContentEntity.from_dict(item) for item in data.get("entities") or []]
        views = [ContentView.from_dict(item) for item in data.get("views") or []]
    except (KeyError, TypeError) as e:
        raise ValueError(f"Invalid entry in content file {path}: {e}") from e

    logger.info(f"Loaded {len(entities)} entities and {len(views)} views from {path}")
    return InMemoryContentRepository(entities=entities, views=views)
