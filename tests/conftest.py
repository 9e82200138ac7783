"""Pytest configuration and shared fixtures."""

import xml.etree.ElementTree as ET
from collections.abc import Callable
from collections.abc import Iterator
from datetime import UTC
from datetime import datetime
from datetime import timedelta
from pathlib import Path

import pytest

from oai_library.cache import CacheStore
from oai_library.config import OaiSettings
from oai_library.content import ContentEntity
from oai_library.content import ContentView
from oai_library.content import InMemoryContentRepository
from oai_library.metadata import MetadataMapRegistry
from oai_library.protocol import OAI_NAMESPACE
from oai_library.protocol import OaiRequest
from oai_library.protocol import ProtocolEngine
from oai_library.sync import CacheSynchronizer

NS = {
    "oai": OAI_NAMESPACE,
    "oai_dc": "http://www.openarchives.org/OAI/2.0/oai_dc/",
    "dc": "http://purl.org/dc/elements/1.1/",
    "mods": "http://www.loc.gov/mods/v3",
    "id": "http://www.openarchives.org/OAI/2.0/oai-identifier",
}

START_TIME = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)

SET_SOURCES = [
    {"set_id": "articles", "label": "Articles", "display_reference": "articles:default", "page_limit": 2},
    {"set_id": "pages", "label": "Pages", "display_reference": "pages:default", "page_limit": 50},
    {
        "set_id": "history",
        "label": "History articles",
        "display_reference": "subjects:default",
        "page_limit": 10,
        "arguments": ["history"],
    },
]


class FixedClock:
    """Controllable time source."""

    def __init__(self, now: datetime = START_TIME) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


def make_article(number: int, published: bool = True) -> ContentEntity:
    return ContentEntity(
        entity_type="node",
        entity_id=str(number),
        fields={
            "type": ["article"],
            "title": [f"Article {number}"],
            "creator": [f"Author {number}"],
            "subject": ["history" if number % 2 else "science"],
            "language": ["en"],
        },
        created=datetime(2024, 1, number, tzinfo=UTC),
        changed=datetime(2024, 2, number, 10, 0, tzinfo=UTC),
        published=published,
    )


def build_content() -> InMemoryContentRepository:
    """Five published articles, one draft and two pages (one without timestamps)."""
    entities = [make_article(n) for n in range(1, 6)]
    entities.append(make_article(6, published=False))
    entities.append(
        ContentEntity(
            entity_type="node",
            entity_id="7",
            fields={"type": ["page"], "title": ["About"]},
            changed=datetime(2024, 3, 1, tzinfo=UTC),
        )
    )
    entities.append(ContentEntity(entity_type="node", entity_id="8", fields={"type": ["page"], "title": ["Contact"]}))

    views = [
        ContentView(display_reference="articles:default", entity_type="node", filters={"type": "article"}),
        ContentView(display_reference="pages:default", entity_type="node", filters={"type": "page"}),
        ContentView(
            display_reference="subjects:default",
            entity_type="node",
            filters={"type": "article"},
            argument_field="subject",
        ),
        ContentView(display_reference="empty:default", entity_type="node", filters={"type": "missing"}),
    ]
    return InMemoryContentRepository(entities=entities, views=views)


@pytest.fixture
def temp_storage_dir(tmp_path: Path) -> Path:
    """Create temporary storage directory for tests."""
    storage = tmp_path / "oaid_home"
    storage.mkdir()
    return storage


@pytest.fixture
def mock_storage_env(temp_storage_dir: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point OAID_HOME at a temp directory and clear other OAID_ overrides.

    Returns:
        Path to temporary storage directory
    """
    for name in ("OAID_CONFIG_DIR", "OAID_STATE_DIR", "OAID_LOG_DIR", "OAID_PORT", "OAID_HOST"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("OAID_HOME", str(temp_storage_dir))
    return temp_storage_dir


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def content() -> InMemoryContentRepository:
    return build_content()


@pytest.fixture
def settings(tmp_path: Path, mock_storage_env: Path) -> OaiSettings:
    """Settings with three sets (pager limits 2, 50 and 10) and no scheduler."""
    return OaiSettings(
        database_path=str(tmp_path / "cache.sqlite3"),
        sets=SET_SOURCES,
        scheduler_enabled=False,
        repository_name="Test Repository",
        repository_email="oai@example.org",
    )


@pytest.fixture
def store(settings: OaiSettings) -> Iterator[CacheStore]:
    cache_store = CacheStore(settings.database_path)
    yield cache_store
    cache_store.close()


@pytest.fixture
def synchronizer(
    store: CacheStore,
    content: InMemoryContentRepository,
    settings: OaiSettings,
    clock: FixedClock,
) -> CacheSynchronizer:
    """Synchronizer without a queue: every task runs inline."""
    return CacheSynchronizer(store=store, set_source=content, entity_store=content, settings=settings, clock=clock)


@pytest.fixture
def populated_store(store: CacheStore, synchronizer: CacheSynchronizer) -> CacheStore:
    synchronizer.rebuild_all(wait=True)
    return store


@pytest.fixture
def engine(
    populated_store: CacheStore,
    content: InMemoryContentRepository,
    settings: OaiSettings,
    synchronizer: CacheSynchronizer,
    clock: FixedClock,
) -> ProtocolEngine:
    return ProtocolEngine(
        store=populated_store,
        registry=MetadataMapRegistry.from_settings(settings),
        entity_store=content,
        settings=settings,
        synchronizer=synchronizer,
        clock=clock,
    )


@pytest.fixture
def harvest(engine: ProtocolEngine) -> Callable[..., ET.Element]:
    """Send a request to the engine and parse the response.

    Example:
        >>> root = harvest(verb="Identify")
        >>> root.find("oai:Identify", NS)
    """

    def _harvest(host: str = "example.org", params: dict[str, list[str]] | None = None, **kwargs: str) -> ET.Element:
        all_params = {name: [value] for name, value in kwargs.items()}
        all_params.update(params or {})
        body, status = engine.handle(
            OaiRequest(params=all_params, host=host, base_url=f"http://{host}/oai/request")
        )
        assert status == 200
        return ET.fromstring(body)

    return _harvest


def error_codes(root: ET.Element) -> list[str]:
    return [error.get("code") for error in root.findall("oai:error", NS)]


@pytest.fixture
def ns() -> dict[str, str]:
    """Namespace prefixes for ElementTree lookups."""
    return NS


@pytest.fixture(name="error_codes")
def error_codes_fixture() -> Callable[[ET.Element], list[str]]:
    return error_codes
