"""
Integration tests for the cache management API.

Tests cache status, rebuilds and content-change events.
"""

import pytest
from fastapi.testclient import TestClient

from oaid.main import create_app


@pytest.fixture
def client(settings, content, clock):
    """Create FastAPI test client."""
    with TestClient(create_app(settings=settings, content=content, clock=clock)) as test_client:
        yield test_client


@pytest.mark.integration
class TestCacheAPI:
    """Test cache API endpoints."""

    def test_status_of_empty_cache(self, client: TestClient) -> None:
        """Test GET /api/v1/cache/status on a fresh cache."""
        response = client.get("/api/v1/cache/status")

        assert response.status_code == 200
        data = response.json()
        assert data["records"] == 0
        assert data["resumptionTokens"] == 0
        assert data["pendingTasks"] == 0
        assert data["cacheTechnique"] == "liberal"
        assert data["earliestDatestamp"] is None

    def test_rebuild_inline(self, client: TestClient) -> None:
        """Test a waiting rebuild fills the cache."""
        response = client.post("/api/v1/cache/rebuild", params={"wait": "true"})

        assert response.status_code == 200
        data = response.json()
        assert data["queued"] is False
        assert data["sets"] == ["articles", "pages", "history"]
        assert data["failed"] == {}

        status = client.get("/api/v1/cache/status").json()
        assert (status["records"], status["sets"], status["memberships"]) == (7, 3, 10)

    def test_rebuild_queued(self, client: TestClient) -> None:
        """Test a rebuild without wait enqueues first-page tasks."""
        data = client.post("/api/v1/cache/rebuild").json()

        assert data["queued"] is True
        assert client.get("/api/v1/cache/status").json()["pendingTasks"] == 3

    def test_rebuild_one_set(self, client: TestClient) -> None:
        """Test rebuilding a single set."""
        data = client.post("/api/v1/cache/sets/pages/rebuild", params={"wait": "true"}).json()

        assert data["sets"] == ["pages"]
        assert client.get("/api/v1/cache/status").json()["records"] == 2

    def test_rebuild_unknown_set(self, client: TestClient) -> None:
        """Test rebuilding a set that is not configured returns 404."""
        response = client.post("/api/v1/cache/sets/nope/rebuild")

        assert response.status_code == 404

    def test_entity_changed(self, client: TestClient) -> None:
        """Test a change event under the liberal technique queues a sweep."""
        response = client.post("/api/v1/cache/entities/node/1/changed")

        assert response.status_code == 200
        assert response.json() == {"entityType": "node", "entityId": "1", "event": "changed", "applied": True}
        assert client.get("/api/v1/cache/status").json()["pendingTasks"] == 3

    def test_entity_deleted(self, client: TestClient) -> None:
        """Test a delete event removes the cached record."""
        client.post("/api/v1/cache/rebuild", params={"wait": "true"})

        response = client.delete("/api/v1/cache/entities/node/1")

        assert response.json()["applied"] is True
        status = client.get("/api/v1/cache/status").json()
        assert (status["records"], status["memberships"]) == (6, 8)
