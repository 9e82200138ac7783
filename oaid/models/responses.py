"""Response models for the oaid management API."""

from datetime import datetime

from pydantic import Field

from oai_library.sync import RebuildSummary

from .base import CamelCaseModel


class StatusResponse(CamelCaseModel):
    """Response for daemon status.

    Attributes:
        status: Status string (e.g., 'running')
        version: Daemon version
        uptime_seconds: Uptime in seconds
        repository_name: Repository name reported by Identify
        repository_path: Path of the OAI-PMH endpoint
        records: Cached record count
        sets: Cached set count
    """

    status: str = Field(..., description="Daemon status")
    version: str = Field(..., description="Daemon version")
    uptime_seconds: float = Field(..., description="Uptime in seconds")
    repository_name: str = Field(..., description="Repository name")
    repository_path: str = Field(..., description="OAI-PMH endpoint path")
    records: int = Field(..., description="Cached records")
    sets: int = Field(..., description="Cached sets")


class CacheStatusResponse(CamelCaseModel):
    """Row counts of the cache store and pending synchronization work."""

    records: int = Field(..., description="Cached records")
    sets: int = Field(..., description="Cached sets")
    memberships: int = Field(..., description="Record/set memberships")
    resumption_tokens: int = Field(..., description="Stored resumption tokens")
    earliest_datestamp: datetime | None = Field(default=None, description="Earliest record creation time")
    pending_tasks: int = Field(..., description="Queued synchronization tasks")
    cache_technique: str = Field(..., description="Content-change strategy")


class RebuildResponse(CamelCaseModel):
    """Outcome of a cache rebuild request."""

    sets: list[str] = Field(default_factory=list, description="Sets rebuilt or queued")
    retired: list[str] = Field(default_factory=list, description="Sets retired before the sweep")
    failed: dict[str, str] = Field(default_factory=dict, description="Set id to failure message")
    queued: bool = Field(..., description="Whether work was queued rather than run inline")

    @classmethod
    def from_summary(cls, summary: RebuildSummary) -> "RebuildResponse":
        return cls(sets=summary.sets, retired=summary.retired, failed=summary.failed, queued=summary.queued)


class EntityEventResponse(CamelCaseModel):
    """Outcome of a content-change event."""

    entity_type: str = Field(..., description="Entity type")
    entity_id: str = Field(..., description="Entity id")
    event: str = Field(..., description="'changed' or 'deleted'")
    applied: bool = Field(..., description="Whether the cache was touched")
