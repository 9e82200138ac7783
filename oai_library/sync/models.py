"""Synchronization task schema and results."""

from dataclasses import dataclass
from dataclasses import field

from pydantic import BaseModel
from pydantic import Field


class SyncTask(BaseModel):
    """One page of work for the cache synchronizer.

    The first page of a run has ``total`` unset; it learns the total from the
    set source and enqueues the remaining pages with ``total`` and ``run_id``
    filled in, so the total is counted once per run.
    """

    set_id: str = Field(description="setSpec of the set being indexed")
    set_entity_type: str = Field(default="view", description="Entity type of the set")
    set_label: str = Field(description="setName of the set")
    display_reference: str = Field(description="Set source view/display reference")
    page_offset: int = Field(default=0, ge=0, description="Members to skip")
    page_limit: int = Field(ge=1, description="Members per page, also the set's pager limit")
    source_arguments: list[str] = Field(default_factory=list, description="Set source arguments")
    total: int | None = Field(default=None, description="Member total learned by the first page")
    run_id: str | None = Field(default=None, description="Identifier shared by all pages of a run")
    attempts: int = Field(default=0, ge=0, description="Failed processing attempts so far")

    @property
    def is_first_page(self) -> bool:
        return self.total is None


@dataclass
class PageResult:
    """Outcome of processing one task."""

    set_id: str
    page_offset: int
    total: int
    indexed: int = 0
    skipped: int = 0
    retired: bool = False
    superseded: bool = False
    stale_removed: int = 0
    follow_ups: list[SyncTask] = field(default_factory=list)


@dataclass
class RebuildSummary:
    """Outcome of a full or per-set rebuild."""

    sets: list[str] = field(default_factory=list)
    retired: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    queued: bool = False
