"""Cache models for the OAI-PMH cache store.

This module contains the rows of the denormalized relations
(Record, Set, Membership), resumption tokens, and query/result shapes.
Timestamps are timezone-aware UTC datetimes; the store persists them
as integer Unix seconds.
"""

from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field
from datetime import UTC
from datetime import datetime


def to_timestamp(value: datetime) -> int:
    """Convert a datetime to integer Unix seconds (naive values are UTC)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return int(value.timestamp())


def from_timestamp(value: int) -> datetime:
    """Convert integer Unix seconds to an aware UTC datetime."""
    return datetime.fromtimestamp(value, tz=UTC)


# =============================================================================
# Relations
# =============================================================================


@dataclass
class CachedRecord:
    """One content item exposed to the protocol."""

    entity_type: str
    entity_id: str
    created_at: datetime
    changed_at: datetime


@dataclass
class CachedSet:
    """A named grouping corresponding to one configured content view."""

    set_id: str
    label: str
    pager_limit: int
    display_reference: str
    entity_type: str = "view"


@dataclass(frozen=True)
class Membership:
    """Join row between a record and a set."""

    entity_type: str
    entity_id: str
    set_id: str


# =============================================================================
# Listing queries
# =============================================================================


@dataclass
class RecordFilter:
    """Selective-harvesting filters applied to a listing query."""

    set_spec: str | None = None
    changed_from: datetime | None = None
    changed_until: datetime | None = None


@dataclass
class ListedRecord:
    """A record row as returned by a listing query, with its set memberships."""

    entity_type: str
    entity_id: str
    created_at: datetime
    changed_at: datetime
    set_ids: list[str] = field(default_factory=list)


# =============================================================================
# Resumption tokens
# =============================================================================


@dataclass
class ResumptionToken:
    """Saved state of a paginated listing.

    ``cursor`` is the offset of the page the token resumes at, and
    ``complete_list_size`` is counted once when the listing starts.
    """

    token_id: int
    verb: str
    metadata_prefix: str | None
    set_spec: str | None
    from_date: str | None
    until_date: str | None
    cursor: int
    complete_list_size: int
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now


@dataclass
class NewResumptionToken:
    """Token fields before an id has been allocated."""

    verb: str
    metadata_prefix: str | None
    set_spec: str | None
    from_date: str | None
    until_date: str | None
    cursor: int
    complete_list_size: int
    expires_at: datetime


# =============================================================================
# Status
# =============================================================================


@dataclass
class CacheCounts:
    """Row counts of the cache relations."""

    records: int
    sets: int
    memberships: int
    tokens: int
    earliest_created: datetime | None = None
