"""Listing pagination and resumption tokens.

The page size is the smallest pager limit across all cached sets, so no
set's page is ever larger than the listing page. The complete list size is
counted once when a listing starts and carried by its tokens.
"""

import logging
from dataclasses import dataclass
from dataclasses import field
from datetime import datetime
from datetime import timedelta

from ..cache.models import ListedRecord
from ..cache.models import NewResumptionToken
from ..cache.models import RecordFilter
from ..cache.models import ResumptionToken
from ..cache.store import CacheStore

logger = logging.getLogger(__name__)

# Largest value SQLite stores in an INTEGER column
MAX_TOKEN_ID = 2**63 - 1


@dataclass
class ListingState:
    """Arguments of a listing, supplied by the request or restored from a token."""

    verb: str
    metadata_prefix: str | None
    set_spec: str | None = None
    from_date: str | None = None
    until_date: str | None = None
    cursor: int = 0
    complete_list_size: int | None = None

    @property
    def resumed(self) -> bool:
        return self.complete_list_size is not None

    @classmethod
    def from_token(cls, token: ResumptionToken) -> "ListingState":
        return cls(
            verb=token.verb,
            metadata_prefix=token.metadata_prefix,
            set_spec=token.set_spec,
            from_date=token.from_date,
            until_date=token.until_date,
            cursor=token.cursor,
            complete_list_size=token.complete_list_size,
        )


@dataclass
class ListingPage:
    """One page of a listing.

    Attributes:
        records: Records on this page
        cursor: Offset of the first record of this page
        complete_list_size: Size of the whole listing
        next_token: Token for the following page, if any remain
        resumed: Whether this page was reached through a token
    """

    records: list[ListedRecord] = field(default_factory=list)
    cursor: int = 0
    complete_list_size: int = 0
    next_token: ResumptionToken | None = None
    resumed: bool = False


class Paginator:
    """Pages listing queries and mints and redeems resumption tokens."""

    def __init__(self, store: CacheStore, expiration: int, default_page_size: int) -> None:
        self.store = store
        self.expiration = expiration
        self.default_page_size = default_page_size

    def page_size(self) -> int:
        """Minimum positive pager limit across sets, else the configured default."""
        return self.store.min_pager_limit() or self.default_page_size

    def redeem(self, token_value: str, verb: str, now: datetime) -> ResumptionToken | None:
        """Look up a token for ``verb``.

        Expired tokens are deleted. Unknown, expired and other-verb tokens
        all return None, as does anything that is not a plain token id.
        """
        if not (token_value.isascii() and token_value.isdigit()):
            return None
        token_id = int(token_value)
        if not 0 < token_id <= MAX_TOKEN_ID:
            return None

        token = self.store.get_token(token_id)
        if token is None:
            return None
        if token.is_expired(now):
            logger.warning(f"Resumption token {token_id} expired at {token.expires_at.isoformat()}")
            self.store.delete_token(token_id)
            return None
        if token.verb != verb:
            logger.debug(f"Resumption token {token_id} belongs to {token.verb}, not {verb}")
            return None
        return token

    def fetch(self, state: ListingState, record_filter: RecordFilter, now: datetime) -> ListingPage:
        """Resolve one page of a listing.

        Args:
            state: Listing arguments and position
            record_filter: Set and datestamp filters derived from ``state``
            now: Request time, used for token expiry

        Returns:
            The page, with a token for the next one when more records remain
        """
        end = self.page_size()
        cursor = state.cursor
        complete_list_size = state.complete_list_size
        if complete_list_size is None:
            complete_list_size = self.store.count_listing(record_filter)

        page = ListingPage(cursor=cursor, complete_list_size=complete_list_size, resumed=state.resumed)

        if complete_list_size > cursor + end and end > 0:
            page.next_token = self.store.create_token(
                NewResumptionToken(
                    verb=state.verb,
                    metadata_prefix=state.metadata_prefix,
                    set_spec=state.set_spec,
                    from_date=state.from_date,
                    until_date=state.until_date,
                    cursor=cursor + end,
                    complete_list_size=complete_list_size,
                    expires_at=now + timedelta(seconds=self.expiration),
                )
            )

        page.records = self.store.list_records(record_filter, offset=cursor, limit=end if end > 0 else None)
        return page
