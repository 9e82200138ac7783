"""SQLite cache store for OAI-PMH records, sets and memberships.

Holds the denormalized relations the protocol engine reads on every request,
plus the resumption token table and its id counter. One connection is shared
across threads and serialized by a lock; writes run inside explicit
``BEGIN IMMEDIATE`` transactions so token id allocation is atomic.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from .errors import CacheStoreUnavailable
from .models import CacheCounts
from .models import CachedRecord
from .models import CachedSet
from .models import ListedRecord
from .models import Membership
from .models import NewResumptionToken
from .models import RecordFilter
from .models import ResumptionToken
from .models import from_timestamp
from .models import to_timestamp

logger = logging.getLogger(__name__)

SET_SEPARATOR = "\x1f"
TOKEN_COUNTER = "resumption_token"

SCHEMA = """
CREATE TABLE IF NOT EXISTS oai_record (
    entity_type TEXT NOT NULL,
    entity_id TEXT NOT NULL,
    created INTEGER NOT NULL,
    changed INTEGER NOT NULL,
    PRIMARY KEY (entity_type, entity_id)
);
CREATE INDEX IF NOT EXISTS oai_record_changed ON oai_record (changed);

CREATE TABLE IF NOT EXISTS oai_set (
    set_id TEXT PRIMARY KEY,
    entity_type TEXT NOT NULL,
    label TEXT NOT NULL,
    pager_limit INTEGER NOT NULL,
    display_reference TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS oai_member (
    entity_type TEXT NOT NULL,
    entity_id TEXT NOT NULL,
    set_id TEXT NOT NULL,
    run_id TEXT,
    PRIMARY KEY (entity_type, entity_id, set_id),
    FOREIGN KEY (entity_type, entity_id) REFERENCES oai_record (entity_type, entity_id) ON DELETE CASCADE,
    FOREIGN KEY (set_id) REFERENCES oai_set (set_id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS oai_member_set ON oai_member (set_id);

CREATE TABLE IF NOT EXISTS oai_resumption_token (
    token_id INTEGER PRIMARY KEY,
    verb TEXT NOT NULL,
    metadata_prefix TEXT,
    set_spec TEXT,
    from_date TEXT,
    until_date TEXT,
    cursor INTEGER NOT NULL,
    complete_list_size INTEGER NOT NULL,
    expires INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS oai_counter (
    name TEXT PRIMARY KEY,
    value INTEGER NOT NULL
);
"""


class CacheStore:
    """Durable state shared by the synchronizer and the protocol engine."""

    def __init__(self, database_path: Path | str) -> None:
        """Open (and create if needed) the cache database.

        Args:
            database_path: SQLite file path, or ":memory:" for a private in-memory store

        Raises:
            CacheStoreUnavailable: If the database cannot be opened
        """
        self.database_path = str(database_path)
        if self.database_path != ":memory:":
            Path(self.database_path).parent.mkdir(parents=True, exist_ok=True)

        self._lock = threading.RLock()
        try:
            self._conn = sqlite3.connect(
                self.database_path,
                check_same_thread=False,
                isolation_level=None,
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
            if self.database_path != ":memory:":
                self._conn.execute("PRAGMA journal_mode = WAL")
            self._conn.executescript(SCHEMA)
        except sqlite3.Error as e:
            raise CacheStoreUnavailable(f"Cannot open cache store at {self.database_path}: {e}") from e

        logger.info(f"Opened cache store at {self.database_path}")

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                self._conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                raise CacheStoreUnavailable(f"Cannot start transaction: {e}") from e
            try:
                yield self._conn
            except sqlite3.Error as e:
                self._conn.execute("ROLLBACK")
                raise CacheStoreUnavailable(f"Cache store write failed: {e}") from e
            except BaseException:
                self._conn.execute("ROLLBACK")
                raise
            else:
                try:
                    self._conn.execute("COMMIT")
                except sqlite3.Error as e:
                    if self._conn.in_transaction:
                        self._conn.execute("ROLLBACK")
                    raise CacheStoreUnavailable(f"Cache store commit failed: {e}") from e

    def _fetchall(self, sql: str, params: tuple | list = ()) -> list[sqlite3.Row]:
        with self._lock:
            try:
                return self._conn.execute(sql, params).fetchall()
            except sqlite3.Error as e:
                raise CacheStoreUnavailable(f"Cache store read failed: {e}") from e

    def _fetchone(self, sql: str, params: tuple | list = ()) -> sqlite3.Row | None:
        rows = self._fetchall(sql, params)
        return rows[0] if rows else None

    def _scalar(self, sql: str, params: tuple | list = ()):
        row = self._fetchone(sql, params)
        return row[0] if row else None

    # Record / Set / Membership writes

    def upsert_record(self, record: CachedRecord) -> None:
        with self._transaction() as conn:
            self._upsert_record(conn, record)

    def _upsert_record(self, conn: sqlite3.Connection, record: CachedRecord) -> None:
        conn.execute(
            """
            INSERT INTO oai_record (entity_type, entity_id, created, changed)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(entity_type, entity_id) DO UPDATE SET
              created=excluded.created,
              changed=excluded.changed
            """,
            (record.entity_type, record.entity_id, to_timestamp(record.created_at), to_timestamp(record.changed_at)),
        )

    def upsert_set(self, cached_set: CachedSet) -> None:
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO oai_set (set_id, entity_type, label, pager_limit, display_reference)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(set_id) DO UPDATE SET
                  entity_type=excluded.entity_type,
                  label=excluded.label,
                  pager_limit=excluded.pager_limit,
                  display_reference=excluded.display_reference
                """,
                (
                    cached_set.set_id,
                    cached_set.entity_type,
                    cached_set.label,
                    cached_set.pager_limit,
                    cached_set.display_reference,
                ),
            )

    def upsert_membership(self, membership: Membership, run_id: str | None = None) -> None:
        with self._transaction() as conn:
            self._upsert_membership(conn, membership, run_id)

    def _upsert_membership(self, conn: sqlite3.Connection, membership: Membership, run_id: str | None) -> None:
        conn.execute(
            """
            INSERT INTO oai_member (entity_type, entity_id, set_id, run_id)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(entity_type, entity_id, set_id) DO UPDATE SET
              run_id=excluded.run_id
            """,
            (membership.entity_type, membership.entity_id, membership.set_id, run_id),
        )

    def index_member(self, record: CachedRecord, set_id: str, run_id: str | None = None) -> None:
        """Upsert a record and its membership in one set."""
        with self._transaction() as conn:
            self._upsert_record(conn, record)
            self._upsert_membership(conn, Membership(record.entity_type, record.entity_id, set_id), run_id)

    # Retirement

    def remove_set(self, set_id: str) -> bool:
        """Delete a set and all of its memberships.

        Records are kept even if they end up with zero memberships.

        Returns:
            True if the set existed
        """
        with self._transaction() as conn:
            conn.execute("DELETE FROM oai_member WHERE set_id = ?", (set_id,))
            cursor = conn.execute("DELETE FROM oai_set WHERE set_id = ?", (set_id,))
            removed = cursor.rowcount > 0
        if removed:
            logger.info(f"Removed set {set_id} from cache")
        return removed

    def remove_sets_not_in(self, display_references: set[str]) -> list[str]:
        """Retire every set whose display reference is not in ``display_references``."""
        stale = [
            row["set_id"]
            for row in self._fetchall("SELECT set_id, display_reference FROM oai_set ORDER BY set_id")
            if row["display_reference"] not in display_references
        ]
        for set_id in stale:
            self.remove_set(set_id)
        return stale

    def remove_record(self, entity_type: str, entity_id: str) -> bool:
        with self._transaction() as conn:
            conn.execute(
                "DELETE FROM oai_member WHERE entity_type = ? AND entity_id = ?",
                (entity_type, entity_id),
            )
            cursor = conn.execute(
                "DELETE FROM oai_record WHERE entity_type = ? AND entity_id = ?",
                (entity_type, entity_id),
            )
            return cursor.rowcount > 0

    def delete_stale_memberships(self, set_id: str, run_id: str) -> int:
        """Delete memberships of ``set_id`` not stamped by ``run_id``."""
        with self._transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM oai_member WHERE set_id = ? AND (run_id IS NULL OR run_id != ?)",
                (set_id, run_id),
            )
            return cursor.rowcount

    def prune_empty_sets(self) -> list[str]:
        """Retire sets left without members."""
        empty = [
            row["set_id"]
            for row in self._fetchall(
                """
                SELECT s.set_id FROM oai_set s
                WHERE NOT EXISTS (SELECT 1 FROM oai_member m WHERE m.set_id = s.set_id)
                ORDER BY s.set_id
                """
            )
        ]
        for set_id in empty:
            self.remove_set(set_id)
        return empty

    # Reads

    def count_records(self) -> int:
        return self._scalar("SELECT COUNT(*) FROM oai_record") or 0

    def earliest_created(self):
        value = self._scalar("SELECT MIN(created) FROM oai_record")
        return from_timestamp(value) if value is not None else None

    def min_pager_limit(self) -> int | None:
        """Smallest positive pager limit across all sets, or None without any."""
        return self._scalar("SELECT MIN(pager_limit) FROM oai_set WHERE pager_limit > 0")

    def list_sets(self) -> list[CachedSet]:
        rows = self._fetchall(
            "SELECT set_id, entity_type, label, pager_limit, display_reference FROM oai_set ORDER BY set_id"
        )
        return [self._row_to_set(row) for row in rows]

    def get_set(self, set_id: str) -> CachedSet | None:
        row = self._fetchone(
            "SELECT set_id, entity_type, label, pager_limit, display_reference FROM oai_set WHERE set_id = ?",
            (set_id,),
        )
        return self._row_to_set(row) if row else None

    def list_memberships(self, set_id: str | None = None) -> list[Membership]:
        sql = "SELECT entity_type, entity_id, set_id FROM oai_member"
        params: tuple = ()
        if set_id is not None:
            sql += " WHERE set_id = ?"
            params = (set_id,)
        sql += " ORDER BY set_id, entity_type, entity_id"
        return [Membership(row["entity_type"], row["entity_id"], row["set_id"]) for row in self._fetchall(sql, params)]

    def get_record(self, entity_type: str, entity_id: str) -> ListedRecord | None:
        """Get a cached record with all of its set memberships.

        Returns:
            The record (``set_ids`` may be empty), or None if it is not cached
        """
        row = self._fetchone(
            """
            SELECT r.entity_type, r.entity_id, r.created, r.changed,
                   (SELECT GROUP_CONCAT(m.set_id, char(31)) FROM oai_member m
                    WHERE m.entity_type = r.entity_type AND m.entity_id = r.entity_id) AS sets
            FROM oai_record r
            WHERE r.entity_type = ? AND r.entity_id = ?
            """,
            (entity_type, entity_id),
        )
        return self._row_to_listed(row) if row else None

    def _listing_query(self, record_filter: RecordFilter) -> tuple[str, list]:
        clauses: list[str] = []
        params: list = []
        if record_filter.set_spec is not None:
            clauses.append(
                "EXISTS (SELECT 1 FROM oai_member f "
                "WHERE f.entity_type = r.entity_type AND f.entity_id = r.entity_id AND f.set_id = ?)"
            )
            params.append(record_filter.set_spec)
        if record_filter.changed_from is not None:
            clauses.append("r.changed >= ?")
            params.append(to_timestamp(record_filter.changed_from))
        if record_filter.changed_until is not None:
            clauses.append("r.changed <= ?")
            params.append(to_timestamp(record_filter.changed_until))
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        sql = f"""
            SELECT r.entity_type, r.entity_id, r.created, r.changed,
                   GROUP_CONCAT(m.set_id, char(31)) AS sets
            FROM oai_record r
            INNER JOIN oai_member m ON m.entity_type = r.entity_type AND m.entity_id = r.entity_id
            INNER JOIN oai_set s ON s.set_id = m.set_id
            {where}
            GROUP BY r.entity_type, r.entity_id
            ORDER BY r.entity_type, r.entity_id
        """
        return sql, params

    def count_listing(self, record_filter: RecordFilter) -> int:
        sql, params = self._listing_query(record_filter)
        return self._scalar(f"SELECT COUNT(*) FROM ({sql})", params) or 0

    def list_records(self, record_filter: RecordFilter, offset: int = 0, limit: int | None = None) -> list[ListedRecord]:
        """Page through records matching ``record_filter`` in key order.

        Args:
            record_filter: Set and datestamp filters
            offset: Rows to skip
            limit: Page size, or None for no limit

        Returns:
            Records with their concatenated set memberships
        """
        sql, params = self._listing_query(record_filter)
        if limit is not None:
            sql += " LIMIT ? OFFSET ?"
            params = [*params, limit, offset]
        elif offset:
            sql += " LIMIT -1 OFFSET ?"
            params = [*params, offset]
        return [self._row_to_listed(row) for row in self._fetchall(sql, params)]

    def counts(self) -> CacheCounts:
        return CacheCounts(
            records=self.count_records(),
            sets=self._scalar("SELECT COUNT(*) FROM oai_set") or 0,
            memberships=self._scalar("SELECT COUNT(*) FROM oai_member") or 0,
            tokens=self._scalar("SELECT COUNT(*) FROM oai_resumption_token") or 0,
            earliest_created=self.earliest_created(),
        )

    # Resumption tokens

    def _allocate_token_id(self, conn: sqlite3.Connection) -> int:
        conn.execute("INSERT OR IGNORE INTO oai_counter (name, value) VALUES (?, 1)", (TOKEN_COUNTER,))
        token_id = conn.execute("SELECT value FROM oai_counter WHERE name = ?", (TOKEN_COUNTER,)).fetchone()[0]
        conn.execute("UPDATE oai_counter SET value = value + 1 WHERE name = ?", (TOKEN_COUNTER,))
        return token_id

    def create_token(self, token: NewResumptionToken) -> ResumptionToken:
        """Allocate the next token id and save the token in one transaction."""
        with self._transaction() as conn:
            token_id = self._allocate_token_id(conn)
            conn.execute(
                """
                INSERT INTO oai_resumption_token (
                  token_id, verb, metadata_prefix, set_spec, from_date, until_date,
                  cursor, complete_list_size, expires
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    token_id,
                    token.verb,
                    token.metadata_prefix,
                    token.set_spec,
                    token.from_date,
                    token.until_date,
                    token.cursor,
                    token.complete_list_size,
                    to_timestamp(token.expires_at),
                ),
            )
        logger.debug(f"Created resumption token {token_id} (cursor {token.cursor}/{token.complete_list_size})")
        return ResumptionToken(token_id=token_id, **token.__dict__)

    def get_token(self, token_id: int) -> ResumptionToken | None:
        row = self._fetchone("SELECT * FROM oai_resumption_token WHERE token_id = ?", (token_id,))
        if row is None:
            return None
        return ResumptionToken(
            token_id=row["token_id"],
            verb=row["verb"],
            metadata_prefix=row["metadata_prefix"],
            set_spec=row["set_spec"],
            from_date=row["from_date"],
            until_date=row["until_date"],
            cursor=row["cursor"],
            complete_list_size=row["complete_list_size"],
            expires_at=from_timestamp(row["expires"]),
        )

    def delete_token(self, token_id: int) -> None:
        with self._transaction() as conn:
            conn.execute("DELETE FROM oai_resumption_token WHERE token_id = ?", (token_id,))

    # Row mapping

    @staticmethod
    def _row_to_set(row: sqlite3.Row) -> CachedSet:
        return CachedSet(
            set_id=row["set_id"],
            label=row["label"],
            pager_limit=row["pager_limit"],
            display_reference=row["display_reference"],
            entity_type=row["entity_type"],
        )

    @staticmethod
    def _row_to_listed(row: sqlite3.Row) -> ListedRecord:
        sets = row["sets"]
        return ListedRecord(
            entity_type=row["entity_type"],
            entity_id=row["entity_id"],
            created_at=from_timestamp(row["created"]),
            changed_at=from_timestamp(row["changed"]),
            set_ids=sorted(sets.split(SET_SEPARATOR)) if sets else [],
        )
