"""
SQLite + FTS5 quote store.

One row per observed message. Unstored rows are the per-author cache of
recent messages; stored rows are remembered quotes. The FTS5 index is
derived from the text by triggers and is never written directly.
"""

import logging
import re
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from typing import Iterable, Iterator, Optional

from .errors import QueryError, StoreError
from .query import NoPredicate, Predicate, QuoteFilter, Regex, compile_filter, predicate_for
from .schemas import QuoteConfig, QuoteRecord, QuoteStats

logger = logging.getLogger(__name__)

_QUERY_ERROR_MARKERS = ("fts5", "user-defined function raised exception", "regular expression")


@lru_cache(maxsize=256)
def _compile_pattern(pattern: str) -> re.Pattern:
    return re.compile(pattern, re.IGNORECASE)


def _regexp(pattern: Optional[str], value: Optional[str]) -> bool:
    """SQLite REGEXP implementation: `value REGEXP pattern`."""
    if pattern is None or value is None:
        return False
    return _compile_pattern(pattern).search(value) is not None


def _to_db_time(value: datetime) -> str:
    """Normalize to UTC with fixed-width microseconds so text order is time order."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _from_db_time(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromisoformat(value)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QuoteStore:
    """
    SQLite-based quote store with FTS5 full-text search and regex matching.

    Uses:
    - One connection per unit of work (WAL journal, busy timeout)
    - BEGIN IMMEDIATE transactions so read-then-write units are serializable
    - FTS5 with the porter stemmer for language-aware text matching
    - A Python REGEXP function for case-insensitive regex matching

    Every public operation accepts an optional connection so several of
    them can be composed inside one `transaction()`.
    """

    def __init__(self, config: Optional[QuoteConfig] = None):
        self.config = config or QuoteConfig()
        self._initialized = False

    def _connect(self) -> sqlite3.Connection:
        """Open a new connection with the REGEXP function registered."""
        db_path = Path(self.config.db_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(
            str(db_path),
            timeout=self.config.busy_timeout_ms / 1000,
            isolation_level=None,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        conn.execute(f"PRAGMA busy_timeout = {int(self.config.busy_timeout_ms)}")
        conn.create_function("REGEXP", 2, _regexp, deterministic=True)
        return conn

    @contextmanager
    def _errors(self, operation: str) -> Iterator[None]:
        """Translate sqlite3 failures into store errors."""
        try:
            yield
        except re.error as e:
            raise QueryError(operation, f"invalid pattern: {e}", e) from e
        except OSError as e:
            raise StoreError(operation, str(e), e) from e
        except sqlite3.Error as e:
            message = str(e)
            if any(marker in message.lower() for marker in _QUERY_ERROR_MARKERS):
                raise QueryError(operation, message, e) from e
            raise StoreError(operation, message, e) from e

    def initialize(self) -> None:
        """Initialize database schema."""
        if self._initialized:
            return

        with self._errors("initialize"):
            conn = self._connect()
            try:
                conn.execute("PRAGMA journal_mode = WAL")
                conn.executescript("""
                    CREATE TABLE IF NOT EXISTS quotes (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        text TEXT NOT NULL,
                        author_id TEXT NOT NULL,
                        created_at TEXT NOT NULL,
                        last_quoted_at TEXT,
                        stored INTEGER NOT NULL DEFAULT 0
                    );

                    CREATE INDEX IF NOT EXISTS idx_quotes_created_at ON quotes(created_at);
                    CREATE INDEX IF NOT EXISTS idx_quotes_last_quoted_at ON quotes(last_quoted_at);
                    CREATE INDEX IF NOT EXISTS idx_quotes_stored ON quotes(stored);
                    CREATE INDEX IF NOT EXISTS idx_quotes_author_stored
                        ON quotes(author_id, stored, created_at);

                    CREATE VIRTUAL TABLE IF NOT EXISTS quotes_fts USING fts5(
                        text,
                        content='quotes',
                        content_rowid='id',
                        tokenize='porter unicode61'
                    );

                    CREATE TRIGGER IF NOT EXISTS quotes_ai AFTER INSERT ON quotes BEGIN
                        INSERT INTO quotes_fts(rowid, text) VALUES (new.id, new.text);
                    END;

                    CREATE TRIGGER IF NOT EXISTS quotes_ad AFTER DELETE ON quotes BEGIN
                        INSERT INTO quotes_fts(quotes_fts, rowid, text)
                        VALUES ('delete', old.id, old.text);
                    END;

                    CREATE TRIGGER IF NOT EXISTS quotes_au AFTER UPDATE OF text ON quotes BEGIN
                        INSERT INTO quotes_fts(quotes_fts, rowid, text)
                        VALUES ('delete', old.id, old.text);
                        INSERT INTO quotes_fts(rowid, text) VALUES (new.id, new.text);
                    END;
                """)
            finally:
                conn.close()

        self._initialized = True
        logger.info(f"Quote store initialized at {self.config.db_path}")

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Run a block as one serializable unit of work.

        BEGIN IMMEDIATE takes the write lock before the first read, so two
        units can never both act on the same stale count or candidate.
        Commits on success, rolls back on any exception.
        """
        self.initialize()
        with self._errors("transaction"):
            conn = self._connect()
        try:
            with self._errors("transaction"):
                conn.execute("BEGIN IMMEDIATE")
            yield conn
            with self._errors("commit"):
                conn.execute("COMMIT")
        except BaseException:
            if conn.in_transaction:
                try:
                    conn.execute("ROLLBACK")
                except sqlite3.Error as e:
                    logger.error(f"rollback failed: {e}")
            raise
        finally:
            conn.close()

    @contextmanager
    def _using(
        self,
        conn: Optional[sqlite3.Connection],
        write: bool = True,
    ) -> Iterator[sqlite3.Connection]:
        """Use the caller's connection, or a fresh unit of work."""
        if conn is not None:
            yield conn
        elif write:
            with self.transaction() as own:
                yield own
        else:
            self.initialize()
            own = self._connect()
            try:
                yield own
            finally:
                own.close()

    def _row_to_record(self, row: sqlite3.Row) -> QuoteRecord:
        """Convert database row to QuoteRecord."""
        return QuoteRecord(
            id=row["id"],
            text=row["text"],
            author_id=row["author_id"],
            stored=bool(row["stored"]),
            created_at=_from_db_time(row["created_at"]),
            last_quoted_at=_from_db_time(row["last_quoted_at"]),
        )

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def insert(
        self,
        text: str,
        author_id: str,
        created_at: Optional[datetime] = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> int:
        """
        Insert a new unstored record.

        Returns:
            The new record id (never reused)
        """
        created = _to_db_time(created_at or utcnow())
        with self._errors("insert"), self._using(conn) as c:
            cursor = c.execute("""
                INSERT INTO quotes (text, author_id, created_at, last_quoted_at, stored)
                VALUES (?, ?, ?, NULL, 0)
            """, (text, author_id, created))
            return cursor.lastrowid

    def delete_by_id(self, record_id: int, conn: Optional[sqlite3.Connection] = None) -> bool:
        """Hard-delete a record. Returns True if it existed."""
        with self._errors("delete_by_id"), self._using(conn) as c:
            cursor = c.execute("DELETE FROM quotes WHERE id = ?", (record_id,))
            return cursor.rowcount > 0

    def set_stored(self, record_id: int, value: bool, conn: Optional[sqlite3.Connection] = None) -> bool:
        """Flip the stored flag. Returns True if the record exists."""
        with self._errors("set_stored"), self._using(conn) as c:
            cursor = c.execute(
                "UPDATE quotes SET stored = ? WHERE id = ?",
                (1 if value else 0, record_id),
            )
            return cursor.rowcount > 0

    def touch_last_quoted_at(
        self,
        ids: Iterable[int],
        when: Optional[datetime] = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> int:
        """
        Set last_quoted_at on every given record.

        Returns:
            Number of records updated
        """
        ids = list(ids)
        if not ids:
            return 0
        quoted_at = _to_db_time(when or utcnow())
        placeholders = ",".join("?" * len(ids))
        with self._errors("touch_last_quoted_at"), self._using(conn) as c:
            cursor = c.execute(
                f"UPDATE quotes SET last_quoted_at = ? WHERE id IN ({placeholders})",
                (quoted_at, *ids),
            )
            return cursor.rowcount

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def count_unstored(self, author_id: str, conn: Optional[sqlite3.Connection] = None) -> int:
        """Count the cached (unstored) records for an author."""
        with self._errors("count_unstored"), self._using(conn, write=False) as c:
            row = c.execute("""
                SELECT COUNT(*) FROM quotes
                WHERE author_id = ? AND stored = 0
            """, (author_id,)).fetchone()
            return row[0]

    def oldest_unstored(self, author_id: str, conn: Optional[sqlite3.Connection] = None) -> Optional[int]:
        """Id of the author's oldest unstored record, lowest id on ties."""
        with self._errors("oldest_unstored"), self._using(conn, write=False) as c:
            row = c.execute("""
                SELECT id FROM quotes
                WHERE author_id = ? AND stored = 0
                ORDER BY created_at ASC, id ASC
                LIMIT 1
            """, (author_id,)).fetchone()
            return row["id"] if row else None

    def find_best_promotion_candidate(
        self,
        author_id: str,
        query_text: Optional[str],
        want_stored: bool,
        conn: Optional[sqlite3.Connection] = None,
    ) -> Optional[QuoteRecord]:
        """
        Find the record a remember/forget should flip.

        Args:
            author_id: Owning author
            query_text: Free text, /regex/, or empty for "most recent"
            want_stored: The stored state the candidate has now. False
                (remember) searches unstored records newest first; True
                (forget) searches stored records, never-quoted first, then
                most recently quoted, then newest.

        Returns:
            The candidate, or None if nothing matched
        """
        predicate = predicate_for(query_text)
        if isinstance(predicate, NoPredicate) and query_text and query_text.strip():
            # text was given but none of it is searchable
            return None
        where, params = compile_filter(QuoteFilter(
            predicate=predicate,
            author_id=author_id,
            stored=want_stored,
        ))
        if want_stored:
            order = "last_quoted_at IS NOT NULL, last_quoted_at DESC, created_at DESC, id DESC"
        else:
            order = "created_at DESC, id DESC"

        with self._errors("find_best_promotion_candidate"), self._using(conn, write=False) as c:
            if isinstance(predicate, Regex):
                _compile_pattern(predicate.pattern)
            row = c.execute(f"""
                SELECT * FROM quotes
                WHERE {where}
                ORDER BY {order}
                LIMIT 1
            """, params).fetchone()
            return self._row_to_record(row) if row else None

    def search(
        self,
        predicate: Predicate = NoPredicate(),
        author_id: Optional[str] = None,
        limit: int = 20,
        conn: Optional[sqlite3.Connection] = None,
    ) -> list[QuoteRecord]:
        """
        Random sample of stored records matching a predicate.

        Ordering is uniform over all matches, not just the returned page.
        """
        if limit <= 0:
            return []
        where, params = compile_filter(QuoteFilter(
            predicate=predicate,
            author_id=author_id,
            stored=True,
        ))
        with self._errors("search"), self._using(conn, write=False) as c:
            if isinstance(predicate, Regex):
                _compile_pattern(predicate.pattern)
            rows = c.execute(f"""
                SELECT * FROM quotes
                WHERE {where}
                ORDER BY RANDOM()
                LIMIT ?
            """, (*params, limit)).fetchall()
            return [self._row_to_record(row) for row in rows]

    def get_by_id(self, record_id: int, conn: Optional[sqlite3.Connection] = None) -> Optional[QuoteRecord]:
        """Get a record by id."""
        with self._errors("get_by_id"), self._using(conn, write=False) as c:
            row = c.execute("SELECT * FROM quotes WHERE id = ?", (record_id,)).fetchone()
            return self._row_to_record(row) if row else None

    def list_unstored(self, author_id: str, conn: Optional[sqlite3.Connection] = None) -> list[QuoteRecord]:
        """An author's cached records, oldest first."""
        with self._errors("list_unstored"), self._using(conn, write=False) as c:
            rows = c.execute("""
                SELECT * FROM quotes
                WHERE author_id = ? AND stored = 0
                ORDER BY created_at ASC, id ASC
            """, (author_id,)).fetchall()
            return [self._row_to_record(row) for row in rows]

    def count(
        self,
        author_id: Optional[str] = None,
        stored: Optional[bool] = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> int:
        """Count records, optionally filtered by author and stored flag."""
        where, params = compile_filter(QuoteFilter(author_id=author_id, stored=stored))
        with self._errors("count"), self._using(conn, write=False) as c:
            return c.execute(f"SELECT COUNT(*) FROM quotes WHERE {where}", params).fetchone()[0]

    def stats(self) -> QuoteStats:
        """Totals per author and per stored flag."""
        stats = QuoteStats()
        with self._errors("stats"), self._using(None, write=False) as c:
            rows = c.execute("""
                SELECT author_id, stored, COUNT(*) AS cnt
                FROM quotes
                GROUP BY author_id, stored
            """).fetchall()

        for row in rows:
            key = "stored" if row["stored"] else "unstored"
            bucket = stats.by_author.setdefault(row["author_id"], {"stored": 0, "unstored": 0})
            bucket[key] = row["cnt"]
            stats.total += row["cnt"]
            if row["stored"]:
                stats.stored += row["cnt"]
            else:
                stats.unstored += row["cnt"]
        stats.authors = len(stats.by_author)
        return stats

    def close(self) -> None:
        """Forget schema state; connections are per unit of work."""
        self._initialized = False


_default_store: Optional[QuoteStore] = None


def get_quote_store(config: Optional[QuoteConfig] = None) -> QuoteStore:
    """Get the default quote store instance."""
    global _default_store
    if _default_store is None:
        _default_store = QuoteStore(config)
    return _default_store
