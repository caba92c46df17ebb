"""
Quote search and sampling.

A query is an (author token, text) pair as typed by a user. Either half
may be a /regex/, an author name, or free text; `classify` decides which
and the store returns a uniform random sample of matching stored quotes.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from .authors import AuthorResolver
from .errors import QuoteError
from .query import NoPredicate, Predicate, Regex, TextRank, extract_regex, is_regex, to_fts_query
from .record_store import QuoteStore
from .schemas import QuoteConfig, QuoteRecord, SearchMode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Classification:
    """How a query will be executed."""
    mode: SearchMode
    predicate: Predicate
    author_id: Optional[str]
    search_string: str

    @property
    def matches_nothing(self) -> bool:
        """Text was given but none of it is searchable."""
        return isinstance(self.predicate, NoPredicate) and bool(self.search_string.strip())


class SearchEngine:
    """Classifies quote queries and samples stored quotes."""

    def __init__(
        self,
        store: QuoteStore,
        resolver: AuthorResolver,
        config: Optional[QuoteConfig] = None,
    ):
        self.store = store
        self.resolver = resolver
        self.config = config or store.config
        self._pending: set[asyncio.Task] = set()

    def classify(self, author_token: Optional[str], query_text: Optional[str]) -> Classification:
        """
        Decide how to match a query.

        1. Either half wrapped in /.../ -> REGEX on that half; the other
           half still scopes by author if it resolves.
        2. The author token resolves -> AUTHOR; the text (possibly empty)
           is the search string.
        3. Otherwise TEXT; both halves together are the search string.
        """
        author_token = (author_token or "").strip()
        query_text = (query_text or "").strip()

        if is_regex(author_token) or is_regex(query_text):
            if is_regex(author_token):
                pattern, other = extract_regex(author_token), query_text
            else:
                pattern, other = extract_regex(query_text), author_token
            return Classification(
                mode=SearchMode.REGEX,
                predicate=Regex(pattern),
                author_id=self.resolver.resolve_by_token(other),
                search_string=pattern,
            )

        author_id = self.resolver.resolve_by_token(author_token)
        if author_id is not None:
            search_string = query_text
            mode = SearchMode.AUTHOR
        else:
            search_string = " ".join(part for part in (author_token, query_text) if part)
            mode = SearchMode.TEXT

        fts_query = to_fts_query(search_string)
        return Classification(
            mode=mode,
            predicate=TextRank(fts_query) if fts_query else NoPredicate(),
            author_id=author_id,
            search_string=search_string,
        )

    def build_search_string(self, author_token: Optional[str], query_text: Optional[str]) -> str:
        """The string the query's predicate is built from."""
        return self.classify(author_token, query_text).search_string

    def search_sync(
        self,
        author_token: Optional[str],
        query_text: Optional[str],
        limit: int,
    ) -> list[QuoteRecord]:
        classification = self.classify(author_token, query_text)
        if classification.matches_nothing:
            logger.debug(f"Nothing searchable in '{classification.search_string}'")
            return []

        try:
            results = self.store.search(
                classification.predicate,
                author_id=classification.author_id,
                limit=limit,
            )
        except QuoteError as e:
            logger.error(
                f"error searching quotes: search mode={classification.mode.value} "
                f"author={author_token!r} query={query_text!r}: {e}"
            )
            return []

        logger.debug(
            f"Found {len(results)} quotes for author={author_token!r} query={query_text!r} "
            f"(mode={classification.mode.value})"
        )
        return results

    async def search(
        self,
        author_token: Optional[str],
        query_text: Optional[str],
        limit: int = 20,
    ) -> list[QuoteRecord]:
        """
        Random sample of at most `limit` stored quotes matching the query.

        Errors are logged and reported as an empty result.
        """
        return await asyncio.to_thread(self.search_sync, author_token, query_text, limit)

    async def quote(self, author_token: Optional[str] = "", query_text: Optional[str] = "") -> list[QuoteRecord]:
        """Single-quote search; marks the result as quoted."""
        results = await self.search(author_token, query_text, self.config.quote_limit)
        self.mark_quoted(results)
        return results

    async def mash(self, author_token: Optional[str] = "", query_text: Optional[str] = "") -> list[QuoteRecord]:
        """Multi-quote search; marks every result as quoted."""
        results = await self.search(author_token, query_text, self.config.mash_limit)
        self.mark_quoted(results)
        return results

    def mark_quoted(self, records: Iterable[QuoteRecord]) -> Optional[asyncio.Task]:
        """
        Update last_quoted_at in the background.

        Fire and forget: the caller's reply does not wait on it and a
        failure is only logged.
        """
        ids = [record.id for record in records]
        if not ids:
            return None
        task = asyncio.get_running_loop().create_task(self._touch(ids))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _touch(self, ids: list[int]) -> None:
        try:
            await asyncio.to_thread(self.store.touch_last_quoted_at, ids)
        except Exception as e:
            logger.warning(f"Failed to update last_quoted_at for {ids}: {e}")

    async def wait_pending(self) -> None:
        """Wait for outstanding last_quoted_at updates (shutdown, tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
