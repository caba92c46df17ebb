"""
remember / forget: promote a cached message to a stored quote and back.
"""

import asyncio
import logging
from typing import Optional

from .authors import AuthorResolver
from .errors import AuthorNotFound, NoCandidate, QuoteError
from .record_store import QuoteStore
from .schemas import QuoteRecord

logger = logging.getLogger(__name__)


class PromotionEngine:
    """
    Finds the best candidate for an author and flips its stored flag.

    Find and flip run in one transaction, so a concurrent remember of the
    same text cannot pick the same record. Once flipped, a record leaves
    the candidate pool, which makes a repeated call a no-op.
    """

    def __init__(self, store: QuoteStore, resolver: AuthorResolver):
        self.store = store
        self.resolver = resolver

    def _resolve(self, author_token: str) -> str:
        author_id = self.resolver.resolve_by_token(author_token)
        if author_id is None:
            raise AuthorNotFound(author_token)
        return author_id

    def _flip(self, operation: str, author_token: str, query_text: str, stored: bool) -> Optional[QuoteRecord]:
        author_id = None
        try:
            author_id = self._resolve(author_token)
            with self.store.transaction() as conn:
                record = self.store.find_best_promotion_candidate(
                    author_id, query_text, want_stored=not stored, conn=conn
                )
                if record is None:
                    raise NoCandidate(f"couldn't find message matching '{query_text}' for {author_id}")
                self.store.set_stored(record.id, stored, conn=conn)
        except (AuthorNotFound, NoCandidate) as e:
            logger.warning(f"{operation}: {e}")
            return None
        except QuoteError as e:
            logger.error(f"error storing message: {operation} author={author_id} query='{query_text}': {e}")
            return None

        logger.info(f"{operation}: record {record.id} for {author_id} stored={stored}")
        return record.model_copy(update={"stored": stored})

    def remember_sync(self, author_token: str, query_text: str = "") -> Optional[QuoteRecord]:
        return self._flip("remember", author_token, query_text, True)

    def forget_sync(self, author_token: str, query_text: str = "") -> Optional[QuoteRecord]:
        return self._flip("forget", author_token, query_text, False)

    async def remember(self, author_token: str, query_text: str = "") -> Optional[QuoteRecord]:
        """
        Remember the author's most recent cached message matching the text.

        Args:
            author_token: Typed author name
            query_text: Words the message must contain, a /regex/, or empty
                for the author's latest message

        Returns:
            The now-stored record, or None (unknown author, no match, error)
        """
        return await asyncio.to_thread(self.remember_sync, author_token, query_text)

    async def forget(self, author_token: str, query_text: str = "") -> Optional[QuoteRecord]:
        """
        Forget the author's most recently quoted stored message matching the text.

        Returns:
            The now-unstored record, or None (unknown author, no match, error)
        """
        return await asyncio.to_thread(self.forget_sync, author_token, query_text)
