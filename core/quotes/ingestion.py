"""
Per-author message cache.

Every observed message becomes an unstored record. Each author keeps at
most `cache_size` unstored records; the oldest is evicted to make room.
Stored (remembered) records never count against the cap.
"""

import asyncio
import logging
from datetime import datetime
from typing import Optional

from .errors import QuoteError
from .record_store import QuoteStore, utcnow
from .schemas import QuoteConfig

logger = logging.getLogger(__name__)


class QuoteCache:
    """Admits observed messages into the store under a per-author cap."""

    def __init__(self, store: QuoteStore, config: Optional[QuoteConfig] = None):
        self.store = store
        self.config = config or store.config

    def observe_sync(
        self,
        author_id: str,
        text: str,
        timestamp: Optional[datetime] = None,
    ) -> Optional[int]:
        """
        Cache a message, evicting the author's oldest unstored one if full.

        Count, evict and insert run in one transaction. Failures are logged
        and the message is dropped; nothing is raised.

        Returns:
            The new record id, or None if the message was not cached
        """
        if not author_id or not text or not text.strip():
            return None

        try:
            with self.store.transaction() as conn:
                size = self.store.count_unstored(author_id, conn=conn)
                # loops only when cache_size was lowered since the last write
                while size >= self.config.cache_size:
                    oldest = self.store.oldest_unstored(author_id, conn=conn)
                    if oldest is None:
                        break
                    self.store.delete_by_id(oldest, conn=conn)
                    logger.debug(f"Evicted cached message {oldest} for {author_id}")
                    size -= 1
                record_id = self.store.insert(
                    text,
                    author_id,
                    timestamp or utcnow(),
                    conn=conn,
                )
        except QuoteError as e:
            logger.error(f"error caching message: observe author={author_id}: {e}")
            return None
        except Exception as e:
            logger.exception(f"unexpected error caching message for {author_id}: {e}")
            return None

        logger.debug(f"Cached message {record_id} for {author_id}")
        return record_id

    async def observe(
        self,
        author_id: str,
        text: str,
        timestamp: Optional[datetime] = None,
    ) -> Optional[int]:
        """Async form of observe_sync, run off the event loop."""
        return await asyncio.to_thread(self.observe_sync, author_id, text, timestamp)
