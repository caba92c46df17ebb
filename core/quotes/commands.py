"""
Chat command surface for the quote engine.

Turns a line already addressed to the bot into a reply, and passes every
observed message to the cache. Message transport and user lookup stay
with the caller.
"""

import logging
import re
from datetime import datetime
from typing import Optional

from .authors import AuthorDirectory, AuthorResolver
from .ingestion import QuoteCache
from .promotion import PromotionEngine
from .record_store import QuoteStore
from .schemas import QuoteConfig, QuoteRecord
from .search import SearchEngine

logger = logging.getLogger(__name__)

HELP: list[tuple[str, str]] = [
    ("remember `user` `text`", "remember most recent message from `user` containing `text`"),
    ("forget `user` `text`", "forget most recent remembered message from `user` containing `text`"),
    ("quote [`user`] [`text`]", "quote a random remembered message that is from `user` and/or contains `text`"),
    ("quotemash [`user`] [`text`]", "quote some random remembered messages that are from `user` and/or contain `text`"),
    ("`user`mash", "quote some random remembered messages that are from `user`"),
    ("`text`mash", "quote some random remembered messages that contain `text`"),
    ("/ `regex` /mash", "quote some random remembered messages that matches `regex`"),
]

REMEMBER_PATTERN = re.compile(r"^remember (\S+)(?: (.*))?", re.IGNORECASE)
FORGET_PATTERN = re.compile(r"^forget (\S+)(?: (.*))?", re.IGNORECASE)
QUOTE_PATTERN = re.compile(r"^quote(?:$| )(\S*)?(?: (.*))?", re.IGNORECASE)
MASH_PATTERN = re.compile(r"^(?:quotemash(?: (\S*))?(?: (.*))?$|(/.+/|\S+)mash(?:\s|$))", re.IGNORECASE)

REMEMBER_FAILED = "no."
FORGET_FAILED = "nope."
QUOTE_FAILED = "nah."
MASH_FAILED = "いいえ。"


class QuoteCommands:
    """Dispatches remember, forget, quote and the *mash commands."""

    def __init__(
        self,
        promotion: PromotionEngine,
        search: SearchEngine,
        cache: QuoteCache,
        resolver: AuthorResolver,
    ):
        self.promotion = promotion
        self.search = search
        self.cache = cache
        self.resolver = resolver

    @property
    def help(self) -> list[tuple[str, str]]:
        return list(HELP)

    def format_quote(self, record: QuoteRecord) -> str:
        return f"{self.resolver.display_name(record.author_id)}: {record.text}"

    async def observe(self, author_id: str, text: str, timestamp: Optional[datetime] = None) -> None:
        """Cache a passively seen message. Never raises."""
        await self.cache.observe(author_id, text, timestamp)

    async def remember(self, author_token: str, query_text: str) -> str:
        record = await self.promotion.remember(author_token, query_text)
        if record is None:
            return REMEMBER_FAILED
        return f"remembering {self.format_quote(record)}"

    async def forget(self, author_token: str, query_text: str) -> str:
        record = await self.promotion.forget(author_token, query_text)
        if record is None:
            return FORGET_FAILED
        return f"forgot: {self.format_quote(record)}"

    async def quote(self, author_token: str = "", query_text: str = "") -> str:
        records = await self.search.quote(author_token, query_text)
        if not records:
            return QUOTE_FAILED
        return self.format_quote(records[0])

    async def mash(self, author_token: str = "", query_text: str = "") -> str:
        records = await self.search.mash(author_token, query_text)
        if not records:
            return MASH_FAILED
        return "\n\n".join(self.format_quote(record) for record in records)

    async def handle(self, line: str) -> Optional[str]:
        """
        Reply to a command line, or None if it is not a quote command.

        Args:
            line: Text addressed to the bot, with the bot's name removed
        """
        line = line.strip()

        match = REMEMBER_PATTERN.match(line)
        if match:
            return await self.remember(match.group(1), match.group(2) or "")

        match = FORGET_PATTERN.match(line)
        if match:
            return await self.forget(match.group(1), match.group(2) or "")

        match = QUOTE_PATTERN.match(line)
        if match:
            return await self.quote(match.group(1) or "", match.group(2) or "")

        match = MASH_PATTERN.match(line)
        if match:
            author_token = match.group(1) or match.group(3) or ""
            return await self.mash(author_token, match.group(2) or "")

        return None


def build_quote_commands(
    config: Optional[QuoteConfig] = None,
    resolver: Optional[AuthorResolver] = None,
    store: Optional[QuoteStore] = None,
) -> QuoteCommands:
    """Wire a store, cache and engines together."""
    store = store or QuoteStore(config)
    config = config or store.config
    resolver = resolver if resolver is not None else AuthorDirectory()
    store.initialize()
    logger.info(f"Quote commands ready (cache_size={config.cache_size}, mash_limit={config.mash_limit})")
    return QuoteCommands(
        promotion=PromotionEngine(store, resolver),
        search=SearchEngine(store, resolver, config),
        cache=QuoteCache(store, config),
        resolver=resolver,
    )
