"""
Quote memory module.

Remembers things people said and quotes them back:
- Every observed message is cached per author (bounded, oldest evicted)
- remember/forget promote a cached message to a stored quote and back
- quote/mash sample stored quotes by author, free text, or /regex/

Usage:
    from core.quotes import AuthorDirectory, Author, QuoteConfig, build_quote_commands

    directory = AuthorDirectory([Author(id="U1", first_name="Bob")])
    commands = build_quote_commands(QuoteConfig(db_path="./data/quotes.db"), directory)

    # Every message the bot sees
    await commands.observe("U1", "the cake is a lie")

    # Commands addressed to the bot
    await commands.handle("remember bob cake")   # "remembering Bob: the cake is a lie"
    await commands.handle("quote bob")           # "Bob: the cake is a lie"
    await commands.handle("/cake/mash")
"""

from .schemas import Author, QuoteConfig, QuoteRecord, QuoteStats, SearchMode
from .errors import AuthorNotFound, NoCandidate, QueryError, QuoteError, StoreError
from .query import (
    NoPredicate,
    QuoteFilter,
    Regex,
    TextRank,
    compile_filter,
    extract_regex,
    is_regex,
    to_fts_query,
)
from .record_store import QuoteStore, get_quote_store
from .authors import AuthorDirectory, AuthorResolver
from .ingestion import QuoteCache
from .promotion import PromotionEngine
from .search import Classification, SearchEngine
from .commands import HELP, QuoteCommands, build_quote_commands
from .config import QuoteSettings, configure_logging, get_settings, load_quote_config

__all__ = [
    # Schemas
    "Author",
    "QuoteConfig",
    "QuoteRecord",
    "QuoteStats",
    "SearchMode",
    # Errors
    "AuthorNotFound",
    "NoCandidate",
    "QueryError",
    "QuoteError",
    "StoreError",
    # Query builder
    "NoPredicate",
    "QuoteFilter",
    "Regex",
    "TextRank",
    "compile_filter",
    "extract_regex",
    "is_regex",
    "to_fts_query",
    # Store
    "QuoteStore",
    "get_quote_store",
    # Engines
    "AuthorDirectory",
    "AuthorResolver",
    "QuoteCache",
    "PromotionEngine",
    "Classification",
    "SearchEngine",
    # Commands
    "HELP",
    "QuoteCommands",
    "build_quote_commands",
    # Config
    "QuoteSettings",
    "configure_logging",
    "get_settings",
    "load_quote_config",
]
