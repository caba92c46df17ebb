"""
Shared fixtures for quote engine tests.

Each test gets its own SQLite file in a temporary directory and a small
author directory with three users.
"""

import os
import tempfile

import pytest

from core.quotes.authors import AuthorDirectory
from core.quotes.commands import QuoteCommands, build_quote_commands
from core.quotes.ingestion import QuoteCache
from core.quotes.promotion import PromotionEngine
from core.quotes.record_store import QuoteStore
from core.quotes.schemas import Author, QuoteConfig
from core.quotes.search import SearchEngine


@pytest.fixture
def temp_db_path():
    """Create a temporary database path."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield os.path.join(tmpdir, "test_quotes.db")


@pytest.fixture
def quote_config(temp_db_path):
    """Create a test quote config with a small cache."""
    return QuoteConfig(
        db_path=temp_db_path,
        cache_size=5,
        mash_limit=10,
        busy_timeout_ms=30000,
    )


@pytest.fixture
def quote_store(quote_config):
    """Create an initialized quote store."""
    store = QuoteStore(quote_config)
    store.initialize()
    yield store
    store.close()


@pytest.fixture
def directory():
    """Author directory with a few users."""
    return AuthorDirectory([
        Author(id="U1", first_name="Bob", last_name="Loblaw", display_name="bobl"),
        Author(id="U2", first_name="Alice", real_name="Alice Cooper"),
        Author(id="U3", first_name="Roberta", display_name="bertie"),
    ])


@pytest.fixture
def cache(quote_store, quote_config):
    return QuoteCache(quote_store, quote_config)


@pytest.fixture
def promotion(quote_store, directory):
    return PromotionEngine(quote_store, directory)


@pytest.fixture
def search_engine(quote_store, directory, quote_config):
    return SearchEngine(quote_store, directory, quote_config)


@pytest.fixture
def commands(quote_store, directory, quote_config) -> QuoteCommands:
    return build_quote_commands(quote_config, directory, store=quote_store)
