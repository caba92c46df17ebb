"""Test helpers shared by the quote tests."""

from datetime import datetime, timedelta, timezone

from core.quotes.record_store import QuoteStore

BASE_TIME = datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def at(minutes: int) -> datetime:
    """A timestamp `minutes` after the fixed base time."""
    return BASE_TIME + timedelta(minutes=minutes)


def add_stored(store: QuoteStore, text: str, author_id: str, minutes: int = 0) -> int:
    """Insert a record and mark it remembered."""
    record_id = store.insert(text, author_id, at(minutes))
    store.set_stored(record_id, True)
    return record_id
