"""
Tests for quote classification, search and sampling.
"""

import asyncio

import pytest

from core.quotes.query import NoPredicate, Regex, TextRank
from core.quotes.schemas import SearchMode

from .helpers import add_stored, at


class TestClassify:
    """Tests for query classification."""

    def test_regex_in_author_position(self, search_engine):
        c = search_engine.classify("/ca+ke/", "")
        assert c.mode == SearchMode.REGEX
        assert c.predicate == Regex("ca+ke")
        assert c.author_id is None

    def test_regex_in_text_position_scoped_to_author(self, search_engine):
        c = search_engine.classify("bob", "/ca+ke/")
        assert c.mode == SearchMode.REGEX
        assert c.predicate == Regex("ca+ke")
        assert c.author_id == "U1"

    def test_regex_author_token_scoped_by_other_side(self, search_engine):
        c = search_engine.classify("/ca+ke/", "alice")
        assert c.mode == SearchMode.REGEX
        assert c.author_id == "U2"

    def test_known_author(self, search_engine):
        c = search_engine.classify("bob", "cake")
        assert c.mode == SearchMode.AUTHOR
        assert c.author_id == "U1"
        assert c.search_string == "cake"
        assert c.predicate == TextRank('"cake"')

    def test_known_author_without_text_is_a_browse(self, search_engine):
        c = search_engine.classify("bob", "")
        assert c.mode == SearchMode.AUTHOR
        assert c.predicate == NoPredicate()
        assert not c.matches_nothing

    def test_plain_text(self, search_engine):
        c = search_engine.classify("cake", "is a lie")
        assert c.mode == SearchMode.TEXT
        assert c.author_id is None
        assert c.search_string == "cake is a lie"

    def test_nothing_given(self, search_engine):
        c = search_engine.classify("", "")
        assert c.mode == SearchMode.TEXT
        assert c.predicate == NoPredicate()
        assert not c.matches_nothing

    def test_punctuation_only_matches_nothing(self, search_engine):
        c = search_engine.classify("?!", "")
        assert c.matches_nothing

    def test_classification_is_order_independent(self, search_engine):
        forms = [("/foo/", ""), ("bob", ""), ("cake", "")]
        expected = [SearchMode.REGEX, SearchMode.AUTHOR, SearchMode.TEXT]
        assert [search_engine.classify(*f).mode for f in forms] == expected
        assert [search_engine.classify(*f).mode for f in reversed(forms)] == list(reversed(expected))

    def test_build_search_string(self, search_engine):
        assert search_engine.build_search_string("bob", "cake") == "cake"
        assert search_engine.build_search_string("cake", "lie") == "cake lie"
        assert search_engine.build_search_string("bob", "/x+/") == "x+"


class TestSearch:
    """Tests for stored-quote sampling."""

    @pytest.mark.asyncio
    async def test_author_browse(self, search_engine, quote_store):
        add_stored(quote_store, "bob one", "U1", 0)
        add_stored(quote_store, "bob two", "U1", 1)
        add_stored(quote_store, "alice one", "U2", 2)
        quote_store.insert("bob cached", "U1", at(3))

        results = await search_engine.search("bob", "", limit=10)
        assert {r.text for r in results} == {"bob one", "bob two"}

    @pytest.mark.asyncio
    async def test_text_search_folds_author_token(self, search_engine, quote_store):
        add_stored(quote_store, "the cake is a lie", "U1", 0)
        add_stored(quote_store, "cake for everyone", "U2", 1)

        results = await search_engine.search("cake", "lie", limit=10)
        assert [r.text for r in results] == ["the cake is a lie"]

    @pytest.mark.asyncio
    async def test_regex_search(self, search_engine, quote_store):
        add_stored(quote_store, "Caaake", "U1", 0)
        add_stored(quote_store, "cookie", "U1", 1)

        results = await search_engine.search("/^ca+ke$/", "", limit=10)
        assert [r.text for r in results] == ["Caaake"]

    @pytest.mark.asyncio
    async def test_regex_search_with_author(self, search_engine, quote_store):
        add_stored(quote_store, "cake by bob", "U1", 0)
        add_stored(quote_store, "cake by alice", "U2", 1)

        results = await search_engine.search("alice", "/cake/", limit=10)
        assert [r.author_id for r in results] == ["U2"]

    @pytest.mark.asyncio
    async def test_sampling_bound_and_filters(self, search_engine, quote_store):
        for i in range(25):
            add_stored(quote_store, f"bob says {i}", "U1", i)
            add_stored(quote_store, f"alice says {i}", "U2", i)

        results = await search_engine.search("bob", "says", limit=10)
        assert len(results) == 10
        assert all(r.stored and r.author_id == "U1" for r in results)

    @pytest.mark.asyncio
    async def test_malformed_regex_returns_empty(self, search_engine, quote_store):
        add_stored(quote_store, "anything", "U1")
        assert await search_engine.search("/(oops/", "", limit=10) == []

    @pytest.mark.asyncio
    async def test_no_match_returns_empty(self, search_engine, quote_store):
        add_stored(quote_store, "anything", "U1")
        assert await search_engine.search("", "zebra", limit=10) == []

    @pytest.mark.asyncio
    async def test_punctuation_only_returns_empty(self, search_engine, quote_store):
        add_stored(quote_store, "anything", "U1")
        assert await search_engine.search("?!", "", limit=10) == []

    @pytest.mark.asyncio
    async def test_search_does_not_mark_quoted(self, search_engine, quote_store):
        record_id = add_stored(quote_store, "quiet", "U1")
        await search_engine.search("bob", "", limit=1)
        await search_engine.wait_pending()
        assert quote_store.get_by_id(record_id).last_quoted_at is None


class TestQuoteAndMash:
    """Tests for the two call shapes and recency updates."""

    @pytest.mark.asyncio
    async def test_quote_returns_one_and_marks_it(self, search_engine, quote_store):
        for i in range(3):
            add_stored(quote_store, f"bob line {i}", "U1", i)

        results = await search_engine.quote("bob", "")
        await search_engine.wait_pending()

        assert len(results) == 1
        assert quote_store.get_by_id(results[0].id).last_quoted_at is not None

    @pytest.mark.asyncio
    async def test_mash_returns_up_to_limit_and_marks_all(self, search_engine, quote_store):
        for i in range(12):
            add_stored(quote_store, f"bob line {i}", "U1", i)

        results = await search_engine.mash("bob", "")
        await search_engine.wait_pending()

        assert len(results) == 10
        for record in results:
            assert quote_store.get_by_id(record.id).last_quoted_at is not None

    @pytest.mark.asyncio
    async def test_failed_touch_does_not_affect_result(self, search_engine, quote_store, monkeypatch):
        add_stored(quote_store, "still shown", "U1")

        def broken_touch(*args, **kwargs):
            raise RuntimeError("database is locked")

        monkeypatch.setattr(quote_store, "touch_last_quoted_at", broken_touch)

        results = await search_engine.quote("bob", "")
        await search_engine.wait_pending()
        assert [r.text for r in results] == ["still shown"]

    @pytest.mark.asyncio
    async def test_empty_result_schedules_nothing(self, search_engine):
        assert await search_engine.quote("bob", "") == []
        assert search_engine.mark_quoted([]) is None

    @pytest.mark.asyncio
    async def test_mark_quoted_runs_in_background(self, search_engine, quote_store):
        record_id = add_stored(quote_store, "background", "U1")
        record = quote_store.get_by_id(record_id)

        task = search_engine.mark_quoted([record])
        assert isinstance(task, asyncio.Task)
        await task
        assert quote_store.get_by_id(record_id).last_quoted_at is not None
