"""
Structured query builder for quote lookups.

A lookup is a predicate (text rank, regex, or nothing) combined with an
optional author-equality clause and the stored/unstored partition.
Values are always bound as parameters; only fixed SQL fragments are
concatenated.
"""

import re
from dataclasses import dataclass
from typing import Optional, Union

REGEX_FORM = re.compile(r"^/.+/$")
REGEX_EXTRACT = re.compile(r"^/(.*)/$")

_NON_WORD = re.compile(r"[^\w\s]+")


@dataclass(frozen=True)
class TextRank:
    """Full-text match against the searchable index."""
    query: str


@dataclass(frozen=True)
class Regex:
    """Case-insensitive regex match against the raw text."""
    pattern: str


@dataclass(frozen=True)
class NoPredicate:
    """Match every record in the partition."""


Predicate = Union[TextRank, Regex, NoPredicate]


@dataclass(frozen=True)
class QuoteFilter:
    """A predicate plus the author and stored clauses it is scoped to."""
    predicate: Predicate = NoPredicate()
    author_id: Optional[str] = None
    stored: Optional[bool] = True


def is_regex(token: Optional[str]) -> bool:
    """True when the token is wrapped in /.../ delimiters."""
    return bool(token) and REGEX_FORM.match(token) is not None


def extract_regex(token: str) -> str:
    """Strip the /.../ delimiters from a regex-form token."""
    return REGEX_EXTRACT.sub(r"\1", token)


def to_fts_query(text: Optional[str]) -> str:
    """
    Turn free text into an FTS5 query that requires every word.

    Punctuation is dropped and each remaining word is quoted, so user
    input can never inject FTS5 operators.

    Returns:
        The FTS5 query, or "" when no words remain
    """
    if not text:
        return ""
    words = _NON_WORD.sub("", text).split()
    return " AND ".join(f'"{word}"' for word in words)


def predicate_for(text: Optional[str]) -> Predicate:
    """Pick the predicate a query string implies on its own."""
    if is_regex(text):
        return Regex(extract_regex(text))
    fts_query = to_fts_query(text)
    if fts_query:
        return TextRank(fts_query)
    return NoPredicate()


def compile_filter(quote_filter: QuoteFilter) -> tuple[str, list]:
    """
    Compile a filter into a WHERE clause body and its parameters.

    Returns:
        (sql, params); sql is "1" when nothing restricts the query
    """
    clauses: list[str] = []
    params: list = []

    if quote_filter.stored is not None:
        clauses.append("quotes.stored = ?")
        params.append(1 if quote_filter.stored else 0)

    if quote_filter.author_id is not None:
        clauses.append("quotes.author_id = ?")
        params.append(quote_filter.author_id)

    predicate = quote_filter.predicate
    if isinstance(predicate, TextRank):
        clauses.append("quotes.id IN (SELECT rowid FROM quotes_fts WHERE quotes_fts MATCH ?)")
        params.append(predicate.query)
    elif isinstance(predicate, Regex):
        clauses.append("quotes.text REGEXP ?")
        params.append(predicate.pattern)

    if not clauses:
        return "1", params
    return " AND ".join(clauses), params
