"""
Author resolution.

The chat transport owns user identities; the quote engine only needs to
turn a typed name into an author id and an author id back into a name.
`AuthorDirectory` is the in-process implementation fed by the transport.
"""

import logging
import threading
from typing import Iterable, Optional, Protocol, runtime_checkable

from .query import is_regex
from .schemas import Author

logger = logging.getLogger(__name__)


@runtime_checkable
class AuthorResolver(Protocol):
    """What the quote engine needs from the user directory."""

    def resolve_by_token(self, token: Optional[str]) -> Optional[str]:
        """Author id for a typed name, or None."""
        ...

    def display_name(self, author_id: str) -> str:
        """Name to show next to a quote."""
        ...


class AuthorDirectory:
    """
    Thread-safe in-memory author directory.

    Tokens match case-insensitively against first, display and real
    names. An exact match wins; otherwise the first registered author
    whose name contains the token.
    """

    def __init__(self, authors: Optional[Iterable[Author]] = None):
        self._authors: dict[str, Author] = {}
        self._lock = threading.Lock()
        for author in authors or []:
            self.add(author)

    def add(self, author: Author) -> None:
        with self._lock:
            self._authors[author.id] = author

    def remove(self, author_id: str) -> bool:
        with self._lock:
            return self._authors.pop(author_id, None) is not None

    def get(self, author_id: str) -> Optional[Author]:
        with self._lock:
            return self._authors.get(author_id)

    def __len__(self) -> int:
        return len(self._authors)

    def resolve_by_token(self, token: Optional[str]) -> Optional[str]:
        if not token or not token.strip() or is_regex(token):
            return None
        needle = token.strip().lower()

        with self._lock:
            authors = list(self._authors.values())

        substring_match: Optional[Author] = None
        for author in authors:
            names = [n.lower() for n in (author.first_name, author.display_name, author.real_name) if n]
            if needle in names:
                return author.id
            if substring_match is None and any(needle in name for name in names):
                substring_match = author

        if substring_match is None:
            logger.debug(f"No author matches '{token}'")
            return None
        return substring_match.id

    def display_name(self, author_id: str) -> str:
        author = self.get(author_id)
        return author.name if author else author_id
