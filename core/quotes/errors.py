"""
Exceptions raised by the quote store.

The engines catch these at the operation boundary and turn them into
empty results, so they never reach the transport layer.
"""

from typing import Optional


class QuoteError(Exception):
    """Base class for quote engine errors."""


class StoreError(QuoteError):
    """The backing database failed or was unavailable."""

    def __init__(self, operation: str, message: str, cause: Optional[Exception] = None):
        self.operation = operation
        self.cause = cause
        super().__init__(f"{operation}: {message}")


class QueryError(StoreError):
    """A query could not be evaluated (bad regex, bad text query)."""


class AuthorNotFound(QuoteError):
    """An author token did not resolve to a known author."""

    def __init__(self, token: str):
        self.token = token
        super().__init__(f"couldn't find user {token}")


class NoCandidate(QuoteError):
    """No record matched a promotion or search request."""
