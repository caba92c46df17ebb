"""
Pydantic models for the quote engine.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class SearchMode(str, Enum):
    """How a quote query is matched against stored records."""
    REGEX = "regex"
    AUTHOR = "author"
    TEXT = "text"


class QuoteRecord(BaseModel):
    """A single observed or remembered message."""

    id: int
    text: str
    author_id: str
    stored: bool = False
    created_at: datetime
    last_quoted_at: Optional[datetime] = None


class Author(BaseModel):
    """A chat user as known to the author directory."""

    id: str
    first_name: str = ""
    last_name: str = ""
    display_name: str = ""
    real_name: str = ""

    @property
    def name(self) -> str:
        return self.first_name or self.real_name or self.display_name or self.id


class QuoteConfig(BaseModel):
    """Configuration for the quote engine."""

    db_path: str = Field(default="./data/quotes.db")
    cache_size: int = Field(default=25, ge=1, description="Unstored messages kept per author")
    mash_limit: int = Field(default=10, ge=1, description="Max quotes returned by *mash commands")
    quote_limit: int = Field(default=1, ge=1, description="Max quotes returned by the quote command")
    busy_timeout_ms: int = Field(default=5000, ge=0, description="How long a write waits for the database lock")


class QuoteStats(BaseModel):
    """Counts of records in the store."""

    total: int = 0
    stored: int = 0
    unstored: int = 0
    authors: int = 0
    by_author: dict[str, dict[str, int]] = Field(default_factory=dict)
