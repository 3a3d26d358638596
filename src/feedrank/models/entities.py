"""
Pydantic data models for feed freshness metadata and parsed feeds.

FreshnessEntry is persisted between runs; ParsedFeed and ParsedItem are
the structured form of a cached feed body produced by the parser.
"""

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class FreshnessEntry(BaseModel):
    """
    Per-feed freshness metadata.

    Attributes:
        url: Feed URL (unique key)
        etag: Validation token from the last 200 response, may be empty
        last_fetch: Time of the last fetch that returned a new body
        fetch_after: Earliest time the feed may be polled again
    """
    url: str
    etag: str = ""
    last_fetch: datetime = EPOCH
    fetch_after: datetime = EPOCH

    @field_validator("last_fetch", "fetch_after")
    @classmethod
    def _normalize_timezone(cls, value: datetime) -> datetime:
        return _as_utc(value)

    @classmethod
    def zero(cls, url: str) -> "FreshnessEntry":
        """Entry for a feed that has never been polled."""
        return cls(url=url)

    @property
    def never_fetched(self) -> bool:
        return self.last_fetch <= EPOCH


class ParsedItem(BaseModel):
    """A single item from a parsed feed."""
    title: str = ""
    link: str = ""
    published: Optional[datetime] = None
    categories: List[str] = Field(default_factory=list)

    @field_validator("published")
    @classmethod
    def _normalize_timezone(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)


class ParsedFeed(BaseModel):
    """
    Structured feed produced from a cached body.

    Attributes:
        title: Feed title, used as the color assignment key
        link: Feed home page, if present
        items: Feed items in document order
    """
    title: str = ""
    link: str = ""
    items: List[ParsedItem] = Field(default_factory=list)
