"""
Feed body parsing.

Turns a cached feed body (RSS, Atom, RDF or JSON Feed) into a ParsedFeed
using feedparser. Only the fields needed for ranking are kept: item
title, link, publication time and category tags.
"""

import io
import logging
from datetime import datetime, timezone
from typing import Any, BinaryIO, List, Optional

import feedparser
from dateutil import parser as date_parser

from feedrank.errors import ParseError
from feedrank.models.entities import ParsedFeed, ParsedItem

logger = logging.getLogger(__name__)


class FeedParser:
    """
    Parser for cached feed bodies.

    Example:
        >>> with body_cache.open(url) as stream:
        ...     feed = FeedParser().parse(stream)
        >>> print(feed.title, len(feed.items))
    """

    def parse(self, stream: BinaryIO) -> ParsedFeed:
        """
        Parse a feed document.

        Args:
            stream: Binary stream positioned at the start of the document

        Returns:
            ParsedFeed with items in document order

        Raises:
            ParseError: If the document is not a usable feed
        """
        try:
            data = stream.read()
        except OSError as exc:
            raise ParseError(f"failed to read feed body: {exc}") from exc

        parsed = feedparser.parse(io.BytesIO(data))

        if parsed.bozo and not parsed.entries:
            raise ParseError(f"failed to parse feed: {parsed.bozo_exception}")

        if parsed.bozo:
            logger.debug("Feed parsed with errors: %s", parsed.bozo_exception)

        channel = parsed.feed if hasattr(parsed, "feed") else {}
        return ParsedFeed(
            title=channel.get("title", "") or "",
            link=channel.get("link", "") or "",
            items=[extract_item(entry) for entry in parsed.entries],
        )


def extract_item(entry: Any) -> ParsedItem:
    """Build a ParsedItem from a feedparser entry."""
    return ParsedItem(
        title=entry.get("title", "") or "",
        link=entry.get("link", "") or "",
        published=extract_published(entry),
        categories=extract_categories(entry),
    )


def extract_published(entry: Any) -> Optional[datetime]:
    """
    Publication time of an entry in UTC.

    Prefers feedparser's normalized time tuples and falls back to parsing
    the raw date strings with dateutil. Returns None when no date parses.
    """
    for key in ("published_parsed", "updated_parsed"):
        value = entry.get(key)
        if value:
            try:
                return datetime(*value[:6], tzinfo=timezone.utc)
            except (TypeError, ValueError):
                continue

    for key in ("published", "updated"):
        raw = entry.get(key)
        if not raw:
            continue
        try:
            parsed = date_parser.parse(raw)
        except (ValueError, OverflowError):
            continue
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)

    return None


def extract_categories(entry: Any) -> List[str]:
    """Category terms attached to an entry."""
    categories: List[str] = []
    for tag in entry.get("tags", None) or []:
        term = tag.get("term") if hasattr(tag, "get") else None
        if term:
            categories.append(str(term))
    return categories
