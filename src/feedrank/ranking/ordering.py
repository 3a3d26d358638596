"""
Ranked items and the two output orderings.

Feed mode shows the newest items first; search mode shows the best
scoring items first. Both sorts are stable.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List

from feedrank.models.entities import ParsedFeed, ParsedItem

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class RankedItem:
    """
    A feed item ready for display.

    Attributes:
        feed_url: URL of the feed the item came from
        feed: Parsed source feed
        item: Parsed source item
        color: Display color index (0-255) of the source feed
        is_new: True if published after the feed's previous successful fetch
        score: Relevance score in search mode, 0 otherwise
    """

    feed_url: str
    feed: ParsedFeed
    item: ParsedItem
    color: int = 0
    is_new: bool = False
    score: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "feed_url": self.feed_url,
            "feed_title": self.feed.title,
            "title": self.item.title,
            "link": self.item.link,
            "published": self.item.published.isoformat() if self.item.published else None,
            "categories": list(self.item.categories),
            "color": self.color,
            "is_new": self.is_new,
            "score": self.score,
        }


def _published_key(ranked: RankedItem) -> datetime:
    return ranked.item.published or _OLDEST


def sort_chronological(items: Iterable[RankedItem]) -> List[RankedItem]:
    """Newest first; items without a publish time sort as oldest."""
    return sorted(items, key=_published_key, reverse=True)


def sort_by_relevance(items: Iterable[RankedItem]) -> List[RankedItem]:
    """Highest score first; ties keep their incoming order."""
    return sorted(items, key=lambda ranked: ranked.score, reverse=True)
