"""
Shared test fixtures.

Provides pytest fixtures and builders for common test resources including:
- A fixed clock
- Test configuration rooted in a temporary directory
- Fake HTTP responses and sessions (no network access)
- RSS documents
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union
from unittest.mock import MagicMock

import pytest
from requests.structures import CaseInsensitiveDict

from feedrank.config import Config
from feedrank.ingestion.feed_parser import FeedParser
from feedrank.ingestion.fetcher import ConditionalFetcher
from feedrank.pipeline.orchestrator import FeedContext
from feedrank.storage.body_cache import BodyCache
from feedrank.storage.freshness import FreshnessStore
from feedrank.storage.subscriptions import YamlSubscriptions


NOW = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
#  Builders
# ---------------------------------------------------------------------------

def make_rss(
    title: str,
    items: Sequence[Tuple[str, Optional[str], Sequence[str]]] = (),
    link: str = "https://example.com/",
) -> bytes:
    """
    Build an RSS 2.0 document.

    Args:
        title: Channel title
        items: (item title, RFC 822 pubDate or None, categories) tuples
        link: Channel link
    """
    parts = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        '<rss version="2.0"><channel>',
        f"<title>{title}</title>",
        f"<link>{link}</link>",
        "<description>Test feed</description>",
    ]
    for i, (item_title, pub_date, categories) in enumerate(items):
        parts.append("<item>")
        parts.append(f"<title>{item_title}</title>")
        parts.append(f"<link>{link}items/{i}</link>")
        parts.append(f"<guid>{link}items/{i}</guid>")
        if pub_date:
            parts.append(f"<pubDate>{pub_date}</pubDate>")
        for category in categories:
            parts.append(f"<category>{category}</category>")
        parts.append("</item>")
    parts.append("</channel></rss>")
    return "\n".join(parts).encode("utf-8")


def make_response(
    status: int = 200,
    body: bytes = b"",
    headers: Optional[Dict[str, str]] = None,
) -> MagicMock:
    """Build a mock requests.Response whose raw stream yields ``body`` once."""
    response = MagicMock()
    response.status_code = status
    response.headers = CaseInsensitiveDict(headers or {})
    chunks = iter([body])
    response.raw.read1.side_effect = lambda *args, **kwargs: next(chunks, b"")
    return response


def make_session(routes: Dict[str, Union[MagicMock, Exception]]) -> MagicMock:
    """
    Build a mock requests.Session dispatching on URL.

    Each route is either a response returned for every request to that URL,
    or an exception raised instead.
    """
    session = MagicMock()

    def _get(url, **kwargs):
        route = routes[url]
        if isinstance(route, Exception):
            raise route
        return route

    session.get.side_effect = _get
    return session


def write_feeds_yaml(path: Path, lists: Dict[str, List[str]]) -> None:
    lines = ["lists:"]
    for name, urls in lists.items():
        lines.append(f"  {name}:")
        for url in urls:
            lines.append(f"    - {url}")
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def make_context(
    data_dir: Path,
    session: MagicMock,
    parser: Optional[FeedParser] = None,
    **config_overrides,
) -> FeedContext:
    """Build a FeedContext on a temporary directory with a fixed clock."""
    config = Config(data_dir=data_dir, **config_overrides)
    config.ensure_directories()
    body_cache = BodyCache(config.cache_path)
    return FeedContext(
        config=config,
        freshness=FreshnessStore(config.freshness_path),
        body_cache=body_cache,
        fetcher=ConditionalFetcher(body_cache, session=session, user_agent="feedrank-test"),
        parser=parser or FeedParser(),
        subscriptions=YamlSubscriptions(config.feeds_path),
        clock=lambda: NOW,
    )


# ---------------------------------------------------------------------------
#  Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def now() -> datetime:
    """Fixed current time used across tests."""
    return NOW


@pytest.fixture
def test_config(tmp_path: Path) -> Config:
    """
    Create test configuration with temporary paths.

    Args:
        tmp_path: pytest temporary directory

    Returns:
        Config: Test configuration
    """
    config = Config(data_dir=tmp_path)
    config.ensure_directories()
    return config


@pytest.fixture
def body_cache(tmp_path: Path) -> BodyCache:
    return BodyCache(tmp_path / "feeds")
