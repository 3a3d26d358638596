"""
Exception hierarchy for feedrank.

Per-feed errors (fetch, timeout, parse) are caught by the orchestrator and
reported as diagnostics; usage errors abort the operation before any
network work happens.
"""

from typing import Optional


class FeedRankError(Exception):
    """Base class for all feedrank errors."""


class UsageError(FeedRankError):
    """Invalid arguments or an empty query."""


class FetchError(FeedRankError):
    """
    A feed could not be fetched.

    Attributes:
        url: Feed URL the request was sent to
        status_code: HTTP status code, or None for network-layer failures
    """

    def __init__(self, message: str, url: str = "", status_code: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class FetchTimeoutError(FetchError):
    """The request exceeded the configured timeout."""


class ParseError(FeedRankError):
    """A cached feed body could not be parsed."""


class PersistenceError(FeedRankError):
    """The freshness store or body cache could not be read or written."""


__all__ = [
    "FeedRankError",
    "UsageError",
    "FetchError",
    "FetchTimeoutError",
    "ParseError",
    "PersistenceError",
]
