"""
Ingestion of remote feeds: conditional fetching and body parsing.
"""

from feedrank.ingestion.feed_parser import FeedParser
from feedrank.ingestion.fetcher import ConditionalFetcher, FetchOutcome

__all__ = ["ConditionalFetcher", "FetchOutcome", "FeedParser"]
