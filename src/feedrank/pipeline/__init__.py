"""
Polling passes: concurrent fetch, parse, filter and merge of many feeds.
"""

from feedrank.pipeline.orchestrator import (
    FeedContext,
    PassResult,
    RunSummary,
    feed,
    run_pass,
    search,
)

__all__ = [
    "FeedContext",
    "PassResult",
    "RunSummary",
    "feed",
    "run_pass",
    "search",
]
