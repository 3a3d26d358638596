"""
Feedrank

Polls many syndication feeds with conditional requests, caches their
bodies, and merges the items into one list ranked by recency or by
relevance to a search query.
"""

__version__ = "0.1.0"
__author__ = "Feedrank Team"

from feedrank.config import Config

__all__ = ["Config", "__version__"]
