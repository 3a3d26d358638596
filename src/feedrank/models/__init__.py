"""
Data models shared by the fetch, storage and ranking layers.
"""

from feedrank.models.entities import EPOCH, FreshnessEntry, ParsedFeed, ParsedItem

__all__ = [
    "EPOCH",
    "FreshnessEntry",
    "ParsedFeed",
    "ParsedItem",
]
