"""
Relevance scoring, color assignment and ordering of feed items.
"""

from feedrank.ranking.colors import ColorTable
from feedrank.ranking.ordering import RankedItem, sort_by_relevance, sort_chronological
from feedrank.ranking.relevance import EXCLUDED, score, tokenize, tokenize_item

__all__ = [
    "ColorTable",
    "EXCLUDED",
    "RankedItem",
    "score",
    "sort_by_relevance",
    "sort_chronological",
    "tokenize",
    "tokenize_item",
]
