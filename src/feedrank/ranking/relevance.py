"""
Relevance scoring of feed items against a search query.

Text is lower-cased and split on non-alphanumeric boundaries. A candidate
earns a large fixed weight for every distinct query token it contains and
a smaller closeness credit for query tokens it only matches by prefix
(e.g. "python" against "pythonic"):

  score = 1000 * exact_matches + min(prefix_closeness, 999)

Candidates without a single exact match are excluded (-1). Because one
exact match always outweighs the largest closeness credit, a candidate
holding every query token beats any candidate missing one.
"""

import re
from typing import Iterable, List, Sequence

from feedrank.models.entities import ParsedItem


# ============================================================
# Constants
# ============================================================

EXCLUDED = -1
EXACT_MATCH_WEIGHT = 1000
MAX_CLOSENESS = EXACT_MATCH_WEIGHT - 1
MIN_PREFIX_LENGTH = 3

_TOKEN_RE = re.compile(r"[^\W_]+")


# ============================================================
# Tokenization
# ============================================================

def tokenize(text: str) -> List[str]:
    """
    Split text into lower-case alphanumeric tokens, in order.

    Example:
        >>> tokenize("Rust 1.80: what's new?")
        ['rust', '1', '80', 'what', 's', 'new']
    """
    if not text:
        return []
    return _TOKEN_RE.findall(text.lower())


def tokenize_item(item: ParsedItem) -> List[str]:
    """Tokens of an item's title followed by those of its category tags."""
    tokens = tokenize(item.title)
    for category in item.categories:
        tokens.extend(tokenize(category))
    return tokens


# ============================================================
# Scoring
# ============================================================

def _common_prefix_length(a: str, b: str) -> int:
    n = 0
    for x, y in zip(a, b):
        if x != y:
            break
        n += 1
    return n


def _prefix_closeness(token: str, candidates: Iterable[str]) -> int:
    """Longest shared prefix (at least MIN_PREFIX_LENGTH) with any candidate."""
    best = 0
    for candidate in candidates:
        n = _common_prefix_length(token, candidate)
        if n >= MIN_PREFIX_LENGTH and n > best:
            best = n
    return best


def score(query_tokens: Sequence[str], candidate_tokens: Sequence[str]) -> int:
    """
    Score candidate tokens against query tokens.

    Args:
        query_tokens: Tokens of the search query
        candidate_tokens: Tokens of an item (title and categories)

    Returns:
        Non-negative score, or EXCLUDED (-1) if no query token occurs in
        the candidate
    """
    candidates = set(candidate_tokens)
    exact = 0
    closeness = 0
    for token in dict.fromkeys(query_tokens):
        if token in candidates:
            exact += 1
        else:
            closeness += _prefix_closeness(token, candidates)

    if exact == 0:
        return EXCLUDED
    return exact * EXACT_MATCH_WEIGHT + min(closeness, MAX_CLOSENESS)
