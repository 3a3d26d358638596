"""
Persistence for freshness metadata, cached feed bodies and subscription lists.
"""

from feedrank.storage.body_cache import BodyCache
from feedrank.storage.freshness import FreshnessStore
from feedrank.storage.subscriptions import SubscriptionSource, YamlSubscriptions, resolve_urls

__all__ = [
    "BodyCache",
    "FreshnessStore",
    "SubscriptionSource",
    "YamlSubscriptions",
    "resolve_urls",
]
