"""
Subscription lists.

The polling engine only reads subscriptions; list management lives
elsewhere. YamlSubscriptions reads a feeds.yaml file shaped like:

    lists:
      default:
        - https://example.com/rss
      tech:
        - https://news.example.org/atom.xml
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Set

import yaml

from feedrank.config import load_feeds_yaml
from feedrank.errors import UsageError


class SubscriptionSource(ABC):
    """Read-only access to named lists of feed URLs."""

    @abstractmethod
    def list_urls(self, name: str) -> Set[str]:
        """Return the feed URLs in one list."""

    @abstractmethod
    def all_lists(self) -> List[str]:
        """Return the names of all lists."""


class YamlSubscriptions(SubscriptionSource):
    """Subscription lists read from feeds.yaml."""

    def __init__(self, path: Path):
        self.path = path
        self._lists: Optional[Dict[str, List[str]]] = None

    def _load(self) -> Dict[str, List[str]]:
        if self._lists is None:
            try:
                data = load_feeds_yaml(self.path)
            except yaml.YAMLError as exc:
                raise UsageError(f"invalid subscription file {self.path}: {exc}") from exc
            except (OSError, UnicodeDecodeError) as exc:
                raise UsageError(f"cannot read subscription file {self.path}: {exc}") from exc
            if not isinstance(data, dict):
                raise UsageError(f"invalid subscription file {self.path}: expected a mapping")
            lists = data.get("lists") or {}
            if not isinstance(lists, dict):
                raise UsageError(f"invalid subscription file {self.path}: 'lists' must be a mapping")

            parsed: Dict[str, List[str]] = {}
            for name, urls in lists.items():
                if urls is None:
                    urls = []
                if not isinstance(urls, list):
                    raise UsageError(
                        f"invalid subscription file {self.path}: list '{name}' must be a sequence of URLs"
                    )
                parsed[str(name)] = [str(url).strip() for url in urls if str(url).strip()]
            self._lists = parsed
        return self._lists

    def list_urls(self, name: str) -> Set[str]:
        lists = self._load()
        if name not in lists:
            raise UsageError(f"list '{name}' does not exist")
        return set(lists[name])

    def all_lists(self) -> List[str]:
        return sorted(self._load())


def resolve_urls(source: SubscriptionSource, list_name: Optional[str] = None) -> Set[str]:
    """
    Resolve the working set of feed URLs for a pass.

    Args:
        source: Subscription source
        list_name: A single list to use, or None for the union of all lists

    Returns:
        Set of feed URLs

    Raises:
        UsageError: If the named list does not exist or there are no lists
    """
    if list_name:
        return source.list_urls(list_name)

    names = source.all_lists()
    if not names:
        raise UsageError("no feeds to display")

    urls: Set[str] = set()
    for name in names:
        urls |= source.list_urls(name)
    return urls
