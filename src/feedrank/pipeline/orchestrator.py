"""
Polling pass orchestration.

A pass polls every subscribed feed concurrently, parses the cached body of
each feed, scores and filters its items, and merges everything into one
item list. Freshness metadata is loaded once before the pass and saved
once after it.

Failures are isolated per feed: a feed that cannot be fetched or parsed
contributes no items and one diagnostic line, and the pass carries on.

This module is designed to be used in two ways:

1. **Programmatic** -- call ``feed()`` / ``search()`` (or ``run_pass()``
   with an explicit URL set) from Python.
2. **CLI** -- invoked via ``feedrank feed`` and ``feedrank search``.

Example:
    >>> ctx = FeedContext.from_config(get_config())
    >>> result = feed(ctx, list_name="default", limit=20)
    >>> for ranked in result.items:
    ...     print(ranked.feed.title, ranked.item.title)
"""

import json
import logging
import queue
import threading
from concurrent.futures import Future, as_completed
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

import requests
from requests.adapters import HTTPAdapter

from feedrank.config import Config, get_config
from feedrank.errors import FeedRankError, PersistenceError, UsageError
from feedrank.ingestion.feed_parser import FeedParser
from feedrank.ingestion.fetcher import ConditionalFetcher, FetchOutcome
from feedrank.models.entities import FreshnessEntry, ParsedFeed, ParsedItem
from feedrank.ranking.colors import ColorTable
from feedrank.ranking.ordering import RankedItem, sort_by_relevance, sort_chronological
from feedrank.ranking.relevance import EXCLUDED, score, tokenize, tokenize_item
from feedrank.storage.body_cache import BodyCache
from feedrank.storage.freshness import FreshnessStore
from feedrank.storage.subscriptions import SubscriptionSource, YamlSubscriptions, resolve_urls

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def pluralize(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


# ---------------------------------------------------------------------------
#  Data models
# ---------------------------------------------------------------------------

@dataclass
class RunSummary:
    """
    Counters describing one pass.

    Attributes:
        started_at: When the pass started
        feeds_count: Number of feeds considered
        feeds_cached: Feeds served from the body cache (skipped, 304, backoff)
        feeds_fetched: Feeds that returned a new body
        items_count: Items seen across all parsed feeds
        items_shown: Items left after filtering and the display limit
        finished_at: When the pass finished
    """

    started_at: datetime
    feeds_count: int = 0
    feeds_cached: int = 0
    feeds_fetched: int = 0
    items_count: int = 0
    items_shown: int = 0
    finished_at: Optional[datetime] = None

    @property
    def elapsed_seconds(self) -> float:
        if self.finished_at is None:
            return 0.0
        return max((self.finished_at - self.started_at).total_seconds(), 0.0)

    def format(self) -> str:
        """One-line human-readable summary."""
        return (
            f"Displayed {pluralize(self.items_shown, 'item')} "
            f"from {pluralize(self.feeds_count, 'feed')} "
            f"({self.feeds_cached} cached, {self.feeds_fetched} fetched) "
            f"with {pluralize(self.items_count, 'item')} "
            f"in {self.elapsed_seconds:.2f}s"
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "feeds_count": self.feeds_count,
            "feeds_cached": self.feeds_cached,
            "feeds_fetched": self.feeds_fetched,
            "items_count": self.items_count,
            "items_shown": self.items_shown,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
        }


@dataclass
class PassResult:
    """
    Result of a polling pass.

    Attributes:
        items: Surviving items (ordered by feed()/search(), unordered
            straight out of run_pass())
        summary: Run counters
        errors: One diagnostic line per failed feed, plus a line if the
            freshness metadata could not be saved
        persisted: False if saving the freshness metadata failed
    """

    items: List[RankedItem] = field(default_factory=list)
    summary: RunSummary = field(default_factory=lambda: RunSummary(started_at=utc_now()))
    errors: List[str] = field(default_factory=list)
    persisted: bool = True

    @property
    def has_items(self) -> bool:
        return len(self.items) > 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "items": [ranked.to_dict() for ranked in self.items],
            "summary": self.summary.to_dict(),
            "errors": self.errors,
            "persisted": self.persisted,
            "item_count": len(self.items),
        }

    def to_json(self, indent: int = 2) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)


@dataclass
class FeedContext:
    """
    Everything a pass needs, constructed once per invocation.

    Attributes:
        config: Application configuration
        freshness: Freshness metadata store
        body_cache: Cached feed bodies
        fetcher: Conditional fetch client
        parser: Feed body parser
        subscriptions: Subscription lists
        clock: Source of the current time
    """

    config: Config
    freshness: FreshnessStore
    body_cache: BodyCache
    fetcher: ConditionalFetcher
    parser: FeedParser
    subscriptions: SubscriptionSource
    clock: Callable[[], datetime] = utc_now

    @classmethod
    def from_config(cls, config: Optional[Config] = None) -> "FeedContext":
        """Build a context backed by the files and directories in ``config``."""
        if config is None:
            config = get_config()

        session = requests.Session()
        adapter = HTTPAdapter(pool_maxsize=config.max_workers)
        session.mount("http://", adapter)
        session.mount("https://", adapter)

        body_cache = BodyCache(config.cache_path)
        return cls(
            config=config,
            freshness=FreshnessStore(config.freshness_path),
            body_cache=body_cache,
            fetcher=ConditionalFetcher(
                body_cache,
                session=session,
                timeout=config.request_timeout,
                user_agent=config.user_agent,
            ),
            parser=FeedParser(),
            subscriptions=YamlSubscriptions(config.feeds_path),
        )


# ---------------------------------------------------------------------------
#  Per-feed work
# ---------------------------------------------------------------------------

class _PassState:
    """Mutable state shared by the workers of one pass, guarded by ``lock``."""

    def __init__(
        self,
        entries: Dict[str, FreshnessEntry],
        colors: ColorTable,
        summary: RunSummary,
    ) -> None:
        self.lock = threading.Lock()
        self.entries = entries
        self.colors = colors
        self.summary = summary
        self.items: List[RankedItem] = []
        self.errors: List[str] = []

    def report(self, message: str) -> None:
        logger.error(message)
        with self.lock:
            self.errors.append(message)

    def snapshot(self) -> Dict[str, FreshnessEntry]:
        with self.lock:
            return dict(self.entries)


def _updated_entry(entry: FreshnessEntry, outcome: FetchOutcome, now: datetime) -> FreshnessEntry:
    update: Dict[str, Any] = {}
    if outcome.changed:
        update["etag"] = outcome.etag
        update["last_fetch"] = now
    if outcome.next_fetch_after > entry.fetch_after:
        update["fetch_after"] = outcome.next_fetch_after
    return entry.model_copy(update=update) if update else entry


def _select_items(
    feed: ParsedFeed,
    last_fetch: datetime,
    since: Optional[datetime],
    query_tokens: Optional[Sequence[str]],
) -> List[Tuple[ParsedItem, bool, int]]:
    """Apply the since and relevance filters; returns (item, is_new, score)."""
    selected = []
    for item in feed.items:
        if since is not None and (item.published is None or item.published < since):
            continue
        item_score = 0
        if query_tokens:
            item_score = score(query_tokens, tokenize_item(item))
            if item_score == EXCLUDED:
                continue
        is_new = item.published is not None and item.published > last_fetch
        selected.append((item, is_new, item_score))
    return selected


def _process_feed(
    ctx: FeedContext,
    state: _PassState,
    entry: FreshnessEntry,
    now: datetime,
    since: Optional[datetime],
    query_tokens: Optional[Sequence[str]],
) -> None:
    url = entry.url
    try:
        outcome = ctx.fetcher.poll(entry, now)
    except FeedRankError as exc:
        state.report(f"failed to fetch feed: {url}: {exc}")
        return

    feed: Optional[ParsedFeed] = None
    parse_error: Optional[FeedRankError] = None
    try:
        with ctx.body_cache.open(url) as stream:
            feed = ctx.parser.parse(stream)
    except FeedRankError as exc:
        parse_error = exc

    selected = _select_items(feed, entry.last_fetch, since, query_tokens) if feed else []

    with state.lock:
        state.entries[url] = _updated_entry(entry, outcome, now)
        if outcome.changed:
            state.summary.feeds_fetched += 1
        else:
            state.summary.feeds_cached += 1

        if feed is not None:
            state.summary.items_count += len(feed.items)
            color = state.colors.color_for(feed.title)
            for item, is_new, item_score in selected:
                state.items.append(
                    RankedItem(
                        feed_url=url,
                        feed=feed,
                        item=item,
                        color=color,
                        is_new=is_new,
                        score=item_score,
                    )
                )

    if parse_error is not None:
        state.report(f"failed to parse feed: {url}: {parse_error}")


def _persist(ctx: FeedContext, entries: Dict[str, FreshnessEntry], errors: List[str]) -> bool:
    try:
        ctx.freshness.save(entries)
    except PersistenceError as exc:
        message = f"failed to save cache information: {exc}"
        logger.error(message)
        errors.append(message)
        return False
    return True


# ---------------------------------------------------------------------------
#  Pass entry points
# ---------------------------------------------------------------------------

class _DaemonWorkerPool:
    """
    Bounded pool of daemon worker threads returning concurrent.futures.Future.

    ThreadPoolExecutor workers are joined at interpreter exit, so an
    interrupted pass would still wait for every in-flight request. Daemon
    workers let the process exit as soon as the freshness metadata is saved.
    """

    def __init__(self, max_workers: int, thread_name_prefix: str):
        self.max_workers = max_workers
        self.thread_name_prefix = thread_name_prefix
        self._queue: queue.SimpleQueue = queue.SimpleQueue()
        self._threads: List[threading.Thread] = []

    def submit(self, fn: Callable[..., Any], *args: Any) -> Future:
        future: Future = Future()
        self._queue.put((future, fn, args))
        if len(self._threads) < self.max_workers:
            thread = threading.Thread(
                target=self._work,
                name=f"{self.thread_name_prefix}_{len(self._threads)}",
                daemon=True,
            )
            thread.start()
            self._threads.append(thread)
        return future

    def _work(self) -> None:
        while True:
            item = self._queue.get()
            if item is None:
                return
            future, fn, args = item
            if not future.set_running_or_notify_cancel():
                continue
            try:
                value = fn(*args)
            except BaseException as exc:
                future.set_exception(exc)
            else:
                future.set_result(value)

    def shutdown(self, wait: bool = True, cancel_futures: bool = False) -> None:
        """Stop the workers once queued work is done, optionally cancelling it."""
        if cancel_futures:
            while True:
                try:
                    item = self._queue.get_nowait()
                except queue.Empty:
                    break
                if item is not None:
                    item[0].cancel()
        for _ in self._threads:
            self._queue.put(None)
        if wait:
            for thread in self._threads:
                thread.join()


def run_pass(
    ctx: FeedContext,
    urls: Set[str],
    since: Optional[datetime] = None,
    now: Optional[datetime] = None,
    query_tokens: Optional[Sequence[str]] = None,
) -> PassResult:
    """
    Poll, parse and filter a set of feeds.

    Every feed is polled on a bounded worker pool. Results are merged under
    a single lock once a worker's network and parse work is done. The pass
    returns only after every feed has finished; the freshness metadata is
    then saved exactly once.

    Args:
        ctx: Per-invocation context
        urls: Feed URLs to poll
        since: Drop items published before this time
        now: Time used for backoff checks and new fetch timestamps
            (defaults to the context clock)
        query_tokens: Search tokens; items matching none are dropped

    Returns:
        PassResult with unordered items, counters and diagnostics
    """
    started_at = ctx.clock()
    now = now or started_at
    if since is not None and since.tzinfo is None:
        since = since.replace(tzinfo=timezone.utc)
    summary = RunSummary(started_at=started_at, feeds_count=len(urls))

    entries = ctx.freshness.load()
    for url in urls:
        if url not in entries:
            entries[url] = FreshnessEntry.zero(url)

    state = _PassState(entries, ColorTable(ctx.config.color_map), summary)
    result = PassResult(summary=summary)

    workers = max(1, min(ctx.config.max_workers, len(urls)))
    executor = _DaemonWorkerPool(max_workers=workers, thread_name_prefix="feedrank-poll")
    interrupted = False
    try:
        futures = {
            executor.submit(
                _process_feed, ctx, state, entries[url], now, since, query_tokens
            ): url
            for url in sorted(urls)
        }
        for future in as_completed(futures):
            url = futures[future]
            try:
                future.result()
            except Exception as exc:
                logger.exception("Unexpected error while processing %s", url)
                state.report(f"failed to process feed: {url}: {exc}")
    except KeyboardInterrupt:
        interrupted = True
        logger.warning("Interrupted; saving cache information for completed feeds")
        raise
    finally:
        executor.shutdown(wait=not interrupted, cancel_futures=interrupted)
        result.items = state.items
        result.errors = state.errors
        result.persisted = _persist(ctx, state.snapshot(), result.errors)
        summary.finished_at = ctx.clock()

    logger.debug(
        "Pass finished: %d feeds (%d cached, %d fetched), %d items kept",
        summary.feeds_count,
        summary.feeds_cached,
        summary.feeds_fetched,
        len(result.items),
    )
    return result


def _apply_limit(result: PassResult, limit: int) -> PassResult:
    if limit > 0:
        result.items = result.items[:limit]
    result.summary.items_shown = len(result.items)
    return result


def feed(
    ctx: FeedContext,
    list_name: Optional[str] = None,
    since: Optional[datetime] = None,
    limit: int = 0,
) -> PassResult:
    """
    Run a pass over one list (or all lists) and order items newest first.

    Raises:
        UsageError: If the list does not exist or there are no lists
    """
    urls = resolve_urls(ctx.subscriptions, list_name)
    result = run_pass(ctx, urls, since=since)
    result.items = sort_chronological(result.items)
    return _apply_limit(result, limit)


def search(
    ctx: FeedContext,
    query: str,
    list_name: Optional[str] = None,
    since: Optional[datetime] = None,
    limit: int = 0,
) -> PassResult:
    """
    Run a pass keeping only items relevant to ``query``, best match first.

    Raises:
        UsageError: If the query has no searchable tokens, or the list
            does not exist
    """
    query_tokens = tokenize(query)
    if not query_tokens:
        raise UsageError("query is empty")

    urls = resolve_urls(ctx.subscriptions, list_name)
    result = run_pass(ctx, urls, since=since, query_tokens=query_tokens)
    result.items = sort_by_relevance(result.items)
    return _apply_limit(result, limit)
