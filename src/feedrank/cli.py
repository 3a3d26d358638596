"""
Command-line interface for feedrank.

Usage:
    feedrank feed                     # Newest items across all lists
    feedrank feed --list tech         # Newest items from one list
    feedrank feed --since 2024-06-01  # Only items published since a date
    feedrank search "rust async"      # Items ranked by relevance to a query
    feedrank search rust --output-json
    feedrank cache-info               # Show per-feed freshness metadata
"""

import argparse
import logging
import sys
from datetime import datetime, timezone
from typing import Optional

from dateutil import parser as date_parser

from feedrank.config import get_config
from feedrank.errors import FeedRankError, UsageError


def _parse_since(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        since = date_parser.parse(value)
    except (ValueError, OverflowError) as exc:
        raise UsageError(f"invalid --since value '{value}': {exc}") from exc
    if since.tzinfo is None:
        since = since.replace(tzinfo=timezone.utc)
    return since


def _print_result(result, args, show_summary: bool) -> None:
    # JSON output mode (for scripting)
    if args.output_json:
        print(result.to_json())
        return

    if not result.has_items:
        print("no items to display", file=sys.stderr)
        return

    for ranked in result.items:
        new_mark = "* " if ranked.is_new else ""
        published = (
            ranked.item.published.strftime("%Y-%m-%d %H:%M")
            if ranked.item.published
            else "unknown date"
        )
        print(f"{ranked.feed.title}  {new_mark}{ranked.item.title}")
        print(f"{published}  {ranked.item.link}")
        print()

    if show_summary:
        print(result.summary.format())


def cmd_feed(args):
    """Show the newest items from the subscribed feeds."""
    from feedrank.pipeline.orchestrator import FeedContext, feed

    config = get_config()
    ctx = FeedContext.from_config(config)
    result = feed(
        ctx,
        list_name=args.list,
        since=_parse_since(args.since),
        limit=args.limit,
    )
    _print_result(result, args, args.summary or config.summary)


def cmd_search(args):
    """Search the subscribed feeds for items matching a query."""
    from feedrank.pipeline.orchestrator import FeedContext, search

    config = get_config()
    ctx = FeedContext.from_config(config)
    result = search(
        ctx,
        args.query,
        list_name=args.list,
        since=_parse_since(args.since),
        limit=args.limit,
    )
    _print_result(result, args, args.summary or config.summary)


def cmd_cache_info(args):
    """Show last fetch and next permitted fetch time for every cached feed."""
    from feedrank.storage.freshness import FreshnessStore

    config = get_config()
    entries = FreshnessStore(config.freshness_path).load()
    if not entries:
        print("no cache information", file=sys.stderr)
        return

    width = max(len("URL"), *(len(url) for url in entries))
    print(f"{'URL'.ljust(width)}  Last fetch           Fetch after")
    for url in sorted(entries):
        entry = entries[url]
        print(
            f"{url.ljust(width)}  "
            f"{entry.last_fetch.strftime('%Y-%m-%d %H:%M:%S')}  "
            f"{entry.fetch_after.strftime('%Y-%m-%d %H:%M:%S')}"
        )


def _add_pass_options(sub: argparse.ArgumentParser) -> None:
    sub.add_argument(
        "--list",
        default=None,
        help="Only use feeds from this list (default: all lists)",
    )
    sub.add_argument(
        "--since",
        default=None,
        help="Only show items published on or after this date",
    )
    sub.add_argument(
        "--limit",
        type=int,
        default=0,
        help="Maximum number of items to show (default: no limit)",
    )
    sub.add_argument(
        "--summary",
        action="store_true",
        default=False,
        help="Print a run summary line",
    )
    sub.add_argument(
        "--output-json",
        action="store_true",
        default=False,
        help="Output result as JSON",
    )


def main():
    parser = argparse.ArgumentParser(
        prog="feedrank",
        description="feedrank -- poll, cache and rank syndication feeds",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=False,
        help="Enable debug logging",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # feed
    sub_feed = subparsers.add_parser("feed", help="Show newest items from subscribed feeds")
    _add_pass_options(sub_feed)
    sub_feed.set_defaults(func=cmd_feed)

    # search
    sub_search = subparsers.add_parser("search", help="Rank items by relevance to a query")
    sub_search.add_argument("query", help="Search query")
    _add_pass_options(sub_search)
    sub_search.set_defaults(func=cmd_search)

    # cache-info
    sub_cache = subparsers.add_parser("cache-info", help="Show per-feed freshness metadata")
    sub_cache.set_defaults(func=cmd_cache_info)

    args = parser.parse_args()
    if args.command is None:
        parser.print_help()
        sys.exit(0)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s" if args.verbose else "%(message)s",
    )

    try:
        args.func(args)
    except FeedRankError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
