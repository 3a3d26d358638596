"""
Conditional HTTP fetching of feed bodies.

Each poll sends at most one request per feed. Validation headers let the
origin answer 304 Not Modified, and the origin's Cache-Control and
Retry-After headers decide when the feed may be polled again. New bodies
are decoded (brotli or gzip) and written straight to the body cache.

Example:
    >>> fetcher = ConditionalFetcher(body_cache, session=requests.Session())
    >>> outcome = fetcher.poll(entry, now=datetime.now(timezone.utc))
    >>> if outcome.changed:
    ...     print("new body cached, next poll after", outcome.next_fetch_after)
"""

import gzip
import io
import logging
import time
import zlib
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime, parsedate_to_datetime
from typing import Dict, Optional

import brotli
import requests
from urllib3.exceptions import HTTPError as TransportError, ReadTimeoutError

from feedrank.errors import FetchError, FetchTimeoutError
from feedrank.models.entities import FreshnessEntry
from feedrank.storage.body_cache import BodyCache

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
#  Constants
# ---------------------------------------------------------------------------

REQUEST_TIMEOUT = 30  # seconds
ACCEPT = "application/rss+xml, application/atom+xml, application/xml, application/json, text/xml"
ACCEPT_ENCODING = "br, gzip"

MIN_MAX_AGE = timedelta(seconds=60)
MAX_DELAY_SECONDS = 2 ** 31
MAX_DELAY = timedelta(seconds=MAX_DELAY_SECONDS)
DEFAULT_RETRY_AFTER = timedelta(minutes=5)

READ_CHUNK_SIZE = 64 * 1024

STATUS_OK = 200
STATUS_NOT_MODIFIED = 304
BACKOFF_STATUSES = (429, 503)


# ---------------------------------------------------------------------------
#  Data models
# ---------------------------------------------------------------------------

@dataclass
class FetchOutcome:
    """
    Result of polling a single feed.

    Attributes:
        changed: True if the origin returned a new body
        etag: Validation token to remember for the next poll
        next_fetch_after: Earliest time the feed may be polled again
        body_written: True if a new body was stored in the body cache
        fetched: True if a request was actually sent
        status_code: HTTP status of the response, None when skipped
    """

    changed: bool
    etag: str
    next_fetch_after: datetime
    body_written: bool = False
    fetched: bool = False
    status_code: Optional[int] = None


# ---------------------------------------------------------------------------
#  Header parsing helpers
# ---------------------------------------------------------------------------

def _clamped_delay(seconds: int) -> timedelta:
    return timedelta(seconds=max(0, min(seconds, MAX_DELAY_SECONDS)))


def parse_max_age(cache_control: Optional[str]) -> timedelta:
    """
    Derive the re-poll delay from a Cache-Control header.

    The first ``max-age`` directive wins. Its value is floored at 60
    seconds and capped at 2**31 seconds; a missing or malformed directive
    yields exactly 60 seconds.

    Example:
        >>> parse_max_age("public, max-age=3600")
        datetime.timedelta(seconds=3600)
        >>> parse_max_age("max-age=30")
        datetime.timedelta(seconds=60)
    """
    if not cache_control:
        return MIN_MAX_AGE

    for part in cache_control.split(","):
        part = part.strip().lower()
        if part.startswith("max-age="):
            try:
                seconds = int(part[len("max-age="):].strip().strip('"'))
            except ValueError:
                break
            return max(_clamped_delay(seconds), MIN_MAX_AGE)

    return MIN_MAX_AGE


def parse_retry_after(retry_after: Optional[str], now: datetime) -> datetime:
    """
    Derive the next permitted poll time from a Retry-After header.

    Accepts a number of seconds or an HTTP date. Anything else, including a
    missing header, backs off for five minutes. Delays longer than 2**31
    seconds are capped.
    """
    if not retry_after or not retry_after.strip():
        return now + DEFAULT_RETRY_AFTER

    value = retry_after.strip()
    try:
        seconds = int(value)
    except ValueError:
        seconds = None
    if seconds is not None:
        return now + _clamped_delay(seconds)

    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError, OverflowError):
        return now + DEFAULT_RETRY_AFTER
    if when is None:
        return now + DEFAULT_RETRY_AFTER
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return min(when, now + MAX_DELAY)


def decode_body(raw: bytes, content_encoding: Optional[str]) -> bytes:
    """
    Decode a response body according to its Content-Encoding.

    Raises:
        ValueError: If the body does not match its declared encoding
    """
    encoding = (content_encoding or "").strip().lower()
    try:
        if encoding == "br":
            return brotli.decompress(raw)
        if encoding in ("gzip", "x-gzip"):
            return gzip.decompress(raw)
    except (brotli.error, OSError, EOFError, zlib.error) as exc:
        raise ValueError(f"invalid {encoding} body: {exc}") from exc
    return raw


# ---------------------------------------------------------------------------
#  Fetch client
# ---------------------------------------------------------------------------

class ConditionalFetcher:
    """
    Polls feeds with conditional GET requests.

    Attributes:
        body_cache: Where new bodies are stored
        session: requests session used for all requests
        timeout: Per-request timeout in seconds
        user_agent: User-Agent header value
    """

    def __init__(
        self,
        body_cache: BodyCache,
        session: Optional[requests.Session] = None,
        timeout: float = REQUEST_TIMEOUT,
        user_agent: str = "",
    ) -> None:
        self.body_cache = body_cache
        self.session = session or requests.Session()
        self.timeout = timeout
        self.user_agent = user_agent

    def build_headers(self, entry: FreshnessEntry) -> Dict[str, str]:
        """Request headers for a poll of ``entry``."""
        headers = {
            "Accept": ACCEPT,
            "Accept-Encoding": ACCEPT_ENCODING,
        }
        if self.user_agent:
            headers["User-Agent"] = self.user_agent
        if entry.etag:
            headers["If-None-Match"] = entry.etag
        if not entry.never_fetched:
            headers["If-Modified-Since"] = format_datetime(
                entry.last_fetch.astimezone(timezone.utc), usegmt=True
            )
        return headers

    def poll(self, entry: FreshnessEntry, now: datetime) -> FetchOutcome:
        """
        Poll one feed, honoring its backoff window.

        Args:
            entry: Current freshness metadata for the feed
            now: Current time

        Returns:
            FetchOutcome describing what the origin said

        Raises:
            FetchTimeoutError: If the request timed out
            FetchError: On network failure, an unexpected status code or an
                undecodable body
            PersistenceError: If the new body could not be cached
        """
        if now < entry.fetch_after:
            logger.debug("Skipping %s until %s", entry.url, entry.fetch_after.isoformat())
            return FetchOutcome(
                changed=False,
                etag=entry.etag,
                next_fetch_after=entry.fetch_after,
            )

        deadline = time.monotonic() + self.timeout
        try:
            response = self.session.get(
                entry.url,
                headers=self.build_headers(entry),
                timeout=self.timeout,
                stream=True,
            )
        except requests.exceptions.Timeout as exc:
            raise FetchTimeoutError(f"request timed out: {exc}", url=entry.url) from exc
        except requests.exceptions.RequestException as exc:
            raise FetchError(f"request failed: {exc}", url=entry.url) from exc

        try:
            return self._handle_response(entry, response, now, deadline)
        finally:
            response.close()

    def _handle_response(
        self,
        entry: FreshnessEntry,
        response: requests.Response,
        now: datetime,
        deadline: float,
    ) -> FetchOutcome:
        status = response.status_code
        headers = response.headers

        if status == STATUS_NOT_MODIFIED:
            return FetchOutcome(
                changed=False,
                etag=entry.etag,
                next_fetch_after=now + parse_max_age(headers.get("Cache-Control")),
                fetched=True,
                status_code=status,
            )

        if status in BACKOFF_STATUSES:
            next_fetch_after = parse_retry_after(headers.get("Retry-After"), now)
            logger.info(
                "Feed %s asked to back off (status %d) until %s",
                entry.url,
                status,
                next_fetch_after.isoformat(),
            )
            return FetchOutcome(
                changed=False,
                etag=entry.etag,
                next_fetch_after=next_fetch_after,
                fetched=True,
                status_code=status,
            )

        if status != STATUS_OK:
            raise FetchError(
                f"unexpected status code: {status}",
                url=entry.url,
                status_code=status,
            )

        raw = self._read_body(entry, response, deadline)

        try:
            body = decode_body(raw, headers.get("Content-Encoding"))
        except ValueError as exc:
            raise FetchError(str(exc), url=entry.url, status_code=status) from exc

        next_fetch_after = now + parse_max_age(headers.get("Cache-Control"))
        self.body_cache.write(entry.url, io.BytesIO(body))

        return FetchOutcome(
            changed=True,
            etag=headers.get("ETag", "") or "",
            next_fetch_after=next_fetch_after,
            body_written=True,
            fetched=True,
            status_code=status,
        )

    def _read_body(
        self,
        entry: FreshnessEntry,
        response: requests.Response,
        deadline: float,
    ) -> bytes:
        """
        Read the undecoded body, enforcing the overall deadline.

        The requests timeout only bounds each socket read, so a server
        trickling bytes could otherwise hold the exchange open indefinitely.
        ``read1`` returns whatever one socket read yields, so the deadline is
        checked at least once per timeout interval.
        """
        chunks = []
        try:
            while True:
                chunk = response.raw.read1(READ_CHUNK_SIZE, decode_content=False)
                if not chunk:
                    break
                chunks.append(chunk)
                if time.monotonic() > deadline:
                    raise FetchTimeoutError(
                        f"request exceeded {self.timeout:g}s while reading body",
                        url=entry.url,
                    )
        except (ReadTimeoutError, TimeoutError) as exc:
            raise FetchTimeoutError(f"reading body timed out: {exc}", url=entry.url) from exc
        except (TransportError, OSError) as exc:
            raise FetchError(f"failed to read body: {exc}", url=entry.url) from exc
        return b"".join(chunks)
