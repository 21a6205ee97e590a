"""RSS feed fetcher."""

import asyncio
import html
import io
import time
from typing import Optional

import aiohttp
import feedparser
import structlog

from .interfaces import FetcherInterface, FetchError, ParseError, RawFeed, RawFeedItem
from ..config.settings import settings

logger = structlog.get_logger()


class RSSFetcher(FetcherInterface):
    """Async RSS feed fetcher.

    One GET per call, bounded by ``timeout`` seconds regardless of any
    caller deadline. There are no retries: a failed feed is retried on the
    next scheduled cycle.
    """

    def __init__(self, timeout: float = None, user_agent: str = None):
        self.timeout = timeout if timeout is not None else settings.fetch_timeout_seconds
        self.user_agent = user_agent or settings.user_agent
        self.session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        self.session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.timeout),
            headers={"User-Agent": self.user_agent}
        )
        return self

    async def __aexit__(self, *args):
        if self.session:
            await self.session.close()
            self.session = None

    async def fetch_feed(self, url: str, deadline: Optional[float] = None) -> RawFeed:
        """Fetch and parse a single feed.

        Args:
            url: Feed URL.
            deadline: Optional caller bound in seconds, applied on top of the
                fetcher's own timeout.

        Raises:
            FetchError: network failure, timeout or non-2xx status.
            ParseError: the body is not a well-formed feed document.
        """
        if self.session is None:
            raise RuntimeError("RSSFetcher must be used as an async context manager")

        start_time = time.time()
        try:
            if deadline is not None:
                body = await asyncio.wait_for(self._get(url), timeout=deadline)
            else:
                body = await self._get(url)
        except FetchError as e:
            self._log_failure(url, e.reason, start_time)
            raise
        except asyncio.TimeoutError:
            self._log_failure(url, "timed out", start_time)
            raise FetchError(url, "timed out") from None
        except aiohttp.ClientError as e:
            self._log_failure(url, str(e) or type(e).__name__, start_time)
            raise FetchError(url, str(e) or type(e).__name__) from e

        try:
            feed = parse_feed(body, url)
        except ParseError as e:
            self._log_failure(url, e.reason, start_time)
            raise

        elapsed_ms = int((time.time() - start_time) * 1000)
        logger.info(
            "feed_fetched",
            url=url,
            items=len(feed.items),
            time_ms=elapsed_ms
        )
        return feed

    async def _get(self, url: str) -> bytes:
        async with self.session.get(url) as response:
            if not 200 <= response.status < 300:
                raise FetchError(url, f"HTTP {response.status}")
            return await response.read()

    def _log_failure(self, url: str, error: str, start_time: float) -> None:
        elapsed_ms = int((time.time() - start_time) * 1000)
        logger.warning("feed_fetch_failed", url=url, error=error, time_ms=elapsed_ms)


def parse_feed(body: bytes, url: str = "") -> RawFeed:
    """Parse a feed document into a RawFeed.

    Unknown elements are ignored and missing ones become empty strings.
    HTML entities in titles and descriptions are decoded; markup is otherwise
    kept as published.
    """
    # A stream, so feedparser never treats the body as a path or URL to open.
    parsed = feedparser.parse(
        io.BytesIO(body),
        sanitize_html=False,
        resolve_relative_uris=False,
    )

    if _is_malformed(parsed):
        raise ParseError(url, str(parsed.bozo_exception))

    channel = parsed.feed
    return RawFeed(
        title=html.unescape(channel.get("title", "")),
        link=channel.get("link", ""),
        description=html.unescape(channel.get("description", "")),
        items=[_parse_entry(entry) for entry in parsed.entries],
    )


def _parse_entry(entry) -> RawFeedItem:
    return RawFeedItem(
        title=html.unescape(entry.get("title", "")),
        link=entry.get("link", ""),
        description=html.unescape(entry.get("description", "")),
        # Raw string; normalization happens at ingestion
        pub_date=entry.get("published", ""),
    )


def _is_malformed(parsed) -> bool:
    """Whether a feedparser result is too broken to use.

    An encoding override is harmless. A namespace prefix used without a
    declaration (``<media:thumbnail>`` in a plain RSS document) is tolerated
    as long as the document was still recognised as a feed.
    """
    if not parsed.bozo:
        return False

    exc = parsed.bozo_exception
    if isinstance(exc, feedparser.CharacterEncodingOverride):
        return False
    if isinstance(exc, feedparser.UndeclaredNamespace) or "unbound prefix" in str(exc):
        return not parsed.version
    return True
