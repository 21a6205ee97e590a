"""Feed ingestion - fetching, parsing and storing RSS feeds."""

from .interfaces import RawFeed, RawFeedItem, FetchError, ParseError, FetcherInterface
from .timeparse import UnparseableTimestamp, parse_pub_date
from .fetcher import RSSFetcher, parse_feed
from .ingestor import PostIngestor, IngestResult

__all__ = [
    "RawFeed", "RawFeedItem", "FetchError", "ParseError", "FetcherInterface",
    "UnparseableTimestamp", "parse_pub_date",
    "RSSFetcher", "parse_feed",
    "PostIngestor", "IngestResult",
]
