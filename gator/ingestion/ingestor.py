"""Turn fetched feed items into stored posts."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

import structlog

from .interfaces import RawFeed
from .timeparse import parse_pub_date
from ..storage.interfaces import StorageInterface, Feed, Post, utcnow

logger = structlog.get_logger()


@dataclass
class IngestResult:
    """Outcome of ingesting one feed."""
    feed_id: str
    created: List[Post] = field(default_factory=list)
    duplicates: int = 0


class PostIngestor:
    """Stores the items of a fetched feed as posts.

    Items are handled in document order. Inserts are optimistic: a post whose
    url is already stored is skipped rather than checked for beforehand, so
    concurrent pollers of the same feed cannot create duplicates.
    """

    def __init__(self, storage: StorageInterface):
        self.storage = storage

    def ingest(
        self, feed: Feed, raw_feed: RawFeed, fetched_at: Optional[datetime] = None
    ) -> IngestResult:
        """Persist new posts from ``raw_feed``.

        ``fetched_at`` stamps ``created_at`` and ``updated_at`` of every new
        post; when omitted each post is stamped with the current time.

        Raises:
            UnparseableTimestamp: an item's date could not be parsed; the
                remaining items of this feed are not attempted.
            StorageError: any store failure other than a duplicate url.
        """
        result = IngestResult(feed_id=feed.id)

        for item in raw_feed.items:
            published_at = parse_pub_date(item.pub_date)
            now = fetched_at or utcnow()

            post = self.storage.create_post(Post(
                id=str(uuid.uuid4()),
                feed_id=feed.id,
                title=item.title,
                url=item.link,
                description=item.description,
                published_at=published_at,
                created_at=now,
                updated_at=now,
            ))

            if post is None:
                result.duplicates += 1
                continue

            result.created.append(post)
            logger.debug("post_added", feed=feed.name, url=item.link)

        logger.info(
            "feed_ingested",
            feed=feed.name,
            items=len(raw_feed.items),
            created=len(result.created),
            duplicates=result.duplicates,
        )
        return result
