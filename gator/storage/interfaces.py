"""Interface definitions for the relational store."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StorageError(Exception):
    """A store operation failed for a reason other than an expected duplicate."""


class AlreadyExists(StorageError):
    """A uniqueness constraint rejected a user-initiated create."""


@dataclass
class User:
    id: str
    name: str
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class Feed:
    id: str
    name: str
    url: str
    user_id: str
    last_fetched_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class FeedFollow:
    id: str
    user_id: str
    feed_id: str
    feed_name: str = ""
    user_name: str = ""
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class Post:
    id: str
    feed_id: str
    title: str
    url: str
    description: str
    published_at: datetime
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "feed_id": self.feed_id,
            "title": self.title,
            "url": self.url,
            "description": self.description,
            "published_at": self.published_at.isoformat() if self.published_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class StorageInterface:
    """Interface for the feed store.

    Lookups return ``None`` when nothing matches.
    """

    # Polling pipeline

    def get_next_feed_to_fetch(self) -> Optional[Feed]:
        """Feed with the oldest last_fetched_at, never-fetched feeds first."""
        raise NotImplementedError

    def mark_feed_fetched(self, feed_id: str, fetched_at: datetime) -> None:
        raise NotImplementedError

    def create_post(self, post: Post) -> Optional[Post]:
        """Insert a post; return None if its url is already stored."""
        raise NotImplementedError

    # Users

    def create_user(self, name: str) -> User:
        raise NotImplementedError

    def get_user(self, name: str) -> Optional[User]:
        raise NotImplementedError

    def get_user_by_id(self, user_id: str) -> Optional[User]:
        raise NotImplementedError

    def list_users(self) -> List[User]:
        raise NotImplementedError

    def reset(self) -> None:
        """Delete every user, together with their feeds, follows and posts."""
        raise NotImplementedError

    # Feeds and follows

    def create_feed(self, name: str, url: str, user_id: str) -> Feed:
        raise NotImplementedError

    def get_feed_by_url(self, url: str) -> Optional[Feed]:
        raise NotImplementedError

    def list_feeds(self) -> List[Feed]:
        raise NotImplementedError

    def create_feed_follow(self, user_id: str, feed_id: str) -> FeedFollow:
        raise NotImplementedError

    def list_feed_follows(self, user_id: str) -> List[FeedFollow]:
        raise NotImplementedError

    def delete_feed_follow(self, user_id: str, url: str) -> int:
        """Unfollow the feed at ``url``; return the number of follows removed."""
        raise NotImplementedError

    # Posts

    def get_posts_for_user(self, user_id: str, limit: int = 2) -> List[Post]:
        raise NotImplementedError

    def get_post_by_url(self, url: str) -> Optional[Post]:
        raise NotImplementedError

    def count_posts(self) -> int:
        raise NotImplementedError
