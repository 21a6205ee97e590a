"""SQLAlchemy models for the gator database."""

from datetime import datetime

from sqlalchemy import (
    create_engine, event, Column, String, Text, DateTime, ForeignKey,
    Index, UniqueConstraint,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class UserModel(Base):
    """Database model for users."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True)
    name = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("name", name="users_name_key"),
    )


class FeedModel(Base):
    """Database model for feeds."""
    __tablename__ = "feeds"

    id = Column(String(36), primary_key=True)
    name = Column(Text, nullable=False)  # title given when the feed was added
    url = Column(Text, nullable=False)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    last_fetched_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("url", name="feeds_url_key"),
        Index("idx_feeds_last_fetched", "last_fetched_at"),
    )


class FeedFollowModel(Base):
    """Database model for a user following a feed."""
    __tablename__ = "feed_follows"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    feed_id = Column(String(36), ForeignKey("feeds.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "feed_id", name="feed_follows_user_id_feed_id_key"),
    )


class PostModel(Base):
    """Database model for posts scraped from feeds."""
    __tablename__ = "posts"

    id = Column(String(36), primary_key=True)
    feed_id = Column(String(36), ForeignKey("feeds.id", ondelete="CASCADE"), nullable=False)
    title = Column(Text, nullable=False)
    url = Column(Text, nullable=False)
    description = Column(Text, nullable=False)
    published_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("url", name="posts_url_key"),
        Index("idx_posts_feed", "feed_id"),
        Index("idx_posts_published", "published_at"),
    )


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    """SQLite ignores ON DELETE CASCADE unless foreign keys are switched on."""
    if type(dbapi_connection).__module__.startswith("sqlite3"):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def init_db(database_url: str):
    """Initialize database and create all tables."""
    connect_args = {}
    if database_url.startswith("sqlite"):
        # Store calls run in worker threads while polling.
        connect_args["check_same_thread"] = False
    engine = create_engine(database_url, echo=False, connect_args=connect_args)
    Base.metadata.create_all(engine)
    return engine
