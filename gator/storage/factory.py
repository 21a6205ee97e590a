"""Factory functions to create storage instances.

This module detects the database type from the database URL and returns
the appropriate storage implementation:
- PostgreSQL through psycopg2 for postgresql:// URLs
- SQLAlchemy (SQLite for local development) for everything else
"""

import os
from functools import lru_cache

import structlog

from ..config.settings import settings
from ..config.user_config import GatorConfig

logger = structlog.get_logger()


def get_database_url(config: GatorConfig = None) -> str:
    """Resolve the database URL: environment, then config file, then settings."""
    # Check for DATABASE_URL first (standard for cloud platforms)
    url = os.environ.get('DATABASE_URL')
    if url:
        return url

    url = os.environ.get('GATOR_DATABASE_URL')
    if url:
        return url

    if config is not None and config.db_url:
        return config.db_url

    return settings.database_url


def is_postgres(url: str) -> bool:
    """Check if the URL points at PostgreSQL."""
    return url.startswith('postgresql://') or url.startswith('postgres://')


@lru_cache(maxsize=4)
def get_storage(url: str):
    """Get the appropriate storage instance for ``url``.

    Returns PostgresFeedStorage for PostgreSQL, FeedStorage otherwise.
    """
    if is_postgres(url):
        from .postgres_storage import PostgresFeedStorage
        logger.info("using_postgres_storage", url=url[:40] + "...")
        return PostgresFeedStorage(url)

    from .database import FeedStorage
    logger.info("using_sqlalchemy_storage", url=url[:40] + "...")
    return FeedStorage(url)


def clear_cache():
    """Clear cached instances (useful for testing)."""
    get_storage.cache_clear()
