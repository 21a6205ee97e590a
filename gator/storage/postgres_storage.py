"""PostgreSQL storage adapter.

Talks to PostgreSQL directly through psycopg2, using the schema in
``schema.sql``. Used when the database URL starts with 'postgresql://'.
Duplicate posts are recognised by the name of the violated constraint.
"""

import uuid
from datetime import datetime
from pathlib import Path
from typing import Optional, List
from contextlib import contextmanager

from tenacity import retry, stop_after_attempt, wait_exponential
import structlog

from .interfaces import (
    StorageInterface, StorageError, AlreadyExists,
    User, Feed, FeedFollow, Post, utcnow,
)
from .database import POST_URL_CONSTRAINT

logger = structlog.get_logger()

SCHEMA_PATH = Path(__file__).parent / "schema.sql"

# Import psycopg2 only when needed
_psycopg2 = None

def get_psycopg2():
    global _psycopg2
    if _psycopg2 is None:
        import psycopg2
        import psycopg2.errors
        _psycopg2 = psycopg2
    return _psycopg2


FEED_COLUMNS = "id, name, url, user_id, last_fetched_at, created_at, updated_at"
POST_COLUMNS = "id, feed_id, title, url, description, published_at, created_at, updated_at"


class PostgresFeedStorage(StorageInterface):
    """PostgreSQL-based storage for users, feeds, follows and posts."""

    def __init__(self, database_url: str, apply_schema: bool = True):
        self.database_url = database_url
        self._test_connection()
        if apply_schema:
            self._apply_schema()

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    def _test_connection(self):
        """Test database connection on init."""
        try:
            with self._connection() as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT 1")
            logger.info("postgres_connected", url=self.database_url[:50] + "...")
        except StorageError as e:
            logger.error("postgres_connection_failed", error=str(e))
            raise

    def _apply_schema(self):
        with self._connection() as conn:
            conn.cursor().execute(SCHEMA_PATH.read_text())
        logger.debug("postgres_schema_applied")

    @contextmanager
    def _connection(self):
        """Get a database connection; psycopg2 errors surface as StorageError."""
        psycopg2 = get_psycopg2()
        try:
            conn = psycopg2.connect(self.database_url)
        except psycopg2.Error as e:
            raise StorageError(f"Cannot connect to database: {e}") from e
        try:
            yield conn
            conn.commit()
        except psycopg2.Error as e:
            conn.rollback()
            raise StorageError(str(e).strip()) from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    # Polling pipeline

    def get_next_feed_to_fetch(self) -> Optional[Feed]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(f"""
                SELECT {FEED_COLUMNS}
                FROM feeds
                ORDER BY last_fetched_at ASC NULLS FIRST, created_at, id
                LIMIT 1
            """)
            row = cursor.fetchone()
            return self._row_to_feed(row) if row else None

    def mark_feed_fetched(self, feed_id: str, fetched_at: datetime) -> None:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                UPDATE feeds
                SET last_fetched_at = %s, updated_at = %s
                WHERE id = %s
            """, (fetched_at, fetched_at, feed_id))
            if cursor.rowcount == 0:
                raise StorageError(f"No feed with id {feed_id}")
            logger.debug("feed_marked_fetched", feed_id=feed_id, fetched_at=fetched_at.isoformat())

    def create_post(self, post: Post) -> Optional[Post]:
        """Save post, return it or None if its url is already stored."""
        psycopg2 = get_psycopg2()
        with self._connection() as conn:
            cursor = conn.cursor()
            try:
                cursor.execute(f"""
                    INSERT INTO posts ({POST_COLUMNS})
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                """, (
                    post.id,
                    post.feed_id,
                    post.title,
                    post.url,
                    post.description,
                    post.published_at,
                    post.created_at,
                    post.updated_at,
                ))
            except psycopg2.errors.UniqueViolation as e:
                if e.diag.constraint_name != POST_URL_CONSTRAINT:
                    raise
                conn.rollback()
                logger.debug("post_duplicate", url=post.url[:80])
                return None
            logger.debug("post_saved", id=post.id, url=post.url[:80])
            return post

    # Users

    def create_user(self, name: str) -> User:
        now = utcnow()
        user = User(id=str(uuid.uuid4()), name=name, created_at=now, updated_at=now)
        self._insert(
            "INSERT INTO users (id, name, created_at, updated_at) VALUES (%s, %s, %s, %s)",
            (user.id, name, now, now),
            f"User '{name}' is already registered",
        )
        logger.info("user_created", name=name)
        return user

    def get_user(self, name: str) -> Optional[User]:
        return self._fetch_user("WHERE name = %s", (name,))

    def get_user_by_id(self, user_id: str) -> Optional[User]:
        return self._fetch_user("WHERE id = %s", (user_id,))

    def list_users(self) -> List[User]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT id, name, created_at, updated_at FROM users ORDER BY name")
            return [User(str(r[0]), r[1], r[2], r[3]) for r in cursor.fetchall()]

    def reset(self) -> None:
        with self._connection() as conn:
            conn.cursor().execute("DELETE FROM users")
        logger.info("database_reset")

    # Feeds and follows

    def create_feed(self, name: str, url: str, user_id: str) -> Feed:
        now = utcnow()
        feed = Feed(
            id=str(uuid.uuid4()), name=name, url=url, user_id=user_id,
            created_at=now, updated_at=now,
        )
        self._insert(
            """INSERT INTO feeds (id, name, url, user_id, created_at, updated_at)
               VALUES (%s, %s, %s, %s, %s, %s)""",
            (feed.id, name, url, user_id, now, now),
            f"Feed with URL already exists: {url}",
        )
        logger.info("feed_created", name=name, url=url)
        return feed

    def get_feed_by_url(self, url: str) -> Optional[Feed]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(f"SELECT {FEED_COLUMNS} FROM feeds WHERE url = %s", (url,))
            row = cursor.fetchone()
            return self._row_to_feed(row) if row else None

    def list_feeds(self) -> List[Feed]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(f"SELECT {FEED_COLUMNS} FROM feeds ORDER BY created_at, id")
            return [self._row_to_feed(r) for r in cursor.fetchall()]

    def create_feed_follow(self, user_id: str, feed_id: str) -> FeedFollow:
        psycopg2 = get_psycopg2()
        now = utcnow()
        follow_id = str(uuid.uuid4())
        with self._connection() as conn:
            cursor = conn.cursor()
            try:
                cursor.execute("""
                    WITH inserted AS (
                        INSERT INTO feed_follows (id, created_at, updated_at, user_id, feed_id)
                        VALUES (%s, %s, %s, %s, %s)
                        RETURNING *
                    )
                    SELECT feeds.name, users.name
                    FROM inserted
                    INNER JOIN feeds ON feeds.id = inserted.feed_id
                    INNER JOIN users ON users.id = inserted.user_id
                """, (follow_id, now, now, user_id, feed_id))
            except psycopg2.errors.UniqueViolation as e:
                raise AlreadyExists("Feed is already followed") from e
            feed_name, user_name = cursor.fetchone()
        logger.info("feed_followed", user=user_name, feed=feed_name)
        return FeedFollow(
            id=follow_id, user_id=user_id, feed_id=feed_id,
            feed_name=feed_name, user_name=user_name,
            created_at=now, updated_at=now,
        )

    def list_feed_follows(self, user_id: str) -> List[FeedFollow]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                SELECT feed_follows.id, feed_follows.user_id, feed_follows.feed_id,
                       feeds.name, users.name, feed_follows.created_at, feed_follows.updated_at
                FROM feed_follows
                INNER JOIN feeds ON feeds.id = feed_follows.feed_id
                INNER JOIN users ON users.id = feed_follows.user_id
                WHERE feed_follows.user_id = %s
                ORDER BY feed_follows.created_at, feed_follows.id
            """, (user_id,))
            return [
                FeedFollow(str(r[0]), str(r[1]), str(r[2]), r[3], r[4], r[5], r[6])
                for r in cursor.fetchall()
            ]

    def delete_feed_follow(self, user_id: str, url: str) -> int:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                DELETE FROM feed_follows USING feeds
                WHERE feed_follows.feed_id = feeds.id
                  AND feed_follows.user_id = %s
                  AND feeds.url = %s
            """, (user_id, url))
            deleted = cursor.rowcount
        logger.info("feed_unfollowed", user_id=user_id, url=url, rows=deleted)
        return deleted

    # Posts

    def get_posts_for_user(self, user_id: str, limit: int = 2) -> List[Post]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(f"""
                SELECT {", ".join("posts." + c.strip() for c in POST_COLUMNS.split(","))}
                FROM posts
                INNER JOIN feed_follows ON feed_follows.feed_id = posts.feed_id
                WHERE feed_follows.user_id = %s
                ORDER BY posts.published_at DESC
                LIMIT %s
            """, (user_id, limit))
            return [self._row_to_post(r) for r in cursor.fetchall()]

    def get_post_by_url(self, url: str) -> Optional[Post]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(f"SELECT {POST_COLUMNS} FROM posts WHERE url = %s", (url,))
            row = cursor.fetchone()
            return self._row_to_post(row) if row else None

    def count_posts(self) -> int:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) FROM posts")
            return cursor.fetchone()[0]

    def _insert(self, sql: str, params: tuple, duplicate_message: str) -> None:
        psycopg2 = get_psycopg2()
        with self._connection() as conn:
            cursor = conn.cursor()
            try:
                cursor.execute(sql, params)
            except psycopg2.errors.UniqueViolation as e:
                raise AlreadyExists(duplicate_message) from e

    def _fetch_user(self, where: str, params: tuple) -> Optional[User]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(f"SELECT id, name, created_at, updated_at FROM users {where}", params)
            row = cursor.fetchone()
            return User(str(row[0]), row[1], row[2], row[3]) if row else None

    def _row_to_feed(self, row) -> Feed:
        return Feed(
            id=str(row[0]),
            name=row[1],
            url=row[2],
            user_id=str(row[3]),
            last_fetched_at=row[4],
            created_at=row[5],
            updated_at=row[6],
        )

    def _row_to_post(self, row) -> Post:
        return Post(
            id=str(row[0]),
            feed_id=str(row[1]),
            title=row[2],
            url=row[3],
            description=row[4],
            published_at=row[5],
            created_at=row[6],
            updated_at=row[7],
        )
