"""Database operations for users, feeds, follows and posts."""

import uuid
from datetime import datetime, timezone
from typing import Optional, List
from pathlib import Path

from sqlalchemy import select, delete
from sqlalchemy.orm import sessionmaker
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
import structlog

from .models import UserModel, FeedModel, FeedFollowModel, PostModel, init_db
from .interfaces import (
    StorageInterface, StorageError, AlreadyExists,
    User, Feed, FeedFollow, Post, utcnow,
)

logger = structlog.get_logger()

POST_URL_CONSTRAINT = "posts_url_key"


def _to_db(value: Optional[datetime]) -> Optional[datetime]:
    """Aware datetimes are stored as naive UTC."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _from_db(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def is_unique_violation(exc: IntegrityError) -> bool:
    orig = getattr(exc, "orig", None)
    pgcode = getattr(orig, "pgcode", None)
    if pgcode is not None:
        return pgcode == "23505"
    return "unique" in str(orig).lower()


def is_post_url_violation(exc: IntegrityError) -> bool:
    """True only for a uniqueness violation on the post url constraint."""
    if not is_unique_violation(exc):
        return False
    orig = getattr(exc, "orig", None)
    diag = getattr(orig, "diag", None)
    constraint = getattr(diag, "constraint_name", None)
    if constraint is not None:
        return constraint == POST_URL_CONSTRAINT
    message = str(orig)
    # SQLite: "UNIQUE constraint failed: posts.url"
    return POST_URL_CONSTRAINT in message or message.rstrip().endswith("posts.url")


class FeedStorage(StorageInterface):
    """SQLAlchemy-based storage (SQLite locally, any SQLAlchemy URL otherwise)."""

    def __init__(self, database_url: str = None):
        if database_url is None:
            from ..config.settings import settings
            database_url = settings.database_url

        # Ensure data directory exists
        if database_url.startswith("sqlite:///"):
            db_path = database_url.replace("sqlite:///", "")
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        self.engine = init_db(database_url)
        self.Session = sessionmaker(bind=self.engine)

    # Polling pipeline

    def get_next_feed_to_fetch(self) -> Optional[Feed]:
        session = self.Session()
        try:
            model = session.query(FeedModel)\
                .order_by(
                    FeedModel.last_fetched_at.asc().nulls_first(),
                    FeedModel.created_at,
                    FeedModel.id,
                )\
                .first()
            return self._model_to_feed(model) if model else None
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to select next feed: {e}") from e
        finally:
            session.close()

    def mark_feed_fetched(self, feed_id: str, fetched_at: datetime) -> None:
        session = self.Session()
        try:
            model = session.get(FeedModel, feed_id)
            if model is None:
                raise StorageError(f"No feed with id {feed_id}")
            model.last_fetched_at = _to_db(fetched_at)
            model.updated_at = _to_db(fetched_at)
            session.commit()
            logger.debug("feed_marked_fetched", feed_id=feed_id, fetched_at=fetched_at.isoformat())
        except SQLAlchemyError as e:
            session.rollback()
            raise StorageError(f"Failed to mark feed {feed_id} fetched: {e}") from e
        finally:
            session.close()

    def create_post(self, post: Post) -> Optional[Post]:
        """Save post, return it or None if its url is already stored."""
        session = self.Session()
        try:
            model = PostModel(
                id=post.id,
                feed_id=post.feed_id,
                title=post.title,
                url=post.url,
                description=post.description,
                published_at=_to_db(post.published_at),
                created_at=_to_db(post.created_at),
                updated_at=_to_db(post.updated_at),
            )
            session.add(model)
            session.commit()
            logger.debug("post_saved", id=post.id, url=post.url[:80])
            return post
        except IntegrityError as e:
            session.rollback()
            if is_post_url_violation(e):
                logger.debug("post_duplicate", url=post.url[:80])
                return None
            raise StorageError(f"Failed to save post {post.url}: {e.orig}") from e
        except SQLAlchemyError as e:
            session.rollback()
            raise StorageError(f"Failed to save post {post.url}: {e}") from e
        finally:
            session.close()

    # Users

    def create_user(self, name: str) -> User:
        now = utcnow()
        user = User(id=str(uuid.uuid4()), name=name, created_at=now, updated_at=now)
        self._insert(
            UserModel(id=user.id, name=name, created_at=_to_db(now), updated_at=_to_db(now)),
            f"User '{name}' is already registered",
        )
        logger.info("user_created", name=name)
        return user

    def get_user(self, name: str) -> Optional[User]:
        session = self.Session()
        try:
            model = session.query(UserModel).filter(UserModel.name == name).first()
            return self._model_to_user(model) if model else None
        finally:
            session.close()

    def get_user_by_id(self, user_id: str) -> Optional[User]:
        session = self.Session()
        try:
            model = session.get(UserModel, user_id)
            return self._model_to_user(model) if model else None
        finally:
            session.close()

    def list_users(self) -> List[User]:
        session = self.Session()
        try:
            models = session.query(UserModel).order_by(UserModel.name).all()
            return [self._model_to_user(m) for m in models]
        finally:
            session.close()

    def reset(self) -> None:
        session = self.Session()
        try:
            # Children first, so this works without cascading foreign keys too.
            for model in (PostModel, FeedFollowModel, FeedModel, UserModel):
                session.execute(delete(model))
            session.commit()
            logger.info("database_reset")
        except SQLAlchemyError as e:
            session.rollback()
            raise StorageError(f"Failed to reset database: {e}") from e
        finally:
            session.close()

    # Feeds and follows

    def create_feed(self, name: str, url: str, user_id: str) -> Feed:
        now = utcnow()
        feed = Feed(
            id=str(uuid.uuid4()), name=name, url=url, user_id=user_id,
            created_at=now, updated_at=now,
        )
        self._insert(
            FeedModel(
                id=feed.id, name=name, url=url, user_id=user_id,
                created_at=_to_db(now), updated_at=_to_db(now),
            ),
            f"Feed with URL already exists: {url}",
        )
        logger.info("feed_created", name=name, url=url)
        return feed

    def get_feed_by_url(self, url: str) -> Optional[Feed]:
        session = self.Session()
        try:
            model = session.query(FeedModel).filter(FeedModel.url == url).first()
            return self._model_to_feed(model) if model else None
        finally:
            session.close()

    def list_feeds(self) -> List[Feed]:
        session = self.Session()
        try:
            models = session.query(FeedModel).order_by(FeedModel.created_at, FeedModel.id).all()
            return [self._model_to_feed(m) for m in models]
        finally:
            session.close()

    def create_feed_follow(self, user_id: str, feed_id: str) -> FeedFollow:
        now = utcnow()
        follow_id = str(uuid.uuid4())
        self._insert(
            FeedFollowModel(
                id=follow_id, user_id=user_id, feed_id=feed_id,
                created_at=_to_db(now), updated_at=_to_db(now),
            ),
            "Feed is already followed",
        )

        session = self.Session()
        try:
            feed = session.get(FeedModel, feed_id)
            user = session.get(UserModel, user_id)
            logger.info("feed_followed", user=user.name, feed=feed.name)
            return FeedFollow(
                id=follow_id, user_id=user_id, feed_id=feed_id,
                feed_name=feed.name, user_name=user.name,
                created_at=now, updated_at=now,
            )
        finally:
            session.close()

    def list_feed_follows(self, user_id: str) -> List[FeedFollow]:
        session = self.Session()
        try:
            rows = session.query(FeedFollowModel, FeedModel.name, UserModel.name)\
                .join(FeedModel, FeedModel.id == FeedFollowModel.feed_id)\
                .join(UserModel, UserModel.id == FeedFollowModel.user_id)\
                .filter(FeedFollowModel.user_id == user_id)\
                .order_by(FeedFollowModel.created_at, FeedFollowModel.id)\
                .all()
            return [
                FeedFollow(
                    id=follow.id, user_id=follow.user_id, feed_id=follow.feed_id,
                    feed_name=feed_name, user_name=user_name,
                    created_at=_from_db(follow.created_at),
                    updated_at=_from_db(follow.updated_at),
                )
                for follow, feed_name, user_name in rows
            ]
        finally:
            session.close()

    def delete_feed_follow(self, user_id: str, url: str) -> int:
        session = self.Session()
        try:
            feed_ids = select(FeedModel.id).where(FeedModel.url == url)
            result = session.execute(
                delete(FeedFollowModel)
                .where(FeedFollowModel.user_id == user_id)
                .where(FeedFollowModel.feed_id.in_(feed_ids))
            )
            session.commit()
            logger.info("feed_unfollowed", user_id=user_id, url=url, rows=result.rowcount)
            return result.rowcount
        except SQLAlchemyError as e:
            session.rollback()
            raise StorageError(f"Failed to unfollow {url}: {e}") from e
        finally:
            session.close()

    # Posts

    def get_posts_for_user(self, user_id: str, limit: int = 2) -> List[Post]:
        session = self.Session()
        try:
            models = session.query(PostModel)\
                .join(FeedFollowModel, FeedFollowModel.feed_id == PostModel.feed_id)\
                .filter(FeedFollowModel.user_id == user_id)\
                .order_by(PostModel.published_at.desc())\
                .limit(limit)\
                .all()
            return [self._model_to_post(m) for m in models]
        finally:
            session.close()

    def get_post_by_url(self, url: str) -> Optional[Post]:
        session = self.Session()
        try:
            model = session.query(PostModel).filter(PostModel.url == url).first()
            return self._model_to_post(model) if model else None
        finally:
            session.close()

    def count_posts(self) -> int:
        session = self.Session()
        try:
            return session.query(PostModel).count()
        finally:
            session.close()

    def _insert(self, model, duplicate_message: str) -> None:
        session = self.Session()
        try:
            session.add(model)
            session.commit()
        except IntegrityError as e:
            session.rollback()
            if is_unique_violation(e):
                raise AlreadyExists(duplicate_message) from e
            raise StorageError(str(e.orig)) from e
        except SQLAlchemyError as e:
            session.rollback()
            raise StorageError(str(e)) from e
        finally:
            session.close()

    def _model_to_user(self, model: UserModel) -> User:
        return User(
            id=model.id,
            name=model.name,
            created_at=_from_db(model.created_at),
            updated_at=_from_db(model.updated_at),
        )

    def _model_to_feed(self, model: FeedModel) -> Feed:
        return Feed(
            id=model.id,
            name=model.name,
            url=model.url,
            user_id=model.user_id,
            last_fetched_at=_from_db(model.last_fetched_at),
            created_at=_from_db(model.created_at),
            updated_at=_from_db(model.updated_at),
        )

    def _model_to_post(self, model: PostModel) -> Post:
        """Convert database model to Post."""
        return Post(
            id=model.id,
            feed_id=model.feed_id,
            title=model.title,
            url=model.url,
            description=model.description,
            published_at=_from_db(model.published_at),
            created_at=_from_db(model.created_at),
            updated_at=_from_db(model.updated_at),
        )
