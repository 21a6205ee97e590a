"""Database storage and models."""

from .interfaces import (
    StorageInterface, StorageError, AlreadyExists,
    User, Feed, FeedFollow, Post,
)
from .database import FeedStorage
from .models import UserModel, FeedModel, FeedFollowModel, PostModel, init_db

__all__ = [
    "StorageInterface", "StorageError", "AlreadyExists",
    "User", "Feed", "FeedFollow", "Post",
    "FeedStorage", "UserModel", "FeedModel", "FeedFollowModel", "PostModel", "init_db",
]
