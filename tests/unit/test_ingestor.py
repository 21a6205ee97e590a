"""Unit tests for the post ingestor."""

import pytest
from datetime import datetime, timezone
from unittest.mock import MagicMock

from gator.ingestion.ingestor import PostIngestor
from gator.ingestion.interfaces import RawFeed, RawFeedItem
from gator.ingestion.timeparse import UnparseableTimestamp
from gator.storage.interfaces import StorageError


def raw_feed(*items):
    return RawFeed(
        title="Test Feed",
        items=[RawFeedItem(title=t, link=link, description=f"{t} text", pub_date=d) for t, link, d in items],
    )


class TestPostIngestor:
    """Tests for PostIngestor against a real database."""

    def test_two_distinct_links(self, storage, feed):
        """Two entries with distinct links yield two posts with normalized dates."""
        ingestor = PostIngestor(storage)
        result = ingestor.ingest(feed, raw_feed(
            ("A", "https://example.com/a", "Mon, 02 Jan 2006 15:04:05 MST"),
            ("B", "https://example.com/b", "2006-01-02T15:04:05Z"),
        ))

        assert len(result.created) == 2
        assert result.duplicates == 0

        a = storage.get_post_by_url("https://example.com/a")
        b = storage.get_post_by_url("https://example.com/b")
        assert a.published_at == datetime(2006, 1, 2, 22, 4, 5, tzinfo=timezone.utc)
        assert b.published_at == datetime(2006, 1, 2, 15, 4, 5, tzinfo=timezone.utc)
        assert a.feed_id == feed.id
        assert a.title == "A"
        assert a.description == "A text"

    def test_same_entry_twice(self, storage, feed):
        """Ingesting the same link twice stores one post and raises nothing."""
        ingestor = PostIngestor(storage)
        document = raw_feed(("A", "https://example.com/a", "2006-01-02T15:04:05Z"))

        first = ingestor.ingest(feed, document)
        second = ingestor.ingest(feed, document)

        assert len(first.created) == 1
        assert second.created == []
        assert second.duplicates == 1
        assert storage.count_posts() == 1

    def test_duplicate_within_one_document(self, storage, feed):
        ingestor = PostIngestor(storage)
        result = ingestor.ingest(feed, raw_feed(
            ("A", "https://example.com/a", "2006-01-02T15:04:05Z"),
            ("A again", "https://example.com/a", "2006-01-02T15:04:05Z"),
            ("B", "https://example.com/b", "2006-01-02T15:04:05Z"),
        ))

        assert [p.url for p in result.created] == ["https://example.com/a", "https://example.com/b"]
        assert result.duplicates == 1

    def test_bad_date_aborts_remaining_entries(self, storage, feed):
        """Entry 1 is stored, entry 2 fails, entry 3 is never attempted."""
        ingestor = PostIngestor(storage)

        with pytest.raises(UnparseableTimestamp):
            ingestor.ingest(feed, raw_feed(
                ("A", "https://example.com/a", "2006-01-02T15:04:05Z"),
                ("B", "https://example.com/b", "sometime last week"),
                ("C", "https://example.com/c", "2006-01-02T15:04:05Z"),
            ))

        assert storage.get_post_by_url("https://example.com/a") is not None
        assert storage.get_post_by_url("https://example.com/b") is None
        assert storage.get_post_by_url("https://example.com/c") is None

    def test_empty_feed(self, storage, feed):
        result = PostIngestor(storage).ingest(feed, RawFeed(title="Empty"))
        assert result.created == []
        assert result.feed_id == feed.id


class TestPostIngestorWithMockStorage:
    """Tests for ordering and error propagation."""

    def test_entries_inserted_in_document_order(self, feed):
        storage = MagicMock()
        storage.create_post.side_effect = lambda post: post

        PostIngestor(storage).ingest(feed, raw_feed(
            ("C", "https://example.com/c", "2006-01-02T15:04:05Z"),
            ("A", "https://example.com/a", "2006-01-02T15:04:05Z"),
            ("B", "https://example.com/b", "2006-01-02T15:04:05Z"),
        ))

        urls = [c.args[0].url for c in storage.create_post.call_args_list]
        assert urls == ["https://example.com/c", "https://example.com/a", "https://example.com/b"]

    def test_fresh_identity_and_timestamps(self, feed):
        storage = MagicMock()
        storage.create_post.side_effect = lambda post: post

        result = PostIngestor(storage).ingest(feed, raw_feed(
            ("A", "https://example.com/a", "2006-01-02T15:04:05Z"),
            ("B", "https://example.com/b", "2006-01-02T15:04:05Z"),
        ))

        a, b = result.created
        assert a.id != b.id
        assert a.created_at == a.updated_at
        assert a.created_at.tzinfo is not None

    def test_fetched_at_stamps_new_posts(self, feed, fixed_now):
        storage = MagicMock()
        storage.create_post.side_effect = lambda post: post

        result = PostIngestor(storage).ingest(feed, raw_feed(
            ("A", "https://example.com/a", "2006-01-02T15:04:05Z"),
            ("B", "https://example.com/b", "2006-01-02T16:04:05Z"),
        ), fetched_at=fixed_now)

        assert [p.created_at for p in result.created] == [fixed_now, fixed_now]
        assert [p.updated_at for p in result.created] == [fixed_now, fixed_now]

    def test_bad_date_stops_before_insert(self, feed):
        storage = MagicMock()
        storage.create_post.side_effect = lambda post: post

        with pytest.raises(UnparseableTimestamp):
            PostIngestor(storage).ingest(feed, raw_feed(
                ("A", "https://example.com/a", "2006-01-02T15:04:05Z"),
                ("B", "https://example.com/b", ""),
                ("C", "https://example.com/c", "2006-01-02T15:04:05Z"),
            ))

        assert storage.create_post.call_count == 1

    def test_storage_error_propagates(self, feed):
        """Store failures other than duplicates abort the feed."""
        storage = MagicMock()
        storage.create_post.side_effect = [StorageError("connection lost")]

        with pytest.raises(StorageError):
            PostIngestor(storage).ingest(feed, raw_feed(
                ("A", "https://example.com/a", "2006-01-02T15:04:05Z"),
                ("B", "https://example.com/b", "2006-01-02T15:04:05Z"),
            ))

        assert storage.create_post.call_count == 1
