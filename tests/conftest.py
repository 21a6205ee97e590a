"""Pytest configuration and shared fixtures."""

import pytest
import tempfile
import os
from datetime import datetime, timezone
from pathlib import Path

# Add project root to path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))


SAMPLE_RSS = b"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0" xmlns:atom="http://www.w3.org/2005/Atom">
<channel>
  <title>Boot.dev Blog</title>
  <link>https://blog.boot.dev/</link>
  <description>Recent content on Boot.dev Blog</description>
  <generator>Hugo</generator>
  <language>en-us</language>
  <atom:link href="https://blog.boot.dev/index.xml" rel="self" type="application/rss+xml"/>
  <item>
    <title>First post</title>
    <link>https://blog.boot.dev/a</link>
    <pubDate>Mon, 02 Jan 2006 15:04:05 MST</pubDate>
    <guid>https://blog.boot.dev/a</guid>
    <description>The first post</description>
  </item>
  <item>
    <title>Second post</title>
    <link>https://blog.boot.dev/b</link>
    <pubDate>2006-01-02T15:04:05Z</pubDate>
    <description>The second post</description>
  </item>
</channel>
</rss>
"""


def rss_document(items, title="Test Feed"):
    """Build an RSS 2.0 document from (title, link, pub_date) tuples."""
    body = "".join(
        f"<item><title>{t}</title><link>{link}</link>"
        f"<description>{t} description</description><pubDate>{date}</pubDate></item>"
        for t, link, date in items
    )
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        f'<rss version="2.0"><channel><title>{title}</title>'
        f"<link>https://example.com/</link><description>Test</description>"
        f"{body}</channel></rss>"
    ).encode()


@pytest.fixture
def temp_db():
    """Provide a temporary database file."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name
    yield f"sqlite:///{db_path}"
    # Cleanup
    try:
        os.unlink(db_path)
    except FileNotFoundError:
        pass


@pytest.fixture
def storage(temp_db):
    """Provide a FeedStorage on a temporary database."""
    from gator.storage.database import FeedStorage
    store = FeedStorage(temp_db)
    yield store
    store.engine.dispose()


@pytest.fixture
def user(storage):
    """Provide a registered user."""
    return storage.create_user("alice")


@pytest.fixture
def feed(storage, user):
    """Provide a never-fetched feed owned (and followed) by ``user``."""
    feed = storage.create_feed("Boot.dev Blog", "https://blog.boot.dev/index.xml", user.id)
    storage.create_feed_follow(user.id, feed.id)
    return feed


@pytest.fixture
def config_path(tmp_path):
    """Provide a path for a per-test config file."""
    return str(tmp_path / ".gatorconfig.json")


@pytest.fixture
def fixed_now():
    return datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def sample_rss():
    """Provide a two-item RSS document."""
    return SAMPLE_RSS


@pytest.fixture
def make_rss():
    """Provide the RSS document builder."""
    return rss_document
