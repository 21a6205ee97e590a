"""Interface definitions for feed ingestion."""

from dataclasses import dataclass, field
from typing import List, Optional


class FetchError(Exception):
    """The feed could not be retrieved (network failure, timeout, HTTP status)."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Failed to fetch {url}: {reason}")


class ParseError(Exception):
    """The feed document was retrieved but is not well-formed."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Failed to parse feed {url}: {reason}")


@dataclass
class RawFeedItem:
    """A single <item> of a fetched feed, as found in the document."""
    title: str = ""
    link: str = ""
    description: str = ""
    pub_date: str = ""


@dataclass
class RawFeed:
    """A fetched feed document. Lives only for one fetch cycle."""
    title: str = ""
    link: str = ""
    description: str = ""
    items: List[RawFeedItem] = field(default_factory=list)

    def __str__(self) -> str:
        body = "\n".join(
            f"\tTitle: {item.title}\n\tLink: {item.link}\n"
            f"\tDescription: {item.description}\n\tPubDate: {item.pub_date}\n"
            for item in self.items
        )
        return (
            f"Title: {self.title}\nLink: {self.link}\n"
            f"Description: {self.description}\nItems: {body}\n"
        )


class FetcherInterface:
    """Interface for feed fetching."""

    async def fetch_feed(self, url: str, deadline: Optional[float] = None) -> RawFeed:
        """Fetch and parse the feed at ``url``."""
        raise NotImplementedError
