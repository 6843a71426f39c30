from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass(frozen=True)
class FeedItem:
    """One <item> of a fetched feed, as the source wrote it."""
    title: str
    link: str
    description: str = ""
    published: str = ""  # raw date string, normalized later


@dataclass(frozen=True)
class FetchedFeed:
    """Channel metadata plus items in document order. Never persisted."""
    title: str
    link: str
    description: str = ""
    items: tuple[FeedItem, ...] = field(default_factory=tuple)


class FeedFetchError(Exception):
    """Network, timeout or HTTP status failure while fetching a feed."""

    def __init__(self, url: str, message: str):
        super().__init__(f"{url}: {message}")
        self.url = url


class FeedParseError(FeedFetchError):
    """The document was retrieved but is not a readable feed."""


class BaseFeedFetcher(ABC):
    """Abstract base for anything that turns a feed URL into a FetchedFeed."""

    @abstractmethod
    async def fetch(self, url: str) -> FetchedFeed:
        """Fetch and parse ``url``. Raises FeedFetchError on any failure."""
        ...
