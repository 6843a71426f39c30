import asyncio

import feedparser
import httpx

from gator.config import settings
from gator.fetchers.base import (
    BaseFeedFetcher,
    FeedFetchError,
    FeedItem,
    FeedParseError,
    FetchedFeed,
)
from gator.utils.logging import get_logger

logger = get_logger(__name__)


class RSSFeedFetcher(BaseFeedFetcher):
    """Downloads a feed with httpx and parses it with feedparser."""

    def __init__(self, timeout: float | None = None, user_agent: str | None = None):
        self.timeout = timeout or settings.fetch_timeout
        self.user_agent = user_agent or settings.fetch_user_agent

    async def fetch(self, url: str) -> FetchedFeed:
        try:
            body = await asyncio.wait_for(self._download(url), timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            raise FeedFetchError(url, f"timed out after {self.timeout}s") from exc

        content = parse_feed(url, body)
        logger.info("feed_fetched", url=url, items=len(content.items))
        return content

    async def _download(self, url: str) -> bytes:
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                headers={"User-Agent": self.user_agent},
                follow_redirects=True,
            ) as client:
                response = await client.get(url)
        except httpx.HTTPError as exc:
            raise FeedFetchError(url, f"{type(exc).__name__}: {exc}") from exc

        if not 200 <= response.status_code < 300:
            raise FeedFetchError(url, f"unexpected status {response.status_code}")
        return response.content


def parse_feed(url: str, body: bytes | str) -> FetchedFeed:
    """Turn a syndication document into a FetchedFeed, keeping item order."""
    parsed = feedparser.parse(body)

    if parsed.bozo and not parsed.entries:
        raise FeedParseError(url, f"malformed feed: {parsed.get('bozo_exception')}")

    channel = parsed.feed
    items = tuple(
        FeedItem(
            title=entry.get("title", ""),
            link=entry.get("link", ""),
            description=entry.get("description", ""),
            published=entry.get("published", ""),
        )
        for entry in parsed.entries
    )
    return FetchedFeed(
        title=channel.get("title", ""),
        link=channel.get("link", ""),
        description=channel.get("description", ""),
        items=items,
    )
