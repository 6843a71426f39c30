"""
Shared fixtures: an in-memory SQLite store per test, plus small builders.
"""

from pathlib import Path

import pytest
import pytest_asyncio

from gator.config import Settings
from gator.context import AppContext
from gator.fetchers.base import BaseFeedFetcher, FeedItem, FetchedFeed
from gator.store import FeedStore
from gator.utils.logging import setup_logging

setup_logging()


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    return Settings(
        app_env="test",
        database_url="sqlite+aiosqlite://",
        user_config_path=tmp_path / ".gatorconfig.json",
    )


@pytest_asyncio.fixture
async def ctx(test_settings: Settings):
    async with AppContext.from_settings(test_settings) as context:
        yield context


@pytest_asyncio.fixture
async def store(ctx: AppContext) -> FeedStore:
    return FeedStore(ctx)


@pytest_asyncio.fixture
async def user(store: FeedStore):
    return await store.create_user("alice")


def make_item(
    n: int,
    published: str = "Mon, 02 Jan 2006 15:04:05 -0700",
    description: str = "",
) -> FeedItem:
    return FeedItem(
        title=f"Post {n}",
        link=f"https://example.com/posts/{n}",
        description=description,
        published=published,
    )


def make_feed(*items: FeedItem) -> FetchedFeed:
    return FetchedFeed(
        title="Example",
        link="https://example.com/",
        description="Example feed",
        items=tuple(items),
    )


class StubFetcher(BaseFeedFetcher):
    """Returns canned content (or raises) and records every URL asked for."""

    def __init__(self, content: FetchedFeed | None = None, error: Exception | None = None):
        self.content = content or make_feed()
        self.error = error
        self.calls: list[str] = []

    async def fetch(self, url: str) -> FetchedFeed:
        self.calls.append(url)
        if self.error is not None:
            raise self.error
        return self.content
