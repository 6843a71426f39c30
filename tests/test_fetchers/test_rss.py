import asyncio
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

FIXTURE = (Path(__file__).parent.parent / "fixtures" / "sample_rss.xml").read_bytes()
URL = "https://example.com/rss"


def _mock_response(content: bytes, status_code: int = 200):
    response = MagicMock()
    response.status_code = status_code
    response.content = content
    return response


def _mock_client(mock_client_class, **get_kwargs):
    mock_client = AsyncMock()
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=False)
    mock_client.get = AsyncMock(**get_kwargs)
    mock_client_class.return_value = mock_client
    return mock_client


def _make_fetcher(timeout: float = 5.0):
    from gator.fetchers.rss import RSSFeedFetcher
    return RSSFeedFetcher(timeout=timeout, user_agent="gator-tests")


@pytest.mark.asyncio
async def test_fetch_returns_channel_and_items_in_order():
    from gator.fetchers.base import FetchedFeed

    with patch("httpx.AsyncClient") as mock_client_class:
        _mock_client(mock_client_class, return_value=_mock_response(FIXTURE))
        feed = await _make_fetcher().fetch(URL)

    assert isinstance(feed, FetchedFeed)
    assert feed.title == "Example Engineering Blog"
    assert feed.link == "https://example.com/"
    assert feed.description == "Notes from the example team"
    assert [item.link for item in feed.items] == [
        "https://example.com/posts/new-poller",
        "https://example.com/posts/release-notes",
        "https://example.com/posts/draft",
    ]


@pytest.mark.asyncio
async def test_fetch_keeps_raw_dates_and_descriptions():
    with patch("httpx.AsyncClient") as mock_client_class:
        _mock_client(mock_client_class, return_value=_mock_response(FIXTURE))
        feed = await _make_fetcher().fetch(URL)

    first, second, _ = feed.items
    assert first.published == "Mon, 02 Jan 2006 15:04:05 -0700"
    assert first.description == "How we rebuilt feed polling and ingestion."
    assert second.description == ""


@pytest.mark.asyncio
async def test_fetch_sends_user_agent():
    with patch("httpx.AsyncClient") as mock_client_class:
        mock_client = _mock_client(mock_client_class, return_value=_mock_response(FIXTURE))
        await _make_fetcher().fetch(URL)

    _, kwargs = mock_client_class.call_args
    assert kwargs["headers"]["User-Agent"] == "gator-tests"
    assert kwargs["follow_redirects"] is True
    mock_client.get.assert_awaited_once_with(URL)


@pytest.mark.asyncio
async def test_fetch_raises_on_http_error_status():
    from gator.fetchers.base import FeedFetchError

    with patch("httpx.AsyncClient") as mock_client_class:
        _mock_client(mock_client_class, return_value=_mock_response(b"", status_code=503))

        with pytest.raises(FeedFetchError, match="503"):
            await _make_fetcher().fetch(URL)


@pytest.mark.asyncio
async def test_fetch_wraps_transport_errors():
    from gator.fetchers.base import FeedFetchError

    with patch("httpx.AsyncClient") as mock_client_class:
        _mock_client(mock_client_class, side_effect=httpx.ConnectError("connection refused"))

        with pytest.raises(FeedFetchError, match="ConnectError") as excinfo:
            await _make_fetcher().fetch(URL)

    assert excinfo.value.url == URL


@pytest.mark.asyncio
async def test_fetch_times_out_on_hung_server():
    from gator.fetchers.base import FeedFetchError

    async def _hang(*args, **kwargs):
        await asyncio.sleep(10)

    with patch("httpx.AsyncClient") as mock_client_class:
        _mock_client(mock_client_class, side_effect=_hang)

        with pytest.raises(FeedFetchError, match="timed out"):
            await _make_fetcher(timeout=0.05).fetch(URL)


@pytest.mark.asyncio
async def test_fetch_rejects_non_feed_documents():
    from gator.fetchers.base import FeedParseError

    with patch("httpx.AsyncClient") as mock_client_class:
        _mock_client(mock_client_class, return_value=_mock_response(b"<html><body>oops"))

        with pytest.raises(FeedParseError):
            await _make_fetcher().fetch(URL)


def test_parse_feed_handles_empty_channel():
    from gator.fetchers.rss import parse_feed

    body = b"""<?xml version="1.0"?><rss version="2.0"><channel>
        <title>Quiet</title><link>https://quiet.example.com/</link>
        <description>Nothing yet</description></channel></rss>"""

    feed = parse_feed(URL, body)

    assert feed.title == "Quiet"
    assert feed.items == ()
