"""
Feed Store tests against in-memory SQLite.
"""

from datetime import datetime, timedelta, timezone

import pytest

from gator.store import FeedStore, NewPost

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


async def _add_feeds(store: FeedStore, user, count: int):
    return [
        await store.create_feed(f"Feed {i}", f"https://example.com/{i}/rss", user.id)
        for i in range(count)
    ]


@pytest.mark.asyncio
async def test_next_feed_is_none_without_feeds(store):
    assert await store.next_feed_to_fetch() is None
    assert await store.claim_next_feed(T0) is None


@pytest.mark.asyncio
@pytest.mark.parametrize("fetched_index", [0, 1])
async def test_never_fetched_feeds_come_first(store, user, fetched_index):
    """A null last_fetched_at beats any timestamp, whatever the insertion order."""
    feeds = await _add_feeds(store, user, 2)
    fetched = feeds[fetched_index]
    never = feeds[1 - fetched_index]
    await store.mark_fetched(fetched.id, T0 - timedelta(days=365))

    assert (await store.next_feed_to_fetch()).id == never.id
    assert (await store.claim_next_feed(T0)).id == never.id


@pytest.mark.asyncio
async def test_earliest_fetch_time_wins_then_rotates(store, user):
    a, b = await _add_feeds(store, user, 2)
    await store.mark_fetched(a.id, T0)
    await store.mark_fetched(b.id, T0 + timedelta(minutes=5))

    first = await store.claim_next_feed(T0 + timedelta(minutes=10))
    assert first.id == a.id

    second = await store.claim_next_feed(T0 + timedelta(minutes=11))
    assert second.id == b.id


@pytest.mark.asyncio
async def test_ties_break_by_id(store, user):
    feeds = await _add_feeds(store, user, 3)
    expected = min(feeds, key=lambda f: f.id)

    chosen = await store.next_feed_to_fetch()
    assert chosen.id == expected.id


@pytest.mark.asyncio
async def test_claim_marks_the_feed(store, user):
    (feed,) = await _add_feeds(store, user, 1)

    claimed = await store.claim_next_feed(T0)
    assert claimed.id == feed.id
    assert claimed.last_fetched_at == T0

    reloaded = await store.get_feed(feed.id)
    assert reloaded.last_fetched_at == T0
    assert reloaded.updated_at == T0


@pytest.mark.asyncio
async def test_mark_fetched_never_moves_backwards(store, user):
    (feed,) = await _add_feeds(store, user, 1)

    assert await store.mark_fetched(feed.id, T0) is True
    assert await store.mark_fetched(feed.id, T0 - timedelta(seconds=1)) is False

    reloaded = await store.get_feed(feed.id)
    assert reloaded.last_fetched_at == T0


@pytest.mark.asyncio
async def test_mark_fetched_unknown_feed(store):
    from uuid import uuid4

    assert await store.mark_fetched(uuid4(), T0) is False


@pytest.mark.asyncio
async def test_insert_post_is_idempotent_on_url(store, user):
    (feed,) = await _add_feeds(store, user, 1)
    post = NewPost(title="Hello", url="https://example.com/hello", feed_id=feed.id)

    assert await store.insert_post(post) is True
    assert await store.insert_post(post) is False
    assert await store.count_posts() == 1


@pytest.mark.asyncio
async def test_insert_post_keeps_optional_fields(store, user):
    (feed,) = await _add_feeds(store, user, 1)
    await store.insert_post(
        NewPost(
            title="Dated",
            url="https://example.com/dated",
            feed_id=feed.id,
            description="body",
            published_at=T0,
        )
    )

    (stored,) = await store.posts_for_feed(feed.id)
    assert stored.description == "body"
    assert stored.published_at == T0
    assert stored.feed_id == feed.id


@pytest.mark.asyncio
async def test_duplicate_feed_url_rejected(store, user):
    from sqlalchemy.exc import IntegrityError

    await store.create_feed("One", "https://example.com/rss", user.id)
    with pytest.raises(IntegrityError):
        await store.create_feed("Two", "https://example.com/rss", user.id)


@pytest.mark.asyncio
async def test_delete_all_users_cascades(store, user):
    (feed,) = await _add_feeds(store, user, 1)
    await store.insert_post(NewPost(title="x", url="https://example.com/x", feed_id=feed.id))

    assert await store.delete_all_users() == 1
    assert await store.list_users() == []
    assert await store.list_feeds() == []
    assert await store.count_posts() == 0


@pytest.mark.asyncio
async def test_list_feeds_includes_owner(store, user):
    await _add_feeds(store, user, 2)
    rows = await store.list_feeds()
    assert [owner for _, owner in rows] == ["alice", "alice"]


@pytest.mark.asyncio
async def test_posts_for_user_newest_first_with_limit(store, user):
    (feed,) = await _add_feeds(store, user, 1)
    for hours in range(3):
        await store.insert_post(
            NewPost(
                title=f"p{hours}",
                url=f"https://example.com/p{hours}",
                feed_id=feed.id,
                published_at=T0 + timedelta(hours=hours),
            )
        )

    posts = await store.posts_for_user(user.id, limit=2)
    assert [p.title for p in posts] == ["p2", "p1"]


@pytest.mark.asyncio
async def test_posts_for_user_ignores_other_users_feeds(store, user):
    bob = await store.create_user("bob")
    bobs_feed = await store.create_feed("Bob's", "https://bob.example.com/rss", bob.id)
    await store.insert_post(NewPost(title="b", url="https://bob.example.com/b", feed_id=bobs_feed.id))

    assert await store.posts_for_user(user.id, limit=10) == []
