"""
Feed Store: every read and write the poller and the CLI make.

Each public method runs in its own transaction, so a failed write never
poisons the next one.

Dedup lives here: ``insert_post`` is an INSERT ... ON CONFLICT (url) DO
NOTHING, so concurrent workers cannot race between a check and an insert.
``claim_next_feed`` selects and marks in one UPDATE ... RETURNING for the
same reason.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import case, delete, func, literal, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import aliased

from gator.context import AppContext
from gator.db.models import Feed, Post, UTCDateTime, User, utcnow

_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


@dataclass(frozen=True)
class NewPost:
    """A post ready to be written, keyed by its URL."""
    title: str
    url: str
    feed_id: UUID
    description: str | None = None
    published_at: datetime | None = None


def _fetch_order(table=Feed):
    # Never-fetched feeds first, then oldest fetch; id breaks ties.
    return (table.last_fetched_at.asc().nulls_first(), table.id.asc())


def _not_before(fetched_at: datetime):
    # Keeps last_fetched_at monotonic if another worker's clock ran ahead.
    return case(
        (Feed.last_fetched_at > fetched_at, Feed.last_fetched_at),
        else_=literal(fetched_at, UTCDateTime()),
    )


class FeedStore:
    """Repository over users, feeds and posts."""

    def __init__(self, ctx: AppContext):
        dialect = ctx.engine.dialect.name
        if dialect not in _INSERTS:
            raise ValueError(f"unsupported database backend: {dialect}")
        self._insert = _INSERTS[dialect]
        self._sessions = ctx.session_factory

    # ------------------------------------------------------------------ #
    # Users
    # ------------------------------------------------------------------ #

    async def create_user(self, name: str) -> User:
        now = utcnow()
        user = User(id=uuid4(), name=name, created_at=now, updated_at=now)
        async with self._sessions.begin() as session:
            session.add(user)
        return user

    async def get_user(self, name: str) -> User | None:
        async with self._sessions() as session:
            result = await session.execute(select(User).where(User.name == name))
            return result.scalar_one_or_none()

    async def list_users(self) -> Sequence[User]:
        async with self._sessions() as session:
            result = await session.execute(select(User).order_by(User.name))
            return result.scalars().all()

    async def delete_all_users(self) -> int:
        """Delete every user; feeds and posts go with them."""
        async with self._sessions.begin() as session:
            result = await session.execute(delete(User))
            return result.rowcount

    # ------------------------------------------------------------------ #
    # Feeds
    # ------------------------------------------------------------------ #

    async def create_feed(self, name: str, url: str, user_id: UUID) -> Feed:
        now = utcnow()
        feed = Feed(
            id=uuid4(),
            name=name,
            url=url,
            user_id=user_id,
            created_at=now,
            updated_at=now,
        )
        async with self._sessions.begin() as session:
            session.add(feed)
        return feed

    async def get_feed(self, feed_id: UUID) -> Feed | None:
        async with self._sessions() as session:
            return await session.get(Feed, feed_id)

    async def get_feed_by_url(self, url: str) -> Feed | None:
        async with self._sessions() as session:
            result = await session.execute(select(Feed).where(Feed.url == url))
            return result.scalar_one_or_none()

    async def list_feeds(self) -> list[tuple[Feed, str]]:
        """All feeds with their owner's name, oldest first."""
        async with self._sessions() as session:
            result = await session.execute(
                select(Feed, User.name)
                .join(User, Feed.user_id == User.id)
                .order_by(Feed.created_at, Feed.id)
            )
            return [(feed, owner) for feed, owner in result.all()]

    async def next_feed_to_fetch(self) -> Feed | None:
        """The feed the poller would pick next, without claiming it."""
        async with self._sessions() as session:
            result = await session.execute(select(Feed).order_by(*_fetch_order()).limit(1))
            return result.scalar_one_or_none()

    async def mark_fetched(self, feed_id: UUID, fetched_at: datetime) -> bool:
        """
        Record ``fetched_at`` as the feed's last fetch time.

        Returns False when the feed doesn't exist or already carries a later
        timestamp; ``last_fetched_at`` never moves backwards.
        """
        stmt = (
            update(Feed)
            .where(Feed.id == feed_id)
            .where(or_(Feed.last_fetched_at.is_(None), Feed.last_fetched_at <= fetched_at))
            .values(last_fetched_at=fetched_at, updated_at=fetched_at)
            .execution_options(synchronize_session=False)
        )
        async with self._sessions.begin() as session:
            result = await session.execute(stmt)
            return result.rowcount == 1

    async def claim_next_feed(self, fetched_at: datetime) -> Feed | None:
        """
        Atomically pick the least-recently-fetched feed and mark it fetched.

        Row locks are skipped rather than waited on, so two workers sharing a
        PostgreSQL store never claim the same feed. Returns None when there
        are no feeds.
        """
        # Aliased so the subquery does not correlate to the UPDATE target.
        picked = aliased(Feed, name="picked")
        candidate = (
            select(picked.id)
            .order_by(*_fetch_order(picked))
            .limit(1)
            .with_for_update(skip_locked=True)
            .scalar_subquery()
        )
        stmt = (
            update(Feed)
            .where(Feed.id == candidate)
            .values(last_fetched_at=_not_before(fetched_at), updated_at=fetched_at)
            .returning(Feed)
            .execution_options(synchronize_session=False)
        )
        async with self._sessions.begin() as session:
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    # ------------------------------------------------------------------ #
    # Posts
    # ------------------------------------------------------------------ #

    async def insert_post(self, post: NewPost) -> bool:
        """Insert ``post`` unless its URL is already stored. Returns True if written."""
        now = utcnow()
        stmt = (
            self._insert(Post.__table__)
            .values(
                id=uuid4(),
                title=post.title,
                url=post.url,
                description=post.description,
                published_at=post.published_at,
                feed_id=post.feed_id,
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_nothing(index_elements=["url"])
        )
        async with self._sessions.begin() as session:
            result = await session.execute(stmt)
            return result.rowcount == 1

    async def posts_for_feed(self, feed_id: UUID) -> Sequence[Post]:
        async with self._sessions() as session:
            result = await session.execute(
                select(Post).where(Post.feed_id == feed_id).order_by(Post.created_at, Post.url)
            )
            return result.scalars().all()

    async def posts_for_user(self, user_id: UUID, limit: int = 2) -> Sequence[Post]:
        """Newest posts from feeds the user added."""
        async with self._sessions() as session:
            result = await session.execute(
                select(Post)
                .join(Feed, Post.feed_id == Feed.id)
                .where(Feed.user_id == user_id)
                .order_by(Post.published_at.desc().nulls_last(), Post.created_at.desc())
                .limit(limit)
            )
            return result.scalars().all()

    async def count_posts(self) -> int:
        async with self._sessions() as session:
            result = await session.execute(select(func.count(Post.id)))
            return result.scalar_one()
