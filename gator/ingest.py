"""
Post Ingestor: turns the items of one fetched feed into stored posts.

Every item is attempted. A bad date, a missing link or a failed write skips
that one item and the rest of the batch carries on.
"""

from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from gator.dates import UnrecognizedDateFormat, parse_published_date
from gator.fetchers.base import FeedItem, FetchedFeed
from gator.store import FeedStore, NewPost
from gator.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class IngestSummary:
    items: int = 0
    stored: int = 0
    duplicates: int = 0
    skipped: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)


class PostIngestor:
    def __init__(self, store: FeedStore):
        self.store = store

    async def ingest(self, feed_id: UUID, content: FetchedFeed) -> IngestSummary:
        summary = IngestSummary(items=len(content.items))

        for position, item in enumerate(content.items):
            post = self._to_post(feed_id, position, item, summary)
            if post is None:
                continue

            try:
                written = await self.store.insert_post(post)
            except SQLAlchemyError as exc:
                summary.failed += 1
                summary.errors.append(f"{post.url}: {exc}")
                logger.error("post_write_failed", feed_id=str(feed_id), url=post.url, error=str(exc))
                continue

            if written:
                summary.stored += 1
            else:
                summary.duplicates += 1

        logger.info(
            "feed_ingested",
            feed_id=str(feed_id),
            items=summary.items,
            stored=summary.stored,
            duplicates=summary.duplicates,
            skipped=summary.skipped,
            failed=summary.failed,
        )
        return summary

    def _to_post(
        self, feed_id: UUID, position: int, item: FeedItem, summary: IngestSummary
    ) -> NewPost | None:
        try:
            published_at = parse_published_date(item.published)
        except UnrecognizedDateFormat as exc:
            summary.skipped += 1
            summary.errors.append(str(exc))
            logger.warning(
                "post_date_unrecognized",
                feed_id=str(feed_id),
                position=position,
                url=item.link,
                published=exc.raw,
            )
            return None

        url = item.link.strip()
        if not url:
            summary.skipped += 1
            summary.errors.append(f"item {position} has no link")
            logger.warning("post_missing_url", feed_id=str(feed_id), position=position)
            return None

        return NewPost(
            title=item.title,
            url=url,
            feed_id=feed_id,
            description=item.description or None,
            published_at=published_at,
        )
