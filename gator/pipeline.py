"""
Claim → Fetch → Ingest: one polling cycle.

The feed is marked fetched before the network request goes out, so a slow
or permanently broken feed waits for its turn in the rotation instead of
being retried every cycle while healthy feeds starve.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from gator.fetchers.base import BaseFeedFetcher
from gator.ingest import IngestSummary, PostIngestor
from gator.store import FeedStore
from gator.utils.logging import get_logger

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CycleResult:
    """What one cycle did. ``error`` is set when the cycle was cut short."""
    feed_id: UUID | None = None
    feed_url: str | None = None
    fetched_at: datetime | None = None
    ingest: IngestSummary | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def idle(self) -> bool:
        """No feed was available to poll."""
        return self.ok and self.feed_id is None

    def as_log_fields(self) -> dict:
        fields = {
            "feed_id": str(self.feed_id) if self.feed_id else None,
            "feed_url": self.feed_url,
            "ok": self.ok,
        }
        if self.ingest is not None:
            fields.update(
                items=self.ingest.items,
                stored=self.ingest.stored,
                duplicates=self.ingest.duplicates,
                skipped=self.ingest.skipped,
                failed=self.ingest.failed,
            )
        if self.error is not None:
            fields["error"] = str(self.error)
        return fields


class FetchScheduler:
    """Selects the next feed and drives one fetch/ingest cycle for it."""

    def __init__(
        self,
        store: FeedStore,
        fetcher: BaseFeedFetcher,
        ingestor: PostIngestor | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.fetcher = fetcher
        self.ingestor = ingestor or PostIngestor(store)
        self.clock = clock

    async def run_one_cycle(self) -> CycleResult:
        """
        Claim the least-recently-fetched feed, fetch it, ingest its items.

        Never raises for store or fetch failures; they come back on
        ``CycleResult.error``.
        """
        now = self.clock()
        result = CycleResult(fetched_at=now)

        try:
            feed = await self.store.claim_next_feed(now)
        except SQLAlchemyError as exc:
            logger.error("feed_selection_failed", error=str(exc))
            result.error = exc
            return result

        if feed is None:
            logger.debug("no_feeds_to_fetch")
            return result

        result.feed_id = feed.id
        result.feed_url = feed.url
        logger.info("feed_claimed", feed_id=str(feed.id), name=feed.name, url=feed.url)

        try:
            content = await self.fetcher.fetch(feed.url)
        except Exception as exc:
            logger.error("feed_fetch_failed", feed_id=str(feed.id), url=feed.url, error=str(exc))
            result.error = exc
            return result

        result.ingest = await self.ingestor.ingest(feed.id, content)
        return result
